"""Rule dispatcher: one bounded pass over every active rule.

Per rule, independently: evaluate triggers, drop targets the dedup guard
says are handled, run the action executor, then stamp `last_executed_at`.
Anything that goes wrong inside a rule is caught at the rule boundary and
reported as `{ruleId, success: false, error}`; other rules keep running.

The dispatcher holds no state between passes. Callers (CLI, web request,
cron) invoke `run_pass()` and get a report back.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..contracts.v1 import FollowUpReminderRule, RuleRun, parse_rule
from ..kernel.clock import Clock, SystemClock, resolve_timezone
from ..kernel.errors import AutomationError, RuleValidationError
from ..kernel.settings import EngineConfig
from ..kernel.store import DataGateway, new_id
from ..ports.collaborators import Collaborators
from .actions import ActionContext, ActionOutcome, execute
from .dedup import DedupGuard
from .reminders import FOLLOW_UP_TIPS, reminder_view
from .triggers import Target, evaluate

logger = logging.getLogger("jobpilot.engine.automation")


@dataclass
class RuleResult:
    rule_id: str
    user_id: str = ""
    rule_type: str = ""
    success: bool = True
    result: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ruleId": self.rule_id, "success": self.success}
        if self.success:
            out["result"] = self.result
        else:
            out["error"] = self.error
            out["code"] = self.code
            if self.result:
                out["result"] = self.result
        return out


@dataclass
class DispatchReport:
    results: List[RuleResult] = field(default_factory=list)

    @property
    def processed_rules(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {"processedRules": self.processed_rules, "results": [r.to_dict() for r in self.results]}


def validation_message(e: ValidationError) -> str:
    parts: List[str] = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid rule"


class AutomationDispatcher:
    def __init__(
        self,
        gateway: DataGateway,
        collaborators: Collaborators,
        *,
        clock: Optional[Clock] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._gateway = gateway
        self._collaborators = collaborators
        self._clock = clock or SystemClock()
        self._config = config or EngineConfig()
        self._tz = resolve_timezone(self._config.reference_timezone)

    def _context(self, now: datetime, target_pool: ThreadPoolExecutor) -> ActionContext:
        return ActionContext(
            gateway=self._gateway,
            collaborators=self._collaborators,
            config=self._config,
            now=now,
            tz=self._tz,
            target_pool=target_pool,
        )

    def run_pass(self) -> DispatchReport:
        """Run every active rule once. Never raises for a single rule's failure."""
        now = self._clock.now()
        with ThreadPoolExecutor(max_workers=max(1, self._config.target_workers), thread_name_prefix="jobpilot-target") as tpool:
            ctx = self._context(now, tpool)
            rows = ctx.call_gateway(self._gateway.list_active_rules)
            guard = DedupGuard(self._gateway, call_gateway=ctx.call_gateway)
            logger.info("dispatch pass start rules=%d now=%s", len(rows), ctx.now_iso)

            with ThreadPoolExecutor(max_workers=max(1, self._config.rule_workers), thread_name_prefix="jobpilot-rule") as rpool:
                futures = [rpool.submit(self._run_rule_row, row, ctx, guard) for row in rows]
                # Report keeps the fetched rule order.
                results = [f.result() for f in futures]

        report = DispatchReport(results=results)
        failed = sum(1 for r in results if not r.success)
        logger.info("dispatch pass done processed=%d failed=%d", report.processed_rules, failed)
        return report

    def _run_rule_row(self, row: Dict[str, Any], ctx: ActionContext, guard: DedupGuard) -> RuleResult:
        rule_id = str(row.get("id") or "")
        user_id = str(row.get("user_id") or "")
        rule_type = str(row.get("rule_type") or "")
        try:
            try:
                rule = parse_rule(row)
            except ValidationError as e:
                raise RuleValidationError(validation_message(e), details={"rule_type": rule_type}) from e
            return self._run_rule(rule, ctx, guard)
        except AutomationError as e:
            logger.warning("rule failed id=%s type=%s code=%s: %s", rule_id, rule_type, e.code, e.message)
            res = RuleResult(rule_id, user_id, rule_type, success=False, error=e.message, code=e.code)
            partial = e.details.get("completed") if isinstance(e.details, dict) else None
            if partial:
                res.result = {"completed": partial, "errors": e.details.get("errors") or []}
        except Exception as e:
            logger.exception("rule crashed id=%s type=%s", rule_id, rule_type)
            res = RuleResult(rule_id, user_id, rule_type, success=False, error=str(e) or type(e).__name__, code="internal_error")
        self._record_runs(
            ctx,
            user_id,
            [RuleRun(id=new_id("rr"), rule_id=rule_id, user_id=user_id, rule_type=rule_type, outcome="error", message=res.error, run_at=ctx.now_iso)],
        )
        return res

    def _run_rule(self, rule: Any, ctx: ActionContext, guard: DedupGuard) -> RuleResult:
        logger.debug("rule start id=%s type=%s user=%s", rule.id, rule.rule_type, rule.user_id)
        jobs = ctx.call_gateway(self._gateway.list_jobs, rule.user_id)
        targets = evaluate(rule, ctx.now, jobs, tz=ctx.tz, batch_size=self._config.generate_batch_size)

        fresh: List[Target] = []
        handled: List[str] = []
        for target in targets:
            if guard.claim(rule, target):
                fresh.append(target)
            else:
                handled.append(target.job_id)

        outcome = execute(rule, fresh, ctx)
        outcome.skipped = handled + outcome.skipped
        if isinstance(rule, FollowUpReminderRule):
            outcome.result["skipped"] = len(outcome.skipped)

        ctx.call_gateway(self._gateway.mark_rule_executed, rule.user_id, rule.id, ctx.now_iso)
        self._record_runs(ctx, rule.user_id, self._target_runs(rule, outcome, ctx.now_iso))
        logger.info(
            "rule done id=%s type=%s targets=%d succeeded=%d skipped=%d failed=%d",
            rule.id,
            rule.rule_type,
            len(targets),
            len(outcome.succeeded),
            len(outcome.skipped),
            len(outcome.failures),
        )
        return RuleResult(rule.id, rule.user_id, rule.rule_type, success=True, result=outcome.result)

    @staticmethod
    def _target_runs(rule: Any, outcome: ActionOutcome, at: str) -> List[RuleRun]:
        def _run(job_id: str, kind: str, message: str = "") -> RuleRun:
            return RuleRun(
                id=new_id("rr"),
                rule_id=rule.id,
                user_id=rule.user_id,
                rule_type=rule.rule_type,
                job_id=job_id,
                outcome=kind,  # type: ignore[arg-type]
                message=message,
                run_at=at,
            )

        runs = [_run(jid, "success") for jid in outcome.succeeded]
        runs.extend(_run(jid, "skipped", "already handled") for jid in outcome.skipped)
        runs.extend(_run(f.job_id, "error", f"{f.code}: {f.message}") for f in outcome.failures)
        return runs

    def _record_runs(self, ctx: ActionContext, user_id: str, runs: List[RuleRun]) -> None:
        if not user_id or not runs:
            return
        try:
            ctx.call_gateway(self._gateway.append_rule_runs, user_id, runs)
        except AutomationError as e:
            logger.warning("cannot record rule runs user=%s: %s", user_id, e.message)

    def run_follow_up_for_user(self, user_id: str) -> Dict[str, Any]:
        """User-triggered follow-up pass with default stage conditions.

        Uses a transient rule that is never stored; no rule runs are logged.
        """
        now = self._clock.now()
        rule = FollowUpReminderRule(id="manual_follow_up", user_id=user_id, name="Manual follow-up")
        with ThreadPoolExecutor(max_workers=max(1, self._config.target_workers), thread_name_prefix="jobpilot-target") as tpool:
            ctx = self._context(now, tpool)
            guard = DedupGuard(self._gateway, call_gateway=ctx.call_gateway)
            jobs = ctx.call_gateway(self._gateway.list_jobs, user_id)
            targets = [t for t in evaluate(rule, now, jobs, tz=self._tz) if guard.claim(rule, t)]
            outcome = execute(rule, targets, ctx)
            stored = ctx.call_gateway(self._gateway.list_reminders, user_id)

        by_job = {job.id: job for job in jobs}
        created_ids = set(outcome.result.get("reminderIds") or [])
        reminders = [reminder_view(rem, by_job.get(rem.job_id), now=now) for rem in stored if rem.id in created_ids]
        logger.info("manual follow-up user=%s created=%d", user_id, len(reminders))
        return {
            "remindersCreated": len(reminders),
            "reminders": reminders,
            "errors": [f.to_dict() for f in outcome.failures],
            "tips": list(FOLLOW_UP_TIPS),
        }
