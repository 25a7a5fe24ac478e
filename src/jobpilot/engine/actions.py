"""Action executors, one per rule kind.

Contract: `execute(rule, targets, ctx) -> ActionOutcome`, raising
`ActionError` when the action failed as a whole for the rule.

- generate_package and follow_up_reminder fan out per target on the shared
  target pool; a failed target is recorded in the outcome and the others
  still run. A data gateway failure stops the rule's remaining targets.
- deadline_reminder submits one batched notification for all targets.
- status_update archives all targets in one gateway write.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, List, Sequence, Tuple, get_args

from ..contracts.v1 import (
    AutomationRule,
    DeadlineReminderRule,
    FollowUpReminder,
    FollowUpReminderRule,
    GeneratePackageRule,
    StatusUpdateRule,
)
from ..kernel.errors import (
    ActionError,
    AutomationError,
    CollaboratorError,
    DataGatewayError,
    DuplicateActionError,
)
from ..kernel.settings import EngineConfig
from ..kernel.store import DataGateway, new_id
from ..ports.collaborators import Collaborators
from ..util.time import iso_utc
from .calls import bounded_call
from .reminders import render_follow_up_template
from .triggers import EVALUATORS, Target

logger = logging.getLogger("jobpilot.engine.actions")


@dataclass(frozen=True)
class TargetFailure:
    job_id: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"jobId": self.job_id, "code": self.code, "error": self.message}


@dataclass
class ActionOutcome:
    result: Dict[str, Any] = field(default_factory=dict)
    succeeded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[TargetFailure] = field(default_factory=list)


@dataclass
class ActionContext:
    """Everything an executor may touch during one dispatch pass."""

    gateway: DataGateway
    collaborators: Collaborators
    config: EngineConfig
    now: datetime
    tz: tzinfo
    target_pool: ThreadPoolExecutor

    @property
    def now_iso(self) -> str:
        return iso_utc(self.now)

    def call_gateway(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return bounded_call(
            fn,
            *args,
            timeout=self.config.gateway_timeout_seconds,
            error_cls=DataGatewayError,
            what=f"gateway.{getattr(fn, '__name__', 'call')}",
            **kwargs,
        )

    def call_collaborator(self, fn: Callable[..., Any], *args: Any, what: str, **kwargs: Any) -> Any:
        return bounded_call(
            fn,
            *args,
            timeout=self.config.collaborator_timeout_seconds,
            error_cls=CollaboratorError,
            what=what,
            **kwargs,
        )


_SKIP = object()


def _fan_out(
    rule: Any,
    targets: Sequence[Target],
    ctx: ActionContext,
    fn: Callable[[Target], Any],
) -> Tuple[List[Tuple[Target, Any]], ActionOutcome]:
    """Run `fn` per target on the target pool, collecting per-target results.

    `fn` returns a value, or `_SKIP` when the target turned out to be handled.
    """
    outcome = ActionOutcome()
    done: List[Tuple[Target, Any]] = []
    futures: List[Tuple[Target, Future]] = [(t, ctx.target_pool.submit(fn, t)) for t in targets]
    aborted: DataGatewayError | None = None
    for target, fut in futures:
        if aborted is not None:
            fut.cancel()
            if fut.cancelled():
                continue
        try:
            value = fut.result()
        except DataGatewayError as e:
            if aborted is None:
                aborted = e
            outcome.failures.append(TargetFailure(target.job_id, e.code, e.message))
            continue
        except AutomationError as e:
            outcome.failures.append(TargetFailure(target.job_id, e.code, e.message))
            continue
        except Exception as e:
            logger.exception("target failed rule=%s job=%s", rule.id, target.job_id)
            outcome.failures.append(TargetFailure(target.job_id, "internal_error", str(e) or type(e).__name__))
            continue
        if value is _SKIP:
            outcome.skipped.append(target.job_id)
            continue
        outcome.succeeded.append(target.job_id)
        done.append((target, value))
    if aborted is not None:
        raise ActionError(
            f"data gateway failed: {aborted.message}",
            rule_id=rule.id,
            code=aborted.code,
            details={
                "completed": list(outcome.succeeded),
                "errors": [f.to_dict() for f in outcome.failures],
            },
        )
    return done, outcome


def execute_generate_package(rule: GeneratePackageRule, targets: Sequence[Target], ctx: ActionContext) -> ActionOutcome:
    cfg = rule.action_config

    def _one(target: Target) -> Dict[str, Any]:
        job = target.job
        resume = ctx.call_collaborator(
            ctx.collaborators.resume.generate,
            job.id,
            rule.user_id,
            {"templateId": cfg.template_id},
            what="resume generation",
        )
        cover_letter = ctx.call_collaborator(
            ctx.collaborators.cover_letter.generate,
            job.id,
            rule.user_id,
            {"tone": cfg.cover_letter_tone},
            what="cover letter generation",
        )
        return {
            "jobId": job.id,
            "jobTitle": job.job_title,
            "company": job.company_name,
            "resume": resume,
            "coverLetter": cover_letter,
        }

    done, outcome = _fan_out(rule, targets, ctx, _one)
    packages = [pkg for _, pkg in done]
    outcome.result = {"packagesGenerated": len(packages), "packages": packages}
    if outcome.failures:
        outcome.result["errors"] = [f.to_dict() for f in outcome.failures]
    return outcome


def execute_follow_up_reminder(rule: FollowUpReminderRule, targets: Sequence[Target], ctx: ActionContext) -> ActionOutcome:
    gw = ctx.gateway

    def _one(target: Target) -> Any:
        reminder_type = str(target.reminder_type)
        # Re-check right before insert; another pass may have created it since evaluation.
        if ctx.call_gateway(gw.find_live_reminder, rule.user_id, target.job_id, reminder_type) is not None:
            return _SKIP
        reminder = FollowUpReminder(
            id=new_id("fr"),
            user_id=rule.user_id,
            job_id=target.job_id,
            reminder_type=reminder_type,  # type: ignore[arg-type]
            scheduled_date=ctx.now_iso,
            email_template=render_follow_up_template(str(target.stage or "applied"), target.job),
            auto_generated=True,
            rule_id=rule.id,
            created_at=ctx.now_iso,
        )
        try:
            return ctx.call_gateway(gw.insert_reminder, reminder)
        except DuplicateActionError:
            return _SKIP

    done, outcome = _fan_out(rule, targets, ctx, _one)
    created: List[FollowUpReminder] = [rem for _, rem in done]
    outcome.result = {
        "remindersCreated": len(created),
        "reminderIds": [rem.id for rem in created],
    }

    if rule.action_config.notify and created:
        jobs = [
            {"id": t.job_id, "title": t.job.job_title, "company": t.job.company_name, "reminderType": rem.reminder_type}
            for t, rem in done
        ]
        try:
            ctx.call_collaborator(
                ctx.collaborators.notifications.notify,
                rule.user_id,
                "Follow-up Reminders",
                f"You have {len(created)} applications that may need follow-up",
                {"jobs": jobs},
                what="notification sink",
            )
            outcome.result["notified"] = True
        except CollaboratorError as e:
            # Reminders are already stored; the digest is best-effort.
            logger.warning("follow-up digest failed rule=%s: %s", rule.id, e.message)
            outcome.result["notified"] = False
            outcome.result["notifyError"] = e.message

    if outcome.failures:
        outcome.result["errors"] = [f.to_dict() for f in outcome.failures]
    return outcome


def execute_deadline_reminder(rule: DeadlineReminderRule, targets: Sequence[Target], ctx: ActionContext) -> ActionOutcome:
    if not targets:
        return ActionOutcome(result={"deadlineReminders": 0})
    jobs = [
        {
            "id": t.job_id,
            "title": t.job.job_title,
            "company": t.job.company_name,
            "deadline": t.job.application_deadline,
        }
        for t in targets
    ]
    try:
        ctx.call_collaborator(
            ctx.collaborators.notifications.notify,
            rule.user_id,
            rule.action_config.subject,
            f"You have {len(jobs)} application deadlines approaching",
            {"jobs": jobs},
            what="notification sink",
        )
    except CollaboratorError as e:
        raise ActionError(f"deadline notification failed: {e.message}", rule_id=rule.id, code=e.code) from e
    return ActionOutcome(result={"deadlineReminders": len(jobs)}, succeeded=[t.job_id for t in targets])


def execute_status_update(rule: StatusUpdateRule, targets: Sequence[Target], ctx: ActionContext) -> ActionOutcome:
    if not targets:
        return ActionOutcome(result={"jobsArchived": 0})
    job_ids = [t.job_id for t in targets]
    try:
        archived = ctx.call_gateway(ctx.gateway.archive_jobs, rule.user_id, job_ids, at=ctx.now_iso)
    except DataGatewayError as e:
        raise ActionError(f"archive failed: {e.message}", rule_id=rule.id, code=e.code) from e
    return ActionOutcome(result={"jobsArchived": int(archived)}, succeeded=job_ids)


_Executor = Callable[[Any, Sequence[Target], ActionContext], ActionOutcome]

EXECUTORS: Dict[type, _Executor] = {
    GeneratePackageRule: execute_generate_package,
    FollowUpReminderRule: execute_follow_up_reminder,
    DeadlineReminderRule: execute_deadline_reminder,
    StatusUpdateRule: execute_status_update,
}


def _check_exhaustive() -> None:
    union_args = get_args(AutomationRule)
    kinds = set(get_args(union_args[0])) if union_args else set()
    missing_exec = [k.__name__ for k in kinds if k not in EXECUTORS]
    missing_eval = [k.__name__ for k in kinds if k not in EVALUATORS]
    if missing_exec or missing_eval:
        raise RuntimeError(f"rule kinds without executor={missing_exec} evaluator={missing_eval}")


_check_exhaustive()


def execute(rule: Any, targets: Sequence[Target], ctx: ActionContext) -> ActionOutcome:
    executor = EXECUTORS.get(type(rule))
    if executor is None:
        raise ActionError(f"no executor for {type(rule).__name__}", rule_id=str(getattr(rule, "id", "")))
    return executor(rule, targets, ctx)
