"""Trigger evaluation: which jobs does a rule apply to right now?

Pure functions over (rule, now, jobs). Day thresholds use calendar days in
the reference timezone (see kernel.clock):

- follow-up:  days(status change -> now) >= threshold(stage)
- deadline:   0 <= days(now -> deadline) <= days_before_deadline
- archive:    days(last update -> now) > days_old
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Callable, Dict, List, Optional, Sequence

from ..contracts.v1 import (
    DeadlineReminderRule,
    FollowUpReminderRule,
    GeneratePackageRule,
    Job,
    StatusUpdateRule,
    normalize_status,
)
from ..kernel.clock import calendar_days_between, parse_instant

GENERATE_BATCH_SIZE = 10

STAGE_REMINDER_TYPES: Dict[str, str] = {
    "applied": "application_followup",
    "phone_screen": "phone_screen_followup",
    "interview": "interview_followup",
}

_REJECTED = "rejected"


@dataclass(frozen=True)
class Target:
    """One entity a rule's action applies to in this pass."""

    job: Job
    reminder_type: Optional[str] = None
    stage: Optional[str] = None

    @property
    def job_id(self) -> str:
        return self.job.id


@dataclass(frozen=True)
class EvalContext:
    now: datetime
    tz: tzinfo
    batch_size: int = GENERATE_BATCH_SIZE


def _follow_up_targets(rule: FollowUpReminderRule, jobs: Sequence[Job], at: EvalContext) -> List[Target]:
    cond = rule.trigger_conditions
    stages = set(cond.stages)
    out: List[Target] = []
    for job in jobs:
        if job.is_archived:
            continue
        stage = job.normalized_status
        if stage not in stages:
            continue
        since = parse_instant(job.status_updated_at or job.created_at, at.tz)
        if since is None:
            continue
        if calendar_days_between(since, at.now, at.tz) < cond.threshold_for(stage):
            continue
        out.append(Target(job=job, reminder_type=STAGE_REMINDER_TYPES[stage], stage=stage))
    return out


def _deadline_targets(rule: DeadlineReminderRule, jobs: Sequence[Job], at: EvalContext) -> List[Target]:
    window = rule.trigger_conditions.days_before_deadline
    out: List[Target] = []
    for job in jobs:
        if job.is_archived or job.normalized_status == _REJECTED:
            continue
        deadline = parse_instant(job.application_deadline, at.tz)
        if deadline is None:
            continue
        days_left = calendar_days_between(at.now, deadline, at.tz)
        if 0 <= days_left <= window:
            out.append(Target(job=job))
    return out


def _archive_targets(rule: StatusUpdateRule, jobs: Sequence[Job], at: EvalContext) -> List[Target]:
    days_old = rule.action_config.days_old
    out: List[Target] = []
    for job in jobs:
        if job.is_archived or job.normalized_status != _REJECTED:
            continue
        touched = parse_instant(job.updated_at or job.status_updated_at or job.created_at, at.tz)
        if touched is None:
            continue
        if calendar_days_between(touched, at.now, at.tz) > days_old:
            out.append(Target(job=job))
    return out


def _package_targets(rule: GeneratePackageRule, jobs: Sequence[Job], at: EvalContext) -> List[Target]:
    wanted = normalize_status(rule.trigger_conditions.status)
    out: List[Target] = []
    for job in jobs:
        if job.is_archived or job.normalized_status != wanted:
            continue
        out.append(Target(job=job))
        if len(out) >= at.batch_size:
            break
    return out


_Evaluator = Callable[[object, Sequence[Job], EvalContext], List[Target]]

EVALUATORS: Dict[type, _Evaluator] = {
    GeneratePackageRule: _package_targets,
    FollowUpReminderRule: _follow_up_targets,
    DeadlineReminderRule: _deadline_targets,
    StatusUpdateRule: _archive_targets,
}


def evaluate(
    rule: object,
    now: datetime,
    jobs: Sequence[Job],
    *,
    tz: tzinfo,
    batch_size: int = GENERATE_BATCH_SIZE,
) -> List[Target]:
    """Return the targets `rule` currently fires for, in stable job order."""
    evaluator = EVALUATORS.get(type(rule))
    if evaluator is None:
        raise TypeError(f"no trigger evaluator for {type(rule).__name__}")
    ordered = sorted(jobs, key=lambda j: (j.created_at, j.id))
    return evaluator(rule, ordered, EvalContext(now=now, tz=tz, batch_size=max(1, int(batch_size))))
