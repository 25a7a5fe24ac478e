"""Follow-up reminder lifecycle.

    Scheduled --snooze--> Snoozed --snooze--> Snoozed
        |                    |
        +--dismiss/complete--+--> Dismissed | Completed   (terminal)

Only explicit actions move a reminder. "Pending" and "overdue" are derived at
read time from the stored timestamps; time passing never writes state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..contracts.v1 import FollowUpReminder, Job
from ..kernel.clock import Clock
from ..kernel.errors import DataGatewayError, ReminderNotFoundError, ReminderTransitionError
from ..kernel.store import DataGateway
from ..util.time import iso_utc, parse_utc_iso
from .calls import bounded_call

logger = logging.getLogger("jobpilot.engine.reminders")


class ReminderState(Enum):
    SCHEDULED = "scheduled"
    SNOOZED = "snoozed"
    DISMISSED = "dismissed"
    COMPLETED = "completed"


TERMINAL_STATES = {ReminderState.DISMISSED, ReminderState.COMPLETED}


def reminder_state(rem: FollowUpReminder) -> ReminderState:
    if rem.completed_at is not None:
        return ReminderState.COMPLETED
    if rem.dismissed_at is not None:
        return ReminderState.DISMISSED
    if rem.snoozed_until is not None:
        return ReminderState.SNOOZED
    return ReminderState.SCHEDULED


def is_pending(rem: FollowUpReminder, now: datetime) -> bool:
    if not rem.is_live:
        return False
    until = parse_utc_iso(rem.snoozed_until or "")
    return until is None or until < now


def is_overdue(rem: FollowUpReminder, now: datetime) -> bool:
    scheduled = parse_utc_iso(rem.scheduled_date)
    return is_pending(rem, now) and scheduled is not None and scheduled < now


_TEMPLATES: Dict[str, str] = {
    "application": """Subject: Following Up on {title} Application

Dear Hiring Team,

I hope this email finds you well. I wanted to follow up on my application for the {title} position at {company}, submitted on [DATE].

I remain very interested in this opportunity and would welcome the chance to discuss how my experience and skills align with your team's needs.

Thank you for your time and consideration.

Best regards,
[YOUR NAME]""",
    "phone_screen": """Subject: Thank You - {title} Phone Screen Follow-up

Dear [INTERVIEWER NAME],

Thank you for taking the time to speak with me about the {title} role at {company}. I enjoyed learning more about the position and your team.

Our conversation reinforced my enthusiasm for this opportunity. Please let me know if there's any additional information I can provide.

Best regards,
[YOUR NAME]""",
    "interview": """Subject: Thank You - {title} Interview

Dear [INTERVIEWER NAME],

Thank you for the opportunity to interview for the {title} position at {company}. I appreciated the chance to learn more about [SPECIFIC TOPIC DISCUSSED].

I'm excited about the possibility of contributing to your team and look forward to hearing about next steps.

Best regards,
[YOUR NAME]""",
}

_STAGE_TEMPLATE = {"applied": "application", "phone_screen": "phone_screen", "interview": "interview"}

FOLLOW_UP_TIPS: List[str] = [
    "Follow up 1 week after submitting an application if you haven't heard back",
    "Send a thank-you email within 24 hours of an interview",
    "Keep follow-ups brief and professional - 2-3 paragraphs maximum",
    "Personalize each follow-up with specific details from your conversation",
    "Avoid following up more than twice for the same application stage",
    "Best times to send: Tuesday-Thursday, 9-11 AM local time",
    "Reference the specific position and date of your last interaction",
]


def render_follow_up_template(stage: str, job: Job) -> str:
    template = _TEMPLATES[_STAGE_TEMPLATE.get(stage, "application")]
    return template.format(title=job.job_title, company=job.company_name)


class ReminderLifecycle:
    """Applies user actions to stored reminders through the data gateway."""

    def __init__(
        self,
        gateway: DataGateway,
        clock: Clock,
        *,
        snooze_hours: int = 24,
        gateway_timeout: float = 10.0,
    ) -> None:
        self._gateway = gateway
        self._clock = clock
        self._snooze_hours = max(1, int(snooze_hours))
        self._gateway_timeout = float(gateway_timeout)

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return bounded_call(
            fn,
            *args,
            timeout=self._gateway_timeout,
            error_cls=DataGatewayError,
            what=f"gateway.{getattr(fn, '__name__', 'call')}",
            **kwargs,
        )

    def _load(self, user_id: str, reminder_id: str) -> FollowUpReminder:
        rem = self._call(self._gateway.get_reminder, user_id, reminder_id)
        if rem is None:
            raise ReminderNotFoundError(f"reminder not found: {reminder_id}")
        state = reminder_state(rem)
        if state in TERMINAL_STATES:
            raise ReminderTransitionError(
                f"reminder {reminder_id} is {state.value}",
                details={"state": state.value},
            )
        return rem

    def snooze(
        self,
        user_id: str,
        reminder_id: str,
        *,
        until: Optional[datetime] = None,
        hours: Optional[float] = None,
    ) -> FollowUpReminder:
        now = self._clock.now()
        if until is None:
            span = float(hours) if hours is not None else float(self._snooze_hours)
            if span <= 0:
                raise ReminderTransitionError("snooze hours must be positive", code="invalid_snooze")
            until = now + timedelta(hours=span)
        if until <= now:
            raise ReminderTransitionError("snooze time must be in the future", code="invalid_snooze")
        self._load(user_id, reminder_id)
        rem = self._call(self._gateway.update_reminder, user_id, reminder_id, {"snoozed_until": iso_utc(until)})
        logger.info("reminder snoozed id=%s until=%s", reminder_id, rem.snoozed_until)
        return rem

    def dismiss(self, user_id: str, reminder_id: str) -> FollowUpReminder:
        self._load(user_id, reminder_id)
        rem = self._call(self._gateway.update_reminder, user_id, reminder_id, {"dismissed_at": iso_utc(self._clock.now())})
        logger.info("reminder dismissed id=%s", reminder_id)
        return rem

    def complete(self, user_id: str, reminder_id: str) -> FollowUpReminder:
        self._load(user_id, reminder_id)
        rem = self._call(self._gateway.update_reminder, user_id, reminder_id, {"completed_at": iso_utc(self._clock.now())})
        logger.info("reminder completed id=%s", reminder_id)
        return rem

    def pending(self, user_id: str) -> List[Dict[str, Any]]:
        """Pending reminders, oldest scheduled first, each with a job summary."""
        now = self._clock.now()
        jobs = {job.id: job for job in self._call(self._gateway.list_jobs, user_id)}
        out: List[Dict[str, Any]] = []
        for rem in self._call(self._gateway.list_reminders, user_id):
            if not is_pending(rem, now):
                continue
            job = jobs.get(rem.job_id)
            out.append(reminder_view(rem, job, now=now))
        out.sort(key=lambda r: (str(r.get("scheduled_date") or ""), str(r.get("id") or "")))
        return out


def reminder_view(rem: FollowUpReminder, job: Optional[Job], *, now: datetime) -> Dict[str, Any]:
    doc = rem.model_dump()
    doc["state"] = reminder_state(rem).value
    doc["overdue"] = is_overdue(rem, now)
    doc["job"] = job.summary() if job is not None else None
    return doc
