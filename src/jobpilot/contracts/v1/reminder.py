from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...util.time import utc_now_iso

ReminderType = Literal["application_followup", "phone_screen_followup", "interview_followup"]
RuleRunOutcome = Literal["success", "skipped", "error"]


class FollowUpReminder(BaseModel):
    """One follow-up reminder row.

    At most one *live* row (not dismissed, not completed) may exist per
    (job_id, reminder_type). `email_template` is rendered once at creation.
    """

    id: str
    user_id: str
    job_id: str
    reminder_type: ReminderType
    scheduled_date: str
    snoozed_until: Optional[str] = None
    dismissed_at: Optional[str] = None
    completed_at: Optional[str] = None
    email_template: str = ""
    auto_generated: bool = False
    rule_id: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(extra="forbid")

    @property
    def is_live(self) -> bool:
        return self.dismissed_at is None and self.completed_at is None


class RuleRun(BaseModel):
    """Execution log row for one rule/target outcome in a dispatch pass."""

    id: str
    rule_id: str
    user_id: str
    rule_type: str = ""
    job_id: Optional[str] = None
    outcome: RuleRunOutcome = "success"
    message: str = ""
    run_at: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(extra="forbid")
