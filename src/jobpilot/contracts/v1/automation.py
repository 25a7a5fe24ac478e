"""Automation rule contracts (user-scoped).

A rule is one of a closed set of kinds, selected by `rule_type`. Each kind
carries its own trigger conditions and action config:
- generate_package: build resume + cover letter for jobs in a status
- follow_up_reminder: create stage follow-up reminders after N days
- deadline_reminder: notify about application deadlines within a window
- status_update: archive stale rejected applications

Adding a kind means adding a model here, an evaluator and an executor.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from ...util.time import utc_now_iso

FollowUpStage = Literal["applied", "phone_screen", "interview"]

DEFAULT_FOLLOW_UP_STAGES: List[str] = ["applied", "phone_screen", "interview"]
DEFAULT_STAGE_THRESHOLDS: Dict[str, int] = {"applied": 7, "phone_screen": 3, "interview": 2}


class _RuleBase(BaseModel):
    id: str
    user_id: str
    name: str = ""
    is_active: bool = True
    last_executed_at: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)

    model_config = ConfigDict(extra="forbid")


class GeneratePackageTrigger(BaseModel):
    status: str = Field(default="Interested", min_length=1)

    model_config = ConfigDict(extra="forbid")


class GeneratePackageAction(BaseModel):
    template_id: str = "default"
    cover_letter_tone: str = "professional"

    model_config = ConfigDict(extra="forbid")


class GeneratePackageRule(_RuleBase):
    rule_type: Literal["generate_package"] = "generate_package"
    trigger_conditions: GeneratePackageTrigger = Field(default_factory=GeneratePackageTrigger)
    action_config: GeneratePackageAction = Field(default_factory=GeneratePackageAction)


class FollowUpTrigger(BaseModel):
    stages: List[FollowUpStage] = Field(default_factory=lambda: list(DEFAULT_FOLLOW_UP_STAGES), min_length=1)
    thresholds: Dict[FollowUpStage, int] = Field(default_factory=dict)
    # Older rules only carried this one knob; it overrides the applied threshold.
    days_since_applied: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("thresholds")
    @classmethod
    def _thresholds_non_negative(cls, v: Dict[str, int]) -> Dict[str, int]:
        for stage, days in v.items():
            if int(days) < 0:
                raise ValueError(f"threshold for {stage} must be >= 0")
        return v

    def threshold_for(self, stage: str) -> int:
        if stage == "applied" and self.days_since_applied is not None:
            return int(self.days_since_applied)
        if stage in self.thresholds:
            return int(self.thresholds[stage])  # type: ignore[index]
        return DEFAULT_STAGE_THRESHOLDS[stage]


class FollowUpAction(BaseModel):
    # Also send one digest notification listing the reminders created in a pass.
    notify: bool = False

    model_config = ConfigDict(extra="forbid")


class FollowUpReminderRule(_RuleBase):
    rule_type: Literal["follow_up_reminder"] = "follow_up_reminder"
    trigger_conditions: FollowUpTrigger = Field(default_factory=FollowUpTrigger)
    action_config: FollowUpAction = Field(default_factory=FollowUpAction)


class DeadlineTrigger(BaseModel):
    days_before_deadline: int = Field(default=3, ge=0)

    model_config = ConfigDict(extra="forbid")


class DeadlineAction(BaseModel):
    subject: str = "Upcoming Application Deadlines"

    model_config = ConfigDict(extra="forbid")


class DeadlineReminderRule(_RuleBase):
    rule_type: Literal["deadline_reminder"] = "deadline_reminder"
    trigger_conditions: DeadlineTrigger = Field(default_factory=DeadlineTrigger)
    action_config: DeadlineAction = Field(default_factory=DeadlineAction)


class StatusUpdateTrigger(BaseModel):
    model_config = ConfigDict(extra="forbid")


class StatusUpdateAction(BaseModel):
    action: Literal["archive_rejected"] = "archive_rejected"
    days_old: int = Field(default=30, ge=0)

    model_config = ConfigDict(extra="forbid")


class StatusUpdateRule(_RuleBase):
    rule_type: Literal["status_update"] = "status_update"
    trigger_conditions: StatusUpdateTrigger = Field(default_factory=StatusUpdateTrigger)
    action_config: StatusUpdateAction = Field(default_factory=StatusUpdateAction)


AutomationRule = Annotated[
    Union[GeneratePackageRule, FollowUpReminderRule, DeadlineReminderRule, StatusUpdateRule],
    Field(discriminator="rule_type"),
]

RULE_TYPES = ("generate_package", "follow_up_reminder", "deadline_reminder", "status_update")

_RULE_ADAPTER: TypeAdapter[Any] = TypeAdapter(AutomationRule)


def parse_rule(raw: Dict[str, Any]) -> Union[GeneratePackageRule, FollowUpReminderRule, DeadlineReminderRule, StatusUpdateRule]:
    """Validate a stored rule row. Raises pydantic.ValidationError."""
    return _RULE_ADAPTER.validate_python(raw)
