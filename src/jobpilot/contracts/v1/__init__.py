from .automation import (
    DEFAULT_FOLLOW_UP_STAGES,
    DEFAULT_STAGE_THRESHOLDS,
    RULE_TYPES,
    AutomationRule,
    DeadlineAction,
    DeadlineReminderRule,
    DeadlineTrigger,
    FollowUpAction,
    FollowUpReminderRule,
    FollowUpTrigger,
    GeneratePackageAction,
    GeneratePackageRule,
    GeneratePackageTrigger,
    StatusUpdateAction,
    StatusUpdateRule,
    StatusUpdateTrigger,
    parse_rule,
)
from .engine import EngineError, EngineRequest, EngineResponse
from .job import Job, normalize_status
from .reminder import FollowUpReminder, ReminderType, RuleRun, RuleRunOutcome

__all__ = [
    "DEFAULT_FOLLOW_UP_STAGES",
    "DEFAULT_STAGE_THRESHOLDS",
    "RULE_TYPES",
    "AutomationRule",
    "DeadlineAction",
    "DeadlineReminderRule",
    "DeadlineTrigger",
    "EngineError",
    "EngineRequest",
    "EngineResponse",
    "FollowUpAction",
    "FollowUpReminder",
    "FollowUpReminderRule",
    "FollowUpTrigger",
    "GeneratePackageAction",
    "GeneratePackageRule",
    "GeneratePackageTrigger",
    "Job",
    "ReminderType",
    "RuleRun",
    "RuleRunOutcome",
    "StatusUpdateAction",
    "StatusUpdateRule",
    "StatusUpdateTrigger",
    "normalize_status",
    "parse_rule",
]
