"""Error taxonomy for the automation engine.

Every error carries a stable `code` so request handlers can turn it into an
EngineError without string matching.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AutomationError(Exception):
    default_code = "automation_error"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details = details or {}


class RuleValidationError(AutomationError):
    """Malformed rule config; the rule is skipped and reported."""

    default_code = "invalid_rule"


class CollaboratorError(AutomationError):
    """Generation service or notification sink failed or timed out."""

    default_code = "collaborator_error"


class DataGatewayError(AutomationError):
    """Read/write against the data gateway failed or timed out."""

    default_code = "gateway_error"


class DuplicateActionError(AutomationError):
    """The action was already applied (e.g. a live reminder exists)."""

    default_code = "duplicate_action"


class ActionError(AutomationError):
    """An action executor failed as a whole for one rule."""

    default_code = "action_failed"

    def __init__(self, message: str, *, rule_id: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)
        self.rule_id = rule_id


class ReminderNotFoundError(AutomationError):
    default_code = "reminder_not_found"


class ReminderTransitionError(AutomationError):
    default_code = "invalid_transition"
