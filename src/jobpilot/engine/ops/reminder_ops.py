"""Follow-up reminder operations: snooze, dismiss, complete, pending, generate."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from ...contracts.v1 import EngineError, EngineResponse
from ...kernel.errors import AutomationError
from ...kernel.store import validate_user_id
from ...util.time import parse_utc_iso
from ..automation import AutomationDispatcher
from ..reminders import ReminderLifecycle


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> EngineResponse:
    return EngineResponse(ok=False, error=EngineError(code=code, message=message, details=(details or {})))


def _reminder_args(args: Dict[str, Any]) -> Tuple[str, str]:
    user_id = validate_user_id(args.get("user_id"))
    reminder_id = str(args.get("reminder_id") or "").strip()
    return user_id, reminder_id


def handle_reminder_snooze(args: Dict[str, Any], *, lifecycle: ReminderLifecycle) -> EngineResponse:
    try:
        user_id, reminder_id = _reminder_args(args)
    except AutomationError as e:
        return _error(e.code, e.message)
    if not reminder_id:
        return _error("missing_reminder_id", "missing reminder_id")

    until = None
    until_raw = str(args.get("until") or "").strip()
    if until_raw:
        until = parse_utc_iso(until_raw)
        if until is None:
            return _error("invalid_snooze", f"invalid until timestamp: {until_raw}")
    hours = None
    if args.get("hours") is not None:
        try:
            hours = float(args["hours"])
        except (TypeError, ValueError):
            return _error("invalid_snooze", "hours must be a number")

    try:
        rem = lifecycle.snooze(user_id, reminder_id, until=until, hours=hours)
    except AutomationError as e:
        return _error(e.code, e.message, details=e.details)
    return EngineResponse(ok=True, result={"success": True, "snoozedUntil": rem.snoozed_until, "reminder": rem.model_dump()})


def handle_reminder_dismiss(args: Dict[str, Any], *, lifecycle: ReminderLifecycle) -> EngineResponse:
    try:
        user_id, reminder_id = _reminder_args(args)
    except AutomationError as e:
        return _error(e.code, e.message)
    if not reminder_id:
        return _error("missing_reminder_id", "missing reminder_id")
    try:
        rem = lifecycle.dismiss(user_id, reminder_id)
    except AutomationError as e:
        return _error(e.code, e.message, details=e.details)
    return EngineResponse(ok=True, result={"success": True, "reminder": rem.model_dump()})


def handle_reminder_complete(args: Dict[str, Any], *, lifecycle: ReminderLifecycle) -> EngineResponse:
    try:
        user_id, reminder_id = _reminder_args(args)
    except AutomationError as e:
        return _error(e.code, e.message)
    if not reminder_id:
        return _error("missing_reminder_id", "missing reminder_id")
    try:
        rem = lifecycle.complete(user_id, reminder_id)
    except AutomationError as e:
        return _error(e.code, e.message, details=e.details)
    return EngineResponse(ok=True, result={"success": True, "reminder": rem.model_dump()})


def handle_reminder_pending(args: Dict[str, Any], *, lifecycle: ReminderLifecycle) -> EngineResponse:
    try:
        user_id = validate_user_id(args.get("user_id"))
        reminders = lifecycle.pending(user_id)
    except AutomationError as e:
        return _error(e.code, e.message)
    return EngineResponse(ok=True, result={"reminders": reminders, "count": len(reminders)})


def handle_generate_reminders(args: Dict[str, Any], *, dispatcher: AutomationDispatcher) -> EngineResponse:
    try:
        user_id = validate_user_id(args.get("user_id"))
        result = dispatcher.run_follow_up_for_user(user_id)
    except AutomationError as e:
        return _error(e.code, e.message, details=e.details)
    return EngineResponse(ok=True, result=result)


def try_handle_reminder_op(
    op: str,
    args: Dict[str, Any],
    *,
    lifecycle: ReminderLifecycle,
    dispatcher: AutomationDispatcher,
) -> Optional[EngineResponse]:
    if op == "snooze":
        return handle_reminder_snooze(args, lifecycle=lifecycle)
    if op == "dismiss":
        return handle_reminder_dismiss(args, lifecycle=lifecycle)
    if op == "complete":
        return handle_reminder_complete(args, lifecycle=lifecycle)
    if op == "get_pending":
        return handle_reminder_pending(args, lifecycle=lifecycle)
    if op == "generate_reminders":
        return handle_generate_reminders(args, dispatcher=dispatcher)
    return None
