"""Automation operations: dispatch pass, rule management, run logs."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ...contracts.v1 import EngineError, EngineResponse, parse_rule
from ...kernel.errors import AutomationError
from ...kernel.store import DataGateway, new_id, validate_user_id
from ...util.conv import coerce_bool
from ..automation import AutomationDispatcher, validation_message

_RUN_OUTCOMES = {"success", "skipped", "error"}


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> EngineResponse:
    return EngineResponse(ok=False, error=EngineError(code=code, message=message, details=(details or {})))


def _from_exc(e: AutomationError) -> EngineResponse:
    return _error(e.code, e.message, details=e.details)


def handle_dispatch(args: Dict[str, Any], *, dispatcher: AutomationDispatcher) -> EngineResponse:
    try:
        report = dispatcher.run_pass()
    except AutomationError as e:
        return _from_exc(e)
    return EngineResponse(ok=True, result=report.to_dict())


def handle_rule_upsert(args: Dict[str, Any], *, gateway: DataGateway, now_iso: Callable[[], str]) -> EngineResponse:
    try:
        user_id = validate_user_id(args.get("user_id"))
    except AutomationError as e:
        return _from_exc(e)
    raw = args.get("rule")
    if not isinstance(raw, dict):
        return _error("invalid_rule", "rule must be an object")

    row = dict(raw)
    rule_id = str(row.get("id") or "").strip()
    try:
        existing = gateway.get_rule(user_id, rule_id) if rule_id else None
    except AutomationError as e:
        return _from_exc(e)
    if not rule_id:
        rule_id = new_id("ar")
    row["id"] = rule_id
    row["user_id"] = user_id
    if existing is not None:
        # Bookkeeping fields belong to the engine, not the caller.
        row.setdefault("created_at", existing.get("created_at") or now_iso())
        row.setdefault("last_executed_at", existing.get("last_executed_at"))
    else:
        row.setdefault("created_at", now_iso())

    try:
        rule = parse_rule(row)
    except ValidationError as e:
        errors = [{"loc": [str(x) for x in err.get("loc", ())], "msg": str(err.get("msg"))} for err in e.errors()]
        return _error("invalid_rule", validation_message(e), details={"errors": errors})

    try:
        stored = gateway.upsert_rule(user_id, rule.model_dump())
    except AutomationError as e:
        return _from_exc(e)
    return EngineResponse(ok=True, result={"rule": stored, "created": existing is None})


def handle_rule_list(args: Dict[str, Any], *, gateway: DataGateway) -> EngineResponse:
    try:
        user_id = validate_user_id(args.get("user_id"))
        rows = gateway.list_rules(user_id)
    except AutomationError as e:
        return _from_exc(e)

    rules: List[Dict[str, Any]] = []
    for row in rows:
        entry: Dict[str, Any] = {
            "rule": row,
            "status": {
                "is_active": coerce_bool(row.get("is_active"), default=True),
                "last_executed_at": row.get("last_executed_at"),
            },
        }
        try:
            parse_rule(row)
            entry["valid"] = True
        except ValidationError as e:
            entry["valid"] = False
            entry["error"] = validation_message(e)
        rules.append(entry)
    return EngineResponse(ok=True, result={"rules": rules})


def handle_rule_runs(args: Dict[str, Any], *, gateway: DataGateway) -> EngineResponse:
    outcome = str(args.get("outcome") or "").strip() or None
    if outcome is not None and outcome not in _RUN_OUTCOMES:
        return _error("invalid_request", f"outcome must be one of {sorted(_RUN_OUTCOMES)}")
    try:
        limit = int(args.get("limit") if args.get("limit") is not None else 100)
    except (TypeError, ValueError):
        return _error("invalid_request", "limit must be an integer")
    if limit <= 0:
        limit = 100
    try:
        user_id = validate_user_id(args.get("user_id"))
        runs = gateway.list_rule_runs(user_id, outcome=outcome, limit=limit)
    except AutomationError as e:
        return _from_exc(e)
    return EngineResponse(ok=True, result={"runs": [r.model_dump() for r in runs]})


def try_handle_automation_op(
    op: str,
    args: Dict[str, Any],
    *,
    dispatcher: AutomationDispatcher,
    gateway: DataGateway,
    now_iso: Callable[[], str],
) -> Optional[EngineResponse]:
    if op == "dispatch":
        return handle_dispatch(args, dispatcher=dispatcher)
    if op == "rule_upsert":
        return handle_rule_upsert(args, gateway=gateway, now_iso=now_iso)
    if op == "rule_list":
        return handle_rule_list(args, gateway=gateway)
    if op == "rule_runs":
        return handle_rule_runs(args, gateway=gateway)
    return None
