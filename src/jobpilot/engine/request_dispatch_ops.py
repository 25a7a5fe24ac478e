"""Engine request dispatch orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from ..contracts.v1 import EngineRequest, EngineResponse
from ..kernel.store import DataGateway
from .automation import AutomationDispatcher
from .ops.automation_ops import try_handle_automation_op
from .ops.reminder_ops import try_handle_reminder_op
from .reminders import ReminderLifecycle


@dataclass(frozen=True)
class RequestDispatchDeps:
    version: str
    now_iso: Callable[[], str]
    gateway: DataGateway
    dispatcher: AutomationDispatcher
    lifecycle: ReminderLifecycle
    error_factory: Callable[[str, str], EngineResponse]


def dispatch_request(req: EngineRequest, *, deps: RequestDispatchDeps) -> EngineResponse:
    op = str(req.op or "").strip() or "dispatch"
    args = req.args or {}

    if op == "ping":
        return EngineResponse(ok=True, result={"version": deps.version, "ts": deps.now_iso()})

    reminder_resp = try_handle_reminder_op(op, args, lifecycle=deps.lifecycle, dispatcher=deps.dispatcher)
    if reminder_resp is not None:
        return reminder_resp

    automation_resp = try_handle_automation_op(
        op,
        args,
        dispatcher=deps.dispatcher,
        gateway=deps.gateway,
        now_iso=deps.now_iso,
    )
    if automation_resp is not None:
        return automation_resp

    return deps.error_factory("unknown_op", f"unknown op: {op}")
