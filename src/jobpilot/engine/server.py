"""Engine entry point: wires settings, gateway, collaborators and clock, and
answers `EngineRequest`s.

`handle_request()` is the only thing callers (CLI, web port, tests) need.
The default engine is built lazily from `<home>/settings.yaml`; tests pass
their own via `build_engine(...)`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .. import __version__
from ..contracts.v1 import EngineError, EngineRequest, EngineResponse
from ..kernel.clock import Clock, SystemClock
from ..kernel.settings import Settings, load_settings
from ..kernel.store import DataGateway, JsonDataGateway
from ..ports.collaborators import Collaborators, build_collaborators
from ..util.time import iso_utc
from .automation import AutomationDispatcher
from .reminders import ReminderLifecycle
from .request_dispatch_ops import RequestDispatchDeps, dispatch_request

logger = logging.getLogger("jobpilot.engine.server")


def _error(code: str, message: str, *, details: Optional[Dict[str, Any]] = None) -> EngineResponse:
    return EngineResponse(ok=False, error=EngineError(code=code, message=message, details=(details or {})))


@dataclass(frozen=True)
class Engine:
    settings: Settings
    clock: Clock
    gateway: DataGateway
    collaborators: Collaborators
    dispatcher: AutomationDispatcher
    lifecycle: ReminderLifecycle

    def deps(self) -> RequestDispatchDeps:
        return RequestDispatchDeps(
            version=__version__,
            now_iso=lambda: iso_utc(self.clock.now()),
            gateway=self.gateway,
            dispatcher=self.dispatcher,
            lifecycle=self.lifecycle,
            error_factory=_error,
        )


def build_engine(
    settings: Optional[Settings] = None,
    *,
    clock: Optional[Clock] = None,
    gateway: Optional[DataGateway] = None,
    collaborators: Optional[Collaborators] = None,
) -> Engine:
    s = settings or load_settings()
    clk = clock or SystemClock()
    gw = gateway or JsonDataGateway()
    collab = collaborators or build_collaborators(s.collaborators)
    dispatcher = AutomationDispatcher(gw, collab, clock=clk, config=s.engine)
    lifecycle = ReminderLifecycle(
        gw,
        clk,
        snooze_hours=s.engine.snooze_hours,
        gateway_timeout=s.engine.gateway_timeout_seconds,
    )
    return Engine(
        settings=s,
        clock=clk,
        gateway=gw,
        collaborators=collab,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
    )


_ENGINE_LOCK = threading.Lock()
_ENGINE: Optional[Engine] = None


def default_engine() -> Engine:
    global _ENGINE
    with _ENGINE_LOCK:
        if _ENGINE is None:
            _ENGINE = build_engine()
        return _ENGINE


def reset_engine() -> None:
    global _ENGINE
    with _ENGINE_LOCK:
        _ENGINE = None


def handle_request(req: EngineRequest, *, engine: Optional[Engine] = None) -> EngineResponse:
    eng = engine or default_engine()
    try:
        return dispatch_request(req, deps=eng.deps())
    except Exception as e:
        logger.exception("request failed op=%s", req.op)
        return _error("internal_error", str(e) or type(e).__name__)
