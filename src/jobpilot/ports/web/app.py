"""HTTP port for the automation engine.

POST /api/v1/automation takes `{action?, reminderId?, userId?, ...}`;
`action` selects the op (default: a full dispatch pass) and the remaining
camelCase keys become snake_case op args.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from ... import __version__
from ...contracts.v1 import EngineRequest, EngineResponse
from ...engine.server import Engine, handle_request
from ...kernel.settings import load_settings
from ...util.obslog import setup_root_json_logging

logger = logging.getLogger("jobpilot.ports.web")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

_SERVER_ERROR_CODES = {"internal_error"}


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", str(key)).lower()


def request_from_body(body: Optional[Dict[str, Any]]) -> EngineRequest:
    raw = dict(body or {})
    op = str(raw.pop("action", "") or raw.pop("op", "") or "").strip() or "dispatch"
    args = {_snake(k): v for k, v in raw.items()}
    return EngineRequest(op=op, args=args)


def _status_code(resp: EngineResponse) -> int:
    if resp.ok:
        return 200
    code = resp.error.code if resp.error is not None else "internal_error"
    return 500 if code in _SERVER_ERROR_CODES else 400


def _log_level(engine: Optional[Engine]) -> str:
    level = str(os.environ.get("JOBPILOT_LOG_LEVEL") or "").strip()
    if level:
        return level
    settings = engine.settings if engine is not None else load_settings()
    return settings.engine.log_level


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    # No-op when the hosting process already configured logging.
    setup_root_json_logging(component="web", level=_log_level(engine))
    app = FastAPI(title="jobpilot", version=__version__)

    @app.get("/api/v1/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "result": {"version": __version__}}

    @app.post("/api/v1/automation")
    def automation(body: Optional[Dict[str, Any]] = Body(default=None)) -> JSONResponse:
        req = request_from_body(body)
        logger.debug("automation request op=%s", req.op)
        resp = handle_request(req, engine=engine)
        return JSONResponse(status_code=_status_code(resp), content=resp.model_dump(mode="json"))

    return app
