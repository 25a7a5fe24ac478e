"""JSON-lines logging for jobpilot processes (CLI, web)."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from .time import utc_now_iso

_RESERVED = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class JsonLineFormatter(logging.Formatter):
    def __init__(self, *, component: str) -> None:
        super().__init__()
        self._component = component

    def format(self, record: logging.LogRecord) -> str:
        doc: Dict[str, Any] = {
            "ts": utc_now_iso(),
            "level": record.levelname,
            "logger": record.name,
            "component": self._component,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            doc[key] = value
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


def setup_root_json_logging(*, component: str, level: str = "INFO", force: bool = False) -> None:
    root = logging.getLogger()
    if root.handlers and not force:
        return
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonLineFormatter(component=component))
    root.addHandler(handler)
    lvl = logging.getLevelName(str(level or "INFO").strip().upper())
    root.setLevel(lvl if isinstance(lvl, int) else logging.INFO)
