from __future__ import annotations

import os
from pathlib import Path


def jobpilot_home() -> Path:
    raw = os.environ.get("JOBPILOT_HOME")
    if raw and raw.strip():
        return Path(raw.strip()).expanduser()
    return Path.home() / ".jobpilot"


def ensure_home() -> Path:
    home = jobpilot_home()
    home.mkdir(parents=True, exist_ok=True)
    return home
