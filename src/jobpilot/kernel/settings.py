"""Engine settings (settings.yaml under JOBPILOT_HOME).

Example:

    engine:
      reference_timezone: America/New_York
      rule_workers: 4
      target_workers: 4
      collaborator_timeout_seconds: 30
    collaborators:
      resume_url: https://example.invalid/functions/v1/ai-resume-generate
      cover_letter_url: https://example.invalid/functions/v1/ai-cover-letter-generate
      notification_url: ""

Values are coerced tolerantly: unparseable numbers fall back to defaults and
negatives clamp, so a hand-edited file never stops a dispatch pass.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..paths import ensure_home
from .clock import resolve_timezone

logger = logging.getLogger("jobpilot.kernel.settings")


@dataclass(frozen=True)
class EngineConfig:
    reference_timezone: str = "UTC"
    rule_workers: int = 4
    target_workers: int = 4
    generate_batch_size: int = 10
    collaborator_timeout_seconds: float = 30.0
    gateway_timeout_seconds: float = 10.0
    snooze_hours: int = 24
    log_level: str = "INFO"


@dataclass(frozen=True)
class CollaboratorConfig:
    resume_url: str = ""
    cover_letter_url: str = ""
    notification_url: str = ""
    api_key: str = ""


@dataclass(frozen=True)
class Settings:
    engine: EngineConfig
    collaborators: CollaboratorConfig


def settings_path() -> Path:
    return ensure_home() / "settings.yaml"


def _section(doc: Dict[str, Any], key: str) -> Dict[str, Any]:
    d = doc.get(key)
    return d if isinstance(d, dict) else {}


def engine_config_from_doc(doc: Dict[str, Any]) -> EngineConfig:
    d = _section(doc, "engine")
    defaults = EngineConfig()

    def _int(key: str, default: int, *, minimum: int = 0) -> int:
        try:
            v = int(d.get(key) if key in d else default)
        except Exception:
            v = int(default)
        return max(minimum, v)

    def _float(key: str, default: float) -> float:
        try:
            v = float(d.get(key) if key in d else default)
        except Exception:
            v = float(default)
        return v if v > 0 else float(default)

    tz_name = str(os.environ.get("JOBPILOT_TIMEZONE") or d.get("reference_timezone") or "UTC").strip() or "UTC"
    try:
        resolve_timezone(tz_name)
    except ValueError:
        logger.warning("unknown reference_timezone %r; using UTC", tz_name)
        tz_name = "UTC"

    level = str(os.environ.get("JOBPILOT_LOG_LEVEL") or d.get("log_level") or defaults.log_level).strip().upper()

    return EngineConfig(
        reference_timezone=tz_name,
        rule_workers=_int("rule_workers", defaults.rule_workers, minimum=1),
        target_workers=_int("target_workers", defaults.target_workers, minimum=1),
        generate_batch_size=_int("generate_batch_size", defaults.generate_batch_size, minimum=1),
        collaborator_timeout_seconds=_float("collaborator_timeout_seconds", defaults.collaborator_timeout_seconds),
        gateway_timeout_seconds=_float("gateway_timeout_seconds", defaults.gateway_timeout_seconds),
        snooze_hours=_int("snooze_hours", defaults.snooze_hours, minimum=1),
        log_level=level or "INFO",
    )


def collaborator_config_from_doc(doc: Dict[str, Any]) -> CollaboratorConfig:
    d = _section(doc, "collaborators")

    def _str(key: str) -> str:
        v = d.get(key)
        return str(v).strip() if isinstance(v, (str, int, float)) else ""

    return CollaboratorConfig(
        resume_url=_str("resume_url"),
        cover_letter_url=_str("cover_letter_url"),
        notification_url=_str("notification_url"),
        api_key=str(os.environ.get("JOBPILOT_API_KEY") or _str("api_key")),
    )


def load_settings(path: Optional[Path] = None) -> Settings:
    p = path or settings_path()
    doc: Dict[str, Any] = {}
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            doc = raw
    except FileNotFoundError:
        pass
    except (OSError, yaml.YAMLError) as e:
        logger.warning("failed to read %s: %s; using defaults", p, e)
    return Settings(engine=engine_config_from_doc(doc), collaborators=collaborator_config_from_doc(doc))
