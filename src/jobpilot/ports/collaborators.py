"""External collaborators consumed by the action executors.

Contracts only: the engine never looks inside generated documents, and
delivery of notifications is the sink's business ("submit once").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import httpx

from ..kernel.errors import CollaboratorError
from ..kernel.settings import CollaboratorConfig
from ..kernel.store import new_id
from ..paths import ensure_home
from ..util.fs import append_jsonl
from ..util.time import utc_now_iso

logger = logging.getLogger("jobpilot.ports.collaborators")


class DocumentGenerator(Protocol):
    def generate(self, job_id: str, user_id: str, params: Dict[str, Any]) -> Dict[str, Any]: ...


class NotificationSink(Protocol):
    def notify(self, user_id: str, subject: str, message: str, payload: Dict[str, Any]) -> Dict[str, Any]: ...


def _headers(api_key: str) -> Dict[str, str]:
    h = {"Content-Type": "application/json"}
    if api_key:
        h["Authorization"] = f"Bearer {api_key}"
    return h


def _post_json(client: httpx.Client, url: str, body: Dict[str, Any], *, api_key: str, what: str) -> Dict[str, Any]:
    try:
        resp = client.post(url, json=body, headers=_headers(api_key))
        resp.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise CollaboratorError(
            f"{what} returned HTTP {e.response.status_code}",
            details={"url": url, "status": e.response.status_code},
        ) from e
    except httpx.HTTPError as e:
        raise CollaboratorError(f"{what} request failed: {e}", details={"url": url}) from e
    if not resp.content:
        return {}
    try:
        data = resp.json()
    except ValueError as e:
        raise CollaboratorError(f"{what} returned invalid JSON", details={"url": url}) from e
    return data if isinstance(data, dict) else {"data": data}


class HttpDocumentGenerator:
    """POSTs `{jobId, userId, **params}` to a generation endpoint."""

    def __init__(self, url: str, *, api_key: str = "", what: str = "generation", client: Optional[httpx.Client] = None) -> None:
        self._url = url
        self._api_key = api_key
        self._what = what
        self._client = client or httpx.Client(timeout=60.0)

    def generate(self, job_id: str, user_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        body = {"jobId": job_id, "userId": user_id, **params}
        return _post_json(self._client, self._url, body, api_key=self._api_key, what=self._what)


class UnconfiguredGenerator:
    def __init__(self, what: str) -> None:
        self._what = what

    def generate(self, job_id: str, user_id: str, params: Dict[str, Any]) -> Dict[str, Any]:
        raise CollaboratorError(f"{self._what} service is not configured", code="collaborator_not_configured")


class HttpNotificationSink:
    def __init__(self, url: str, *, api_key: str = "", client: Optional[httpx.Client] = None) -> None:
        self._url = url
        self._api_key = api_key
        self._client = client or httpx.Client(timeout=30.0)

    def notify(self, user_id: str, subject: str, message: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = {"userId": user_id, "subject": subject, "message": message, **payload}
        return _post_json(self._client, self._url, body, api_key=self._api_key, what="notification sink")


class LedgerNotificationSink:
    """Appends notifications to a JSON-lines ledger for a separate sender to drain."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path or (ensure_home() / "state" / "notifications.jsonl")

    def notify(self, user_id: str, subject: str, message: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        entry = {
            "id": new_id("ntf"),
            "ts": utc_now_iso(),
            "user_id": user_id,
            "subject": subject,
            "message": message,
            "payload": payload,
        }
        try:
            append_jsonl(self.path, entry)
        except OSError as e:
            raise CollaboratorError(f"notification ledger write failed: {e}") from e
        return {"id": entry["id"]}


@dataclass(frozen=True)
class Collaborators:
    resume: DocumentGenerator
    cover_letter: DocumentGenerator
    notifications: NotificationSink


def build_collaborators(cfg: CollaboratorConfig) -> Collaborators:
    resume: DocumentGenerator
    cover_letter: DocumentGenerator
    sink: NotificationSink
    if cfg.resume_url:
        resume = HttpDocumentGenerator(cfg.resume_url, api_key=cfg.api_key, what="resume generation")
    else:
        resume = UnconfiguredGenerator("resume generation")
    if cfg.cover_letter_url:
        cover_letter = HttpDocumentGenerator(cfg.cover_letter_url, api_key=cfg.api_key, what="cover letter generation")
    else:
        cover_letter = UnconfiguredGenerator("cover letter generation")
    if cfg.notification_url:
        sink = HttpNotificationSink(cfg.notification_url, api_key=cfg.api_key)
    else:
        sink = LedgerNotificationSink()
    logger.debug(
        "collaborators resume=%s cover_letter=%s sink=%s",
        type(resume).__name__,
        type(cover_letter).__name__,
        type(sink).__name__,
    )
    return Collaborators(resume=resume, cover_letter=cover_letter, notifications=sink)
