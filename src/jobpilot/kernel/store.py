"""Data gateway: Jobs, AutomationRules, FollowUpReminders and rule run logs.

The engine does not own this schema; it only needs typed, tenant-scoped
reads and writes. `JsonDataGateway` keeps one JSON document per user under
`<home>/users/<user_id>/data.json` plus an append-only `rule_runs.jsonl`.
Every mutation of a user's document happens under that user's lock (thread
lock + advisory file lock), which is what makes the live-reminder
uniqueness check in `insert_reminder` safe against overlapping passes.
"""

from __future__ import annotations

import logging
import re
import secrets
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from pydantic import ValidationError

from ..contracts.v1 import FollowUpReminder, Job, RuleRun
from ..paths import ensure_home
from ..util.conv import coerce_bool
from ..util.file_lock import acquire_lockfile, release_lockfile
from ..util.fs import append_jsonl, atomic_write_json, iter_jsonl, read_json
from ..util.time import utc_now_iso
from .errors import DataGatewayError, DuplicateActionError, ReminderNotFoundError, ReminderTransitionError

logger = logging.getLogger("jobpilot.kernel.store")

_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._@-]{0,127}$")

# Reminder fields that may change after creation; everything else is fixed.
_REMINDER_MUTABLE_FIELDS = {"snoozed_until", "dismissed_at", "completed_at"}


def new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(6)}"


def validate_user_id(user_id: Any) -> str:
    uid = str(user_id or "").strip()
    if not uid:
        raise DataGatewayError("missing user_id", code="missing_user_id")
    if ".." in uid or not _USER_ID_RE.match(uid):
        raise DataGatewayError(f"invalid user_id: {uid}", code="invalid_user_id")
    return uid


class DataGateway(Protocol):
    def list_active_rules(self) -> List[Dict[str, Any]]: ...

    def list_rules(self, user_id: str) -> List[Dict[str, Any]]: ...

    def get_rule(self, user_id: str, rule_id: str) -> Optional[Dict[str, Any]]: ...

    def upsert_rule(self, user_id: str, row: Dict[str, Any]) -> Dict[str, Any]: ...

    def mark_rule_executed(self, user_id: str, rule_id: str, at: str) -> bool: ...

    def list_jobs(self, user_id: str) -> List[Job]: ...

    def get_job(self, user_id: str, job_id: str) -> Optional[Job]: ...

    def upsert_job(self, job: Job) -> Job: ...

    def archive_jobs(self, user_id: str, job_ids: Iterable[str], *, at: str) -> int: ...

    def list_reminders(self, user_id: str) -> List[FollowUpReminder]: ...

    def get_reminder(self, user_id: str, reminder_id: str) -> Optional[FollowUpReminder]: ...

    def find_live_reminder(self, user_id: str, job_id: str, reminder_type: str) -> Optional[FollowUpReminder]: ...

    def insert_reminder(self, reminder: FollowUpReminder) -> FollowUpReminder: ...

    def update_reminder(
        self, user_id: str, reminder_id: str, changes: Dict[str, Any], *, require_live: bool = True
    ) -> FollowUpReminder: ...

    def append_rule_runs(self, user_id: str, runs: List[RuleRun]) -> None: ...

    def list_rule_runs(self, user_id: str, *, outcome: Optional[str] = None, limit: int = 100) -> List[RuleRun]: ...


def _new_user_doc() -> Dict[str, Any]:
    now = utc_now_iso()
    return {"v": 1, "created_at": now, "updated_at": now, "rules": {}, "jobs": {}, "reminders": {}}


def _normalize_user_doc(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict) or not raw:
        return _new_user_doc()
    doc = dict(raw)
    for key in ("rules", "jobs", "reminders"):
        if not isinstance(doc.get(key), dict):
            doc[key] = {}
    doc.setdefault("v", 1)
    return doc


class JsonDataGateway:
    def __init__(self, home: Optional[Path] = None) -> None:
        self._home = home
        self._locks_guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _users_root(self) -> Path:
        return (self._home or ensure_home()) / "users"

    def _user_dir(self, user_id: str) -> Path:
        return self._users_root() / validate_user_id(user_id)

    def _thread_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def _locked(self, user_id: str) -> Iterator[Path]:
        udir = self._user_dir(user_id)
        with self._thread_lock(udir.name):
            try:
                handle = acquire_lockfile(udir / ".lock")
            except OSError as e:
                raise DataGatewayError(f"cannot lock data for {udir.name}: {e}") from e
            try:
                yield udir
            finally:
                release_lockfile(handle)

    def _load(self, udir: Path) -> Dict[str, Any]:
        path = udir / "data.json"
        try:
            raw = read_json(path)
        except ValueError as e:
            raise DataGatewayError(f"corrupt data file: {path}", details={"error": str(e)}) from e
        except OSError as e:
            raise DataGatewayError(f"cannot read {path}: {e}") from e
        return _normalize_user_doc(raw)

    def _save(self, udir: Path, doc: Dict[str, Any]) -> None:
        doc["updated_at"] = utc_now_iso()
        try:
            atomic_write_json(udir / "data.json", doc)
        except OSError as e:
            raise DataGatewayError(f"cannot write data for {udir.name}: {e}") from e

    def list_user_ids(self) -> List[str]:
        root = self._users_root()
        if not root.exists():
            return []
        out: List[str] = []
        for p in sorted(root.iterdir()):
            if p.is_dir() and (p / "data.json").exists() and _USER_ID_RE.match(p.name):
                out.append(p.name)
        return out

    # Rules

    @staticmethod
    def _rule_rows(uid: str, doc: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for rid, raw in doc["rules"].items():
            if not isinstance(raw, dict):
                continue
            row = dict(raw)
            row["id"] = str(row.get("id") or rid)
            row["user_id"] = uid
            rows.append(row)
        rows.sort(key=lambda r: (str(r.get("created_at") or ""), r["id"]))
        return rows

    def list_active_rules(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for uid in self.list_user_ids():
            try:
                with self._locked(uid) as udir:
                    doc = self._load(udir)
            except DataGatewayError as e:
                # One unreadable tenant must not stop the others' rules.
                logger.warning("skipping rules for %s: %s", uid, e.message)
                continue
            for row in self._rule_rows(uid, doc):
                if coerce_bool(row.get("is_active"), default=True):
                    out.append(row)
        return out

    def list_rules(self, user_id: str) -> List[Dict[str, Any]]:
        with self._locked(user_id) as udir:
            doc = self._load(udir)
        return self._rule_rows(udir.name, doc)

    def get_rule(self, user_id: str, rule_id: str) -> Optional[Dict[str, Any]]:
        for row in self.list_rules(user_id):
            if row["id"] == rule_id:
                return row
        return None

    def upsert_rule(self, user_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
        rid = str(row.get("id") or "").strip()
        if not rid:
            raise DataGatewayError("rule row is missing id", code="invalid_rule")
        with self._locked(user_id) as udir:
            doc = self._load(udir)
            stored = dict(row)
            stored["id"] = rid
            stored["user_id"] = udir.name
            doc["rules"][rid] = stored
            self._save(udir, doc)
        return stored

    def mark_rule_executed(self, user_id: str, rule_id: str, at: str) -> bool:
        with self._locked(user_id) as udir:
            doc = self._load(udir)
            row = doc["rules"].get(rule_id)
            if not isinstance(row, dict):
                return False
            row["last_executed_at"] = at
            self._save(udir, doc)
        return True

    # Jobs

    def list_jobs(self, user_id: str) -> List[Job]:
        with self._locked(user_id) as udir:
            doc = self._load(udir)
        jobs: List[Job] = []
        for jid, raw in doc["jobs"].items():
            if not isinstance(raw, dict):
                continue
            try:
                job = Job.model_validate({**raw, "id": str(raw.get("id") or jid), "user_id": udir.name})
            except ValidationError as e:
                logger.warning("skipping malformed job %s for %s: %s", jid, udir.name, e.errors()[:1])
                continue
            jobs.append(job)
        jobs.sort(key=lambda j: (j.created_at, j.id))
        return jobs

    def get_job(self, user_id: str, job_id: str) -> Optional[Job]:
        for job in self.list_jobs(user_id):
            if job.id == job_id:
                return job
        return None

    def upsert_job(self, job: Job) -> Job:
        with self._locked(job.user_id) as udir:
            doc = self._load(udir)
            doc["jobs"][job.id] = job.model_dump()
            self._save(udir, doc)
        return job

    def archive_jobs(self, user_id: str, job_ids: Iterable[str], *, at: str) -> int:
        wanted = {str(j) for j in job_ids}
        if not wanted:
            return 0
        changed = 0
        with self._locked(user_id) as udir:
            doc = self._load(udir)
            for jid in sorted(wanted):
                row = doc["jobs"].get(jid)
                if not isinstance(row, dict) or coerce_bool(row.get("is_archived"), default=False):
                    continue
                row["is_archived"] = True
                row["updated_at"] = at
                changed += 1
            if changed:
                self._save(udir, doc)
        return changed

    # Reminders

    @staticmethod
    def _reminders(uid: str, doc: Dict[str, Any]) -> List[FollowUpReminder]:
        out: List[FollowUpReminder] = []
        for rid, raw in doc["reminders"].items():
            if not isinstance(raw, dict):
                continue
            try:
                out.append(FollowUpReminder.model_validate({**raw, "id": str(raw.get("id") or rid), "user_id": uid}))
            except ValidationError as e:
                logger.warning("skipping malformed reminder %s for %s: %s", rid, uid, e.errors()[:1])
        out.sort(key=lambda r: (r.scheduled_date, r.id))
        return out

    def list_reminders(self, user_id: str) -> List[FollowUpReminder]:
        with self._locked(user_id) as udir:
            doc = self._load(udir)
        return self._reminders(udir.name, doc)

    def get_reminder(self, user_id: str, reminder_id: str) -> Optional[FollowUpReminder]:
        for rem in self.list_reminders(user_id):
            if rem.id == reminder_id:
                return rem
        return None

    def find_live_reminder(self, user_id: str, job_id: str, reminder_type: str) -> Optional[FollowUpReminder]:
        for rem in self.list_reminders(user_id):
            if rem.job_id == job_id and rem.reminder_type == reminder_type and rem.is_live:
                return rem
        return None

    def insert_reminder(self, reminder: FollowUpReminder) -> FollowUpReminder:
        with self._locked(reminder.user_id) as udir:
            doc = self._load(udir)
            for existing in self._reminders(udir.name, doc):
                if (
                    existing.job_id == reminder.job_id
                    and existing.reminder_type == reminder.reminder_type
                    and existing.is_live
                ):
                    raise DuplicateActionError(
                        f"live {reminder.reminder_type} reminder already exists for job {reminder.job_id}",
                        details={"reminder_id": existing.id},
                    )
            if reminder.id in doc["reminders"]:
                raise DuplicateActionError(f"reminder id already exists: {reminder.id}")
            doc["reminders"][reminder.id] = reminder.model_dump()
            self._save(udir, doc)
        return reminder

    def update_reminder(
        self, user_id: str, reminder_id: str, changes: Dict[str, Any], *, require_live: bool = True
    ) -> FollowUpReminder:
        bad = set(changes) - _REMINDER_MUTABLE_FIELDS
        if bad:
            raise DataGatewayError(f"reminder fields are immutable: {sorted(bad)}", code="invalid_update")
        with self._locked(user_id) as udir:
            doc = self._load(udir)
            raw = doc["reminders"].get(reminder_id)
            if not isinstance(raw, dict):
                raise ReminderNotFoundError(f"reminder not found: {reminder_id}")
            current = FollowUpReminder.model_validate({**raw, "id": reminder_id, "user_id": udir.name})
            if require_live and not current.is_live:
                raise ReminderTransitionError(f"reminder {reminder_id} is already resolved")
            updated = current.model_copy(update=dict(changes))
            doc["reminders"][reminder_id] = updated.model_dump()
            self._save(udir, doc)
        return updated

    # Rule runs

    def append_rule_runs(self, user_id: str, runs: List[RuleRun]) -> None:
        if not runs:
            return
        with self._locked(user_id) as udir:
            try:
                for run in runs:
                    append_jsonl(udir / "rule_runs.jsonl", run.model_dump())
            except OSError as e:
                raise DataGatewayError(f"cannot append rule runs for {udir.name}: {e}") from e

    def list_rule_runs(self, user_id: str, *, outcome: Optional[str] = None, limit: int = 100) -> List[RuleRun]:
        udir = self._user_dir(user_id)
        rows: List[RuleRun] = []
        for raw in iter_jsonl(udir / "rule_runs.jsonl"):
            if outcome and str(raw.get("outcome") or "") != outcome:
                continue
            try:
                rows.append(RuleRun.model_validate(raw))
            except ValidationError:
                continue
        rows.reverse()
        return rows[: max(0, int(limit))]
