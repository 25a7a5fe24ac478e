"""Job rows as the engine sees them.

The job schema belongs to the tracking application; the engine only reads
these fields (and writes `is_archived`), so unknown columns are carried through.
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ...util.time import utc_now_iso

_STATUS_FOLD_RE = re.compile(r"[\s\-]+")


def normalize_status(value: Optional[str]) -> str:
    """Fold a job status for comparison ("Phone Screen" == "phone_screen")."""
    return _STATUS_FOLD_RE.sub("_", str(value or "").strip().lower())


class Job(BaseModel):
    id: str
    user_id: str
    job_title: str = ""
    company_name: str = ""
    status: str = "Interested"
    status_updated_at: Optional[str] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: Optional[str] = None
    application_deadline: Optional[str] = None
    is_archived: bool = False

    model_config = ConfigDict(extra="allow")

    @property
    def normalized_status(self) -> str:
        return normalize_status(self.status)

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.job_title,
            "company": self.company_name,
            "status": self.status,
        }
