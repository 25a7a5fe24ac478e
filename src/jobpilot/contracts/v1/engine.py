from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EngineRequest(BaseModel):
    op: str = "dispatch"
    args: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class EngineError(BaseModel):
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class EngineResponse(BaseModel):
    ok: bool
    result: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[EngineError] = None

    model_config = ConfigDict(extra="forbid")
