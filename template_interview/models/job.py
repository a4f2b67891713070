"""
Pydantic schema for background jobs.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field

REQUIREMENT_ANALYSIS = "REQUIREMENT_ANALYSIS"
SESSION_CLEANUP = "SESSION_CLEANUP"
JobType = Literal["REQUIREMENT_ANALYSIS", "SESSION_CLEANUP"]


class BackgroundJob(BaseModel):
    jobId: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: JobType
    # System jobs (SESSION_CLEANUP) run for no particular user or session
    userId: int | None = None
    sessionId: str | None = None
    # REQUIREMENT_ANALYSIS: {"conversation": [...], "context": {...}}
    payload: dict[str, Any] = Field(default_factory=dict)
