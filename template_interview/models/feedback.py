"""
Pydantic schemas for user feedback on an interview session.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

FeedbackType = Literal["positive", "negative", "neutral", "suggestion"]
FeedbackCategory = Literal[
    "response_quality",
    "response_speed",
    "understanding",
    "helpfulness",
    "template_quality",
    "other",
]


class FeedbackRequest(BaseModel):
    type: FeedbackType
    category: FeedbackCategory
    rating: int = Field(ge=1, le=5)
    message: str = Field(min_length=1, max_length=1000)
    metadata: dict[str, Any] | None = None

    @field_validator("message", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class SessionFeedback(BaseModel):
    """One feedback entry as stored on the session."""
    feedbackId: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: FeedbackType
    category: FeedbackCategory
    rating: int
    message: str
    metadata: dict[str, Any] | None = None
    # 10 = low-rated negative, 5 = suggestion, 3 = positive, 1 = anything else
    priority: int = 1
    submittedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FeedbackResponse(SessionFeedback):
    sessionId: str
    userId: int
