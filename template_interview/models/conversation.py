"""
Pydantic schemas for interview sessions and their conversation.

Role strings are normalized once, here, when a message enters the system;
everything downstream can compare roles with plain equality.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from template_interview.core.config import get_settings
from template_interview.models.feedback import SessionFeedback

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"
Role = Literal["system", "user", "assistant"]

ACTIVE = "active"
EXPIRED = "expired"
SessionStatus = Literal["active", "paused", "completed", "cancelled", "expired"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One conversation entry."""
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _lower_role(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class ProcessRequirement(BaseModel):
    """A requirement extracted from the conversation by background analysis."""
    category: Literal[
        "goal", "stakeholder", "timeline", "deliverable", "constraint", "compliance"
    ]
    description: str
    priority: Literal["high", "medium", "low"] = "medium"
    confidence: float = Field(default=0.5, ge=0, le=1)


class ConversationSession(BaseModel):
    """
    Snapshot of an interview session as stored.

    version   bumped on every conversation write; writers pass the version they
              read so concurrent turns cannot silently overwrite each other.
    """
    sessionId: str
    userId: int
    status: SessionStatus = ACTIVE
    # industry, processType, goal, … supplied when the session starts
    context: dict[str, Any] = Field(default_factory=dict)
    conversation: list[Message] = Field(default_factory=list)
    extractedRequirements: list[ProcessRequirement] = Field(default_factory=list)
    generatedTemplate: dict[str, Any] | None = None
    feedback: list[SessionFeedback] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=_utcnow)
    updatedAt: datetime = Field(default_factory=_utcnow)
    expiresAt: datetime | None = None
    version: int = 0

    def model_post_init(self, __context: Any) -> None:
        if self.expiresAt is None:
            self.expiresAt = self.createdAt + timedelta(minutes=get_settings().session_ttl_minutes)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utcnow()) > self.expiresAt

    def with_messages(self, *messages: Message) -> "ConversationSession":
        """Return a new snapshot with messages appended; self is left untouched."""
        return self.model_copy(
            update={
                "conversation": [*self.conversation, *messages],
                "updatedAt": _utcnow(),
            }
        )


class ConversationProgress(BaseModel):
    totalMessages: int
    requirementsExtracted: int
    completeness: int            # 0–100
    missingAreas: list[str] | None = None
