"""
Pydantic schemas for the session endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from template_interview.models.conversation import Message, ProcessRequirement


class StartSessionRequest(BaseModel):
    # Free-form interview context, e.g. {"industry": "construction", "goal": "..."}
    context: dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    sessionId: str
    userId: int
    status: str
    context: dict[str, Any]
    messageCount: int
    extractedRequirements: list[ProcessRequirement]
    hasDraft: bool
    createdAt: datetime
    expiresAt: datetime


class ConversationResponse(BaseModel):
    sessionId: str
    messages: list[Message]
    total: int


class ContextMessage(BaseModel):
    role: str
    content: str


class ContextPreviewResponse(BaseModel):
    sessionId: str
    messages: list[ContextMessage]
