"""
Pydantic schemas for one conversation turn (POST /sessions/{id}/messages).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from template_interview.models.conversation import ConversationProgress


class ChatRequest(BaseModel):
    """Body for POST /sessions/{sessionId}/messages"""
    message: str
    metadata: dict[str, Any] | None = None


class UserMessageEcho(BaseModel):
    content: str
    timestamp: datetime


class AIResponseEcho(BaseModel):
    """
    content             reply text (or the fixed fallback text)
    suggestedQuestions  follow-up questions; only fallback replies carry them
    confidence          0 for fallback replies
    """
    content: str
    suggestedQuestions: list[str] = Field(default_factory=list)
    confidence: float
    timestamp: datetime


class ChatResponse(BaseModel):
    sessionId: str
    userMessage: UserMessageEcho
    aiResponse: AIResponseEcho
    conversationProgress: ConversationProgress
