"""
SessionService: business logic for the interview session endpoints.

Responsibilities:
  - Session lifecycle (start / end)
  - Ownership checks on every read
  - Read views: summary, conversation, assembled context, stored draft and
    its creation-request form
  - User feedback on a session
  - Expired-session cleanup (run as a background job)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from template_interview.core.config import get_settings
from template_interview.core.errors import AccessDeniedError, SessionNotFoundError
from template_interview.models.conversation import (
    ASSISTANT_ROLE,
    EXPIRED,
    ConversationSession,
    Message,
)
from template_interview.models.draft import CreateTemplateRequest, GeneratedTemplate
from template_interview.models.feedback import FeedbackRequest, FeedbackResponse, SessionFeedback
from template_interview.models.session import (
    ContextMessage,
    ContextPreviewResponse,
    ConversationResponse,
    SessionResponse,
)
from template_interview.prompts.system_prompt import build_system_prompt
from template_interview.services.conversation_cache import ConversationCache
from template_interview.services.draft_mapper import to_create_request_from_template
from template_interview.services.history_assembler import ContextOptions, HistoryAssembler
from template_interview.services.notifier import Notifier
from template_interview.services.session_store import SessionStore

logger = logging.getLogger(__name__)

_ENDED = ("completed", "cancelled", EXPIRED)


def _welcome_message(context: dict[str, Any]) -> str:
    topic = context.get("processType") or context.get("goal")
    opener = f"Let's design your {topic} process template together." if topic else (
        "Let's design your process template together."
    )
    return (
        f"{opener} To start, what is the final goal of the process, "
        "and when does it need to be reached?"
    )


def feedback_priority(request: FeedbackRequest) -> int:
    if request.type == "negative" and request.rating <= 2:
        return 10
    if request.type == "suggestion":
        return 5
    if request.type == "positive":
        return 3
    return 1


@dataclass
class CleanupResult:
    expired: int = 0
    deleted: int = 0


def to_session_response(session: ConversationSession) -> SessionResponse:
    return SessionResponse(
        sessionId=session.sessionId,
        userId=session.userId,
        status=session.status,
        context=session.context,
        messageCount=len(session.conversation),
        extractedRequirements=session.extractedRequirements,
        hasDraft=session.generatedTemplate is not None,
        createdAt=session.createdAt,
        expiresAt=session.expiresAt,
    )


class SessionService:

    def __init__(
        self,
        store: SessionStore,
        cache: ConversationCache,
        notifier: Notifier,
    ) -> None:
        self._store = store
        self._cache = cache
        self._notifier = notifier

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _get_or_404(self, session_id: str) -> ConversationSession:
        session = await self._store.load(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return session

    @staticmethod
    def _assert_owner(session: ConversationSession, requester_id: int) -> None:
        if session.userId != requester_id:
            raise AccessDeniedError("You do not own this session")

    async def _owned(self, session_id: str, requester_id: int) -> ConversationSession:
        session = await self._get_or_404(session_id)
        self._assert_owner(session, requester_id)
        return session

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self, user_id: int, context: dict[str, Any]) -> ConversationSession:
        now = datetime.now(timezone.utc)
        session = ConversationSession(
            sessionId=str(uuid.uuid4()),
            userId=user_id,
            context=context,
            conversation=[
                Message(
                    role=ASSISTANT_ROLE,
                    content=_welcome_message(context),
                    metadata={"confidence": 0.95, "suggestedQuestions": []},
                )
            ],
            createdAt=now,
            updatedAt=now,
            expiresAt=now + timedelta(minutes=get_settings().session_ttl_minutes),
        )
        created = await self._store.create(session)
        logger.info("Started session=%s for user=%s.", created.sessionId, user_id)
        try:
            await self._cache.set_conversation(created.sessionId, created.conversation)
        except Exception:
            logger.exception("Could not seed conversation cache for session=%s.", created.sessionId)
        return created

    async def end(self, session_id: str, requester_id: int) -> ConversationSession:
        """Mark the session completed. Ending an ended session is a no-op."""
        session = await self._owned(session_id, requester_id)
        if session.status in _ENDED:
            return session
        updated = await self._store.set_status(session_id, "completed")
        await self._notifier.notify_status_changed(session_id, "completed")
        return updated

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, session_id: str, requester_id: int) -> ConversationSession:
        return await self._owned(session_id, requester_id)

    async def conversation(self, session_id: str, requester_id: int) -> ConversationResponse:
        session = await self._owned(session_id, requester_id)
        messages = session.conversation
        return ConversationResponse(sessionId=session_id, messages=messages, total=len(messages))

    async def context_preview(self, session_id: str, requester_id: int) -> ContextPreviewResponse:
        """The message window the next generation call would see."""
        session = await self._owned(session_id, requester_id)
        settings = get_settings()
        options = ContextOptions(
            window_size=settings.history_window_size,
            max_tokens_budget=settings.history_tokens_budget,
            system_prompt=build_system_prompt(session.context),
        )
        messages = await HistoryAssembler(self._store).build(session_id, options)
        return ContextPreviewResponse(
            sessionId=session_id,
            messages=[ContextMessage(**m) for m in messages],
        )

    async def draft(self, session_id: str, requester_id: int) -> GeneratedTemplate | None:
        session = await self._owned(session_id, requester_id)
        if session.generatedTemplate is None:
            return None
        return GeneratedTemplate.model_validate(session.generatedTemplate)

    async def draft_create_request(
        self, session_id: str, requester_id: int
    ) -> CreateTemplateRequest:
        return to_create_request_from_template(await self.draft(session_id, requester_id))

    async def list_for_user(self, user_id: int) -> list[ConversationSession]:
        return await self._store.list_by_user(user_id)

    # ── Feedback ──────────────────────────────────────────────────────────────

    async def submit_feedback(
        self, session_id: str, requester_id: int, request: FeedbackRequest
    ) -> FeedbackResponse:
        await self._owned(session_id, requester_id)
        entry = SessionFeedback(
            **request.model_dump(),
            priority=feedback_priority(request),
        )
        await self._store.add_feedback(session_id, entry)
        logger.info(
            "Feedback %s (%s, rating=%d, priority=%d) on session=%s.",
            entry.feedbackId, entry.type, entry.rating, entry.priority, session_id,
        )
        return FeedbackResponse(**entry.model_dump(), sessionId=session_id, userId=requester_id)

    # ── Cleanup ───────────────────────────────────────────────────────────────

    async def cleanup_expired(self, now: datetime | None = None) -> CleanupResult:
        """
        Mark active sessions past their expiry as expired, drop their cached
        conversation and tell live listeners, then delete expired sessions
        older than the retention window. Per-session failures are logged and
        the sweep moves on.
        """
        now = now or datetime.now(timezone.utc)
        result = CleanupResult()

        for session in await self._store.list_expired(now):
            sid = session.sessionId
            try:
                if not await self._store.mark_expired(sid):
                    continue
            except Exception:
                logger.exception("Could not mark session=%s expired.", sid)
                continue
            result.expired += 1
            try:
                await self._cache.clear(sid)
            except Exception:
                logger.exception("Could not clear cached conversation for session=%s.", sid)
            try:
                await self._notifier.notify_status_changed(sid, EXPIRED)
            except Exception:
                logger.exception("Could not notify listeners of expired session=%s.", sid)

        retention = timedelta(days=get_settings().expired_session_retention_days)
        result.deleted = await self._store.purge_expired(now - retention)
        logger.info(
            "Session cleanup: %d expired, %d deleted.", result.expired, result.deleted
        )
        return result
