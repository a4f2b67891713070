"""
Session store: the persistence contract the orchestrator and the session
service depend on.

  DynamoSessionStore    SessionDAO behind FastAPI's threadpool (boto3 is sync)
  InMemorySessionStore  process-local dict, for STORAGE_BACKEND=memory and tests

Both hand out ConversationSession snapshots; callers never get a live
reference to stored state.
"""

from __future__ import annotations

import abc
import logging
from datetime import datetime
from typing import Any

from botocore.exceptions import ClientError
from fastapi.concurrency import run_in_threadpool
from pydantic import TypeAdapter

from template_interview.core.errors import ConcurrentUpdateError, SessionNotFoundError
from template_interview.dao.session_dao import SessionDAO
from template_interview.models.conversation import (
    ACTIVE,
    EXPIRED,
    ConversationSession,
    Message,
    ProcessRequirement,
    SessionStatus,
)
from template_interview.models.feedback import SessionFeedback

logger = logging.getLogger(__name__)


class SessionStore(abc.ABC):

    @abc.abstractmethod
    async def load(self, session_id: str) -> ConversationSession | None:
        ...

    @abc.abstractmethod
    async def create(self, session: ConversationSession) -> ConversationSession:
        ...

    @abc.abstractmethod
    async def append_conversation(
        self, session_id: str, messages: list[Message], expected_version: int
    ) -> ConversationSession:
        """Append messages; ConcurrentUpdateError when the stored version moved on."""

    @abc.abstractmethod
    async def set_generated_template(self, session_id: str, draft: dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def set_requirements(
        self, session_id: str, requirements: list[ProcessRequirement]
    ) -> None:
        ...

    @abc.abstractmethod
    async def set_status(self, session_id: str, status: SessionStatus) -> ConversationSession:
        ...

    @abc.abstractmethod
    async def add_feedback(self, session_id: str, feedback: SessionFeedback) -> None:
        ...

    @abc.abstractmethod
    async def list_by_user(self, user_id: int) -> list[ConversationSession]:
        """The user's sessions, oldest first."""

    @abc.abstractmethod
    async def list_expired(self, now: datetime) -> list[ConversationSession]:
        """Active sessions whose expiresAt is before now."""

    @abc.abstractmethod
    async def mark_expired(self, session_id: str) -> bool:
        """active -> expired. False when the session is gone or no longer active."""

    @abc.abstractmethod
    async def purge_expired(self, before: datetime) -> int:
        """Delete expired sessions whose expiresAt is before `before`; returns the count."""


def _iso(dt: datetime) -> str:
    # Same rendering as model_dump(mode="json"), so GSI range comparisons line up
    return TypeAdapter(datetime).dump_python(dt, mode="json")


# ── DynamoDB ──────────────────────────────────────────────────────────────────

def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoSessionStore(SessionStore):

    def __init__(self, dao: SessionDAO | None = None) -> None:
        self._dao = dao or SessionDAO()

    async def load(self, session_id: str) -> ConversationSession | None:
        item = await run_in_threadpool(self._dao.get, session_id)
        return ConversationSession.model_validate(item) if item else None

    async def create(self, session: ConversationSession) -> ConversationSession:
        item = await run_in_threadpool(self._dao.create, session.model_dump(mode="json"))
        return ConversationSession.model_validate(item)

    async def append_conversation(
        self, session_id: str, messages: list[Message], expected_version: int
    ) -> ConversationSession:
        payload = [m.model_dump(mode="json") for m in messages]
        try:
            item = await run_in_threadpool(
                self._dao.append_messages, session_id, payload, expected_version
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                logger.warning(
                    "Conversation write rejected for session=%s (expected version %d).",
                    session_id, expected_version,
                )
                raise ConcurrentUpdateError(
                    f"Session '{session_id}' was modified by another request"
                ) from exc
            raise
        return ConversationSession.model_validate(item)

    async def set_generated_template(self, session_id: str, draft: dict[str, Any]) -> None:
        await run_in_threadpool(self._dao.update_generated_template, session_id, draft)

    async def set_requirements(
        self, session_id: str, requirements: list[ProcessRequirement]
    ) -> None:
        await run_in_threadpool(
            self._dao.update_requirements,
            session_id,
            [r.model_dump(mode="json") for r in requirements],
        )

    async def set_status(self, session_id: str, status: SessionStatus) -> ConversationSession:
        try:
            item = await run_in_threadpool(self._dao.update_status, session_id, status)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise SessionNotFoundError(f"Session '{session_id}' not found") from exc
            raise
        return ConversationSession.model_validate(item)

    async def add_feedback(self, session_id: str, feedback: SessionFeedback) -> None:
        try:
            await run_in_threadpool(
                self._dao.append_feedback, session_id, feedback.model_dump(mode="json")
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise SessionNotFoundError(f"Session '{session_id}' not found") from exc
            raise

    async def list_by_user(self, user_id: int) -> list[ConversationSession]:
        items = await run_in_threadpool(self._dao.list_by_user, user_id)
        return [ConversationSession.model_validate(i) for i in items]

    async def list_expired(self, now: datetime) -> list[ConversationSession]:
        items = await run_in_threadpool(self._dao.list_expired_before, ACTIVE, _iso(now))
        return [ConversationSession.model_validate(i) for i in items]

    async def mark_expired(self, session_id: str) -> bool:
        try:
            await run_in_threadpool(self._dao.mark_expired, session_id)
        except ClientError as exc:
            if _is_conditional_failure(exc):
                return False
            raise
        return True

    async def purge_expired(self, before: datetime) -> int:
        items = await run_in_threadpool(self._dao.list_expired_before, EXPIRED, _iso(before))
        for item in items:
            await run_in_threadpool(self._dao.delete, item["sessionId"])
        return len(items)


# ── In-memory ─────────────────────────────────────────────────────────────────

class InMemorySessionStore(SessionStore):

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}

    def _require(self, session_id: str) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return session

    def _replace(self, session: ConversationSession, **update: Any) -> ConversationSession:
        stored = session.model_copy(update=update, deep=True)
        self._sessions[stored.sessionId] = stored
        return stored.model_copy(deep=True)

    async def load(self, session_id: str) -> ConversationSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def create(self, session: ConversationSession) -> ConversationSession:
        if session.sessionId in self._sessions:
            raise ConcurrentUpdateError(f"Session '{session.sessionId}' already exists")
        return self._replace(session)

    async def append_conversation(
        self, session_id: str, messages: list[Message], expected_version: int
    ) -> ConversationSession:
        current = self._require(session_id)
        if current.version != expected_version:
            raise ConcurrentUpdateError(
                f"Session '{session_id}' was modified by another request"
            )
        updated = current.with_messages(*messages)
        return self._replace(updated, version=expected_version + 1)

    async def set_generated_template(self, session_id: str, draft: dict[str, Any]) -> None:
        self._replace(self._require(session_id), generatedTemplate=draft)

    async def set_requirements(
        self, session_id: str, requirements: list[ProcessRequirement]
    ) -> None:
        self._replace(self._require(session_id), extractedRequirements=list(requirements))

    async def set_status(self, session_id: str, status: SessionStatus) -> ConversationSession:
        return self._replace(self._require(session_id), status=status)

    async def add_feedback(self, session_id: str, feedback: SessionFeedback) -> None:
        current = self._require(session_id)
        self._replace(current, feedback=[*current.feedback, feedback])

    async def list_by_user(self, user_id: int) -> list[ConversationSession]:
        owned = [s for s in self._sessions.values() if s.userId == user_id]
        return [s.model_copy(deep=True) for s in sorted(owned, key=lambda s: s.createdAt)]

    async def list_expired(self, now: datetime) -> list[ConversationSession]:
        return [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if s.status == ACTIVE and s.expiresAt is not None and s.expiresAt < now
        ]

    async def mark_expired(self, session_id: str) -> bool:
        current = self._sessions.get(session_id)
        if current is None or current.status != ACTIVE:
            return False
        self._replace(current, status=EXPIRED)
        return True

    async def purge_expired(self, before: datetime) -> int:
        stale = [
            sid
            for sid, s in self._sessions.items()
            if s.status == EXPIRED and s.expiresAt is not None and s.expiresAt < before
        ]
        for sid in stale:
            del self._sessions[sid]
        return len(stale)
