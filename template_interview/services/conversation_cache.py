"""
Conversation cache mirror: the latest conversation of a session, pushed after
every persisted turn and expired after CONVERSATION_CACHE_TTL_SECONDS.

The session store stays the source of truth; the API never reads the mirror.
A mirror write that fails clears the entry so nothing stale outlives it.
"""

from __future__ import annotations

import abc
import time
from typing import Any

from fastapi.concurrency import run_in_threadpool

from template_interview.core.config import get_settings
from template_interview.dao.conversation_cache_dao import ConversationCacheDAO
from template_interview.models.conversation import Message


class ConversationCache(abc.ABC):

    @abc.abstractmethod
    async def set_conversation(self, session_id: str, messages: list[Message]) -> None:
        ...

    @abc.abstractmethod
    async def clear(self, session_id: str) -> None:
        ...


class DynamoConversationCache(ConversationCache):

    def __init__(self, dao: ConversationCacheDAO | None = None, ttl_seconds: int | None = None) -> None:
        self._dao = dao or ConversationCacheDAO()
        self._ttl = ttl_seconds or get_settings().conversation_cache_ttl_seconds

    async def set_conversation(self, session_id: str, messages: list[Message]) -> None:
        payload = [m.model_dump(mode="json") for m in messages]
        await run_in_threadpool(self._dao.put, session_id, payload, self._ttl)

    async def clear(self, session_id: str) -> None:
        await run_in_threadpool(self._dao.delete, session_id)


class InMemoryConversationCache(ConversationCache):

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._ttl = ttl_seconds or get_settings().conversation_cache_ttl_seconds
        self._entries: dict[str, tuple[float, list[dict[str, Any]]]] = {}

    async def set_conversation(self, session_id: str, messages: list[Message]) -> None:
        self._entries[session_id] = (
            time.monotonic() + self._ttl,
            [m.model_dump(mode="json") for m in messages],
        )

    async def clear(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

