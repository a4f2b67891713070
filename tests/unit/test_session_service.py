"""
Tests for SessionService: lifecycle, reads, feedback and expired-session cleanup.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from conftest import OWNER_ID, SESSION_ID

from template_interview.core.config import get_settings
from template_interview.core.errors import AccessDeniedError
from template_interview.models.conversation import ConversationSession
from template_interview.models.feedback import FeedbackRequest
from template_interview.services.conversation_cache import InMemoryConversationCache
from template_interview.services.session_service import SessionService, feedback_priority


@pytest.fixture
def cache():
    return InMemoryConversationCache(ttl_seconds=60)


@pytest.fixture
def service(seeded_store, cache, mock_notifier):
    return SessionService(seeded_store, cache, mock_notifier)


def _feedback(**overrides):
    data = {"type": "positive", "category": "helpfulness", "rating": 5, "message": "Very clear"}
    data.update(overrides)
    return FeedbackRequest(**data)


class TestStart:

    def test_session_is_created_when_cache_seed_fails(self, service, cache, store):
        cache.set_conversation = AsyncMock(side_effect=RuntimeError("cache down"))
        session = asyncio.run(service.start(OWNER_ID, {"processType": "office move"}))

        assert session.status == "active"
        stored = asyncio.run(store.load(session.sessionId))
        assert stored.conversation[0].role == "assistant"

    def test_expiry_defaults_to_an_hour(self, service):
        session = asyncio.run(service.start(OWNER_ID, {}))
        assert session.expiresAt - session.createdAt == timedelta(minutes=60)


class TestConversation:

    def test_reads_the_store_not_the_mirror(self, service, cache, seeded_store):
        asyncio.run(cache.set_conversation(SESSION_ID, []))
        response = asyncio.run(service.conversation(SESSION_ID, OWNER_ID))
        assert response.total == 3
        assert response.messages[-1].content == "When is the move date?"

    def test_other_owner(self, service):
        with pytest.raises(AccessDeniedError):
            asyncio.run(service.conversation(SESSION_ID, OWNER_ID + 1))

    def test_list_for_user(self, service):
        sessions = asyncio.run(service.list_for_user(OWNER_ID))
        assert [s.sessionId for s in sessions] == [SESSION_ID]
        assert asyncio.run(service.list_for_user(OWNER_ID + 1)) == []


class TestFeedback:

    @pytest.mark.parametrize(
        "kind,rating,priority",
        [
            ("negative", 1, 10),
            ("negative", 2, 10),
            ("negative", 3, 1),
            ("suggestion", 4, 5),
            ("positive", 5, 3),
            ("neutral", 3, 1),
        ],
    )
    def test_priority(self, kind, rating, priority):
        assert feedback_priority(_feedback(type=kind, rating=rating)) == priority

    def test_feedback_is_stored_on_the_session(self, service, seeded_store):
        response = asyncio.run(
            service.submit_feedback(SESSION_ID, OWNER_ID, _feedback(message="  Too slow  ", type="negative", rating=2))
        )
        assert response.priority == 10
        assert response.sessionId == SESSION_ID

        stored = asyncio.run(seeded_store.load(SESSION_ID)).feedback
        assert [f.message for f in stored] == ["Too slow"]
        assert stored[0].feedbackId == response.feedbackId

    def test_feedback_requires_ownership(self, service):
        with pytest.raises(AccessDeniedError):
            asyncio.run(service.submit_feedback(SESSION_ID, OWNER_ID + 1, _feedback()))

    @pytest.mark.parametrize("overrides", [{"rating": 0}, {"rating": 6}, {"message": "   "}, {"message": "x" * 1001}])
    def test_invalid_feedback_is_rejected(self, overrides):
        with pytest.raises(ValueError):
            _feedback(**overrides)


class TestCleanup:

    def test_expires_notifies_and_clears_cache(self, service, store, cache, make_session, mock_notifier):
        now = datetime.now(timezone.utc)
        asyncio.run(store.create(make_session(sessionId="stale", expiresAt=now - timedelta(minutes=5))))
        asyncio.run(cache.set_conversation("stale", []))

        result = asyncio.run(service.cleanup_expired(now))

        assert (result.expired, result.deleted) == (1, 0)
        assert asyncio.run(store.load("stale")).status == "expired"
        assert asyncio.run(store.load(SESSION_ID)).status == "active"
        assert "stale" not in cache._entries
        mock_notifier.notify_status_changed.assert_awaited_once_with("stale", "expired")

    def test_expired_sessions_past_retention_are_deleted(self, service, store, make_session):
        now = datetime.now(timezone.utc)
        asyncio.run(store.create(make_session(sessionId="ancient", status="expired",
                                              expiresAt=now - timedelta(days=31))))
        asyncio.run(store.create(make_session(sessionId="recent", status="expired",
                                              expiresAt=now - timedelta(days=1))))

        result = asyncio.run(service.cleanup_expired(now))

        assert result.deleted == 1
        assert asyncio.run(store.load("ancient")) is None
        assert asyncio.run(store.load("recent")) is not None

    def test_one_failing_session_does_not_stop_the_sweep(self, service, store, make_session, mock_notifier):
        now = datetime.now(timezone.utc)
        for sid in ("a", "b"):
            asyncio.run(store.create(make_session(sessionId=sid, expiresAt=now - timedelta(minutes=5))))
        mock_notifier.notify_status_changed.side_effect = RuntimeError("socket down")
        real_mark = store.mark_expired

        async def _mark(session_id):
            if session_id == "a":
                raise RuntimeError("ddb down")
            return await real_mark(session_id)

        store.mark_expired = _mark
        result = asyncio.run(service.cleanup_expired(now))

        assert result.expired == 1
        assert asyncio.run(store.load("a")).status == "active"
        assert asyncio.run(store.load("b")).status == "expired"

    def test_ending_an_expired_session_is_a_no_op(self, service, seeded_store, mock_notifier):
        asyncio.run(seeded_store.mark_expired(SESSION_ID))
        assert asyncio.run(service.end(SESSION_ID, OWNER_ID)).status == "expired"
        mock_notifier.notify_status_changed.assert_not_awaited()


class TestSessionExpiry:

    @pytest.fixture
    def short_ttl(self, monkeypatch):
        monkeypatch.setenv("SESSION_TTL_MINUTES", "15")
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_model_default_uses_configured_ttl(self, short_ttl):
        now = datetime.now(timezone.utc)
        session = ConversationSession(sessionId="s", userId=OWNER_ID, createdAt=now)
        assert session.expiresAt == now + timedelta(minutes=15)

    def test_started_session_uses_configured_ttl(self, short_ttl, service):
        session = asyncio.run(service.start(OWNER_ID, {}))
        assert session.expiresAt - session.createdAt == timedelta(minutes=15)
