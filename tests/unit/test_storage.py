"""
Tests for the DynamoDB DAOs (against a mocked Table) and the session stores.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from conftest import OWNER_ID, SESSION_ID

from template_interview.core.errors import ConcurrentUpdateError, SessionNotFoundError
from template_interview.dao.base import _to_dynamo, _to_python
from template_interview.dao.conversation_cache_dao import ConversationCacheDAO
from template_interview.dao.rate_limit_dao import RateLimitDAO
from template_interview.dao.session_dao import SessionDAO
from template_interview.models.conversation import Message, ProcessRequirement
from template_interview.models.feedback import SessionFeedback
from template_interview.services.conversation_cache import (
    DynamoConversationCache,
    InMemoryConversationCache,
)
from template_interview.services.rate_limit_service import DynamoRateLimiter, InMemoryRateLimiter
from template_interview.services.session_store import DynamoSessionStore, SessionStore, _iso


def _conditional_failure():
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "nope"}},
        "UpdateItem",
    )


def _stored_item(make_session, **fields):
    item = make_session().model_dump(mode="json")
    item.update({"PK": f"SESSION#{SESSION_ID}", "SK": "METADATA", "entityType": "SESSION"})
    item.update(fields)
    return item


class TestConversions:

    def test_round_trip_numbers(self):
        assert _to_dynamo({"a": 0.5, "b": [1, 2.25], "c": True}) == {
            "a": Decimal("0.5"), "b": [1, Decimal("2.25")], "c": True,
        }
        assert _to_python({"a": Decimal("3"), "b": Decimal("0.5")}) == {"a": 3, "b": 0.5}


class TestSessionDAO:

    def test_create_is_conditional_on_absence(self, make_session):
        table = MagicMock()
        dao = SessionDAO(table=table)
        dao.create(make_session().model_dump(mode="json"))

        kwargs = table.put_item.call_args.kwargs
        assert kwargs["Item"]["PK"] == f"SESSION#{SESSION_ID}"
        assert kwargs["Item"]["version"] == 0
        assert kwargs["ConditionExpression"] is not None

    def test_append_messages_checks_version(self):
        table = MagicMock()
        table.update_item.return_value = {"Attributes": {"version": Decimal("4")}}
        result = SessionDAO(table=table).append_messages(SESSION_ID, [{"role": "user", "content": "hi"}], 3)

        kwargs = table.update_item.call_args.kwargs
        assert "list_append" in kwargs["UpdateExpression"]
        assert kwargs["ExpressionAttributeValues"][":expected"] == 3
        assert kwargs["ExpressionAttributeValues"][":next"] == 4
        assert result == {"version": 4}

    def test_get_missing(self):
        table = MagicMock()
        table.get_item.return_value = {}
        assert SessionDAO(table=table).get("x") is None

    def test_mark_expired_requires_active(self):
        table = MagicMock()
        table.update_item.return_value = {"Attributes": {"status": "expired"}}
        SessionDAO(table=table).mark_expired(SESSION_ID)

        kwargs = table.update_item.call_args.kwargs
        assert kwargs["ConditionExpression"] == "attribute_exists(PK) AND #s = :active"
        assert kwargs["ExpressionAttributeValues"][":expired"] == "expired"

    def test_list_expired_before_follows_pages(self):
        table = MagicMock()
        table.query.side_effect = [
            {"Items": [{"sessionId": "a"}], "LastEvaluatedKey": {"PK": "SESSION#a"}},
            {"Items": [{"sessionId": "b"}]},
        ]
        items = SessionDAO(table=table).list_expired_before("active", "2026-01-01T00:00:00Z")

        assert [i["sessionId"] for i in items] == ["a", "b"]
        first, second = table.query.call_args_list
        assert first.kwargs["IndexName"] == "GSI2_StatusByExpiry"
        assert "ExclusiveStartKey" not in first.kwargs
        assert second.kwargs["ExclusiveStartKey"] == {"PK": "SESSION#a"}

    def test_append_feedback_starts_empty_list(self):
        table = MagicMock()
        table.update_item.return_value = {"Attributes": {}}
        SessionDAO(table=table).append_feedback(SESSION_ID, {"rating": 4})

        kwargs = table.update_item.call_args.kwargs
        assert "if_not_exists(feedback, :empty)" in kwargs["UpdateExpression"]
        assert kwargs["ExpressionAttributeValues"][":f"] == [{"rating": 4}]


class TestDynamoSessionStore:

    def test_load_converts_item(self, make_session):
        dao = MagicMock()
        dao.get.return_value = _stored_item(make_session, version=2)
        session = asyncio.run(DynamoSessionStore(dao).load(SESSION_ID))
        assert session.userId == OWNER_ID
        assert session.version == 2
        assert session.conversation[0].role == "assistant"

    def test_conditional_failure_becomes_concurrent_update(self):
        dao = MagicMock()
        dao.append_messages.side_effect = _conditional_failure()
        store = DynamoSessionStore(dao)
        with pytest.raises(ConcurrentUpdateError):
            asyncio.run(store.append_conversation(SESSION_ID, [Message(role="user", content="hi")], 0))

    def test_other_client_errors_propagate(self):
        dao = MagicMock()
        dao.append_messages.side_effect = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "UpdateItem",
        )
        with pytest.raises(ClientError):
            asyncio.run(DynamoSessionStore(dao).append_conversation(SESSION_ID, [], 0))

    def test_requirements_are_serialized(self):
        dao = MagicMock()
        asyncio.run(
            DynamoSessionStore(dao).set_requirements(
                SESSION_ID, [ProcessRequirement(category="goal", description="Move")]
            )
        )
        _, payload = dao.update_requirements.call_args.args
        assert payload[0]["category"] == "goal"

    def test_expiry_cutoff_matches_stored_format(self, make_session):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        stored = make_session(createdAt=now).model_dump(mode="json")["expiresAt"]
        assert _iso(now + timedelta(hours=1)) == stored

    def test_list_expired_queries_active_sessions(self, make_session):
        dao = MagicMock()
        dao.list_expired_before.return_value = [_stored_item(make_session)]
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        sessions = asyncio.run(DynamoSessionStore(dao).list_expired(now))

        assert dao.list_expired_before.call_args.args == ("active", _iso(now))
        assert sessions[0].sessionId == SESSION_ID

    def test_mark_expired_lost_race_returns_false(self):
        dao = MagicMock()
        dao.mark_expired.side_effect = _conditional_failure()
        assert asyncio.run(DynamoSessionStore(dao).mark_expired(SESSION_ID)) is False

    def test_purge_deletes_each_expired_item(self):
        dao = MagicMock()
        dao.list_expired_before.return_value = [{"sessionId": "a"}, {"sessionId": "b"}]
        before = datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert asyncio.run(DynamoSessionStore(dao).purge_expired(before)) == 2

        assert dao.list_expired_before.call_args.args[0] == "expired"
        assert [c.args[0] for c in dao.delete.call_args_list] == ["a", "b"]

    def test_feedback_on_missing_session(self):
        dao = MagicMock()
        dao.append_feedback.side_effect = _conditional_failure()
        entry = SessionFeedback(type="positive", category="other", rating=5, message="ok")
        with pytest.raises(SessionNotFoundError):
            asyncio.run(DynamoSessionStore(dao).add_feedback(SESSION_ID, entry))


class TestInMemorySessionStore:

    def test_store_is_abstract(self):
        with pytest.raises(TypeError):
            SessionStore()

    def test_append_bumps_version(self, seeded_store):
        updated = asyncio.run(
            seeded_store.append_conversation(SESSION_ID, [Message(role="user", content="hi")], 0)
        )
        assert updated.version == 1
        assert updated.conversation[-1].content == "hi"

    def test_stale_version_is_rejected(self, seeded_store):
        asyncio.run(seeded_store.append_conversation(SESSION_ID, [], 0))
        with pytest.raises(ConcurrentUpdateError):
            asyncio.run(seeded_store.append_conversation(SESSION_ID, [], 0))

    def test_loaded_snapshots_are_independent(self, seeded_store):
        first = asyncio.run(seeded_store.load(SESSION_ID))
        first.conversation.append(Message(role="user", content="local only"))
        assert len(asyncio.run(seeded_store.load(SESSION_ID)).conversation) == 3

    def test_missing_session(self, store):
        with pytest.raises(SessionNotFoundError):
            asyncio.run(store.set_status("nope", "completed"))

    def test_expire_then_purge(self, store, make_session):
        now = datetime.now(timezone.utc)
        asyncio.run(store.create(make_session(sessionId="old", expiresAt=now - timedelta(days=40))))
        asyncio.run(store.create(make_session(sessionId="fresh", expiresAt=now + timedelta(hours=1))))
        asyncio.run(store.create(make_session(sessionId="done", status="completed",
                                              expiresAt=now - timedelta(days=40))))

        assert [s.sessionId for s in asyncio.run(store.list_expired(now))] == ["old"]
        assert asyncio.run(store.mark_expired("old")) is True
        assert asyncio.run(store.mark_expired("old")) is False
        assert asyncio.run(store.mark_expired("done")) is False
        assert asyncio.run(store.purge_expired(now - timedelta(days=30))) == 1
        assert asyncio.run(store.load("old")) is None
        assert asyncio.run(store.load("done")) is not None

    def test_list_by_user_oldest_first(self, store, make_session):
        now = datetime.now(timezone.utc)
        asyncio.run(store.create(make_session(sessionId="b", createdAt=now)))
        asyncio.run(store.create(make_session(sessionId="a", createdAt=now - timedelta(hours=1))))
        asyncio.run(store.create(make_session(sessionId="other", userId=7)))
        assert [s.sessionId for s in asyncio.run(store.list_by_user(OWNER_ID))] == ["a", "b"]

    def test_feedback_is_appended(self, seeded_store):
        entry = SessionFeedback(type="suggestion", category="other", rating=3, message="More examples")
        asyncio.run(seeded_store.add_feedback(SESSION_ID, entry))
        assert asyncio.run(seeded_store.load(SESSION_ID)).feedback[0].message == "More examples"


class TestConversationCache:

    def test_dynamo_cache_writes_with_ttl(self):
        table = MagicMock()
        cache = DynamoConversationCache(ConversationCacheDAO(table=table), ttl_seconds=60)
        asyncio.run(cache.set_conversation(SESSION_ID, [Message(role="user", content="hi")]))

        item = table.put_item.call_args.kwargs["Item"]
        assert item["SK"] == "CACHE#conversation"
        assert item["messages"][0]["content"] == "hi"
        assert item["ttl"] > 0

    def test_dynamo_cache_clear_deletes_the_item(self):
        table = MagicMock()
        cache = DynamoConversationCache(ConversationCacheDAO(table=table), ttl_seconds=60)
        asyncio.run(cache.clear(SESSION_ID))
        assert table.delete_item.call_args.kwargs["Key"] == {
            "PK": f"SESSION#{SESSION_ID}", "SK": "CACHE#conversation",
        }

    def test_in_memory_clear(self):
        cache = InMemoryConversationCache(ttl_seconds=60)
        asyncio.run(cache.set_conversation(SESSION_ID, [Message(role="user", content="hi")]))
        asyncio.run(cache.clear(SESSION_ID))
        asyncio.run(cache.clear("never-cached"))
        assert cache._entries == {}


class TestRateLimiters:

    def test_in_memory_limit(self):
        limiter = InMemoryRateLimiter(limit_per_hour=2)

        async def _three():
            return [await limiter.allow(1) for _ in range(3)]

        assert asyncio.run(_three()) == [True, True, False]

    def test_limits_are_per_user(self):
        limiter = InMemoryRateLimiter(limit_per_hour=1)

        async def _two_users():
            return [await limiter.allow(1), await limiter.allow(2)]

        assert asyncio.run(_two_users()) == [True, True]

    def test_dynamo_counter(self):
        table = MagicMock()
        table.update_item.return_value = {"Attributes": {"count": Decimal("101")}}
        limiter = DynamoRateLimiter(RateLimitDAO(table=table), limit_per_hour=100)
        assert asyncio.run(limiter.allow(OWNER_ID)) is False
        assert table.update_item.call_args.kwargs["Key"]["PK"] == f"RATE#{OWNER_ID}"
