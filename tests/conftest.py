"""
Shared pytest fixtures for the interview service tests.

Async code is driven with asyncio.run(); collaborators that talk to AWS or
Anthropic are replaced with in-memory implementations or mocks.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from template_interview.models.conversation import (
    ASSISTANT_ROLE,
    USER_ROLE,
    ConversationSession,
    Message,
)
from template_interview.services.audit_service import AuditService
from template_interview.services.conversation_cache import InMemoryConversationCache
from template_interview.services.feature_flags import FeatureFlagService
from template_interview.services.llm_client import GenerationResult
from template_interview.services.notifier import Notifier
from template_interview.services.orchestrator_service import OrchestratorService
from template_interview.services.rate_limit_service import InMemoryRateLimiter
from template_interview.services.retry import RetryPolicy
from template_interview.services.session_store import InMemorySessionStore

OWNER_ID = 42
SESSION_ID = "sess-001"

DRAFT_REPLY = """Here is a first draft.

```json
{"schema": "ai_chat_process_template.v1", "answer": "Here is a first draft.",
 "process_template_draft": {"name": "Office move", "stepTemplates": [
   {"seq": 1, "name": "Pick office", "basis": "goal", "offsetDays": -60},
   {"seq": 2, "name": "Sign lease", "basis": "prev", "offsetDays": 10, "dependsOn": [1]}
 ]}}
```"""


class StatusError(Exception):
    """Upstream failure carrying an HTTP status, like the SDK's APIStatusError."""

    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages():
    return [
        Message(role=ASSISTANT_ROLE, content="What process are we designing?"),
        Message(role=USER_ROLE, content="An office relocation."),
        Message(role=ASSISTANT_ROLE, content="When is the move date?"),
    ]


@pytest.fixture
def make_session(sample_messages):
    def _make(**overrides) -> ConversationSession:
        data = {
            "sessionId": SESSION_ID,
            "userId": OWNER_ID,
            "context": {"industry": "real estate", "processType": "relocation"},
            "conversation": list(sample_messages),
        }
        data.update(overrides)
        return ConversationSession(**data)

    return _make


@pytest.fixture
def expired_at():
    return datetime.now(timezone.utc) - timedelta(minutes=1)


# ===== COLLABORATOR FIXTURES =====


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def seeded_store(store, make_session):
    """An in-memory store holding one active session owned by OWNER_ID."""
    asyncio.run(store.create(make_session()))
    return store


@pytest.fixture
def mock_responder():
    mock = MagicMock()
    mock.respond = AsyncMock(
        return_value=GenerationResult(content="Plain reply", tokens_used=250, estimated_cost=0.002)
    )
    return mock


@pytest.fixture
def mock_monitoring():
    return MagicMock()


@pytest.fixture
def mock_job_queue():
    mock = MagicMock()
    mock.add_job = AsyncMock()
    return mock


@pytest.fixture
def mock_notifier():
    mock = MagicMock(spec=Notifier)
    mock.broadcast_turn = AsyncMock()
    mock.notify_draft_generated = AsyncMock()
    return mock


@pytest.fixture
def mock_sleep():
    return AsyncMock()


@pytest.fixture
def feature_flags():
    return FeatureFlagService(environ={})


@pytest.fixture
def orchestrator(
    seeded_store,
    mock_responder,
    mock_monitoring,
    mock_job_queue,
    mock_notifier,
    mock_sleep,
    feature_flags,
):
    return OrchestratorService(
        store=seeded_store,
        responder=mock_responder,
        rate_limiter=InMemoryRateLimiter(limit_per_hour=100),
        cache=InMemoryConversationCache(ttl_seconds=60),
        notifier=mock_notifier,
        job_queue=mock_job_queue,
        feature_flags=feature_flags,
        audit=AuditService(enabled=True, salt="test"),
        monitoring=mock_monitoring,
        retry_policy=RetryPolicy(max_attempts=2),
        sleep=mock_sleep,
    )


# ===== CONFIGURATION =====


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
