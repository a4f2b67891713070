"""
FastAPI dependency functions shared across all route modules.

Process-wide collaborators (store, cache, notifier, job queue, …) are built
once and cached; the storage backend is chosen by STORAGE_BACKEND.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from template_interview.core.config import get_settings
from template_interview.models.job import REQUIREMENT_ANALYSIS, SESSION_CLEANUP, BackgroundJob
from template_interview.services.audit_service import AuditService
from template_interview.services.conversation_cache import (
    ConversationCache,
    DynamoConversationCache,
    InMemoryConversationCache,
)
from template_interview.services.conversation_responder import ConversationResponder
from template_interview.services.feature_flags import FeatureFlagService
from template_interview.services.job_queue import JobQueue
from template_interview.services.monitoring_service import MonitoringService
from template_interview.services.notifier import Notifier
from template_interview.services.orchestrator_service import OrchestratorService
from template_interview.services.process_analysis import RequirementAnalyzer
from template_interview.services.rate_limit_service import (
    DynamoRateLimiter,
    InMemoryRateLimiter,
    RateLimiter,
)
from template_interview.services.session_service import SessionService
from template_interview.services.session_store import (
    DynamoSessionStore,
    InMemorySessionStore,
    SessionStore,
)


def _use_memory() -> bool:
    return get_settings().storage_backend == "memory"


# ── Shared collaborators ──────────────────────────────────────────────────────

@lru_cache
def get_session_store() -> SessionStore:
    return InMemorySessionStore() if _use_memory() else DynamoSessionStore()


@lru_cache
def get_conversation_cache() -> ConversationCache:
    return InMemoryConversationCache() if _use_memory() else DynamoConversationCache()


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return InMemoryRateLimiter() if _use_memory() else DynamoRateLimiter()


@lru_cache
def get_notifier() -> Notifier:
    return Notifier()


@lru_cache
def get_monitoring() -> MonitoringService:
    return MonitoringService()


@lru_cache
def get_feature_flags() -> FeatureFlagService:
    return FeatureFlagService()


@lru_cache
def get_job_queue() -> JobQueue:
    queue = JobQueue()
    queue.register(REQUIREMENT_ANALYSIS, RequirementAnalyzer(get_session_store()).handle)
    queue.register(SESSION_CLEANUP, run_session_cleanup)
    return queue


@lru_cache
def get_orchestrator() -> OrchestratorService:
    # One instance per process: it owns the per-session turn locks
    return OrchestratorService(
        store=get_session_store(),
        responder=ConversationResponder(),
        rate_limiter=get_rate_limiter(),
        cache=get_conversation_cache(),
        notifier=get_notifier(),
        job_queue=get_job_queue(),
        feature_flags=get_feature_flags(),
        audit=AuditService(),
        monitoring=get_monitoring(),
    )


def get_session_service() -> SessionService:
    return SessionService(get_session_store(), get_conversation_cache(), get_notifier())


async def run_session_cleanup(job: BackgroundJob) -> None:
    await get_session_service().cleanup_expired()


# ── Caller identity ───────────────────────────────────────────────────────────

def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> int:
    """
    The caller's user id, taken as given from the X-User-Id header.

    Raises HTTP 401 if the header is missing or not a positive integer.
    """
    if not x_user_id or not x_user_id.strip().isdigit() or int(x_user_id) <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Id header",
        )
    return int(x_user_id)


# ── Convenient type aliases for route signatures ───────────────────────────────

CurrentUserId = Annotated[int, Depends(get_current_user_id)]
OrchestratorDep = Annotated[OrchestratorService, Depends(get_orchestrator)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
MonitoringDep = Annotated[MonitoringService, Depends(get_monitoring)]
FeatureFlagsDep = Annotated[FeatureFlagService, Depends(get_feature_flags)]
