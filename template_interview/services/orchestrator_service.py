"""
OrchestratorService: POST /sessions/{sessionId}/messages

One interview turn:
1. Validate input, check the hourly rate limit
2. Load the session, check owner / status / expiry
3. Generate the reply (Sonnet) with one retry on transient errors;
   unrecoverable failures degrade to a fixed fallback reply
4. Extract the fenced ai_chat document; optionally save it as the session draft
5. Append user + assistant messages (optimistic version check)
6. Drain best-effort side effects: audit hash, requirement-analysis job,
   cache mirror, usage log, live notifications
7. Return both messages plus interview progress

Only steps 1–2 and the conversation write raise. Everything in step 6 runs in
its own failure boundary and is logged on error.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from template_interview.core.config import get_settings
from template_interview.core.errors import (
    AccessDeniedError,
    InvalidInputError,
    RateLimitExceededError,
    SessionExpiredError,
    SessionInactiveError,
    SessionNotFoundError,
)
from template_interview.models.conversation import (
    ACTIVE,
    ASSISTANT_ROLE,
    EXPIRED,
    USER_ROLE,
    ConversationSession,
    Message,
)
from template_interview.models.job import REQUIREMENT_ANALYSIS, BackgroundJob
from template_interview.models.orchestrator import (
    AIResponseEcho,
    ChatResponse,
    UserMessageEcho,
)
from template_interview.services.audit_service import AuditService
from template_interview.services.conversation_cache import ConversationCache
from template_interview.services.conversation_responder import ConversationResponder
from template_interview.services.draft_mapper import to_generated_template
from template_interview.services.feature_flags import FeatureFlagService
from template_interview.services.job_queue import JobQueue
from template_interview.services.llm_client import error_code
from template_interview.services.monitoring_service import MonitoringService
from template_interview.services.notifier import Notifier
from template_interview.services.output_parser import extract_template_json
from template_interview.services.process_analysis import calculate_conversation_progress
from template_interview.services.rate_limit_service import RateLimiter
from template_interview.services.retry import (
    RetryExhaustedError,
    RetryPolicy,
    exponential_backoff_ms,
    with_retry,
)
from template_interview.services.session_store import SessionStore

logger = logging.getLogger(__name__)

FALLBACK_CONTENT = (
    "申し訳ありません。現在AI応答の生成で問題が発生しました。"
    "しばらくしてから再度お試しください。\n\n"
    "I apologize, but I'm experiencing technical difficulties at the moment. "
    "Please try again in a few moments. If the issue persists, please contact support."
)
FALLBACK_QUESTIONS = [
    "Can we try that again?",
    "What were we discussing?",
    "Can you help me with something else?",
]

# Confidence reported when the model gives none
DEFAULT_CONFIDENCE = 0.85

# Usage logged when the model reports no token count
NOMINAL_TOKENS = 100
NOMINAL_COST_USD = 0.001


@dataclass(frozen=True)
class AIReply:
    content: str
    confidence: float
    suggested_questions: list[str] = field(default_factory=list)
    tokens_used: int = 0
    estimated_cost: float = 0.0
    error: bool = False


def fallback_reply(status: Any) -> AIReply:
    """A 400 means the request itself was bad; asking the user to retry it is pointless."""
    return AIReply(
        content=FALLBACK_CONTENT,
        confidence=0.0,
        suggested_questions=[] if status == 400 else list(FALLBACK_QUESTIONS),
        error=True,
    )


# ── Side effects ──────────────────────────────────────────────────────────────

Effect = Callable[[], Awaitable[Any]]


class TurnEffects:
    """
    Best-effort work collected during a turn and run after the conversation
    is persisted. Each effect fails alone; a failure is logged and the next
    effect still runs.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._effects: list[tuple[str, Effect, Callable[[Exception], None] | None]] = []

    def add(
        self, name: str, effect: Effect, on_error: Callable[[Exception], None] | None = None
    ) -> None:
        self._effects.append((name, effect, on_error))

    async def drain(self) -> None:
        effects, self._effects = self._effects, []
        for name, effect, on_error in effects:
            try:
                await effect()
            except Exception as exc:
                logger.exception("Side effect '%s' failed for session=%s.", name, self.session_id)
                if on_error is not None:
                    try:
                        on_error(exc)
                    except Exception:
                        logger.exception("Error hook for '%s' failed.", name)


# ── Service ───────────────────────────────────────────────────────────────────

class OrchestratorService:

    def __init__(
        self,
        *,
        store: SessionStore,
        responder: ConversationResponder,
        rate_limiter: RateLimiter,
        cache: ConversationCache,
        notifier: Notifier,
        job_queue: JobQueue,
        feature_flags: FeatureFlagService,
        audit: AuditService,
        monitoring: MonitoringService,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._responder = responder
        self._rate_limiter = rate_limiter
        self._cache = cache
        self._notifier = notifier
        self._job_queue = job_queue
        self._flags = feature_flags
        self._audit = audit
        self._monitoring = monitoring
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            backoff_ms=exponential_backoff_ms(
                settings.retry_base_delay_ms, settings.retry_max_delay_ms
            ),
        )
        self._sleep = sleep
        self._max_length = settings.message_max_length
        self._draft_flag = settings.draft_save_flag
        # Turns on one session run one at a time within this process
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # ── Public API ────────────────────────────────────────────────────────────

    async def process_message(
        self,
        session_id: str,
        user_id: int,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChatResponse:
        self._validate_input(session_id, user_id, message)

        if not await self._rate_limiter.allow(user_id):
            raise RateLimitExceededError(
                f"Rate limit exceeded. Maximum {self._rate_limiter.limit_per_hour} messages per hour."
            )

        async with self._lock_for(session_id):
            session = await self._load_session(session_id, user_id)
            reply = await self._generate(session, message)

            effects = TurnEffects(session_id)
            if reply.error:
                self._queue_generation_error(effects, session_id)
            else:
                self._queue_structured_output(effects, session_id, user_id, reply.content)

            user_msg = Message(role=USER_ROLE, content=message, metadata=metadata)
            assistant_msg = Message(
                role=ASSISTANT_ROLE,
                content=reply.content,
                metadata={
                    "confidence": reply.confidence,
                    "tokenCount": reply.tokens_used,
                    "suggestedQuestions": reply.suggested_questions,
                    "error": reply.error,
                },
            )
            turn = session.with_messages(user_msg, assistant_msg)
            self._queue_audit(effects, turn)
            self._queue_analysis(effects, turn)

            persisted = await self._store.append_conversation(
                session_id, [user_msg, assistant_msg], expected_version=session.version
            )

            self._queue_after_persist(effects, persisted, user_id, reply, user_msg, assistant_msg)
            await effects.drain()

        return ChatResponse(
            sessionId=session_id,
            userMessage=UserMessageEcho(content=message, timestamp=user_msg.timestamp),
            aiResponse=AIResponseEcho(
                content=reply.content,
                suggestedQuestions=reply.suggested_questions,
                confidence=reply.confidence,
                timestamp=assistant_msg.timestamp,
            ),
            conversationProgress=calculate_conversation_progress(
                persisted.conversation, persisted.extractedRequirements
            ),
        )

    # ── Checks ────────────────────────────────────────────────────────────────

    def _validate_input(self, session_id: str, user_id: int, message: str) -> None:
        if not session_id:
            raise InvalidInputError("Session ID is required", code="SESSION_ID_REQUIRED")
        if not user_id:
            raise InvalidInputError("User ID is required", code="USER_ID_REQUIRED")
        if not message or not message.strip():
            raise InvalidInputError("Message is required", code="MESSAGE_REQUIRED")
        if len(message) > self._max_length:
            raise InvalidInputError(
                f"Message must be less than {self._max_length} characters",
                code="MESSAGE_TOO_LONG",
            )

    async def _load_session(self, session_id: str, user_id: int) -> ConversationSession:
        session = await self._store.load(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        if session.userId != user_id:
            raise AccessDeniedError("You do not own this session")
        if session.status == EXPIRED:
            raise SessionExpiredError("Session has expired")
        if session.status != ACTIVE:
            raise SessionInactiveError(
                f"Session is {session.status}. Only active sessions can receive messages."
            )
        if session.is_expired():
            raise SessionExpiredError("Session has expired")
        return session

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    # ── Generation ────────────────────────────────────────────────────────────

    async def _generate(self, session: ConversationSession, message: str) -> AIReply:
        try:
            result = await with_retry(
                lambda: self._responder.respond(session, message),
                self._retry_policy,
                sleep=self._sleep,
            )
        except RetryExhaustedError as exc:
            status = error_code(exc.first_error)
            logger.warning(
                "Generation failed for session=%s after %d attempt(s) (code=%s). Using fallback.",
                session.sessionId, exc.attempts, status,
            )
            return fallback_reply(status)

        return AIReply(
            content=result.content,
            confidence=DEFAULT_CONFIDENCE if result.confidence is None else result.confidence,
            tokens_used=result.tokens_used or 0,
            estimated_cost=result.estimated_cost or 0.0,
        )

    # ── Effect builders ───────────────────────────────────────────────────────

    def _queue_generation_error(self, effects: TurnEffects, session_id: str) -> None:
        async def _log() -> None:
            self._monitoring.log_ai_error("generate_response", session_id, "fallback reply used")

        effects.add("generation_error_log", _log)

    def _queue_structured_output(
        self, effects: TurnEffects, session_id: str, user_id: int, content: str
    ) -> None:
        result = extract_template_json(content)

        if not result.ok:
            async def _log_failure() -> None:
                self._monitoring.log_ai_error("parse_structured_json", session_id, result.errors)

            effects.add("parse_structured_json", _log_failure)
            return

        async def _log_success() -> None:
            self._monitoring.log_ai_request("structured_json_ok", session_id, schema=result.schema)

        async def _save_draft() -> None:
            if not self._flags.is_enabled(self._draft_flag, user_id):
                return
            draft = to_generated_template(result.data).model_dump(mode="json")
            await self._store.set_generated_template(session_id, draft)
            await self._notifier.notify_draft_generated(session_id, draft)

        def _draft_error(exc: Exception) -> None:
            self._monitoring.log_ai_error("draft_save_error", session_id, repr(exc))

        effects.add("structured_json_ok", _log_success)
        effects.add("draft_save", _save_draft, on_error=_draft_error)

    def _queue_audit(self, effects: TurnEffects, turn: ConversationSession) -> None:
        async def _audit() -> None:
            digest = self._audit.compute_conversation_hash(turn.conversation)
            if digest:
                self._monitoring.log_ai_request(
                    "audit_hash", turn.sessionId,
                    hash=digest, messageCount=len(turn.conversation),
                )

        effects.add("audit_hash", _audit)

    def _queue_analysis(self, effects: TurnEffects, turn: ConversationSession) -> None:
        job = BackgroundJob(
            type=REQUIREMENT_ANALYSIS,
            userId=turn.userId,
            sessionId=turn.sessionId,
            payload={
                "conversation": [m.model_dump(mode="json") for m in turn.conversation],
                "context": turn.context,
            },
        )
        effects.add("enqueue_requirement_analysis", lambda: self._job_queue.add_job(job))

    def _queue_after_persist(
        self,
        effects: TurnEffects,
        persisted: ConversationSession,
        user_id: int,
        reply: AIReply,
        user_msg: Message,
        assistant_msg: Message,
    ) -> None:
        session_id = persisted.sessionId

        async def _usage() -> None:
            if reply.tokens_used > 0:
                self._monitoring.log_usage(user_id, session_id, reply.tokens_used, reply.estimated_cost)
            else:
                self._monitoring.log_usage(user_id, session_id, NOMINAL_TOKENS, NOMINAL_COST_USD)

        payload = {
            "message": user_msg.model_dump(mode="json"),
            "response": assistant_msg.model_dump(mode="json"),
        }

        async def _mirror() -> None:
            try:
                await self._cache.set_conversation(session_id, persisted.conversation)
            except Exception:
                await self._cache.clear(session_id)
                raise

        effects.add("cache_conversation", _mirror)
        effects.add("log_usage", _usage)
        effects.add("broadcast_turn", lambda: self._notifier.broadcast_turn(session_id, payload))
