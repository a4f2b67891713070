"""
Session router: /sessions

The caller's user id comes from the X-User-Id header. Browsers cannot set
headers on a WebSocket handshake, so the /ws route also accepts ?userId=.
"""

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from template_interview.api.deps import (
    CurrentUserId,
    NotifierDep,
    OrchestratorDep,
    SessionServiceDep,
)
from template_interview.core.errors import DomainError, DraftNotFoundError
from template_interview.models.draft import CreateTemplateRequest, GeneratedTemplate
from template_interview.models.feedback import FeedbackRequest, FeedbackResponse
from template_interview.models.orchestrator import ChatRequest, ChatResponse
from template_interview.models.session import (
    ContextPreviewResponse,
    ConversationResponse,
    SessionResponse,
    StartSessionRequest,
)
from template_interview.services.session_service import to_session_response

logger = logging.getLogger(__name__)

router = APIRouter()

# Application-defined WebSocket close codes
_WS_POLICY_VIOLATION = 4401
_WS_REJECTED = 4403


# ── POST /sessions  ───────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start interview session",
)
async def start_session(
    body: StartSessionRequest,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> SessionResponse:
    """Create an active session seeded with a welcome message."""
    session = await svc.start(current_user_id, body.context)
    return to_session_response(session)


# ── GET /sessions  ────────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=list[SessionResponse],
    summary="List my sessions",
)
async def list_sessions(
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> list[SessionResponse]:
    """The caller's sessions, oldest first."""
    return [to_session_response(s) for s in await svc.list_for_user(current_user_id)]


# ── GET /sessions/{session_id}  ───────────────────────────────────────────────

@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get session summary",
)
async def get_session(
    session_id: str,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> SessionResponse:
    return to_session_response(await svc.get(session_id, current_user_id))


# ── GET /sessions/{session_id}/messages  ──────────────────────────────────────

@router.get(
    "/{session_id}/messages",
    response_model=ConversationResponse,
    summary="Get conversation history",
)
async def get_messages(
    session_id: str,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> ConversationResponse:
    return await svc.conversation(session_id, current_user_id)


# ── POST /sessions/{session_id}/messages  ─────────────────────────────────────

@router.post(
    "/{session_id}/messages",
    response_model=ChatResponse,
    summary="Send a message",
)
async def send_message(
    session_id: str,
    body: ChatRequest,
    current_user_id: CurrentUserId,
    orchestrator: OrchestratorDep,
) -> ChatResponse:
    """
    Run one interview turn. Always returns a reply: upstream failures degrade
    to a fixed fallback text with confidence 0.
    """
    return await orchestrator.process_message(
        session_id, current_user_id, body.message, body.metadata
    )


# ── GET /sessions/{session_id}/context  ───────────────────────────────────────

@router.get(
    "/{session_id}/context",
    response_model=ContextPreviewResponse,
    summary="Preview the model context window",
)
async def get_context(
    session_id: str,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> ContextPreviewResponse:
    return await svc.context_preview(session_id, current_user_id)


# ── GET /sessions/{session_id}/draft  ─────────────────────────────────────────

@router.get(
    "/{session_id}/draft",
    response_model=GeneratedTemplate,
    summary="Get the stored template draft",
)
async def get_draft(
    session_id: str,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> GeneratedTemplate:
    draft = await svc.draft(session_id, current_user_id)
    if draft is None:
        raise DraftNotFoundError(f"Session '{session_id}' has no draft yet")
    return draft


@router.get(
    "/{session_id}/draft/create-request",
    response_model=CreateTemplateRequest,
    summary="Convert the stored draft into a template creation request",
)
async def get_draft_create_request(
    session_id: str,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> CreateTemplateRequest:
    """Without a draft this returns a named, empty request."""
    return await svc.draft_create_request(session_id, current_user_id)


# ── POST /sessions/{session_id}/end  ──────────────────────────────────────────

@router.post(
    "/{session_id}/end",
    response_model=SessionResponse,
    summary="End interview session",
)
async def end_session(
    session_id: str,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> SessionResponse:
    return to_session_response(await svc.end(session_id, current_user_id))


# ── POST /sessions/{session_id}/feedback  ─────────────────────────────────────

@router.post(
    "/{session_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit feedback on a session",
)
async def submit_feedback(
    session_id: str,
    body: FeedbackRequest,
    current_user_id: CurrentUserId,
    svc: SessionServiceDep,
) -> FeedbackResponse:
    return await svc.submit_feedback(session_id, current_user_id, body)


# ── WS /sessions/{session_id}/ws  ─────────────────────────────────────────────

@router.websocket("/{session_id}/ws")
async def session_events(
    websocket: WebSocket,
    session_id: str,
    svc: SessionServiceDep,
    notifier: NotifierDep,
    user_id: int | None = Query(default=None, alias="userId"),
) -> None:
    """
    Push conversation-update, template-generated and status-changed events
    for one session. Client messages are read and ignored.
    """
    header = websocket.headers.get("x-user-id", "")
    requester_id = user_id or (int(header) if header.isdigit() else 0)
    if requester_id <= 0:
        await websocket.close(code=_WS_POLICY_VIOLATION)
        return

    try:
        await svc.get(session_id, requester_id)
    except DomainError as exc:
        logger.info("Rejected WebSocket for session=%s: %s", session_id, exc)
        await websocket.close(code=_WS_REJECTED, reason=exc.code)
        return

    await websocket.accept()
    queue = notifier.subscribe(session_id)

    async def _send() -> None:
        await websocket.send_json({"event": "connected", "sessionId": session_id})
        while True:
            await websocket.send_json(await queue.get())

    async def _receive() -> None:
        while True:
            await websocket.receive_text()

    # Whichever side stops first (client gone, send failed) ends the connection
    tasks = {asyncio.create_task(_send()), asyncio.create_task(_receive())}
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        notifier.unsubscribe(session_id, queue)

    for exc in results:
        if isinstance(exc, WebSocketDisconnect):
            logger.debug("WebSocket closed for session=%s.", session_id)
        elif isinstance(exc, Exception):
            logger.error("WebSocket for session=%s failed: %r", session_id, exc)
