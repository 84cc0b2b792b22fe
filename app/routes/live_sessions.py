"""Live session control routes and the participant broadcast stream."""
import asyncio
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.errors import unwrap
from app.core.security import get_current_user, user_from_token
from app.db.sessions import SessionLocal, get_db
from app.models.live_session import LiveSession
from app.models.user import User
from app.schemas.live_session import (
    BlockStatusUpdateRequest,
    BroadcastEvent,
    ChatModeUpdateRequest,
    ControlModeUpdateRequest,
    LiveSessionBlockOut,
    LiveSessionOut,
    PlayStateUpdateRequest,
    SessionResponseSubmission,
    StatusUpdateRequest,
)
from app.services.live_session import LiveSessionService
from app.services.realtime import RealtimeHub, get_realtime_hub

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/live-sessions", tags=["Live Sessions"])
ws_router = APIRouter(tags=["Live Sessions"])


def get_live_session_service(
    db: Session = Depends(get_db),
    realtime: RealtimeHub = Depends(get_realtime_hub),
) -> LiveSessionService:
    return LiveSessionService(db, realtime)


@router.get("/{session_id}", response_model=LiveSessionOut)
def get_session(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    return unwrap(service.get_session(session_id, current_user))


@router.post("/{session_id}/status", response_model=LiveSessionOut)
def update_status(
    session_id: UUID,
    request: StatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    """
    Start, pause, resume or end a session.

    Pausing needs a ``pause_reason``; pausing for moderation also mutes chat.

    Raises:
        HTTPException 400: missing pause reason, or no blocks to start with
        HTTPException 403: caller is not staff of the hosting organization
        HTTPException 409: the transition is not allowed from the current status
    """
    return unwrap(service.update_status(session_id, current_user, request.status, request.pause_reason))


@router.post("/{session_id}/play-state", response_model=LiveSessionOut)
def update_play_state(
    session_id: UUID,
    request: PlayStateUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    return unwrap(service.update_play_state(session_id, current_user, request.play_state, request.current_block_id))


@router.post("/{session_id}/timer-expired", response_model=LiveSessionOut)
def timer_expired(
    session_id: UUID,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    """Reported by the host console when a countdown or question timer runs out."""
    return unwrap(service.advance_on_timer(session_id, current_user))


@router.post("/{session_id}/control-mode", response_model=LiveSessionOut)
def update_control_mode(
    session_id: UUID,
    request: ControlModeUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    """Only allowed while the session is waiting or paused."""
    return unwrap(service.update_control_mode(session_id, current_user, request.control_mode))


@router.post("/{session_id}/chat-mode", response_model=LiveSessionOut)
def update_chat_mode(
    session_id: UUID,
    request: ChatModeUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    return unwrap(service.update_chat_mode(session_id, current_user, request.chat_mode))


@router.post("/blocks/{block_id}/status", response_model=LiveSessionBlockOut)
def update_block_status(
    block_id: UUID,
    request: BlockStatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    return unwrap(service.update_block_status(block_id, current_user, request.status))


@router.post("/blocks/{block_id}/responses", status_code=status.HTTP_201_CREATED)
def submit_response(
    block_id: UUID,
    request: SessionResponseSubmission,
    current_user: User = Depends(get_current_user),
    service: LiveSessionService = Depends(get_live_session_service)
):
    """Answer the question on screen. One response per participant per block."""
    row = unwrap(service.submit_response(block_id, current_user, request.response))
    return {"id": str(row.id), "block_id": str(block_id), "is_correct": row.is_correct}


def _stream_refusal(token: Optional[str], session_id: UUID) -> Optional[int]:
    """Return the close code for a refused stream, or None when it may open."""
    if not token:
        return 4401
    with SessionLocal() as db:
        try:
            user = user_from_token(token, db)
        except HTTPException:
            return 4401
        if db.query(LiveSession.id).filter(LiveSession.id == session_id).first() is None:
            return 4004
    logger.debug("User %s opening stream for session %s", user.id, session_id)
    return None


@ws_router.websocket("/ws/live-sessions/{session_id}")
async def session_stream(
    websocket: WebSocket,
    session_id: UUID,
    token: Optional[str] = Query(default=None),
    realtime: RealtimeHub = Depends(get_realtime_hub)
):
    """
    Relay every broadcast of a session to one connected participant.

    Browsers cannot set headers on a WebSocket handshake, so the bearer
    token travels as the ``token`` query parameter.

    Events are pushed as ``{"type": "broadcast", "event", "payload", "timestamp"}``.
    The connection is closed with 4401 for a missing or invalid token and
    with 4004 when the session does not exist.
    """
    refusal = await run_in_threadpool(_stream_refusal, token, session_id)
    if refusal is not None:
        logger.info("Refused stream for session %s with code %s", session_id, refusal)
        await websocket.close(code=refusal)
        return

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def deliver(event: BroadcastEvent) -> None:
        # publishers run in the threadpool
        loop.call_soon_threadsafe(queue.put_nowait, event)

    # subscribe before accepting so nothing published after the handshake is missed
    unsubscribe = realtime.subscribe(str(session_id), deliver)
    await websocket.accept()
    logger.info("Participant connected to session %s", session_id)

    async def relay():
        while True:
            event = await queue.get()
            await websocket.send_json(event.model_dump(mode="json"))

    async def listen():
        # inbound messages are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(relay()), asyncio.create_task(listen())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error("Stream for session %s failed: %s", session_id, error)
    finally:
        for task in tasks:
            task.cancel()
        unsubscribe()
        logger.info("Participant disconnected from session %s", session_id)
