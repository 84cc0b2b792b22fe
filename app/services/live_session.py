"""
Live-session state machine and service.

The state machine is pure: each transition inspects a LiveSessionState
snapshot and returns a TransitionResult holding the proposed next state and
the column changes needed to get there. Nothing changes until the caller
persists the changes and calls ``apply``.

LiveSessionService is the authority: it loads the row, checks staff
permission, runs the machine, commits the change set and broadcasts the
outcome to every participant subscribed to the session channel.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.permissions import can_edit_session
from app.db.base import utcnow
from app.models import LiveSession, User
from app.models.enums import (
    BroadcastEventType,
    ChatMode,
    ControlMode,
    LiveSessionStatus,
    PauseReason,
    PlayState,
    PluginType,
    SessionBlockStatus,
)
from app.schemas.live_session import BroadcastEvent, LiveSessionBlockOut, LiveSessionOut
from app.schemas.plugins import grade_response
from app.schemas.results import ErrorKind, OperationResult
from app.services.realtime import RealtimeHub, hub as default_hub
from app.services.repositories import LiveSessionRepository

logger = logging.getLogger(__name__)


STATUS_TRANSITIONS = {
    LiveSessionStatus.DRAFT: {LiveSessionStatus.WAITING, LiveSessionStatus.ACTIVE, LiveSessionStatus.ENDED},
    LiveSessionStatus.WAITING: {LiveSessionStatus.ACTIVE, LiveSessionStatus.PAUSED, LiveSessionStatus.ENDED},
    LiveSessionStatus.ACTIVE: {LiveSessionStatus.PAUSED, LiveSessionStatus.ENDED},
    LiveSessionStatus.PAUSED: {LiveSessionStatus.ACTIVE, LiveSessionStatus.ENDED},
    LiveSessionStatus.ENDED: set(),
}

CONTROL_MODE_EDITABLE_STATUSES = {LiveSessionStatus.WAITING, LiveSessionStatus.PAUSED}

WAITING_PLAY_STATES = {PlayState.LOBBY, PlayState.COUNTDOWN, PlayState.HOST_SEGMENT, PlayState.PAUSED}

# Host-facing flow graph, enforced only when LIVE_SESSION_STRICT_PLAY_STATES is on.
STRICT_PLAY_STATE_TRANSITIONS = {
    PlayState.LOBBY: {PlayState.COUNTDOWN, PlayState.HOST_SEGMENT, PlayState.PAUSED},
    PlayState.COUNTDOWN: {PlayState.INTRO, PlayState.QUESTION_ACTIVE, PlayState.HOST_SEGMENT, PlayState.PAUSED},
    PlayState.INTRO: {PlayState.QUESTION_ACTIVE, PlayState.HOST_SEGMENT, PlayState.PAUSED, PlayState.ENDED},
    PlayState.QUESTION_ACTIVE: {
        PlayState.QUESTION_SOFT_LOCKED,
        PlayState.QUESTION_LOCKED,
        PlayState.QUESTION_RESULTS,
        PlayState.BLOCK_SKIPPED,
        PlayState.PAUSED,
        PlayState.ENDED,
    },
    PlayState.QUESTION_SOFT_LOCKED: {PlayState.QUESTION_LOCKED, PlayState.QUESTION_RESULTS, PlayState.PAUSED, PlayState.ENDED},
    PlayState.QUESTION_LOCKED: {PlayState.QUESTION_RESULTS, PlayState.PAUSED, PlayState.ENDED},
    PlayState.QUESTION_RESULTS: {
        PlayState.LEADERBOARD,
        PlayState.INTERMISSION,
        PlayState.HOST_SEGMENT,
        PlayState.PAUSED,
        PlayState.ENDED,
    },
    PlayState.LEADERBOARD: {
        PlayState.INTERMISSION,
        PlayState.HOST_SEGMENT,
        PlayState.PRIZES,
        PlayState.FINAL_RESULTS,
        PlayState.QUESTION_ACTIVE,
        PlayState.PAUSED,
        PlayState.ENDED,
    },
    PlayState.INTERMISSION: {
        PlayState.QUESTION_ACTIVE,
        PlayState.HOST_SEGMENT,
        PlayState.PRIZES,
        PlayState.FINAL_RESULTS,
        PlayState.PAUSED,
        PlayState.ENDED,
    },
    # resuming may go anywhere except back to the pre-game states
    PlayState.PAUSED: set(PlayState) - {PlayState.LOBBY, PlayState.COUNTDOWN, PlayState.PAUSED},
    PlayState.HOST_SEGMENT: {
        PlayState.COUNTDOWN,
        PlayState.INTRO,
        PlayState.QUESTION_ACTIVE,
        PlayState.QUESTION_RESULTS,
        PlayState.LEADERBOARD,
        PlayState.INTERMISSION,
        PlayState.BLOCK_SKIPPED,
        PlayState.PRIZES,
        PlayState.FINAL_RESULTS,
        PlayState.PAUSED,
        PlayState.ENDED,
    },
    PlayState.BLOCK_SKIPPED: {
        PlayState.INTERMISSION,
        PlayState.QUESTION_ACTIVE,
        PlayState.HOST_SEGMENT,
        PlayState.FINAL_RESULTS,
        PlayState.PAUSED,
        PlayState.ENDED,
    },
    PlayState.PRIZES: {PlayState.LEADERBOARD, PlayState.FINAL_RESULTS, PlayState.HOST_SEGMENT, PlayState.PAUSED, PlayState.ENDED},
    PlayState.FINAL_RESULTS: {PlayState.ENDED, PlayState.PAUSED},
    PlayState.ENDED: set(),
}

# Where an expired timer moves the play state under autoplay or hybrid control.
TIMER_ADVANCES = {
    PlayState.COUNTDOWN: PlayState.INTRO,
    PlayState.QUESTION_ACTIVE: PlayState.QUESTION_SOFT_LOCKED,
    PlayState.QUESTION_SOFT_LOCKED: PlayState.QUESTION_LOCKED,
    PlayState.QUESTION_LOCKED: PlayState.QUESTION_RESULTS,
    PlayState.QUESTION_RESULTS: PlayState.LEADERBOARD,
    PlayState.BLOCK_SKIPPED: PlayState.INTERMISSION,
}

SHOWABLE_BLOCK_STATUSES = {SessionBlockStatus.PENDING, SessionBlockStatus.ACTIVE}
FINISHED_BLOCK_STATUSES = {SessionBlockStatus.CLOSED, SessionBlockStatus.COMPLETED, SessionBlockStatus.SKIPPED}

BLOCK_STATUS_TRANSITIONS = {
    SessionBlockStatus.PENDING: {SessionBlockStatus.ACTIVE, SessionBlockStatus.SKIPPED},
    SessionBlockStatus.ACTIVE: {SessionBlockStatus.CLOSED, SessionBlockStatus.SKIPPED},
    SessionBlockStatus.CLOSED: {SessionBlockStatus.COMPLETED},
    SessionBlockStatus.COMPLETED: set(),
    SessionBlockStatus.SKIPPED: set(),
}

RESPONSE_PLAY_STATES = {PlayState.QUESTION_ACTIVE, PlayState.QUESTION_SOFT_LOCKED}

ENDED_MESSAGE = "Cannot modify an ended session. Ended sessions are read-only."


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class LiveSessionState:
    status: LiveSessionStatus = LiveSessionStatus.DRAFT
    play_state: PlayState = PlayState.LOBBY
    control_mode: ControlMode = ControlMode.HYBRID
    chat_mode: ChatMode = ChatMode.OPEN
    pause_reason: Optional[PauseReason] = None
    current_block_id: Optional[UUID] = None
    actual_start_time: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: LiveSession) -> "LiveSessionState":
        return cls(
            status=LiveSessionStatus(row.status),
            play_state=PlayState(row.play_state),
            control_mode=ControlMode(row.control_mode),
            chat_mode=ChatMode(row.chat_mode),
            pause_reason=PauseReason(row.pause_reason) if row.pause_reason else None,
            current_block_id=row.current_block_id,
            actual_start_time=_as_utc(row.actual_start_time),
            ended_at=_as_utc(row.ended_at),
            updated_at=_as_utc(row.updated_at),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "play_state": self.play_state.value,
            "control_mode": self.control_mode.value,
            "chat_mode": self.chat_mode.value,
            "pause_reason": self.pause_reason.value if self.pause_reason else None,
            "current_block_id": str(self.current_block_id) if self.current_block_id else None,
            "actual_start_time": self.actual_start_time.isoformat() if self.actual_start_time else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass(frozen=True)
class TransitionResult:
    success: bool
    message: str
    state: LiveSessionState
    changes: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ErrorKind] = None


class LiveSessionStateMachine:
    """
    Transition rules for one live session.

    Usage:
        machine = LiveSessionStateMachine(LiveSessionState.from_row(row))
        result = machine.pause(PauseReason.MODERATION)
        if result.success:
            ...  # persist result.changes, then
            machine.apply(result)
    """

    def __init__(
        self,
        state: Optional[LiveSessionState] = None,
        strict_play_states: Optional[bool] = None,
        require_blocks: Optional[bool] = None,
    ):
        self.state = state or LiveSessionState()
        self.strict_play_states = (
            settings.LIVE_SESSION_STRICT_PLAY_STATES if strict_play_states is None else strict_play_states
        )
        self.require_blocks = settings.LIVE_SESSION_REQUIRE_BLOCKS if require_blocks is None else require_blocks

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def change_status(
        self,
        status: LiveSessionStatus,
        pause_reason: Optional[PauseReason] = None,
        block_count: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Move the session to another lifecycle status.

        ``block_count`` is checked when leaving draft; pass None to skip the check.
        """
        current = self.state
        if current.status == LiveSessionStatus.ENDED:
            return self._reject(ENDED_MESSAGE, ErrorKind.CONFLICT)
        if status == current.status:
            return self._reject(f"Session is already {status.value}", ErrorKind.CONFLICT)
        if status not in STATUS_TRANSITIONS[current.status]:
            return self._reject(
                f"Cannot transition session from {current.status.value} to {status.value}. Invalid status transition.",
                ErrorKind.CONFLICT,
            )
        if status == LiveSessionStatus.PAUSED and pause_reason is None:
            return self._reject("A pause reason is required to pause the session", ErrorKind.VALIDATION)
        if (
            current.status == LiveSessionStatus.DRAFT
            and status != LiveSessionStatus.ENDED
            and self.require_blocks
            and block_count is not None
            and block_count < 1
        ):
            return self._reject("Cannot start session. Session must have at least 1 block.", ErrorKind.VALIDATION)

        now = now or utcnow()
        changes: Dict[str, Any] = {
            "status": status,
            "pause_reason": pause_reason if status == LiveSessionStatus.PAUSED else None,
        }
        if status == LiveSessionStatus.PAUSED and pause_reason == PauseReason.MODERATION:
            changes["chat_mode"] = ChatMode.MUTED
        if status == LiveSessionStatus.ACTIVE and current.actual_start_time is None:
            changes["actual_start_time"] = now
        if status == LiveSessionStatus.ENDED:
            changes["ended_at"] = now
            changes["play_state"] = PlayState.ENDED

        return self._accept(f"Session is now {status.value}", changes)

    def start(self, block_count: Optional[int] = None) -> TransitionResult:
        return self.change_status(LiveSessionStatus.ACTIVE, block_count=block_count)

    def pause(self, reason: Optional[PauseReason]) -> TransitionResult:
        return self.change_status(LiveSessionStatus.PAUSED, pause_reason=reason)

    def resume(self) -> TransitionResult:
        return self.change_status(LiveSessionStatus.ACTIVE)

    def end(self) -> TransitionResult:
        return self.change_status(LiveSessionStatus.ENDED)

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    def change_control_mode(self, control_mode: ControlMode) -> TransitionResult:
        current = self.state
        if current.status == LiveSessionStatus.ENDED:
            return self._reject(ENDED_MESSAGE, ErrorKind.CONFLICT)
        if control_mode == current.control_mode:
            return self._reject(f"Control mode is already {control_mode.value}", ErrorKind.CONFLICT)
        if current.status not in CONTROL_MODE_EDITABLE_STATUSES:
            return self._reject("Control mode can only change in waiting or paused status", ErrorKind.CONFLICT)
        return self._accept(f"Control mode set to {control_mode.value}", {"control_mode": control_mode})

    def change_chat_mode(self, chat_mode: ChatMode) -> TransitionResult:
        current = self.state
        if current.status == LiveSessionStatus.ENDED:
            return self._reject(ENDED_MESSAGE, ErrorKind.CONFLICT)
        if chat_mode == current.chat_mode:
            return self._reject(f"Chat mode is already {chat_mode.value}", ErrorKind.CONFLICT)
        if self.is_chat_locked and chat_mode != ChatMode.MUTED:
            return self._reject(
                "Chat stays muted while the session is paused for moderation. Resume the session first.",
                ErrorKind.CONFLICT,
            )
        return self._accept(f"Chat mode set to {chat_mode.value}", {"chat_mode": chat_mode})

    @property
    def is_chat_locked(self) -> bool:
        return self.state.status == LiveSessionStatus.PAUSED and self.state.pause_reason == PauseReason.MODERATION

    # -------------------------------------------------------------------------
    # Play state
    # -------------------------------------------------------------------------

    def change_play_state(
        self,
        play_state: PlayState,
        current_block_id: Optional[UUID] = None,
        blocks: Optional[Iterable[Any]] = None,
    ) -> TransitionResult:
        """
        Advance the on-screen activity.

        ``blocks`` are the session's blocks (anything with ``id`` and
        ``status``); they back the block checks for question_active and
        final_results.
        """
        current = self.state
        blocks = list(blocks or [])
        if current.status == LiveSessionStatus.ENDED:
            return self._reject("Cannot modify play state of an ended session", ErrorKind.CONFLICT)
        if play_state == current.play_state:
            return self._reject(f'Play state is already "{play_state.value}"', ErrorKind.CONFLICT)
        if current.status == LiveSessionStatus.DRAFT and play_state != PlayState.LOBBY:
            return self._reject(
                f'Cannot set play state to "{play_state.value}" when session is in "draft" status. Move to "waiting" first.',
                ErrorKind.CONFLICT,
            )
        if current.status == LiveSessionStatus.WAITING and play_state not in WAITING_PLAY_STATES:
            return self._reject(
                f'Cannot set play state to "{play_state.value}" when session is in "waiting" status. Start the session first.',
                ErrorKind.CONFLICT,
            )
        if self.strict_play_states and play_state not in STRICT_PLAY_STATE_TRANSITIONS[current.play_state]:
            return self._reject(
                f'Cannot transition from "{current.play_state.value}" to "{play_state.value}". Invalid play state transition.',
                ErrorKind.CONFLICT,
            )

        if play_state == PlayState.QUESTION_ACTIVE and current_block_id is not None:
            block = next((b for b in blocks if b.id == current_block_id), None)
            if block is None:
                return self._reject("Invalid block ID or block does not belong to this session", ErrorKind.VALIDATION)
            block_status = SessionBlockStatus(block.status)
            if block_status not in SHOWABLE_BLOCK_STATUSES:
                return self._reject(
                    f'Cannot show block with status "{block_status.value}". Block must be active or pending.',
                    ErrorKind.CONFLICT,
                )

        if play_state == PlayState.FINAL_RESULTS:
            if any(SessionBlockStatus(b.status) not in FINISHED_BLOCK_STATUSES for b in blocks):
                return self._reject(
                    "Cannot show final results. Not all blocks have been closed, completed or skipped.",
                    ErrorKind.CONFLICT,
                )

        changes: Dict[str, Any] = {"play_state": play_state}
        if current_block_id is not None:
            changes["current_block_id"] = current_block_id
        return self._accept(f"Play state set to {play_state.value}", changes)

    def advance_on_timer(self, blocks: Optional[Iterable[Any]] = None) -> TransitionResult:
        """Play-state step taken when a countdown or question timer runs out."""
        current = self.state
        if current.control_mode == ControlMode.HOST_DRIVEN:
            return self._reject("Timers do not advance host-driven sessions", ErrorKind.CONFLICT)
        if current.status != LiveSessionStatus.ACTIVE:
            return self._reject(f"Timers only run while the session is active, not {current.status.value}", ErrorKind.CONFLICT)
        target = TIMER_ADVANCES.get(current.play_state)
        if target is None:
            return self._reject(f'No timer runs during "{current.play_state.value}"', ErrorKind.CONFLICT)
        return self.change_play_state(target, blocks=blocks)

    # -------------------------------------------------------------------------
    # Session blocks
    # -------------------------------------------------------------------------

    def change_block_status(
        self,
        block: Any,
        status: SessionBlockStatus,
        response_count: int = 0,
        now: Optional[datetime] = None,
    ) -> TransitionResult:
        """Move one session block along pending -> active -> closed -> completed (or skipped)."""
        if self.state.status == LiveSessionStatus.ENDED:
            return self._reject(ENDED_MESSAGE, ErrorKind.CONFLICT)

        current = SessionBlockStatus(block.status)
        if status == current:
            return self._reject(f"Block is already {status.value}", ErrorKind.CONFLICT)
        if status not in BLOCK_STATUS_TRANSITIONS[current]:
            return self._reject(
                f"Cannot transition block from {current.value} to {status.value}. Invalid block status transition.",
                ErrorKind.CONFLICT,
            )
        if status == SessionBlockStatus.SKIPPED and response_count > 0:
            return self._reject("Cannot skip a block that already has responses", ErrorKind.CONFLICT)

        now = now or utcnow()
        changes: Dict[str, Any] = {"status": status}
        if status == SessionBlockStatus.ACTIVE:
            changes["activated_at"] = now
        if status in (SessionBlockStatus.CLOSED, SessionBlockStatus.SKIPPED):
            changes["closed_at"] = now
        return TransitionResult(True, f"Block is now {status.value}", self.state, changes)

    # -------------------------------------------------------------------------
    # Synchronisation
    # -------------------------------------------------------------------------

    def apply(self, result: TransitionResult) -> None:
        """Adopt a successful transition once its changes are persisted."""
        if result.success:
            self.state = result.state

    def sync_from_server(self, state: LiveSessionState) -> None:
        """The fetched row is authoritative; replace whatever we had."""
        self.state = state

    def apply_remote_event(self, event: BroadcastEvent) -> bool:
        """
        Merge a broadcast from another participant.

        Events older than the current snapshot are dropped since the channel
        does not guarantee ordering. Returns whether the event was applied.
        """
        if event.event == BroadcastEventType.BLOCK_STATE_CHANGE:
            return False

        timestamp = _as_utc(event.timestamp)
        if self.state.updated_at is not None and timestamp < self.state.updated_at:
            logger.debug("Dropping stale %s from %s", event.event.value, timestamp.isoformat())
            return False

        payload = event.payload
        updates: Dict[str, Any] = {"updated_at": timestamp}
        try:
            if "status" in payload:
                updates["status"] = LiveSessionStatus(payload["status"])
            if "play_state" in payload:
                updates["play_state"] = PlayState(payload["play_state"])
            if "control_mode" in payload:
                updates["control_mode"] = ControlMode(payload["control_mode"])
            if "chat_mode" in payload:
                updates["chat_mode"] = ChatMode(payload["chat_mode"])
            if "pause_reason" in payload:
                updates["pause_reason"] = PauseReason(payload["pause_reason"]) if payload["pause_reason"] else None
            if "current_block_id" in payload:
                updates["current_block_id"] = UUID(str(payload["current_block_id"])) if payload["current_block_id"] else None
        except ValueError as e:
            logger.warning("Ignoring malformed %s: %s", event.event.value, e)
            return False
        self.state = replace(self.state, **updates)
        return True

    def _accept(self, message: str, changes: Dict[str, Any]) -> TransitionResult:
        return TransitionResult(True, message, replace(self.state, **changes), changes)

    def _reject(self, message: str, error: ErrorKind) -> TransitionResult:
        return TransitionResult(False, message, self.state, error=error)


class LiveSessionService:
    def __init__(self, db: Session, realtime: Optional[RealtimeHub] = None, repository: Optional[LiveSessionRepository] = None):
        self.db = db
        self.realtime = realtime or default_hub
        self.repository = repository or LiveSessionRepository(db)

    def get_session(self, session_id: UUID, user: User) -> OperationResult:
        session, denied = self._load_for_edit(session_id, user)
        if denied:
            return denied
        return OperationResult.ok("Session loaded", data=LiveSessionOut.model_validate(session))

    def update_status(
        self,
        session_id: UUID,
        user: User,
        status: LiveSessionStatus,
        pause_reason: Optional[PauseReason] = None,
    ) -> OperationResult:
        session, denied = self._load_for_edit(session_id, user)
        if denied:
            return denied

        machine = self._machine(session)
        result = machine.change_status(status, pause_reason=pause_reason, block_count=len(session.blocks))
        return self._commit(session, result, BroadcastEventType.SESSION_STATE_CHANGE)

    def update_play_state(
        self,
        session_id: UUID,
        user: User,
        play_state: PlayState,
        current_block_id: Optional[UUID] = None,
    ) -> OperationResult:
        session, denied = self._load_for_edit(session_id, user)
        if denied:
            return denied

        machine = self._machine(session)
        result = machine.change_play_state(play_state, current_block_id=current_block_id, blocks=session.blocks)
        return self._commit(session, result, BroadcastEventType.PLAY_STATE_CHANGE)

    def advance_on_timer(self, session_id: UUID, user: User) -> OperationResult:
        session, denied = self._load_for_edit(session_id, user)
        if denied:
            return denied

        machine = self._machine(session)
        result = machine.advance_on_timer(blocks=session.blocks)
        return self._commit(session, result, BroadcastEventType.PLAY_STATE_CHANGE)

    def update_control_mode(self, session_id: UUID, user: User, control_mode: ControlMode) -> OperationResult:
        session, denied = self._load_for_edit(session_id, user)
        if denied:
            return denied

        result = self._machine(session).change_control_mode(control_mode)
        return self._commit(session, result, BroadcastEventType.SESSION_STATE_CHANGE)

    def update_chat_mode(self, session_id: UUID, user: User, chat_mode: ChatMode) -> OperationResult:
        session, denied = self._load_for_edit(session_id, user)
        if denied:
            return denied

        result = self._machine(session).change_chat_mode(chat_mode)
        return self._commit(session, result, BroadcastEventType.SESSION_STATE_CHANGE)

    def update_block_status(self, block_id: UUID, user: User, status: SessionBlockStatus) -> OperationResult:
        block = self.repository.get_block(block_id)
        if not block:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Session block not found")
        session, denied = self._load_for_edit(block.live_session_id, user)
        if denied:
            return denied

        machine = self._machine(session)
        result = machine.change_block_status(block, status, response_count=self.repository.count_responses(block.id))
        if not result.success:
            logger.warning("Session %s: block %s transition rejected: %s", session.id, block.id, result.message)
            return OperationResult.fail(result.error, result.message)

        written = self.repository.update_block_state(block.id, result.changes)
        if not written.success:
            return written

        block_out = LiveSessionBlockOut.model_validate(written.data)
        logger.info("Session %s: block %s is now %s", session.id, block.id, status.value)
        self._broadcast(session.id, BroadcastEventType.BLOCK_STATE_CHANGE, block_out.model_dump(mode="json"))
        return OperationResult.ok(result.message, data=block_out)

    def submit_response(self, block_id: UUID, user: User, response: Dict[str, Any]) -> OperationResult:
        """Record a participant's answer to the block currently on screen."""
        block = self.repository.get_block(block_id)
        if not block:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Session block not found")

        session = self.repository.get_session(block.live_session_id)
        state = LiveSessionState.from_row(session)
        if state.status != LiveSessionStatus.ACTIVE:
            return OperationResult.fail(ErrorKind.CONFLICT, "Responses are only accepted while the session is active")
        if state.play_state not in RESPONSE_PLAY_STATES:
            return OperationResult.fail(ErrorKind.CONFLICT, "Responses are closed for this question")
        if SessionBlockStatus(block.status) != SessionBlockStatus.ACTIVE:
            return OperationResult.fail(ErrorKind.CONFLICT, "This block is not accepting responses")
        if state.current_block_id is not None and state.current_block_id != block.id:
            return OperationResult.fail(ErrorKind.CONFLICT, "This block is not the current question")
        if self.repository.count_responses(block.id, user_id=user.id):
            return OperationResult.fail(ErrorKind.CONFLICT, "You have already answered this question")

        try:
            is_correct = grade_response(PluginType(block.plugin_type), block.content, response)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, f"Invalid {block.plugin_type} response: {e}")
        return self.repository.add_response(block.id, user.id, response, is_correct)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _load_for_edit(self, session_id: UUID, user: User):
        session = self.repository.get_session(session_id)
        if not session or not can_edit_session(self.db, user, session_id):
            return None, OperationResult.fail(
                ErrorKind.NOT_FOUND if not session else ErrorKind.AUTHORIZATION,
                "Session not found or you do not have permission to edit this session",
            )
        return session, None

    @staticmethod
    def _machine(session: LiveSession) -> LiveSessionStateMachine:
        return LiveSessionStateMachine(LiveSessionState.from_row(session))

    def _commit(self, session: LiveSession, result: TransitionResult, event: BroadcastEventType) -> OperationResult:
        if not result.success:
            logger.warning("Session %s: transition rejected: %s", session.id, result.message)
            return OperationResult.fail(result.error, result.message)

        written = self.repository.update_session_state(session.id, result.changes)
        if not written.success:
            return written

        state = LiveSessionState.from_row(written.data)
        logger.info("Session %s: %s", session.id, result.message)
        self._broadcast(session.id, event, {"session_id": str(session.id), **state.to_payload()})
        return OperationResult.ok(result.message, data=LiveSessionOut.model_validate(written.data))

    def _broadcast(self, session_id: UUID, event: BroadcastEventType, payload: Dict[str, Any]) -> None:
        self.realtime.publish(
            str(session_id),
            BroadcastEvent(event=event, payload=payload, timestamp=utcnow()),
        )
