"""Pydantic schemas for lesson playback and live sessions."""
from app.schemas.results import ErrorKind, OperationResult
from app.schemas.plugins import CONTENT_SCHEMAS, grade_response, validate_block_content
from app.schemas.lesson_play import (
    BlockCreateRequest,
    BlockPosition,
    BlockPositionsRequest,
    BlockSnapshot,
    BlockView,
    InteractionRecord,
    InteractionSubmission,
    LessonMetadata,
    LessonPlayState,
)
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

__all__ = [
    "ErrorKind",
    "OperationResult",
    "CONTENT_SCHEMAS",
    "grade_response",
    "validate_block_content",
    "BlockCreateRequest",
    "BlockPosition",
    "BlockPositionsRequest",
    "BlockSnapshot",
    "BlockView",
    "InteractionRecord",
    "InteractionSubmission",
    "LessonMetadata",
    "LessonPlayState",
    "BlockStatusUpdateRequest",
    "BroadcastEvent",
    "ChatModeUpdateRequest",
    "ControlModeUpdateRequest",
    "LiveSessionBlockOut",
    "LiveSessionOut",
    "PlayStateUpdateRequest",
    "SessionResponseSubmission",
    "StatusUpdateRequest",
]
