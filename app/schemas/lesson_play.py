"""
Lesson playback schemas.

Snapshots of blocks and interactions as the progress calculator sees them,
the derived lesson state, and the request bodies of the lesson routes.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.enums import PluginType


class BlockSnapshot(BaseModel):
    """Immutable view of a lesson block."""
    id: UUID
    lesson_id: Optional[UUID] = None
    position: int
    weight: float = 1.0
    plugin_type: PluginType
    content: dict[str, Any] = {}

    class Config:
        from_attributes = True
        frozen = True


class InteractionRecord(BaseModel):
    """Latest recorded state of one learner on one block."""
    block_id: UUID
    is_complete: bool
    is_correct: Optional[bool] = None
    score: Optional[float] = None
    attempt_count: int = 0
    time_spent_seconds: int = 0
    state: dict[str, Any] = {}
    attempts: list[dict[str, Any]] = []
    updated_at: Optional[datetime] = None  # timestamp of the latest write

    class Config:
        from_attributes = True
        frozen = True


class LessonMetadata(BaseModel):
    total_blocks: int = 0
    completed_blocks: int = 0
    visible_blocks: int = 0
    locked_blocks: int = 0
    active_block_id: Optional[UUID] = None
    completion_percentage: float = 0.0
    is_fully_completed: bool = False
    total_time_spent: int = 0
    average_score: Optional[float] = None
    last_completed_at: Optional[datetime] = None


class BlockView(BaseModel):
    block: BlockSnapshot
    is_active: bool
    is_last_block: bool
    interaction: Optional[InteractionRecord] = None


class LessonPlayState(BaseModel):
    lesson_id: UUID
    visible_blocks: list[BlockView]
    active_block_id: Optional[UUID] = None
    lesson_progress: float = 0.0
    metadata: LessonMetadata


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------

class InteractionSubmission(BaseModel):
    block_id: UUID
    is_complete: bool
    is_correct: Optional[bool] = None
    score: Optional[float] = Field(default=None, ge=0, le=100)
    time_spent_seconds: int = Field(default=0, ge=0)
    state: dict[str, Any] = {}
    response: Optional[dict[str, Any]] = None  # quiz answer, graded and appended to attempts


class BlockCreateRequest(BaseModel):
    plugin_type: PluginType
    content: dict[str, Any]
    weight: float = Field(default=1.0, gt=0)
    position: Optional[int] = Field(default=None, ge=1)  # appended when omitted


class BlockPosition(BaseModel):
    id: UUID
    position: int = Field(ge=1)


class BlockPositionsRequest(BaseModel):
    positions: list[BlockPosition] = Field(min_length=1)
