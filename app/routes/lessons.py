"""Lesson authoring and playback routes."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.errors import unwrap
from app.core.security import get_current_user
from app.db.sessions import get_db
from app.models.user import User
from app.schemas.lesson_play import (
    BlockCreateRequest,
    BlockPositionsRequest,
    BlockSnapshot,
    InteractionSubmission,
    LessonPlayState,
)
from app.services.lesson_play import LessonPlayService


router = APIRouter(prefix="/lessons", tags=["Lessons"])


@router.get("/{lesson_id}/blocks", response_model=List[BlockSnapshot])
def list_blocks(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All blocks of a lesson in position order. Organization staff only."""
    return unwrap(LessonPlayService(db).list_blocks(lesson_id, current_user))


@router.post("/{lesson_id}/blocks", response_model=BlockSnapshot, status_code=status.HTTP_201_CREATED)
def create_block(
    lesson_id: UUID,
    request: BlockCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Add a block to a lesson.

    The content is validated against the plugin's schema. Without an explicit
    position the block is appended after the last one.

    Raises:
        HTTPException 400: content does not match the plugin schema
        HTTPException 403: caller is not staff of the owning organization
        HTTPException 409: position already taken
    """
    return unwrap(LessonPlayService(db).create_block(lesson_id, current_user, request))


@router.put("/{lesson_id}/blocks/positions", response_model=List[BlockSnapshot])
def reorder_blocks(
    lesson_id: UUID,
    request: BlockPositionsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Move several blocks at once. Either every position is saved or none is."""
    return unwrap(LessonPlayService(db).reorder_blocks(lesson_id, current_user, request.positions))


@router.get("/{lesson_id}/play", response_model=LessonPlayState)
def get_play_state(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return unwrap(LessonPlayService(db).get_play_state(lesson_id, current_user))


@router.post("/{lesson_id}/interactions", response_model=LessonPlayState)
def submit_interaction(
    lesson_id: UUID,
    request: InteractionSubmission,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Record the caller's interaction with a block and return the new play state.

    Only blocks inside the caller's reveal window accept interactions.
    """
    return unwrap(LessonPlayService(db).submit_interaction(lesson_id, current_user, request))


@router.delete("/{lesson_id}/interactions", response_model=LessonPlayState)
def reset_progress(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Forget every interaction of the caller in this lesson."""
    return unwrap(LessonPlayService(db).reset_progress(lesson_id, current_user))
