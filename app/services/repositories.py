"""
Persistence layer for lessons, interactions and live sessions.

Repositories own the SQLAlchemy session work: every write commits on
success, rolls back on failure and reports the outcome as an
OperationResult. Constraint violations come back as conflicts; any other
database error propagates to the caller.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import (
    BlockInteraction,
    Lesson,
    LessonBlock,
    LiveSession,
    LiveSessionBlock,
    LiveSessionResponse,
)
from app.models.enums import PluginType
from app.schemas.lesson_play import BlockPosition, BlockSnapshot, InteractionRecord, InteractionSubmission
from app.schemas.plugins import validate_block_content
from app.schemas.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

SESSION_STATE_FIELDS = frozenset({
    "status",
    "play_state",
    "control_mode",
    "chat_mode",
    "pause_reason",
    "current_block_id",
    "actual_start_time",
    "ended_at",
})

SESSION_BLOCK_STATE_FIELDS = frozenset({"status", "activated_at", "closed_at"})


def _column_value(value: Any) -> Any:
    # enum members are stored by value
    return value.value if isinstance(value, Enum) else value


class LessonRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_lesson(self, lesson_id: UUID) -> Optional[Lesson]:
        return self.db.query(Lesson).filter(Lesson.id == lesson_id).first()

    def get_block(self, block_id: UUID) -> Optional[LessonBlock]:
        return self.db.query(LessonBlock).filter(LessonBlock.id == block_id).first()

    def fetch_blocks(self, lesson_id: UUID) -> List[BlockSnapshot]:
        rows = (
            self.db.query(LessonBlock)
            .filter(LessonBlock.lesson_id == lesson_id)
            .order_by(LessonBlock.position)
            .all()
        )
        return [BlockSnapshot.model_validate(row) for row in rows]

    def fetch_interactions(self, lesson_id: UUID, user_id: UUID) -> List[InteractionRecord]:
        rows = (
            self.db.query(BlockInteraction)
            .filter(BlockInteraction.lesson_id == lesson_id, BlockInteraction.user_id == user_id)
            .all()
        )
        return [InteractionRecord.model_validate(row) for row in rows]

    def write_interaction(
        self,
        lesson_id: UUID,
        user_id: UUID,
        submission: InteractionSubmission,
        is_correct: Optional[bool] = None,
    ) -> OperationResult:
        """
        Upsert the (user, block) interaction row.

        A submission that carries a ``response`` counts as an attempt: it is
        appended to the row's attempt history together with its grade.
        """
        row = (
            self.db.query(BlockInteraction)
            .filter(BlockInteraction.user_id == user_id, BlockInteraction.block_id == submission.block_id)
            .first()
        )
        if row is None:
            row = BlockInteraction(user_id=user_id, lesson_id=lesson_id, block_id=submission.block_id)
            row.attempts = []
            row.attempt_count = 0
            self.db.add(row)

        # completion is sticky; a later partial save never reopens a block
        row.is_complete = bool(row.is_complete) or submission.is_complete
        row.is_correct = is_correct if is_correct is not None else submission.is_correct
        row.score = submission.score
        row.time_spent_seconds = submission.time_spent_seconds
        row.state = dict(submission.state)
        if submission.response is not None:
            # reassign so the JSON column is flagged dirty
            row.attempts = list(row.attempts or []) + [{
                "response": submission.response,
                "is_correct": row.is_correct,
            }]
            row.attempt_count = (row.attempt_count or 0) + 1

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Interaction write for block %s conflicted: %s", submission.block_id, e.orig)
            return OperationResult.fail(ErrorKind.CONFLICT, "Interaction could not be saved")
        self.db.refresh(row)
        return OperationResult.ok("Interaction saved", data=InteractionRecord.model_validate(row))

    def reset_interactions(self, lesson_id: UUID, user_id: UUID) -> OperationResult:
        deleted = (
            self.db.query(BlockInteraction)
            .filter(BlockInteraction.lesson_id == lesson_id, BlockInteraction.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info("Reset %d interactions for user %s in lesson %s", deleted, user_id, lesson_id)
        return OperationResult.ok("Lesson progress reset", data=deleted)

    def create_block(
        self,
        lesson_id: UUID,
        plugin_type: PluginType,
        content: Dict[str, Any],
        weight: float = 1.0,
        position: Optional[int] = None,
    ) -> OperationResult:
        try:
            normalized = validate_block_content(plugin_type, content)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, f"Invalid {plugin_type.value} content: {e}")

        if position is None:
            last = (
                self.db.query(func.max(LessonBlock.position))
                .filter(LessonBlock.lesson_id == lesson_id)
                .scalar()
            )
            position = (last or 0) + 1
        else:
            taken = (
                self.db.query(LessonBlock.id)
                .filter(LessonBlock.lesson_id == lesson_id, LessonBlock.position == position)
                .first()
            )
            if taken:
                return OperationResult.fail(ErrorKind.CONFLICT, f"Position {position} is already used in this lesson")

        block = LessonBlock(
            lesson_id=lesson_id,
            position=position,
            weight=weight,
            plugin_type=plugin_type.value,
            content=normalized,
        )
        self.db.add(block)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Block insert into lesson %s conflicted: %s", lesson_id, e.orig)
            return OperationResult.fail(ErrorKind.CONFLICT, "Block could not be created")
        self.db.refresh(block)
        return OperationResult.ok("Block created", data=BlockSnapshot.model_validate(block))

    def reorder_blocks(self, lesson_id: UUID, positions: Sequence[BlockPosition]) -> OperationResult:
        """Apply a batch of position changes in one transaction; all or nothing."""
        blocks = {b.id: b for b in self.db.query(LessonBlock).filter(LessonBlock.lesson_id == lesson_id).all()}

        requested = {}
        for item in positions:
            if item.id not in blocks:
                return OperationResult.fail(ErrorKind.VALIDATION, f"Block {item.id} does not belong to this lesson")
            if item.id in requested:
                return OperationResult.fail(ErrorKind.VALIDATION, f"Block {item.id} appears more than once")
            requested[item.id] = item.position

        final = {block_id: requested.get(block_id, block.position) for block_id, block in blocks.items()}
        if len(set(final.values())) != len(final):
            return OperationResult.fail(ErrorKind.VALIDATION, "Block positions must be unique within a lesson")

        for block_id, position in requested.items():
            blocks[block_id].position = position
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Reorder of lesson %s conflicted: %s", lesson_id, e.orig)
            return OperationResult.fail(ErrorKind.CONFLICT, "Block positions could not be saved")

        logger.info("Reordered %d blocks in lesson %s", len(requested), lesson_id)
        return OperationResult.ok("Block positions updated", data=self.fetch_blocks(lesson_id))


class LiveSessionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_session(self, session_id: UUID) -> Optional[LiveSession]:
        return self.db.query(LiveSession).filter(LiveSession.id == session_id).first()

    def get_block(self, block_id: UUID) -> Optional[LiveSessionBlock]:
        return self.db.query(LiveSessionBlock).filter(LiveSessionBlock.id == block_id).first()

    def list_blocks(self, session_id: UUID) -> List[LiveSessionBlock]:
        return (
            self.db.query(LiveSessionBlock)
            .filter(LiveSessionBlock.live_session_id == session_id)
            .order_by(LiveSessionBlock.position)
            .all()
        )

    def count_responses(self, block_id: UUID, user_id: Optional[UUID] = None) -> int:
        query = self.db.query(LiveSessionResponse).filter(LiveSessionResponse.live_session_block_id == block_id)
        if user_id is not None:
            query = query.filter(LiveSessionResponse.user_id == user_id)
        return query.count()

    def update_session_state(self, session_id: UUID, changes: Dict[str, Any]) -> OperationResult:
        """Persist a state patch produced by the state machine."""
        unknown = set(changes) - SESSION_STATE_FIELDS
        if unknown:
            raise ValueError(f"Not session state fields: {sorted(unknown)}")

        session = self.get_session(session_id)
        if not session:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Session not found")

        for field, value in changes.items():
            setattr(session, field, _column_value(value))
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("State update for session %s conflicted: %s", session_id, e.orig)
            return OperationResult.fail(ErrorKind.CONFLICT, "Session state could not be saved")
        self.db.refresh(session)
        return OperationResult.ok("Session state updated", data=session)

    def update_block_state(self, block_id: UUID, changes: Dict[str, Any]) -> OperationResult:
        unknown = set(changes) - SESSION_BLOCK_STATE_FIELDS
        if unknown:
            raise ValueError(f"Not session block state fields: {sorted(unknown)}")

        block = self.get_block(block_id)
        if not block:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Session block not found")

        for field, value in changes.items():
            setattr(block, field, _column_value(value))
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("State update for session block %s conflicted: %s", block_id, e.orig)
            return OperationResult.fail(ErrorKind.CONFLICT, "Block state could not be saved")
        self.db.refresh(block)
        return OperationResult.ok("Block state updated", data=block)

    def add_response(
        self,
        block_id: UUID,
        user_id: UUID,
        response: Dict[str, Any],
        is_correct: Optional[bool],
    ) -> OperationResult:
        row = LiveSessionResponse(
            live_session_block_id=block_id,
            user_id=user_id,
            response=response,
            is_correct=is_correct,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Response to session block %s conflicted: %s", block_id, e.orig)
            return OperationResult.fail(ErrorKind.CONFLICT, "Response could not be saved")
        self.db.refresh(row)
        return OperationResult.ok("Response recorded", data=row)
