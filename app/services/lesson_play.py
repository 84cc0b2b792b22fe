"""
Lesson playback service.

Ties the repositories, the permission checks and the PlayFlowController
together for one request. The controller is rebuilt from the database on
every call and is only fed interactions after the write has committed.
"""
import logging
from typing import Optional, Sequence
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.permissions import can_edit_course, can_view_course
from app.models import Lesson, User
from app.models.enums import PluginType
from app.schemas.lesson_play import BlockCreateRequest, BlockPosition, InteractionSubmission
from app.schemas.plugins import grade_response
from app.schemas.results import ErrorKind, OperationResult
from app.services.play_flow import PlayFlowController
from app.services.repositories import LessonRepository

logger = logging.getLogger(__name__)


class LessonPlayService:
    def __init__(self, db: Session, repository: Optional[LessonRepository] = None):
        self.db = db
        self.repository = repository or LessonRepository(db)

    def load_controller(self, lesson_id: UUID, user_id: UUID) -> PlayFlowController:
        controller = PlayFlowController(lesson_id)
        controller.initialize(
            self.repository.fetch_blocks(lesson_id),
            self.repository.fetch_interactions(lesson_id, user_id),
        )
        return controller

    def get_play_state(self, lesson_id: UUID, user: User) -> OperationResult:
        lesson, denied = self._authorize(lesson_id, user, edit=False)
        if denied:
            return denied

        controller = self.load_controller(lesson.id, user.id)
        if controller.last_error:
            return OperationResult.fail(ErrorKind.VALIDATION, f"Could not derive lesson state: {controller.last_error}")
        return OperationResult.ok("Lesson state loaded", data=controller.snapshot())

    def submit_interaction(self, lesson_id: UUID, user: User, submission: InteractionSubmission) -> OperationResult:
        """
        Record a learner's interaction with a block.

        Locked blocks are refused: the block must be inside the learner's
        current reveal window before anything is written.
        """
        lesson, denied = self._authorize(lesson_id, user, edit=False)
        if denied:
            return denied

        block = self.repository.get_block(submission.block_id)
        if not block or block.lesson_id != lesson.id:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "Block not found in this lesson")

        controller = self.load_controller(lesson.id, user.id)
        if not controller.is_visible(block.id):
            logger.warning("User %s tried to interact with locked block %s", user.id, block.id)
            return OperationResult.fail(ErrorKind.VALIDATION, "Block is locked until the previous block is completed")

        is_correct = None
        if submission.response is not None:
            try:
                is_correct = grade_response(PluginType(block.plugin_type), block.content, submission.response)
            except ValidationError as e:
                return OperationResult.fail(ErrorKind.VALIDATION, f"Invalid {block.plugin_type} response: {e}")

        written = self.repository.write_interaction(lesson.id, user.id, submission, is_correct=is_correct)
        if not written.success:
            return written

        result = controller.record_interaction(written.data)
        if not result.success:
            return result
        return OperationResult.ok("Interaction recorded", data=result.data)

    def reset_progress(self, lesson_id: UUID, user: User) -> OperationResult:
        lesson, denied = self._authorize(lesson_id, user, edit=False)
        if denied:
            return denied

        self.repository.reset_interactions(lesson.id, user.id)
        controller = self.load_controller(lesson.id, user.id)
        return OperationResult.ok("Lesson progress reset", data=controller.snapshot())

    # -------------------------------------------------------------------------
    # Authoring
    # -------------------------------------------------------------------------

    def list_blocks(self, lesson_id: UUID, user: User) -> OperationResult:
        lesson, denied = self._authorize(lesson_id, user, edit=True)
        if denied:
            return denied
        return OperationResult.ok("Blocks loaded", data=self.repository.fetch_blocks(lesson.id))

    def create_block(self, lesson_id: UUID, user: User, request: BlockCreateRequest) -> OperationResult:
        lesson, denied = self._authorize(lesson_id, user, edit=True)
        if denied:
            return denied
        return self.repository.create_block(
            lesson.id,
            request.plugin_type,
            request.content,
            weight=request.weight,
            position=request.position,
        )

    def reorder_blocks(self, lesson_id: UUID, user: User, positions: Sequence[BlockPosition]) -> OperationResult:
        lesson, denied = self._authorize(lesson_id, user, edit=True)
        if denied:
            return denied
        return self.repository.reorder_blocks(lesson.id, positions)

    def _authorize(self, lesson_id: UUID, user: User, edit: bool):
        lesson: Optional[Lesson] = self.repository.get_lesson(lesson_id)
        if not lesson:
            return None, OperationResult.fail(ErrorKind.NOT_FOUND, "Lesson not found")

        allowed = can_edit_course if edit else can_view_course
        if not allowed(self.db, user, lesson.course_id):
            return None, OperationResult.fail(ErrorKind.AUTHORIZATION, "You do not have permission to access this lesson")
        return lesson, None
