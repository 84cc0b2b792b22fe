"""Play-flow controller.

Holds the derived view of one learner's lesson: which blocks are revealed,
which one is active and how far along the lesson is. Each controller is an
explicit per-lesson context object; nothing is shared between instances.

The controller never persists anything. It is a read-side cache that is fed
only with interactions the persistence layer has already confirmed.
"""
import logging
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from app.schemas.lesson_play import (
    BlockSnapshot,
    BlockView,
    InteractionRecord,
    LessonMetadata,
    LessonPlayState,
)
from app.schemas.results import ErrorKind, OperationResult
from app.services import progress

logger = logging.getLogger(__name__)


class PlayFlowController:
    """Derived playback state for a single lesson and learner.

    Usage:
        controller = PlayFlowController(lesson_id)
        controller.initialize(blocks, interactions)
        ...  # persist an interaction, then on success:
        controller.record_interaction(confirmed_interaction)
    """

    def __init__(self, lesson_id: UUID):
        self.lesson_id = lesson_id
        self._blocks: List[BlockSnapshot] = []
        self._interactions: Dict[UUID, InteractionRecord] = {}
        self.visible_blocks: List[BlockSnapshot] = []
        self.active_block_id: Optional[UUID] = None
        self.lesson_progress: float = 0.0
        self.metadata: LessonMetadata = LessonMetadata()
        self.last_error: Optional[str] = None

    @property
    def blocks(self) -> List[BlockSnapshot]:
        return list(self._blocks)

    @property
    def interactions(self) -> List[InteractionRecord]:
        return list(self._interactions.values())

    def initialize(
        self,
        blocks: Sequence[BlockSnapshot],
        interactions: Sequence[InteractionRecord],
    ) -> OperationResult:
        """Replace the cached inputs and derive everything from scratch."""
        return self._derive(progress.sort_blocks(blocks), self._index(interactions))

    def record_interaction(self, interaction: InteractionRecord) -> OperationResult:
        """Merge a confirmed interaction, replacing any earlier one for the same block."""
        merged = dict(self._interactions)
        merged[interaction.block_id] = interaction
        return self._derive(self._blocks, merged)

    def reset(self) -> None:
        """Back to empty defaults, e.g. when the learner leaves the lesson."""
        self._blocks = []
        self._interactions = {}
        self.visible_blocks = []
        self.active_block_id = None
        self.lesson_progress = 0.0
        self.metadata = LessonMetadata()
        self.last_error = None

    def is_visible(self, block_id: UUID) -> bool:
        return any(b.id == block_id for b in self.visible_blocks)

    def snapshot(self) -> LessonPlayState:
        """Serializable copy of the current derived state."""
        last_id = self._blocks[-1].id if self._blocks else None
        views = [
            BlockView(
                block=block,
                is_active=block.id == self.active_block_id,
                is_last_block=block.id == last_id,
                interaction=self._interactions.get(block.id),
            )
            for block in self.visible_blocks
        ]
        return LessonPlayState(
            lesson_id=self.lesson_id,
            visible_blocks=views,
            active_block_id=self.active_block_id,
            lesson_progress=self.lesson_progress,
            metadata=self.metadata,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _index(interactions: Sequence[InteractionRecord]) -> Dict[UUID, InteractionRecord]:
        return {i.block_id: i for i in interactions}

    def _derive(
        self,
        blocks: List[BlockSnapshot],
        interactions: Dict[UUID, InteractionRecord],
    ) -> OperationResult:
        # Compute everything first and only then swap it in, so a failure
        # leaves the last confirmed state untouched.
        try:
            records = list(interactions.values())
            visible = progress.compute_visible_blocks(blocks, records)
            completed_ids = progress.compute_completed_block_ids(records)
            lesson_progress = progress.compute_progress(blocks, completed_ids)
            metadata = progress.compute_lesson_metadata(blocks, records)
        except (AttributeError, TypeError, ValueError) as e:
            logger.exception("Lesson %s: failed to derive play state", self.lesson_id)
            self.last_error = str(e)
            return OperationResult.fail(ErrorKind.VALIDATION, f"Could not derive lesson state: {e}")

        self._blocks = blocks
        self._interactions = interactions
        self.visible_blocks = visible
        self.active_block_id = progress.compute_active_block(visible)
        self.lesson_progress = lesson_progress
        self.metadata = metadata
        self.last_error = None
        return OperationResult.ok("Lesson state updated", data=self.snapshot())
