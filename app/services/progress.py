"""Progress calculator.

Pure functions that turn a lesson's blocks and a learner's interactions into
completion figures and the progressive-reveal window. Nothing here touches
the database; inputs are anything exposing the attributes of BlockSnapshot
and InteractionRecord.
"""
from typing import Iterable, List, Optional, Sequence, Set
from uuid import UUID

from app.schemas.lesson_play import BlockSnapshot, InteractionRecord, LessonMetadata


def compute_completed_block_ids(interactions: Iterable[InteractionRecord]) -> Set[UUID]:
    """Ids of blocks whose interaction is marked complete."""
    return {i.block_id for i in interactions if i.is_complete}


def compute_progress(blocks: Sequence[BlockSnapshot], completed_ids: Set[UUID]) -> float:
    """Weighted completion percentage in [0, 100]. Not rounded."""
    total_weight = sum(b.weight for b in blocks)
    if total_weight <= 0:
        return 0.0
    completed_weight = sum(b.weight for b in blocks if b.id in completed_ids)
    return completed_weight / total_weight * 100


def sort_blocks(blocks: Iterable[BlockSnapshot]) -> List[BlockSnapshot]:
    # sorted() is stable, so duplicate positions keep their incoming order
    return sorted(blocks, key=lambda b: b.position)


def compute_visible_blocks(
    blocks: Sequence[BlockSnapshot],
    interactions: Iterable[InteractionRecord],
) -> List[BlockSnapshot]:
    """
    Progressive reveal window.

    The first position is always visible. Any later block is visible only when
    a block sits at exactly ``position - 1`` and that block is completed. A gap
    in the numbering therefore locks everything after it. The result is always
    a prefix of the position-sorted block list.
    """
    ordered = sort_blocks(blocks)
    if not ordered:
        return []

    completed_ids = compute_completed_block_ids(interactions)
    by_position = {}
    for block in ordered:
        by_position.setdefault(block.position, block)

    visible = [ordered[0]]
    for block in ordered[1:]:
        previous = by_position.get(block.position - 1)
        if previous is None or previous.id not in completed_ids:
            break
        visible.append(block)
    return visible


def compute_active_block(visible_blocks: Sequence[BlockSnapshot]) -> Optional[UUID]:
    return visible_blocks[-1].id if visible_blocks else None


def is_lesson_fully_complete(blocks: Sequence[BlockSnapshot], completed_ids: Set[UUID]) -> bool:
    return bool(blocks) and all(b.id in completed_ids for b in blocks)


def should_clear_active_block(
    blocks: Sequence[BlockSnapshot],
    completed_ids: Set[UUID],
    active_block_id: Optional[UUID],
) -> bool:
    """True once the last block is done; the active highlight should go away."""
    return active_block_id is not None and is_lesson_fully_complete(blocks, completed_ids)


def compute_lesson_metadata(
    blocks: Sequence[BlockSnapshot],
    interactions: Sequence[InteractionRecord],
) -> LessonMetadata:
    """Summary figures for a lesson, as shown on the lesson header."""
    block_ids = {b.id for b in blocks}
    # interactions for blocks that no longer exist are ignored
    relevant = [i for i in interactions if i.block_id in block_ids]
    completed_ids = compute_completed_block_ids(relevant)
    visible = compute_visible_blocks(blocks, relevant)

    scores = [i.score for i in relevant if i.score is not None]
    completed_times = [i.updated_at for i in relevant if i.is_complete and i.updated_at is not None]

    return LessonMetadata(
        total_blocks=len(blocks),
        completed_blocks=len(completed_ids),
        visible_blocks=len(visible),
        locked_blocks=len(blocks) - len(visible),
        active_block_id=compute_active_block(visible),
        completion_percentage=compute_progress(blocks, completed_ids),
        is_fully_completed=is_lesson_fully_complete(blocks, completed_ids),
        total_time_spent=sum(i.time_spent_seconds for i in relevant),
        average_score=(sum(scores) / len(scores)) if scores else None,
        last_completed_at=max(completed_times) if completed_times else None,
    )
