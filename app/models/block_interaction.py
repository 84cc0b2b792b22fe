"""BlockInteraction model."""
import uuid
from sqlalchemy import Column, DateTime, Boolean, Integer, Float, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.db.base import Base, JSONType, utcnow


class BlockInteraction(Base):
    """Latest state of one learner on one block.

    Retries update the row in place; only the embedded ``attempts`` list grows.
    """

    __tablename__ = "block_interactions"
    __table_args__ = (UniqueConstraint("user_id", "block_id", name="uq_block_interaction_user_block"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(Uuid(as_uuid=True), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    block_id = Column(Uuid(as_uuid=True), ForeignKey("lesson_blocks.id", ondelete="CASCADE"), nullable=False, index=True)
    is_complete = Column(Boolean, nullable=False, default=False)
    is_correct = Column(Boolean)
    state = Column(JSONType, nullable=False, default=dict)
    attempts = Column(JSONType, nullable=False, default=list)
    attempt_count = Column(Integer, nullable=False, default=0)
    score = Column(Float)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    block = relationship("LessonBlock", back_populates="interactions")
    user = relationship("User")
