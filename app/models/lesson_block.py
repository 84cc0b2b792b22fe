"""LessonBlock model."""
import uuid
from sqlalchemy import Column, String, DateTime, Integer, Float, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from app.db.base import Base, JSONType, utcnow


class LessonBlock(Base):
    """A positioned unit of lesson content rendered by a plugin."""

    __tablename__ = "lesson_blocks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lesson_id = Column(Uuid(as_uuid=True), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)  # unique within lesson, enforced by authoring
    weight = Column(Float, nullable=False, default=1.0)
    plugin_type = Column(String(50), nullable=False)
    content = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    lesson = relationship("Lesson", back_populates="blocks")
    interactions = relationship("BlockInteraction", back_populates="block", cascade="all, delete-orphan")
