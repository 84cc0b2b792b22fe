"""Live session models."""
import uuid
from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.db.base import Base, JSONType, utcnow
from app.models.enums import (
    ChatMode,
    ControlMode,
    LiveSessionStatus,
    PlayState,
    SessionBlockStatus,
)


class LiveSession(Base):
    """A real-time hosted session and its persisted state machine."""

    __tablename__ = "live_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid(as_uuid=True), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=LiveSessionStatus.DRAFT.value)
    play_state = Column(String(30), nullable=False, default=PlayState.LOBBY.value)
    control_mode = Column(String(20), nullable=False, default=ControlMode.HYBRID.value)
    chat_mode = Column(String(20), nullable=False, default=ChatMode.OPEN.value)
    pause_reason = Column(String(30))
    current_block_id = Column(Uuid(as_uuid=True))  # live_session_blocks.id; no FK, blocks already reference the session
    actual_start_time = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="live_sessions")
    blocks = relationship(
        "LiveSessionBlock",
        back_populates="live_session",
        cascade="all, delete-orphan",
        order_by="LiveSessionBlock.position",
    )


class LiveSessionBlock(Base):
    __tablename__ = "live_session_blocks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    live_session_id = Column(Uuid(as_uuid=True), ForeignKey("live_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    plugin_type = Column(String(50), nullable=False)
    content = Column(JSONType, nullable=False, default=dict)
    time_limit_seconds = Column(Integer)
    status = Column(String(20), nullable=False, default=SessionBlockStatus.PENDING.value)
    activated_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    live_session = relationship("LiveSession", back_populates="blocks")
    responses = relationship("LiveSessionResponse", back_populates="block", cascade="all, delete-orphan")


class LiveSessionResponse(Base):
    __tablename__ = "live_session_responses"
    __table_args__ = (UniqueConstraint("live_session_block_id", "user_id", name="uq_live_session_response_block_user"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    live_session_block_id = Column(Uuid(as_uuid=True), ForeignKey("live_session_blocks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    response = Column(JSONType, nullable=False, default=dict)
    is_correct = Column(Boolean)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    block = relationship("LiveSessionBlock", back_populates="responses")
