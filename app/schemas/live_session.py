"""Live session request, response and broadcast schemas."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel

from app.models.enums import (
    BroadcastEventType,
    ChatMode,
    ControlMode,
    LiveSessionStatus,
    PauseReason,
    PlayState,
    PluginType,
    SessionBlockStatus,
)


class StatusUpdateRequest(BaseModel):
    status: LiveSessionStatus
    pause_reason: Optional[PauseReason] = None


class PlayStateUpdateRequest(BaseModel):
    play_state: PlayState
    current_block_id: Optional[UUID] = None


class ControlModeUpdateRequest(BaseModel):
    control_mode: ControlMode


class ChatModeUpdateRequest(BaseModel):
    chat_mode: ChatMode


class BlockStatusUpdateRequest(BaseModel):
    status: SessionBlockStatus


class SessionResponseSubmission(BaseModel):
    response: dict[str, Any]


class LiveSessionBlockOut(BaseModel):
    id: UUID
    position: int
    plugin_type: PluginType
    status: SessionBlockStatus
    time_limit_seconds: Optional[int] = None
    activated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LiveSessionOut(BaseModel):
    id: UUID
    organization_id: UUID
    name: str
    status: LiveSessionStatus
    play_state: PlayState
    control_mode: ControlMode
    chat_mode: ChatMode
    pause_reason: Optional[PauseReason] = None
    current_block_id: Optional[UUID] = None
    actual_start_time: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    blocks: list[LiveSessionBlockOut] = []

    class Config:
        from_attributes = True


class BroadcastEvent(BaseModel):
    """Envelope pushed to every participant subscribed to a session channel."""
    type: Literal["broadcast"] = "broadcast"
    event: BroadcastEventType
    payload: dict[str, Any]
    timestamp: datetime
