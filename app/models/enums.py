"""Enumerations shared by models, schemas and services."""
from enum import Enum


class PluginType(str, Enum):
    RICH_TEXT_EDITOR = "rich_text_editor"
    NOTE_CALLOUT = "note_callout"
    IMAGE_UPLOAD = "image_upload"
    TRUE_FALSE = "true_false"
    MULTIPLE_CHOICE_SINGLE = "multiple_choice_single"
    MULTIPLE_CHOICE_MULTIPLE = "multiple_choice_multiple"
    TAP_TO_REVEAL = "tap_to_reveal"
    STEP_BY_STEP_REVEAL = "step_by_step_reveal"
    VIDEO_PLAYER = "video_player"
    AUDIO_PLAYER = "audio_player"

    @property
    def is_quiz(self) -> bool:
        return self in QUIZ_PLUGIN_TYPES


QUIZ_PLUGIN_TYPES = frozenset({
    PluginType.TRUE_FALSE,
    PluginType.MULTIPLE_CHOICE_SINGLE,
    PluginType.MULTIPLE_CHOICE_MULTIPLE,
})


class OrganizationRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"


class LiveSessionStatus(str, Enum):
    DRAFT = "draft"
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class ControlMode(str, Enum):
    AUTOPLAY = "autoplay"          # timers advance the play state
    HOST_DRIVEN = "host_driven"    # only the host advances
    HYBRID = "hybrid"              # timers with host override


class ChatMode(str, Enum):
    OPEN = "open"
    REACTIONS_ONLY = "reactions_only"
    HOST_ONLY = "host_only"
    MUTED = "muted"


class PauseReason(str, Enum):
    HOST_HOLD = "host_hold"
    TECHNICAL_ISSUE = "technical_issue"
    MODERATION = "moderation"
    SYSTEM = "system"


class PlayState(str, Enum):
    LOBBY = "lobby"
    COUNTDOWN = "countdown"
    INTRO = "intro"
    QUESTION_ACTIVE = "question_active"
    QUESTION_SOFT_LOCKED = "question_soft_locked"
    QUESTION_LOCKED = "question_locked"
    QUESTION_RESULTS = "question_results"
    LEADERBOARD = "leaderboard"
    INTERMISSION = "intermission"
    HOST_SEGMENT = "host_segment"
    BLOCK_SKIPPED = "block_skipped"
    PRIZES = "prizes"
    FINAL_RESULTS = "final_results"
    PAUSED = "paused"
    ENDED = "ended"


class SessionBlockStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CLOSED = "closed"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class BroadcastEventType(str, Enum):
    SESSION_STATE_CHANGE = "session_state_change"
    PLAY_STATE_CHANGE = "play_state_change"
    BLOCK_STATE_CHANGE = "block_state_change"
