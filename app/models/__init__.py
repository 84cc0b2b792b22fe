"""Database models."""
from app.models.user import User
from app.models.organization import Organization, OrganizationMember
from app.models.course import Course, Chapter, Lesson
from app.models.lesson_block import LessonBlock
from app.models.block_interaction import BlockInteraction
from app.models.live_session import LiveSession, LiveSessionBlock, LiveSessionResponse

__all__ = [
    "User",
    "Organization",
    "OrganizationMember",
    "Course",
    "Chapter",
    "Lesson",
    "LessonBlock",
    "BlockInteraction",
    "LiveSession",
    "LiveSessionBlock",
    "LiveSessionResponse",
]
