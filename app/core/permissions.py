"""Authorization checks.

Every state-changing operation asks one of these before touching data.
Staff means any membership row in the owning organization; all roles in
OrganizationRole are staff.
"""
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Course, LiveSession, OrganizationMember, User


def is_organization_staff(db: Session, user: Optional[User], organization_id: UUID) -> bool:
    if user is None:
        return False
    member = db.query(OrganizationMember).filter(
        OrganizationMember.organization_id == organization_id,
        OrganizationMember.user_id == user.id,
    ).first()
    return member is not None


def can_edit_course(db: Session, user: Optional[User], course_id: UUID) -> bool:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        return False
    return is_organization_staff(db, user, course.organization_id)


def can_view_course(db: Session, user: Optional[User], course_id: UUID) -> bool:
    """Any signed-in user may play a course; enrollment checks live with billing."""
    if user is None:
        return False
    return db.query(Course.id).filter(Course.id == course_id).first() is not None


def can_edit_session(db: Session, user: Optional[User], session_id: UUID) -> bool:
    session = db.query(LiveSession).filter(LiveSession.id == session_id).first()
    if not session:
        return False
    return is_organization_staff(db, user, session.organization_id)
