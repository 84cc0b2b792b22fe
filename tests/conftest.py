"""
Shared fixtures.

Tests run against an in-memory SQLite database; the environment is set
before the application is imported so the engine binds to it.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient

from app.core.security import create_access_token
from app.db.base import Base
from app.db.sessions import SessionLocal, engine, get_db
from app.main import app
from app.models import (
    Chapter,
    Course,
    Lesson,
    LessonBlock,
    LiveSession,
    LiveSessionBlock,
    Organization,
    OrganizationMember,
    User,
)
from app.models.enums import OrganizationRole, PluginType
from app.services.realtime import RealtimeHub, get_realtime_hub


TRUE_FALSE_CONTENT = {"question": "The sky is blue.", "correct_answer": True}


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def hub():
    return RealtimeHub()


@pytest.fixture
def client(db, hub):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_realtime_hub] = lambda: hub
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def organization(db):
    org = Organization(name="Gonasi Academy")
    db.add(org)
    db.commit()
    return org


@pytest.fixture
def staff(db, organization):
    user = User(name="Host", email="host@gonasi.test")
    db.add(user)
    db.flush()
    db.add(OrganizationMember(organization_id=organization.id, user_id=user.id, role=OrganizationRole.ADMIN.value))
    db.commit()
    return user


@pytest.fixture
def learner(db):
    user = User(name="Learner", email="learner@gonasi.test")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def lesson(db, organization):
    course = Course(organization_id=organization.id, name="Intro to Chemistry")
    db.add(course)
    db.flush()
    chapter = Chapter(course_id=course.id, name="Atoms")
    db.add(chapter)
    db.flush()
    row = Lesson(chapter_id=chapter.id, course_id=course.id, name="What is an atom?")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def lesson_blocks(db, lesson):
    """Three blocks at positions 1..3 weighted 1, 1, 2; the last one is a quiz."""
    blocks = [
        LessonBlock(
            lesson_id=lesson.id,
            position=1,
            weight=1.0,
            plugin_type=PluginType.RICH_TEXT_EDITOR.value,
            content={"rich_text_state": "Atoms are small."},
        ),
        LessonBlock(
            lesson_id=lesson.id,
            position=2,
            weight=1.0,
            plugin_type=PluginType.NOTE_CALLOUT.value,
            content={"note": "Remember protons.", "variant": "tip"},
        ),
        LessonBlock(
            lesson_id=lesson.id,
            position=3,
            weight=2.0,
            plugin_type=PluginType.TRUE_FALSE.value,
            content=TRUE_FALSE_CONTENT,
        ),
    ]
    db.add_all(blocks)
    db.commit()
    return blocks


@pytest.fixture
def live_session(db, organization):
    session = LiveSession(organization_id=organization.id, name="Friday Quiz Night")
    db.add(session)
    db.flush()
    db.add_all([
        LiveSessionBlock(
            live_session_id=session.id,
            position=1,
            plugin_type=PluginType.TRUE_FALSE.value,
            content=TRUE_FALSE_CONTENT,
            time_limit_seconds=20,
        ),
        LiveSessionBlock(
            live_session_id=session.id,
            position=2,
            plugin_type=PluginType.TRUE_FALSE.value,
            content={"question": "Water boils at 50C at sea level.", "correct_answer": False},
            time_limit_seconds=20,
        ),
    ])
    db.commit()
    return session


@pytest.fixture
def headers_for():
    return auth_headers
