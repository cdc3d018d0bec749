import os
import time

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("TASKBOARD_JWT_SECRET", "test-secret")

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from taskboard_api.db import SessionLocal, engine
from taskboard_api.models import Base, ProjectStatus, Task, User
from taskboard_api.provisioning import create_project


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from taskboard_api.main import app

    return TestClient(app)


def issue_token(subject="alice", role="member", **extra):
    now = int(time.time())
    payload = {
        "iss": os.environ.get("TASKBOARD_JWT_ISSUER", "taskboard"),
        "aud": os.environ.get("TASKBOARD_JWT_AUDIENCE", "taskboard-api"),
        "iat": now,
        "exp": now + 600,
        "sub": subject,
        "email": f"{subject}@example.com",
        "roles": [role],
    }
    payload.update(extra)
    return jwt.encode(payload, os.environ["TASKBOARD_JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def headers_for():
    def _headers(subject="alice", role="member"):
        return {"Authorization": f"Bearer {issue_token(subject, role)}"}

    return _headers


@pytest.fixture
def make_user(db):
    def _make(subject, role="member"):
        user = User(subject=subject, username=subject, email=f"{subject}@example.com", role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def project(db, owner):
    return create_project(db, "Board", owner)


@pytest.fixture
def lanes(db, project):
    """Default lanes of ``project`` keyed by status_key."""
    stmt = select(ProjectStatus).where(ProjectStatus.project_id == project.id)
    return {lane.status_key: lane for lane in db.execute(stmt).scalars().all()}


@pytest.fixture
def titles(db):
    """Task titles of a lane ordered by position."""

    def _titles(lane_id):
        db.expire_all()
        stmt = select(Task).where(Task.status_id == lane_id).order_by(Task.position)
        return [task.title for task in db.execute(stmt).scalars().all()]

    return _titles


@pytest.fixture
def positions(db):
    def _positions(lane_id):
        db.expire_all()
        stmt = select(Task.position).where(Task.status_id == lane_id).order_by(Task.position)
        return list(db.execute(stmt).scalars().all())

    return _positions
