import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskboard_api import coordinator, registry
from taskboard_api.db import atomic
from taskboard_api.errors import ValidationError
from taskboard_api.models import Project, ProjectMember, User, utcnow

logger = logging.getLogger(__name__)

SAMPLE_ADMIN_SUBJECT = "admin"


def create_project(db: Session, name: str, creator: User, description: Optional[str] = None) -> Project:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Project name is required")
    if len(name) > 200:
        raise ValidationError("Project name must be at most 200 characters")
    with atomic(db):
        project = Project(name=name, description=description, created_by=creator.id)
        db.add(project)
        db.flush()
        db.add(ProjectMember(project_id=project.id, user_id=creator.id, role="owner"))
        registry.seed_default_lanes(db, project.id)
    db.refresh(project)
    logger.info("project_created", extra={"project_id": project.id, "created_by": creator.id})
    return project


def ensure_sample_data(db: Session) -> bool:
    """Create the bootstrap admin, a sample project and one task. Returns False when already provisioned."""
    existing = db.execute(select(User).where(User.subject == SAMPLE_ADMIN_SUBJECT)).scalar_one_or_none()
    if existing:
        logger.info("Sample data already provisioned; skipping.")
        return False
    with atomic(db):
        admin = User(subject=SAMPLE_ADMIN_SUBJECT, username="admin", email="admin@example.com", role="admin")
        db.add(admin)
    db.refresh(admin)
    project = create_project(db, "Sample Project", admin, description="A sample project to get started")
    coordinator.create_task(
        db,
        project.id,
        admin,
        "Setup Project Structure",
        description="Create the basic project structure and files",
        priority="high",
        due_date=utcnow() + timedelta(days=7),
    )
    logger.info("Default admin user and sample data created project_id=%s", project.id)
    return True
