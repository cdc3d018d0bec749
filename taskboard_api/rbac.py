from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from taskboard_api.errors import AccessDenied, NotFound
from taskboard_api.models import Project, ProjectMember, User

PROJECT_MANAGER_ROLES = ("owner", "admin")


def membership_role(db: Session, user: User, project_id: int) -> Optional[str]:
    stmt = select(ProjectMember.role).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user.id)
    return db.execute(stmt).scalar_one_or_none()


def can_access(db: Session, user: User, project_id: int) -> bool:
    if user.is_elevated:
        return True
    return membership_role(db, user, project_id) is not None


def require_project_access(db: Session, user: User, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFound("Project not found")
    if not can_access(db, user, project_id):
        raise AccessDenied("Access denied")
    return project


def can_manage(db: Session, user: User, project_id: int) -> bool:
    return user.is_elevated or membership_role(db, user, project_id) in PROJECT_MANAGER_ROLES


def accessible_project_ids(db: Session, user: User) -> Optional[List[int]]:
    """Project ids the user may see, or ``None`` when every project is visible."""
    if user.is_elevated:
        return None
    stmt = select(ProjectMember.project_id).where(ProjectMember.user_id == user.id)
    return list(db.execute(stmt).scalars().all())
