from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from taskboard_api import coordinator, registry
from taskboard_api.auth import require_user
from taskboard_api.db import get_db
from taskboard_api.models import User
from taskboard_api.provisioning import create_project
from taskboard_api.rbac import require_project_access
from taskboard_api.serializers import project_payload, task_payload

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None


@router.post("", status_code=status.HTTP_201_CREATED)
def create(payload: ProjectIn, user: User = Depends(require_user), db: Session = Depends(get_db)):
    project = create_project(db, payload.name, user, description=payload.description)
    return project_payload(project, registry.list_active(db, project.id))


@router.get("/{project_id}")
def detail(project_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    project = require_project_access(db, user, project_id)
    return project_payload(project, registry.list_active(db, project_id))


@router.get("/{project_id}/tasks")
def list_tasks(project_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    require_project_access(db, user, project_id)
    return [task_payload(task) for task in coordinator.project_tasks(db, project_id)]
