from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from taskboard_api import coordinator
from taskboard_api.auth import require_user
from taskboard_api.db import get_db
from taskboard_api.errors import AccessDenied
from taskboard_api.models import User
from taskboard_api.rbac import accessible_project_ids, can_manage, require_project_access
from taskboard_api.serializers import task_payload

router = APIRouter(prefix="/tasks", tags=["tasks"])

Priority = Literal["low", "medium", "high"]


class TaskIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    project_id: int
    description: Optional[str] = None
    status_id: Optional[int] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[int] = None
    due_date: Optional[datetime] = None


class TaskUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[int] = None
    due_date: Optional[datetime] = None


class TaskMoveIn(BaseModel):
    status_id: int
    position: int = Field(ge=0)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskIn, user: User = Depends(require_user), db: Session = Depends(get_db)):
    require_project_access(db, user, payload.project_id)
    task = coordinator.create_task(
        db,
        payload.project_id,
        user,
        payload.title,
        description=payload.description,
        status_id=payload.status_id,
        priority=payload.priority,
        assigned_to=payload.assigned_to,
        due_date=payload.due_date,
    )
    return task_payload(task)


@router.get("/overdue")
def list_overdue_tasks(user: User = Depends(require_user), db: Session = Depends(get_db)):
    tasks = coordinator.overdue_tasks(db, accessible_project_ids(db, user))
    return [task_payload(task, include_creator=False) for task in tasks]


@router.get("/my-tasks")
def list_my_tasks(user: User = Depends(require_user), db: Session = Depends(get_db)):
    tasks = coordinator.assigned_tasks(db, user)
    return [task_payload(task, include_project=True) for task in tasks]


@router.get("/{task_id}")
def get_task(task_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    task = coordinator.get_task(db, task_id)
    require_project_access(db, user, task.project_id)
    return task_payload(task)


@router.put("/{task_id}")
def update_task(
    task_id: int, payload: TaskUpdateIn, user: User = Depends(require_user), db: Session = Depends(get_db)
):
    task = coordinator.get_task(db, task_id)
    require_project_access(db, user, task.project_id)
    changes = payload.model_dump(exclude_unset=True)
    task = coordinator.update_task(db, task_id, **changes)
    return task_payload(task)


@router.put("/{task_id}/status")
def move_task(task_id: int, payload: TaskMoveIn, user: User = Depends(require_user), db: Session = Depends(get_db)):
    task = coordinator.get_task(db, task_id)
    require_project_access(db, user, task.project_id)
    task = coordinator.move_task(db, task_id, payload.status_id, payload.position)
    return task_payload(task)


@router.delete("/{task_id}")
def delete_task(task_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    task = coordinator.get_task(db, task_id)
    require_project_access(db, user, task.project_id)
    if task.created_by != user.id and not can_manage(db, user, task.project_id):
        raise AccessDenied("Only the task creator or a project owner/admin can delete this task")
    coordinator.delete_task(db, task_id)
    return {"message": "Task deleted successfully"}
