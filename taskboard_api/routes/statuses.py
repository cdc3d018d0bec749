import os
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from taskboard_api import registry
from taskboard_api.auth import require_user
from taskboard_api.db import get_db
from taskboard_api.models import Task, User
from taskboard_api.rbac import require_project_access
from taskboard_api.serializers import board_payload, lane_payload

router = APIRouter(prefix="/statuses", tags=["statuses"])

COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


def _strict_reorder() -> bool:
    return os.environ.get("TASKBOARD_STRICT_REORDER", "false").lower() in {"1", "true", "yes", "on"}


class StatusIn(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    project_id: int
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)
    status_key: Optional[str] = Field(default=None, min_length=1, max_length=50, pattern=r"^[a-z0-9-]+$")


class StatusUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, max_length=100)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class ReorderIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_ids: List[int] = Field(alias="statusIds")


def _board(db: Session, project_id: int, include_creator: bool):
    lanes = registry.list_active(db, project_id)
    options = [selectinload(Task.assignee)]
    if include_creator:
        options.append(selectinload(Task.creator))
    stmt = (
        select(Task)
        .where(Task.project_id == project_id, Task.status_id.in_([lane.id for lane in lanes]))
        .options(*options)
        .order_by(Task.status_id, Task.position)
    )
    tasks_by_lane: Dict[int, List[Task]] = {}
    for task in db.execute(stmt).scalars().all():
        tasks_by_lane.setdefault(task.status_id, []).append(task)
    return board_payload(lanes, tasks_by_lane, include_creator=include_creator)


@router.get("/project/{project_id}")
def list_project_statuses(project_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    require_project_access(db, user, project_id)
    return _board(db, project_id, include_creator=False)


@router.get("/kanban/{project_id}")
def kanban_board(project_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    require_project_access(db, user, project_id)
    return _board(db, project_id, include_creator=True)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_status(payload: StatusIn, user: User = Depends(require_user), db: Session = Depends(get_db)):
    require_project_access(db, user, payload.project_id)
    lane = registry.create_lane(
        db,
        payload.project_id,
        payload.title,
        color=payload.color,
        status_key=payload.status_key,
    )
    return lane_payload(lane)


@router.put("/reorder/{project_id}")
def reorder_statuses(
    project_id: int, payload: ReorderIn, user: User = Depends(require_user), db: Session = Depends(get_db)
):
    require_project_access(db, user, project_id)
    lanes = registry.reorder_lanes(db, project_id, payload.status_ids, strict=_strict_reorder())
    return [lane_payload(lane) for lane in lanes]


@router.put("/{status_id}")
def update_status(
    status_id: int, payload: StatusUpdateIn, user: User = Depends(require_user), db: Session = Depends(get_db)
):
    lane = registry.get_lane(db, status_id)
    require_project_access(db, user, lane.project_id)
    lane = registry.rename_lane(db, status_id, title=payload.title, color=payload.color)
    return lane_payload(lane)


@router.delete("/{status_id}")
def delete_status(status_id: int, user: User = Depends(require_user), db: Session = Depends(get_db)):
    lane = registry.get_lane(db, status_id)
    require_project_access(db, user, lane.project_id)
    registry.retire_lane(db, status_id)
    return {"message": "Status deleted successfully"}
