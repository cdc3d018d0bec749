"""Move coordinator.

Turns a drag-and-drop request (task, target lane, target position) into a
shift plan over the ledger and applies it together with the task update in a
single transaction. Task creation and deletion live here too since both touch
lane positions.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from taskboard_api import ledger, registry
from taskboard_api.db import atomic
from taskboard_api.errors import InvalidTarget, NotFound, ValidationError
from taskboard_api.models import PRIORITIES, Project, ProjectStatus, Task, User, coarse_status_for_key, utcnow

logger = logging.getLogger(__name__)

_UNSET = object()

LOCK_ATTEMPTS = 3


class _LaneChanged(Exception):
    pass


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_task(db: Session, task_id: int) -> Task:
    stmt = (
        select(Task)
        .where(Task.id == task_id)
        .options(selectinload(Task.lane), selectinload(Task.assignee), selectinload(Task.creator))
    )
    task = db.execute(stmt).scalar_one_or_none()
    if not task:
        raise NotFound("Task not found")
    return task


def _stamp_completion(task: Task, old_key: Optional[str], new_key: Optional[str]) -> None:
    was_completed = coarse_status_for_key(old_key) == "completed"
    is_completed = coarse_status_for_key(new_key) == "completed"
    if is_completed and not was_completed:
        task.completed_at = utcnow()
    elif not is_completed:
        task.completed_at = None


def _lock_task(db: Session, task: Task, other_lane_ids=()) -> Task:
    """Lock the task's lane and ``other_lane_ids``, the tasks in them, then the task itself.

    Raises ``_LaneChanged`` when the task left its lane before the locks were granted.
    """
    lane_id = task.status_id
    lane_ids = [lane_id, *other_lane_ids]
    ledger.lock_lanes(db, lane_ids)
    ledger.lock_lane_tasks(db, task.project_id, lane_ids)
    locked = db.get(Task, task.id, with_for_update=True, populate_existing=True)
    if locked is None:
        raise NotFound("Task not found")
    if locked.status_id != lane_id:
        raise _LaneChanged(task.id)
    return locked


def _retrying(operation, task_id: int):
    for attempt in range(1, LOCK_ATTEMPTS + 1):
        try:
            return operation()
        except _LaneChanged:
            logger.info("task_lock_retry", extra={"task_id": task_id, "attempt": attempt})
    raise InvalidTarget("Task changed lanes while it was being updated; reload and retry")


def move_task(db: Session, task_id: int, target_lane_id: int, target_position: int) -> Task:
    if target_position is None or isinstance(target_position, bool) or not isinstance(target_position, int):
        raise ValidationError("position must be an integer")
    if target_position < 0:
        raise ValidationError("position must be zero or greater")
    return _retrying(lambda: _move_once(db, task_id, target_lane_id, target_position), task_id)


def _move_once(db: Session, task_id: int, target_lane_id: int, target_position: int) -> Task:
    with atomic(db):
        task = db.get(Task, task_id)
        if not task:
            raise NotFound("Task not found")
        project_id = task.project_id
        target = registry.active_lane(db, project_id, target_lane_id)
        if target is None:
            raise InvalidTarget("Invalid status")

        task = _lock_task(db, task, [target.id])
        db.refresh(target)
        if not target.is_active:
            raise InvalidTarget("Invalid status")
        old_lane_id = task.status_id
        old_position = task.position

        if old_lane_id == target.id:
            last = max(ledger.lane_size(db, project_id, target.id) - 1, 0)
            new_position = min(target_position, last)
            if new_position > old_position:
                ledger.shift_range(db, project_id, target.id, -1, start=old_position + 1, stop=new_position + 1)
            elif new_position < old_position:
                ledger.shift_range(db, project_id, target.id, 1, start=new_position, stop=old_position)
            task.position = new_position
        else:
            old_lane = db.get(ProjectStatus, old_lane_id) if old_lane_id is not None else None
            new_position = min(target_position, ledger.lane_size(db, project_id, target.id))
            ledger.compact_after(db, project_id, old_lane_id, old_position)
            ledger.shift_range(db, project_id, target.id, 1, start=new_position)
            task.lane = target
            task.position = new_position
            _stamp_completion(task, old_lane.status_key if old_lane else None, target.status_key)
        db.flush()

    if old_lane_id == target_lane_id and old_position == new_position:
        return get_task(db, task_id)
    logger.info(
        "task_moved",
        extra={
            "task_id": task_id,
            "project_id": project_id,
            "from_lane_id": old_lane_id,
            "from_position": old_position,
            "to_lane_id": target_lane_id,
            "to_position": new_position,
        },
    )
    return get_task(db, task_id)


def create_task(
    db: Session,
    project_id: int,
    creator: User,
    title: str,
    description: Optional[str] = None,
    status_id: Optional[int] = None,
    priority: Optional[str] = None,
    assigned_to: Optional[int] = None,
    due_date: Optional[datetime] = None,
) -> Task:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    priority = priority or "medium"
    if priority not in PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")
    if db.get(Project, project_id) is None:
        raise NotFound("Project not found")
    if assigned_to is not None and db.get(User, assigned_to) is None:
        raise ValidationError("Assignee not found")

    with atomic(db):
        if status_id is not None:
            lane = registry.active_lane(db, project_id, status_id)
            if lane is None:
                raise InvalidTarget("Invalid status")
        else:
            lane = registry.lane_by_key(db, project_id, "todo")
        lane_id = lane.id if lane else None
        ledger.lock_lanes(db, [lane_id])
        task = Task(
            project_id=project_id,
            title=title,
            description=description,
            status_id=lane_id,
            position=ledger.tail_position(db, project_id, lane_id),
            priority=priority,
            assigned_to=assigned_to if assigned_to is not None else creator.id,
            created_by=creator.id,
            due_date=_naive_utc(due_date),
        )
        if lane is not None and lane.coarse_status == "completed":
            task.completed_at = utcnow()
        db.add(task)
        db.flush()
        task_id = task.id
        position = task.position

    logger.info(
        "task_created",
        extra={"task_id": task_id, "project_id": project_id, "lane_id": lane_id, "position": position},
    )
    return get_task(db, task_id)


def update_task(
    db: Session,
    task_id: int,
    title=_UNSET,
    description=_UNSET,
    priority=_UNSET,
    assigned_to=_UNSET,
    due_date=_UNSET,
) -> Task:
    """Partial update of descriptive fields. Lane and position only change through ``move_task``."""
    task = get_task(db, task_id)
    with atomic(db):
        if title is not _UNSET:
            title = (title or "").strip()
            if not title:
                raise ValidationError("Title cannot be empty")
            task.title = title
        if description is not _UNSET:
            task.description = description
        if priority is not _UNSET:
            if priority not in PRIORITIES:
                raise ValidationError(f"priority must be one of: {', '.join(PRIORITIES)}")
            task.priority = priority
        if assigned_to is not _UNSET:
            if assigned_to is not None and db.get(User, assigned_to) is None:
                raise ValidationError("Assignee not found")
            task.assigned_to = assigned_to
        if due_date is not _UNSET:
            task.due_date = _naive_utc(due_date)
    return get_task(db, task_id)


def delete_task(db: Session, task_id: int) -> None:
    _retrying(lambda: _delete_once(db, task_id), task_id)


def _delete_once(db: Session, task_id: int) -> None:
    with atomic(db):
        task = db.get(Task, task_id)
        if not task:
            raise NotFound("Task not found")
        task = _lock_task(db, task)
        project_id = task.project_id
        lane_id = task.status_id
        position = task.position
        db.delete(task)
        db.flush()
        ledger.compact_after(db, project_id, lane_id, position)
    logger.info(
        "task_deleted",
        extra={"task_id": task_id, "project_id": project_id, "lane_id": lane_id, "position": position},
    )


def overdue_tasks(db: Session, project_ids=None):
    stmt = (
        select(Task)
        .where(Task.due_date.is_not(None), Task.due_date < utcnow())
        .options(selectinload(Task.lane), selectinload(Task.assignee), selectinload(Task.project))
        .order_by(Task.due_date)
    )
    if project_ids is not None:
        if not project_ids:
            return []
        stmt = stmt.where(Task.project_id.in_(list(project_ids)))
    return [task for task in db.execute(stmt).scalars().all() if task.is_overdue()]


def project_tasks(db: Session, project_id: int):
    """Every task of a project in board order: lane order, then position. Tasks without a lane come last."""
    stmt = (
        select(Task)
        .outerjoin(ProjectStatus, Task.status_id == ProjectStatus.id)
        .where(Task.project_id == project_id)
        .options(selectinload(Task.lane), selectinload(Task.assignee), selectinload(Task.creator))
        .order_by(ProjectStatus.order_index.is_(None), ProjectStatus.order_index, Task.status_id, Task.position, Task.id)
    )
    return list(db.execute(stmt).scalars().all())


def assigned_tasks(db: Session, user: User):
    stmt = (
        select(Task)
        .where(Task.assigned_to == user.id)
        .options(
            selectinload(Task.lane), selectinload(Task.assignee), selectinload(Task.creator), selectinload(Task.project)
        )
        .order_by(Task.due_date.is_(None), Task.due_date, Task.id)
    )
    return list(db.execute(stmt).scalars().all())
