"""Status registry: the lanes of a project board."""
import logging
import re
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from taskboard_api.db import atomic
from taskboard_api.errors import DuplicateKey, HasTasks, NotFound, PartialMismatch, ProtectedDefault, ValidationError
from taskboard_api.models import DEFAULT_LANE_COLOR, Project, ProjectStatus, Task

logger = logging.getLogger(__name__)

DEFAULT_LANES = (
    {"status_key": "todo", "title": "To Do", "color": "#ef4444", "order_index": 0},
    {"status_key": "in-progress", "title": "In Progress", "color": "#f97316", "order_index": 1},
    {"status_key": "completed", "title": "Completed", "color": "#22c55e", "order_index": 2},
)

_WHITESPACE_RE = re.compile(r"\s+")
_KEY_STRIP_RE = re.compile(r"[^a-z0-9-]")


def derive_status_key(title: str) -> str:
    key = _WHITESPACE_RE.sub("-", title.lower())
    return _KEY_STRIP_RE.sub("", key)


def get_lane(db: Session, lane_id: int) -> ProjectStatus:
    lane = db.get(ProjectStatus, lane_id)
    if not lane:
        raise NotFound("Status not found")
    return lane


def active_lane(db: Session, project_id: int, lane_id: Optional[int]) -> Optional[ProjectStatus]:
    if lane_id is None:
        return None
    stmt = select(ProjectStatus).where(
        ProjectStatus.id == lane_id,
        ProjectStatus.project_id == project_id,
        ProjectStatus.is_active.is_(True),
    )
    return db.execute(stmt).scalar_one_or_none()


def lane_by_key(db: Session, project_id: int, status_key: str) -> Optional[ProjectStatus]:
    stmt = select(ProjectStatus).where(
        ProjectStatus.project_id == project_id,
        ProjectStatus.status_key == status_key,
        ProjectStatus.is_active.is_(True),
    )
    return db.execute(stmt).scalar_one_or_none()


def list_active(db: Session, project_id: int) -> List[ProjectStatus]:
    stmt = (
        select(ProjectStatus)
        .where(ProjectStatus.project_id == project_id, ProjectStatus.is_active.is_(True))
        .order_by(ProjectStatus.order_index, ProjectStatus.id)
    )
    return list(db.execute(stmt).scalars().all())


def _next_order_index(db: Session, project_id: int) -> int:
    stmt = select(func.max(ProjectStatus.order_index)).where(
        ProjectStatus.project_id == project_id, ProjectStatus.is_active.is_(True)
    )
    last = db.execute(stmt).scalar_one_or_none()
    return 0 if last is None else last + 1


def _key_taken(db: Session, project_id: int, status_key: str) -> bool:
    # retired lanes keep their key
    stmt = select(ProjectStatus.id).where(ProjectStatus.project_id == project_id, ProjectStatus.status_key == status_key)
    return db.execute(stmt).first() is not None


def create_lane(
    db: Session,
    project_id: int,
    title: str,
    color: Optional[str] = None,
    status_key: Optional[str] = None,
) -> ProjectStatus:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title and project_id are required")
    if db.get(Project, project_id) is None:
        raise NotFound("Project not found")
    key = status_key.strip() if status_key else derive_status_key(title)
    if not key:
        raise ValidationError("Status key must contain at least one letter or digit")
    with atomic(db):
        if _key_taken(db, project_id, key):
            raise DuplicateKey(f"Status key '{key}' already exists in this project")
        lane = ProjectStatus(
            project_id=project_id,
            status_key=key,
            title=title,
            color=color or DEFAULT_LANE_COLOR,
            order_index=_next_order_index(db, project_id),
            is_default=False,
            is_active=True,
        )
        db.add(lane)
        db.flush()
    db.refresh(lane)
    logger.info(
        "lane_created",
        extra={"lane_id": lane.id, "project_id": project_id, "status_key": key, "order_index": lane.order_index},
    )
    return lane


def rename_lane(db: Session, lane_id: int, title: Optional[str] = None, color: Optional[str] = None) -> ProjectStatus:
    lane = get_lane(db, lane_id)
    with atomic(db):
        if title:
            lane.title = title.strip() or lane.title
        if color:
            lane.color = color
    db.refresh(lane)
    return lane


def retire_lane(db: Session, lane_id: int) -> None:
    lane = get_lane(db, lane_id)
    with atomic(db):
        task_count = db.execute(select(func.count(Task.id)).where(Task.status_id == lane.id)).scalar_one()
        if task_count > 0:
            raise HasTasks("Cannot delete status with existing tasks. Please move tasks first.")
        if lane.is_default:
            raise ProtectedDefault("Cannot delete default status.")
        lane.is_active = False
    logger.info("lane_retired", extra={"lane_id": lane.id, "project_id": lane.project_id})


def reorder_lanes(
    db: Session,
    project_id: int,
    ordered_lane_ids: Sequence[int],
    strict: bool = False,
) -> List[ProjectStatus]:
    """Renumber the project's active lanes ``0..n-1`` following ``ordered_lane_ids``.

    Listed lanes come first in the given order; active lanes left out keep
    their current relative order after them. Ids that are not active lanes of
    the project are skipped, or rejected with ``PartialMismatch`` when
    ``strict`` is set. Repeated ids are a ``ValidationError``.
    """
    listed_ids = set(ordered_lane_ids)
    if len(listed_ids) != len(ordered_lane_ids):
        raise ValidationError("Each status id may appear only once")
    if db.get(Project, project_id) is None:
        raise NotFound("Project not found")
    with atomic(db):
        stmt = (
            select(ProjectStatus)
            .where(ProjectStatus.project_id == project_id, ProjectStatus.is_active.is_(True))
            .order_by(ProjectStatus.id)
            .with_for_update()
        )
        active = sorted(db.execute(stmt).scalars().all(), key=lambda lane: (lane.order_index, lane.id))
        lanes_by_id = {lane.id: lane for lane in active}
        unknown = [lane_id for lane_id in ordered_lane_ids if lane_id not in lanes_by_id]
        if unknown and strict:
            raise PartialMismatch(
                f"Statuses do not belong to project {project_id}: {', '.join(str(i) for i in unknown)}",
                unknown_ids=unknown,
            )
        listed = [lanes_by_id[lane_id] for lane_id in ordered_lane_ids if lane_id in lanes_by_id]
        rest = [lane for lane in active if lane.id not in listed_ids]
        for index, lane in enumerate(listed + rest):
            lane.order_index = index
    if unknown:
        logger.info("lane_reorder_ignored_ids", extra={"project_id": project_id, "unknown_ids": unknown})
    logger.info("lanes_reordered", extra={"project_id": project_id, "lane_ids": list(ordered_lane_ids)})
    return list_active(db, project_id)


def seed_default_lanes(db: Session, project_id: int) -> List[ProjectStatus]:
    """Get-or-create the three protected default lanes. Must run inside the caller's atomic block."""
    lanes = []
    for defaults in DEFAULT_LANES:
        stmt = select(ProjectStatus).where(
            ProjectStatus.project_id == project_id, ProjectStatus.status_key == defaults["status_key"]
        )
        lane = db.execute(stmt).scalar_one_or_none()
        if lane is None:
            lane = ProjectStatus(project_id=project_id, is_default=True, is_active=True, **defaults)
            db.add(lane)
        lanes.append(lane)
    db.flush()
    return lanes
