"""Task position ledger.

Every lane holds its tasks at positions ``0..n-1`` with no gaps. Tasks that
have no lane form one implicit lane per project. The ledger only reads lanes
and applies range shifts; deciding which ranges move is the coordinator's job.

The functions here never commit. Callers run them inside ``db.atomic`` so a
shift and the update that required it succeed or fail together.

Locks are always taken in the same order: lane rows by ascending id, then the
tasks in those lanes by id, then the task being changed.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from taskboard_api.models import ProjectStatus, Task

logger = logging.getLogger(__name__)


def _in_lane(project_id: int, lane_id: Optional[int]):
    if lane_id is None:
        return (Task.project_id == project_id) & (Task.status_id.is_(None))
    return Task.status_id == lane_id


def lane_size(db: Session, project_id: int, lane_id: Optional[int]) -> int:
    stmt = select(func.count(Task.id)).where(_in_lane(project_id, lane_id))
    return int(db.execute(stmt).scalar_one())


def tail_position(db: Session, project_id: int, lane_id: Optional[int]) -> int:
    stmt = select(func.max(Task.position)).where(_in_lane(project_id, lane_id))
    last = db.execute(stmt).scalar_one_or_none()
    return 0 if last is None else last + 1


def lock_lanes(db: Session, lane_ids: Iterable[Optional[int]]) -> None:
    """Row-lock the given lanes in id order so concurrent moves queue up instead of interleaving."""
    ids = sorted({lane_id for lane_id in lane_ids if lane_id is not None})
    if not ids:
        return
    db.execute(select(ProjectStatus.id).where(ProjectStatus.id.in_(ids)).order_by(ProjectStatus.id).with_for_update())


def lock_lane_tasks(db: Session, project_id: int, lane_ids: Iterable[Optional[int]]) -> List[Task]:
    """Row-lock every task in the given lanes, in id order.

    ``None`` stands for the project's implicit lane of tasks without a lane.
    """
    lanes = list(dict.fromkeys(lane_ids))
    if not lanes:
        return []
    stmt = (
        select(Task)
        .where(or_(*[_in_lane(project_id, lane_id) for lane_id in lanes]))
        .order_by(Task.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars().all())


def shift_range(
    db: Session,
    project_id: int,
    lane_id: Optional[int],
    delta: int,
    start: Optional[int] = None,
    stop: Optional[int] = None,
) -> int:
    """Add ``delta`` to the position of every task in the lane with ``start <= position < stop``.

    Either bound may be omitted. Returns the number of rows updated.
    """
    if delta == 0:
        return 0
    if start is not None and stop is not None and start >= stop:
        return 0
    criteria = [_in_lane(project_id, lane_id)]
    if start is not None:
        criteria.append(Task.position >= start)
    if stop is not None:
        criteria.append(Task.position < stop)
    result = db.execute(update(Task).where(*criteria).values(position=Task.position + delta))
    count = result.rowcount or 0
    logger.debug(
        "lane_positions_shifted",
        extra={"lane_id": lane_id, "project_id": project_id, "delta": delta, "start": start, "stop": stop, "rows": count},
    )
    return count


def compact_after(db: Session, project_id: int, lane_id: Optional[int], vacated_position: int) -> int:
    """Close the gap left at ``vacated_position`` once a task has left the lane."""
    return shift_range(db, project_id, lane_id, -1, start=vacated_position + 1)
