from typing import Any, Dict, Iterable, List, Optional

from taskboard_api.models import Project, ProjectStatus, Task, User


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def user_payload(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "email": user.email}


def lane_payload(lane: ProjectStatus) -> Dict[str, Any]:
    return {
        "id": lane.id,
        "project_id": lane.project_id,
        "status_key": lane.status_key,
        "title": lane.title,
        "color": lane.color,
        "order_index": lane.order_index,
        "is_default": lane.is_default,
        "is_active": lane.is_active,
        "created_at": _iso(lane.created_at),
        "updated_at": _iso(lane.updated_at),
    }


def task_payload(
    task: Task, include_lane: bool = True, include_creator: bool = True, include_project: bool = False
) -> Dict[str, Any]:
    payload = {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "project_id": task.project_id,
        "status_id": task.status_id,
        "status": task.status,
        "position": task.position,
        "priority": task.priority,
        "assigned_to": task.assigned_to,
        "created_by": task.created_by,
        "due_date": _iso(task.due_date),
        "completed_at": _iso(task.completed_at),
        "is_overdue": task.is_overdue(),
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
        "assignee": user_payload(task.assignee),
    }
    if include_creator:
        payload["creator"] = user_payload(task.creator)
    if include_lane:
        payload["project_status"] = lane_payload(task.lane) if task.lane else None
    if include_project:
        payload["project"] = {"id": task.project.id, "name": task.project.name}
    return payload


def board_payload(
    lanes: Iterable[ProjectStatus], tasks_by_lane: Dict[int, List[Task]], include_creator: bool = False
) -> List[Dict[str, Any]]:
    board = []
    for lane in lanes:
        item = lane_payload(lane)
        item["tasks"] = [
            task_payload(task, include_lane=False, include_creator=include_creator)
            for task in tasks_by_lane.get(lane.id, [])
        ]
        board.append(item)
    return board


def project_payload(project: Project, lanes: Iterable[ProjectStatus]) -> Dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "status": project.status,
        "created_by": project.created_by,
        "creator": user_payload(project.creator),
        "created_at": _iso(project.created_at),
        "updated_at": _iso(project.updated_at),
        "statuses": [lane_payload(lane) for lane in lanes],
    }
