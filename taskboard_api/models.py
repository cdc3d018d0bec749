from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

GLOBAL_ROLES = ("admin", "member")  # highest first
PRIORITIES = ("low", "medium", "high")

# Coarse task status is derived from the lane key, never stored.
COARSE_STATUS_BY_KEY = {
    "todo": "todo",
    "in-progress": "in-progress",
    "completed": "completed",
}
DEFAULT_COARSE_STATUS = "todo"

DEFAULT_LANE_COLOR = "#6b7280"


def coarse_status_for_key(status_key: Optional[str]) -> str:
    if not status_key:
        return DEFAULT_COARSE_STATUS
    return COARSE_STATUS_BY_KEY.get(status_key, DEFAULT_COARSE_STATUS)


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    username: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)

    @property
    def is_elevated(self) -> bool:
        return self.role == "admin"


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    creator: Mapped[User] = relationship(foreign_keys=[created_by])
    memberships: Mapped[List["ProjectMember"]] = relationship(back_populates="project", cascade="all, delete-orphan")
    lanes: Mapped[List["ProjectStatus"]] = relationship(
        back_populates="project", order_by="ProjectStatus.order_index"
    )


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    joined_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)

    project: Mapped[Project] = relationship(back_populates="memberships")
    user: Mapped[User] = relationship()


class ProjectStatus(Base):
    """A lane on a project's board."""

    __tablename__ = "project_statuses"
    __table_args__ = (
        UniqueConstraint("project_id", "status_key", name="uq_project_statuses_project_id_status_key"),
        Index("ix_project_statuses_project_order", "project_id", "order_index"),
        Index("ix_project_statuses_project_active", "project_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False)
    status_key: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default=DEFAULT_LANE_COLOR)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    project: Mapped[Project] = relationship(back_populates="lanes")
    tasks: Mapped[List["Task"]] = relationship(back_populates="lane", order_by="Task.position")

    @property
    def coarse_status(self) -> str:
        return coarse_status_for_key(self.status_key)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_status_position", "status_id", "position"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status_id: Mapped[Optional[int]] = mapped_column(ForeignKey("project_statuses.id"), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    lane: Mapped[Optional[ProjectStatus]] = relationship(back_populates="tasks")
    project: Mapped[Project] = relationship()
    assignee: Mapped[Optional[User]] = relationship(foreign_keys=[assigned_to])
    creator: Mapped[User] = relationship(foreign_keys=[created_by])

    @property
    def status(self) -> str:
        return coarse_status_for_key(self.lane.status_key if self.lane else None)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if not self.due_date:
            return False
        now = now or utcnow()
        return now > self.due_date and self.status != "completed"


def utcnow() -> datetime:
    # stored columns are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)
