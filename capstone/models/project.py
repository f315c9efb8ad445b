"""项目与小组成员模型。"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from capstone.db import Base


class Project(Base):
    """毕业设计项目。

    项目由学生小组完成，由一名指导教师负责审核，并挂靠在一个截止日期批次下。
    """

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    supervisor_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    deadline_batch_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deadline_batches.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    supervisor = relationship("User", foreign_keys=[supervisor_id])
    deadline_batch = relationship("DeadlineBatch")
    members: Mapped[List["ProjectMember"]] = relationship(
        back_populates="project", cascade="all, delete-orphan"
    )

    def is_supervisor(self, user_id: int) -> bool:
        return self.supervisor_id is not None and self.supervisor_id == user_id

    def has_member(self, user_id: int) -> bool:
        return any(m.student_id == user_id for m in self.members)

    def is_leader(self, user_id: int) -> bool:
        return any(m.student_id == user_id and m.is_leader for m in self.members)

    @property
    def member_ids(self) -> List[int]:
        return [m.student_id for m in self.members]

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, title={self.title})>"


class ProjectMember(Base):
    """小组成员，``is_leader`` 标记组长。"""

    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "student_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    is_leader: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    project: Mapped[Project] = relationship(back_populates="members")
    student = relationship("User")
