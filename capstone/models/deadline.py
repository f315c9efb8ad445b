"""截止日期批次模型。"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from capstone.db import Base
from capstone.utils.timeutils import as_utc


class DeadlineBatch(Base):
    """一组截止日期，适用于在 [applies_from, applies_until) 区间内立项的项目。"""

    __tablename__ = "deadline_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    applies_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    applies_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    deadlines: Mapped[List["ProjectDeadline"]] = relationship(
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="ProjectDeadline.sort_order",
    )

    def applies_to(self, moment: datetime) -> bool:
        if not self.is_active:
            return False
        moment = as_utc(moment)
        if moment < as_utc(self.applies_from):
            return False
        return self.applies_until is None or moment < as_utc(self.applies_until)


class ProjectDeadline(Base):
    """批次内某一文档类型的截止日期，``sort_order`` 与文档类型展示顺序一致。"""

    __tablename__ = "project_deadlines"
    __table_args__ = (UniqueConstraint("batch_id", "document_type_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int] = mapped_column(
        ForeignKey("deadline_batches.id", ondelete="CASCADE"), nullable=False
    )
    document_type_id: Mapped[int] = mapped_column(
        ForeignKey("document_types.id", ondelete="CASCADE"), nullable=False
    )
    deadline_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    batch: Mapped[DeadlineBatch] = relationship(back_populates="deadlines")
    document_type = relationship("DocumentType")

    def __repr__(self) -> str:
        return (
            f"<ProjectDeadline(batch_id={self.batch_id}, "
            f"document_type_id={self.document_type_id}, date={self.deadline_date})>"
        )
