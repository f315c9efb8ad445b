"""文档提交与评分模型定义。"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from capstone.db import Base
from capstone.models.enums import SubmissionStatus


class DocumentSubmission(Base):
    """某项目某文档类型的一次提交。

    每次重新提交都是新的一行，通过 ``supersedes_id`` 指向上一版本；
    同一 (project, document_type) 下只有一行 ``is_current`` 为真。
    """

    __tablename__ = "document_submissions"
    __table_args__ = (
        UniqueConstraint("project_id", "document_type_id", "version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # 关联
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_type_id: Mapped[int] = mapped_column(
        ForeignKey("document_types.id", ondelete="RESTRICT"), nullable=False
    )
    supersedes_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("document_submissions.id", ondelete="SET NULL")
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # 状态
    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus), default=SubmissionStatus.PENDING_REVIEW, nullable=False, index=True
    )
    is_current: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_final: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_late: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # 文件存储中的不透明引用
    file_id: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[Optional[str]] = mapped_column(String(1024))

    uploaded_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    comments: Mapped[Optional[str]] = mapped_column(Text)
    feedback: Mapped[Optional[str]] = mapped_column(Text)  # 指导教师审核意见
    reviewed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    locked_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

    # 时间戳
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # 关系
    project = relationship("Project")
    document_type = relationship("DocumentType")
    uploaded_by = relationship("User", foreign_keys=[uploaded_by_id])
    supersedes = relationship("DocumentSubmission", remote_side=[id])
    supervisor_marks: Mapped[Optional["SupervisorMarks"]] = relationship(
        back_populates="submission", cascade="all, delete-orphan", uselist=False
    )
    evaluation_marks: Mapped[List["EvaluationMarks"]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentSubmission(id={self.id}, project_id={self.project_id}, "
            f"version={self.version}, status={self.status.value})>"
        )


class SupervisorMarks(Base):
    """指导教师对锁定提交的评分，每份提交一行，重复提交覆盖。"""

    __tablename__ = "supervisor_marks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("document_submissions.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    supervisor_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    submission: Mapped[DocumentSubmission] = relationship(back_populates="supervisor_marks")


class EvaluationMarks(Base):
    """评审委员会成员的评分，每位评审一行。

    ``is_final`` 为假时是草稿，不参与平均分计算；定稿后不可再修改。
    """

    __tablename__ = "evaluation_marks"
    __table_args__ = (UniqueConstraint("submission_id", "evaluator_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("document_submissions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    evaluator_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text)
    is_final: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    submission: Mapped[DocumentSubmission] = relationship(back_populates="evaluation_marks")
    evaluator = relationship("User")
