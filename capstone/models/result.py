"""项目最终成绩模型。"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from capstone.db import Base


class FinalResult(Base):
    """每个项目一行的最终成绩。

    ``breakdown_json`` 保存计算时的逐文档明细快照，之后修改文档类型权重
    不会影响已计算的结果。``released`` 为假时学生不可见。
    """

    __tablename__ = "final_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    total_score: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False)
    # 格式: [{"document_type_id": 1, "doc_type_code": "SRS", "supervisor_score": "80.00", ...}]
    breakdown_json: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

    computed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    released: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    released_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )

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

    project = relationship("Project")

    def __repr__(self) -> str:
        return f"<FinalResult(project_id={self.project_id}, total={self.total_score}, released={self.released})>"
