"""文档类型目录模型。"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from capstone.db import Base


class DocumentType(Base):
    """需要提交的文档类别（开题报告、中期报告、论文等）。

    ``supervisor_weight`` 与 ``committee_weight`` 为 0-100 的整数，计算单份文档
    得分时各自除以 100。
    """

    __tablename__ = "document_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    supervisor_weight: Mapped[int] = mapped_column(Integer, default=20, nullable=False)
    committee_weight: Mapped[int] = mapped_column(Integer, default=80, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DocumentType(id={self.id}, code={self.code}, order={self.display_order})>"
