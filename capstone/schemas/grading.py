"""评分与成绩汇总相关的数据结构。"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class FileReference(BaseModel):
    """文件存储返回的不透明引用。"""

    id: str = Field(min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, max_length=1024)


class DeadlineEntry(BaseModel):
    document_type_id: int
    deadline_date: datetime


class EvaluationSummary(BaseModel):
    """单份提交的评审汇总。``average_score`` 只统计已定稿的评分。"""

    submission_id: int
    submission_status: str
    required_evaluators: int
    total_evaluations: int
    finalized_evaluations: int
    average_score: Optional[Decimal] = None
    all_finalized: bool
    has_supervisor_marks: bool
    evaluation_complete: bool


class DocumentScoreBreakdown(BaseModel):
    submission_id: int
    document_type_id: int
    doc_type_code: str
    doc_type_title: str
    supervisor_score: Decimal
    supervisor_weight: int
    committee_avg_score: Decimal
    committee_weight: int
    evaluator_count: int
    weighted_score: Decimal


class PendingDocument(BaseModel):
    document_type_id: int
    doc_type_code: str
    reason: str


class ComputeOutcome(BaseModel):
    """``compute_if_ready`` 的返回值。``not_ready`` 是正常结果而非错误。"""

    status: Literal["computed", "not_ready"]
    project_id: int
    total_score: Optional[Decimal] = None
    breakdown: List[DocumentScoreBreakdown] = Field(default_factory=list)
    pending: List[PendingDocument] = Field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return self.status == "computed"
