"""通知事件与审计明细的结构化定义。

每种事件/明细都有固定的 ``kind`` 字段，组合成带判别字段的联合类型，
避免在协作方边界上传递无类型的字典。
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field


# === 通知事件 ===

class SubmissionReviewedEvent(BaseModel):
    kind: Literal["submission_reviewed"] = "submission_reviewed"
    project_id: int
    project_title: str
    document_type: str
    submission_id: int
    approved: bool
    feedback: Optional[str] = None
    recipients: List[int] = Field(default_factory=list)


class SubmissionLockedEvent(BaseModel):
    kind: Literal["submission_locked"] = "submission_locked"
    project_id: int
    project_title: str
    document_type: str
    submission_id: int
    version: int
    recipients: List[int] = Field(default_factory=list)


class ResultReleasedEvent(BaseModel):
    kind: Literal["result_released"] = "result_released"
    project_id: int
    project_title: str
    total_score: Decimal
    recipients: List[int] = Field(default_factory=list)


class DeadlineApproachingEvent(BaseModel):
    kind: Literal["deadline_approaching"] = "deadline_approaching"
    project_id: int
    project_title: str
    document_type: str
    deadline_date: datetime
    hours_remaining: int
    recipients: List[int] = Field(default_factory=list)


NotificationEvent = Annotated[
    Union[
        SubmissionReviewedEvent,
        SubmissionLockedEvent,
        ResultReleasedEvent,
        DeadlineApproachingEvent,
    ],
    Field(discriminator="kind"),
]


# === 审计明细 ===

class SubmissionCreatedDetails(BaseModel):
    kind: Literal["submission_created"] = "submission_created"
    project_id: int
    document_type_code: str
    version: int
    status: str
    is_late: bool = False
    supersedes_id: Optional[int] = None


class StatusChangeDetails(BaseModel):
    kind: Literal["status_change"] = "status_change"
    before: Optional[str] = None
    after: Optional[str] = None
    reason: Optional[str] = None


class FinalFlagDetails(BaseModel):
    kind: Literal["final_flag"] = "final_flag"
    status: str


class MarksDetails(BaseModel):
    kind: Literal["marks"] = "marks"
    role: Literal["supervisor", "evaluator"]
    score: Decimal
    is_final: bool = False


class DeadlinesReplacedDetails(BaseModel):
    kind: Literal["deadlines_replaced"] = "deadlines_replaced"
    batch_id: int
    entries: List[Dict[str, Any]] = Field(default_factory=list)


class CatalogChangeDetails(BaseModel):
    kind: Literal["catalog_change"] = "catalog_change"
    changes: Dict[str, Any] = Field(default_factory=dict)


class ResultDetails(BaseModel):
    kind: Literal["result"] = "result"
    total_score: Decimal
    released: bool
    document_count: int = 0


AuditDetails = Annotated[
    Union[
        SubmissionCreatedDetails,
        StatusChangeDetails,
        FinalFlagDetails,
        MarksDetails,
        DeadlinesReplacedDetails,
        CatalogChangeDetails,
        ResultDetails,
    ],
    Field(discriminator="kind"),
]
