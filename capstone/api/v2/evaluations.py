"""评分API - 指导教师评分与评审委员会评分。"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capstone.api.v2.auth import get_current_user
from capstone.db import get_db
from capstone.dependencies import get_services
from capstone.models import Capability, User
from capstone.schemas.grading import ComputeOutcome, EvaluationSummary
from capstone.services import Services
from capstone.services.access import require_capability

router = APIRouter()
logger = logging.getLogger(__name__)


# === Schemas ===

class SupervisorMarksCreate(BaseModel):
    score: Decimal
    comments: Optional[str] = None


class EvaluationMarksCreate(BaseModel):
    score: Decimal
    finalize: bool = False
    comments: Optional[str] = None


class MarksResponse(BaseModel):
    id: int
    submission_id: int
    score: Decimal
    comments: Optional[str]
    is_final: bool = False
    evaluator_id: Optional[int] = None
    supervisor_id: Optional[int] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class MarksWriteResponse(BaseModel):
    marks: MarksResponse
    summary: EvaluationSummary
    result: Optional[ComputeOutcome] = None


# === Helpers ===

def _after_marks(db: Session, services: Services, marks) -> MarksWriteResponse:
    """评审完成时自动尝试计算项目成绩。"""
    summary = services.marking.get_evaluation_summary(db, marks.submission_id)
    outcome = None
    if summary.evaluation_complete:
        project_id = marks.submission.project_id
        outcome = services.results.compute_if_ready(db, project_id)
        logger.info(
            "Auto compute after marks: project_id=%s status=%s", project_id, outcome.status
        )
    return MarksWriteResponse(
        marks=MarksResponse.model_validate(marks), summary=summary, result=outcome
    )


# === API 端点 ===

@router.put("/{submission_id}/supervisor-marks", response_model=MarksWriteResponse)
def submit_supervisor_marks(
    submission_id: int,
    data: SupervisorMarksCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """指导教师评分，重复提交覆盖上一次。"""
    marks = services.marking.submit_supervisor_marks(
        db, current_user, submission_id, data.score, comments=data.comments
    )
    return _after_marks(db, services, marks)


@router.put("/{submission_id}/marks", response_model=MarksWriteResponse)
def submit_evaluation_marks(
    submission_id: int,
    data: EvaluationMarksCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """评审人评分；``finalize`` 为真时定稿，之后不可修改。"""
    marks = services.marking.submit_evaluation_marks(
        db,
        current_user,
        submission_id,
        data.score,
        finalize=data.finalize,
        comments=data.comments,
    )
    return _after_marks(db, services, marks)


@router.post("/{submission_id}/marks/finalize", response_model=MarksWriteResponse)
def finalize_evaluation(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    marks = services.marking.finalize_evaluation(db, current_user, submission_id)
    return _after_marks(db, services, marks)


@router.get("/{submission_id}/marks", response_model=List[MarksResponse])
def list_evaluation_marks(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.marking.list_evaluation_marks(db, current_user, submission_id)


@router.get("/{submission_id}/summary", response_model=EvaluationSummary)
def evaluation_summary(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """评审进度：要求人数、已评、已定稿及定稿平均分。"""
    submission = services.lifecycle.get(db, submission_id)
    if not submission.project.is_supervisor(current_user.id):
        require_capability(current_user, Capability.EVALUATE_SUBMISSION)
    return services.marking.get_evaluation_summary(db, submission_id)
