"""项目成绩API。"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capstone.api.v2.auth import get_current_user
from capstone.db import get_db
from capstone.dependencies import get_services
from capstone.models import User
from capstone.schemas.grading import ComputeOutcome
from capstone.services import Services

router = APIRouter()


# === Schemas ===

class ResultResponse(BaseModel):
    project_id: int
    total_score: Decimal
    breakdown_json: List[Dict[str, Any]]
    computed_at: datetime
    computed_by_id: Optional[int]
    released: bool
    released_at: Optional[datetime]
    released_by_id: Optional[int]

    model_config = {"from_attributes": True}


# === API 端点 ===

@router.post("/{project_id}/compute", response_model=ComputeOutcome)
def compute_result(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """计算成绩。未全部评审完成时返回 ``not_ready`` 与待完成文档列表。"""
    return services.results.compute_if_ready(db, project_id, actor=current_user)


@router.post("/{project_id}/release", response_model=ResultResponse)
def release_result(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.results.release(db, current_user, project_id)


@router.get("/{project_id}", response_model=ResultResponse)
def get_result(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """委员会查看（含未发布）。"""
    return services.results.get_result(db, current_user, project_id)


@router.get("/{project_id}/released", response_model=ResultResponse)
def get_released_result(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """学生查看本组已发布的成绩，未发布时返回 404。"""
    return services.results.get_released(db, current_user, project_id)
