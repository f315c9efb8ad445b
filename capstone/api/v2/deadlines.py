"""截止日期批次API。"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from capstone.api.v2.auth import get_current_user
from capstone.db import get_db
from capstone.dependencies import get_services
from capstone.models import User
from capstone.schemas.grading import DeadlineEntry
from capstone.services import Services

router = APIRouter()


# === Schemas ===

class BatchCreate(BaseModel):
    name: str
    applies_from: datetime
    applies_until: Optional[datetime] = None
    description: Optional[str] = None


class DeadlineResponse(BaseModel):
    id: int
    document_type_id: int
    deadline_date: datetime
    sort_order: int

    model_config = {"from_attributes": True}


class BatchResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    applies_from: datetime
    applies_until: Optional[datetime]
    is_active: bool
    deadlines: List[DeadlineResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class DeadlinesReplace(BaseModel):
    entries: List[DeadlineEntry]


class BatchAssign(BaseModel):
    batch_id: Optional[int] = None


class ProjectBatchResponse(BaseModel):
    id: int
    title: str
    deadline_batch_id: Optional[int]

    model_config = {"from_attributes": True}


# === API 端点 ===

@router.get("/batches", response_model=List[BatchResponse])
def list_batches(
    active_only: bool = True,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.scheduler.list_batches(db, active_only=active_only)


@router.post("/batches", response_model=BatchResponse, status_code=status.HTTP_201_CREATED)
def create_batch(
    data: BatchCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.scheduler.create_batch(db, current_user, **data.model_dump())


@router.get("/batches/{batch_id}", response_model=BatchResponse)
def get_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.scheduler.get_batch(db, batch_id)


@router.put("/batches/{batch_id}/deadlines", response_model=List[DeadlineResponse])
def replace_deadlines(
    batch_id: int,
    data: DeadlinesReplace,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """整体替换批次的截止日期，间隔不足时返回 409。"""
    return services.scheduler.set_deadlines(db, current_user, batch_id, data.entries)


@router.post("/batches/{batch_id}/deactivate", response_model=BatchResponse)
def deactivate_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.scheduler.deactivate_batch(db, current_user, batch_id)


@router.put("/projects/{project_id}/batch", response_model=ProjectBatchResponse)
def assign_batch(
    project_id: int,
    data: BatchAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """为项目指定截止日期批次；不传 ``batch_id`` 时按项目创建时间自动选择。"""
    return services.scheduler.assign_batch(db, current_user, project_id, data.batch_id)
