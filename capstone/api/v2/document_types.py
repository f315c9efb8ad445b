"""文档类型目录API。"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capstone.api.v2.auth import get_current_user
from capstone.db import get_db
from capstone.dependencies import get_services
from capstone.models import User
from capstone.services import Services

router = APIRouter()


# === Schemas ===

class DocumentTypeCreate(BaseModel):
    code: str
    title: str
    description: Optional[str] = None
    supervisor_weight: int = 20
    committee_weight: int = 80
    display_order: int = 0


class DocumentTypeUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    supervisor_weight: Optional[int] = None
    committee_weight: Optional[int] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class DocumentTypeResponse(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str]
    supervisor_weight: int
    committee_weight: int
    display_order: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# === API 端点 ===

@router.get("/", response_model=List[DocumentTypeResponse])
def list_document_types(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """列出启用的文档类型，按展示顺序。"""
    return services.catalog.list_active(db)


@router.post("/", response_model=DocumentTypeResponse, status_code=status.HTTP_201_CREATED)
def create_document_type(
    data: DocumentTypeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.catalog.create(db, current_user, **data.model_dump())


@router.patch("/{document_type_id}", response_model=DocumentTypeResponse)
def update_document_type(
    document_type_id: int,
    data: DocumentTypeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    changes: Dict[str, Any] = data.model_dump(exclude_unset=True)
    return services.catalog.update(db, current_user, document_type_id, changes)


@router.delete("/{document_type_id}", response_model=DocumentTypeResponse)
def deactivate_document_type(
    document_type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """停用（不删除，已有提交仍引用它）。"""
    return services.catalog.deactivate(db, current_user, document_type_id)
