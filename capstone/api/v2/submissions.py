"""文档提交API。"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from capstone.api.v2.auth import get_current_user
from capstone.db import get_db
from capstone.dependencies import get_services
from capstone.models import SubmissionStatus, User
from capstone.schemas.grading import FileReference
from capstone.services import Services
from capstone.services.access import require_project_access

router = APIRouter()


# === Schemas ===

class SubmissionCreate(BaseModel):
    project_id: int
    document_type_id: int
    file: FileReference
    comments: Optional[str] = None
    draft: bool = False


class ReviewRequest(BaseModel):
    approve: bool
    feedback: Optional[str] = None


class SubmissionResponse(BaseModel):
    id: int
    project_id: int
    document_type_id: int
    version: int
    supersedes_id: Optional[int]
    status: SubmissionStatus
    is_current: bool
    is_final: bool
    is_late: bool
    file_id: str
    file_url: Optional[str]
    uploaded_by_id: Optional[int]
    comments: Optional[str]
    feedback: Optional[str]
    uploaded_at: datetime
    submitted_at: Optional[datetime]
    reviewed_at: Optional[datetime]
    finalized_at: Optional[datetime]
    locked_at: Optional[datetime]

    model_config = {"from_attributes": True}


# === API 端点 ===

@router.post("/", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
def create_submission(
    data: SubmissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """提交文档（或保存草稿）。"""
    return services.lifecycle.create_submission(
        db,
        current_user,
        project_id=data.project_id,
        document_type_id=data.document_type_id,
        file_ref=data.file,
        comments=data.comments,
        draft=data.draft,
    )


@router.get("/locked", response_model=List[SubmissionResponse])
def list_locked_submissions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """评审委员会待评审列表。"""
    return services.lifecycle.list_locked(db, current_user)


@router.get("/projects/{project_id}", response_model=List[SubmissionResponse])
def list_project_submissions(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    project = services.lifecycle.get_project(db, project_id)
    require_project_access(current_user, project)
    return services.lifecycle.list_current_for_project(db, project.id)


@router.get(
    "/projects/{project_id}/document-types/{document_type_id}/history",
    response_model=List[SubmissionResponse],
)
def submission_history(
    project_id: int,
    document_type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """版本历史，最新在前。"""
    project = services.lifecycle.get_project(db, project_id)
    require_project_access(current_user, project)
    return services.lifecycle.history(db, project.id, document_type_id)


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    submission = services.lifecycle.get(db, submission_id)
    require_project_access(current_user, submission.project)
    return submission


@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
def submit_draft(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.lifecycle.submit_draft(db, current_user, submission_id)


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_draft(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    services.lifecycle.delete_draft(db, current_user, submission_id)


@router.post("/{submission_id}/review", response_model=SubmissionResponse)
def review_submission(
    submission_id: int,
    data: ReviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """指导教师审核：通过或要求修改（需填写意见）。"""
    return services.lifecycle.review(
        db, current_user, submission_id, approve=data.approve, feedback=data.feedback
    )


@router.post("/{submission_id}/final", response_model=SubmissionResponse)
def mark_final(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """组长声明定稿。"""
    return services.lifecycle.mark_final(db, current_user, submission_id)


@router.post("/{submission_id}/lock", response_model=SubmissionResponse)
def lock_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.lifecycle.lock(db, current_user, submission_id)
