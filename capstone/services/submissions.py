"""文档提交生命周期。

状态流转::

    DRAFT -> PENDING_REVIEW -> APPROVED -> LOCKED
                            \\-> REVISION_REQUESTED

被要求修改后的重新提交是新的一行（``supersedes_id`` 指向上一版本），
已审核的提交不会被原地修改。只有本模块可以改变提交的 ``status``。
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from capstone.exceptions import InvalidState, NotFound, ValidationError
from capstone.models import (
    AuditAction,
    Capability,
    DocumentSubmission,
    DocumentType,
    Project,
    SubmissionStatus,
    User,
)
from capstone.schemas.events import (
    FinalFlagDetails,
    StatusChangeDetails,
    SubmissionCreatedDetails,
    SubmissionLockedEvent,
    SubmissionReviewedEvent,
)
from capstone.schemas.grading import FileReference
from capstone.services.access import (
    require_assigned_supervisor,
    require_capability,
    require_group_member,
)
from capstone.services.audit import AuditTrail
from capstone.services.catalog import DocumentTypeCatalog
from capstone.services.deadlines import DeadlineScheduler
from capstone.services.notifications import Notifier
from capstone.services.settings import SettingsService
from capstone.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    SubmissionStatus.DRAFT: frozenset({SubmissionStatus.PENDING_REVIEW}),
    SubmissionStatus.PENDING_REVIEW: frozenset(
        {SubmissionStatus.APPROVED, SubmissionStatus.REVISION_REQUESTED}
    ),
    SubmissionStatus.APPROVED: frozenset({SubmissionStatus.LOCKED}),
    SubmissionStatus.REVISION_REQUESTED: frozenset(),
    SubmissionStatus.LOCKED: frozenset(),
}


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _transition(submission: DocumentSubmission, target: SubmissionStatus) -> SubmissionStatus:
    before = submission.status
    if not can_transition(before, target):
        raise InvalidState(
            f"Submission cannot move from {before.value} to {target.value}",
            current_status=before.value,
            required_status=target.value,
            submission_id=submission.id,
        )
    submission.status = target
    return before


def _accepts_new_version(current: DocumentSubmission) -> bool:
    if current.status == SubmissionStatus.REVISION_REQUESTED:
        return True
    return current.status == SubmissionStatus.APPROVED and not current.is_final


class SubmissionLifecycle:
    """提交的创建、审核、定稿声明与锁定。"""

    def __init__(
        self,
        settings: SettingsService,
        catalog: DocumentTypeCatalog,
        scheduler: DeadlineScheduler,
        audit: AuditTrail,
        notifier: Notifier,
    ) -> None:
        self.settings = settings
        self.catalog = catalog
        self.scheduler = scheduler
        self.audit = audit
        self.notifier = notifier

    # === 查询 ===

    def get(self, db: Session, submission_id: int) -> DocumentSubmission:
        submission = db.get(DocumentSubmission, submission_id)
        if submission is None:
            raise NotFound("DocumentSubmission", submission_id)
        return submission

    def get_project(self, db: Session, project_id: int) -> Project:
        project = db.get(Project, project_id)
        if project is None:
            raise NotFound("Project", project_id)
        return project

    def current_submission(
        self, db: Session, project_id: int, document_type_id: int
    ) -> Optional[DocumentSubmission]:
        return (
            db.query(DocumentSubmission)
            .filter(
                DocumentSubmission.project_id == project_id,
                DocumentSubmission.document_type_id == document_type_id,
                DocumentSubmission.is_current.is_(True),
            )
            .first()
        )

    def history(
        self, db: Session, project_id: int, document_type_id: int
    ) -> List[DocumentSubmission]:
        """某文档类型的全部版本，最新在前。"""

        return (
            db.query(DocumentSubmission)
            .filter(
                DocumentSubmission.project_id == project_id,
                DocumentSubmission.document_type_id == document_type_id,
            )
            .order_by(DocumentSubmission.version.desc())
            .all()
        )

    def list_current_for_project(self, db: Session, project_id: int) -> List[DocumentSubmission]:
        return (
            db.query(DocumentSubmission)
            .filter(
                DocumentSubmission.project_id == project_id,
                DocumentSubmission.is_current.is_(True),
            )
            .order_by(DocumentSubmission.document_type_id.asc())
            .all()
        )

    def list_locked(self, db: Session, actor: User) -> List[DocumentSubmission]:
        require_capability(actor, Capability.EVALUATE_SUBMISSION)
        return (
            db.query(DocumentSubmission)
            .filter(DocumentSubmission.status == SubmissionStatus.LOCKED)
            .order_by(DocumentSubmission.locked_at.asc(), DocumentSubmission.id.asc())
            .all()
        )

    # === 学生操作 ===

    def _check_sequential(self, db: Session, project: Project, doc_type: DocumentType) -> None:
        required = self.catalog.required_for_project(db, project)
        for earlier in required:
            if earlier.id == doc_type.id:
                return
            current = self.current_submission(db, project.id, earlier.id)
            if current is None or current.status not in (
                SubmissionStatus.APPROVED,
                SubmissionStatus.LOCKED,
            ):
                raise ValidationError(
                    f"{earlier.code} must be approved before submitting {doc_type.code}",
                    field="document_type_id",
                    blocking_document_type=earlier.code,
                )

    def create_submission(
        self,
        db: Session,
        actor: User,
        project_id: int,
        document_type_id: int,
        file_ref: FileReference,
        comments: Optional[str] = None,
        draft: bool = False,
    ) -> DocumentSubmission:
        """创建新提交（或新版本）。

        初始状态为 ``PENDING_REVIEW``，``draft=True`` 时为 ``DRAFT``。已存在当前版本时，
        只有它处于 ``REVISION_REQUESTED``，或已通过但未声明定稿时才允许提交新版本。
        """

        require_capability(actor, Capability.SUBMIT_DOCUMENT)
        project = self.get_project(db, project_id)
        require_group_member(actor, project)
        low, high = self.settings.group_size_bounds(db)
        if not low <= len(project.members) <= high:
            raise ValidationError(
                f"Project group must have between {low} and {high} members to submit",
                field="project_id",
                group_size=len(project.members),
            )

        doc_type = self.catalog.get(db, document_type_id)
        previous = self.current_submission(db, project.id, doc_type.id)
        # 停用只阻止新文档，已有提交的文档类型仍可继续修订
        if not doc_type.is_active and previous is None:
            raise ValidationError(
                f"Document type {doc_type.code} is not active", field="document_type_id"
            )
        if doc_type.id not in {dt.id for dt in self.catalog.required_for_project(db, project)}:
            raise ValidationError(
                f"Document type {doc_type.code} is not required for this project",
                field="document_type_id",
            )
        if self.settings.enforce_sequential_submission:
            self._check_sequential(db, project, doc_type)

        if previous is not None and not _accepts_new_version(previous):
            raise InvalidState(
                "A new version can only follow a submission that needs revision "
                "or is approved and not yet final",
                current_status=previous.status.value,
                submission_id=previous.id,
                is_final=previous.is_final,
            )

        now = utcnow()
        deadline = self.scheduler.deadline_for(db, project, doc_type.id)
        is_late = (not draft) and deadline is not None and self.scheduler.is_past(deadline, now)
        last_version = (
            db.query(func.max(DocumentSubmission.version))
            .filter(
                DocumentSubmission.project_id == project.id,
                DocumentSubmission.document_type_id == doc_type.id,
            )
            .scalar()
        )

        submission = DocumentSubmission(
            project_id=project.id,
            document_type_id=doc_type.id,
            supersedes_id=previous.id if previous else None,
            version=(last_version or 0) + 1,
            status=SubmissionStatus.DRAFT if draft else SubmissionStatus.PENDING_REVIEW,
            is_current=True,
            is_late=is_late,
            file_id=file_ref.id,
            file_url=file_ref.url,
            uploaded_by_id=actor.id,
            comments=comments,
            uploaded_at=now,
            submitted_at=None if draft else now,
        )
        if previous is not None:
            previous.is_current = False
        db.add(submission)
        db.commit()
        db.refresh(submission)

        logger.info(
            "Submission created: submission_id=%s project_id=%s doc_type=%s version=%s status=%s",
            submission.id, project.id, doc_type.code, submission.version, submission.status.value,
        )
        if is_late:
            logger.warning(
                "Late submission: submission_id=%s project_id=%s doc_type=%s",
                submission.id, project.id, doc_type.code,
            )
        self.audit.record(
            db, actor, AuditAction.CREATE, "DocumentSubmission", submission.id,
            SubmissionCreatedDetails(
                project_id=project.id,
                document_type_code=doc_type.code,
                version=submission.version,
                status=submission.status.value,
                is_late=is_late,
                supersedes_id=submission.supersedes_id,
            ),
        )
        return submission

    def submit_draft(self, db: Session, actor: User, submission_id: int) -> DocumentSubmission:
        require_capability(actor, Capability.SUBMIT_DOCUMENT)
        submission = self.get(db, submission_id)
        require_group_member(actor, submission.project)
        before = _transition(submission, SubmissionStatus.PENDING_REVIEW)

        now = utcnow()
        deadline = self.scheduler.deadline_for(db, submission.project, submission.document_type_id)
        submission.submitted_at = now
        submission.is_late = deadline is not None and self.scheduler.is_past(deadline, now)
        db.commit()
        db.refresh(submission)

        logger.info("Draft submitted: submission_id=%s", submission.id)
        if submission.is_late:
            logger.warning("Late submission: submission_id=%s", submission.id)
        self.audit.record(
            db, actor, AuditAction.STATUS_CHANGE, "DocumentSubmission", submission.id,
            StatusChangeDetails(before=before.value, after=submission.status.value),
        )
        return submission

    def delete_draft(self, db: Session, actor: User, submission_id: int) -> None:
        """丢弃草稿，上一版本重新成为当前版本。"""

        require_capability(actor, Capability.SUBMIT_DOCUMENT)
        submission = self.get(db, submission_id)
        require_group_member(actor, submission.project)
        if submission.status != SubmissionStatus.DRAFT:
            raise InvalidState(
                "Only drafts can be deleted",
                current_status=submission.status.value,
                required_status=SubmissionStatus.DRAFT.value,
                submission_id=submission.id,
            )
        if submission.supersedes is not None:
            submission.supersedes.is_current = True
        db.delete(submission)
        db.commit()

        logger.info("Draft deleted: submission_id=%s", submission_id)
        self.audit.record(
            db, actor, AuditAction.DELETE, "DocumentSubmission", submission_id,
            StatusChangeDetails(before=SubmissionStatus.DRAFT.value, after=None),
        )

    def mark_final(self, db: Session, actor: User, submission_id: int) -> DocumentSubmission:
        """组长声明不再修改。只设置定稿标记，不改变状态；重复调用无副作用。"""

        require_capability(actor, Capability.SUBMIT_DOCUMENT)
        submission = self.get(db, submission_id)
        require_group_member(actor, submission.project, leader_only=True)
        if submission.status != SubmissionStatus.APPROVED or not submission.is_current:
            raise InvalidState(
                "Only the current approved submission can be marked final",
                current_status=submission.status.value,
                required_status=SubmissionStatus.APPROVED.value,
                submission_id=submission.id,
            )
        if submission.is_final:
            return submission

        submission.is_final = True
        submission.finalized_at = utcnow()
        db.commit()
        db.refresh(submission)

        logger.info("Submission marked final: submission_id=%s", submission.id)
        self.audit.record(
            db, actor, AuditAction.UPDATE, "DocumentSubmission", submission.id,
            FinalFlagDetails(status=submission.status.value),
        )
        return submission

    # === 指导教师 ===

    def review(
        self,
        db: Session,
        actor: User,
        submission_id: int,
        approve: bool,
        feedback: Optional[str] = None,
    ) -> DocumentSubmission:
        submission = self.get(db, submission_id)
        project = submission.project
        require_assigned_supervisor(actor, project)
        if submission.status != SubmissionStatus.PENDING_REVIEW:
            raise InvalidState(
                "Only submissions pending review can be reviewed",
                current_status=submission.status.value,
                required_status=SubmissionStatus.PENDING_REVIEW.value,
                submission_id=submission.id,
            )
        feedback = (feedback or "").strip() or None
        if not approve and feedback is None:
            raise ValidationError("Feedback is required when requesting revision", field="feedback")

        target = SubmissionStatus.APPROVED if approve else SubmissionStatus.REVISION_REQUESTED
        before = _transition(submission, target)
        submission.feedback = feedback
        submission.reviewed_by_id = actor.id
        submission.reviewed_at = utcnow()
        db.commit()
        db.refresh(submission)

        logger.info(
            "Submission reviewed: submission_id=%s project_id=%s status=%s",
            submission.id, project.id, submission.status.value,
        )
        self.audit.record(
            db, actor, AuditAction.STATUS_CHANGE, "DocumentSubmission", submission.id,
            StatusChangeDetails(before=before.value, after=submission.status.value, reason=feedback),
        )
        self.notifier.publish(
            db,
            SubmissionReviewedEvent(
                project_id=project.id,
                project_title=project.title,
                document_type=submission.document_type.code,
                submission_id=submission.id,
                approved=approve,
                feedback=feedback,
                recipients=project.member_ids,
            ),
        )
        return submission

    # === 评审委员会 ===

    def lock(self, db: Session, actor: User, submission_id: int) -> DocumentSubmission:
        """评审委员会锁定。状态不满足时无论角色都返回 ``InvalidState``。"""

        submission = self.get(db, submission_id)
        if not (
            submission.status == SubmissionStatus.APPROVED
            and submission.is_final
            and submission.is_current
        ):
            raise self._not_lockable(submission)
        require_capability(actor, Capability.LOCK_SUBMISSION)
        return self._lock(db, actor, submission_id)

    def lock_as_system(self, db: Session, submission_id: int) -> DocumentSubmission:
        """截止日期任务使用，没有操作人。"""

        return self._lock(db, None, submission_id)

    def _lock(
        self, db: Session, actor: Optional[User], submission_id: int
    ) -> DocumentSubmission:
        submission = self.get(db, submission_id)
        # 条件更新保证并发锁定时只有一方成功
        result = db.execute(
            update(DocumentSubmission)
            .where(
                DocumentSubmission.id == submission.id,
                DocumentSubmission.status == SubmissionStatus.APPROVED,
                DocumentSubmission.is_final.is_(True),
                DocumentSubmission.is_current.is_(True),
            )
            .values(
                status=SubmissionStatus.LOCKED,
                locked_at=utcnow(),
                locked_by_id=actor.id if actor else None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            db.refresh(submission)
            raise self._not_lockable(submission)
        db.commit()
        db.refresh(submission)

        project = submission.project
        logger.info(
            "Submission locked: submission_id=%s project_id=%s by=%s",
            submission.id, project.id, actor.id if actor else "system",
        )
        self.audit.record(
            db, actor, AuditAction.STATUS_CHANGE, "DocumentSubmission", submission.id,
            StatusChangeDetails(
                before=SubmissionStatus.APPROVED.value,
                after=SubmissionStatus.LOCKED.value,
                reason=None if actor else "deadline passed",
            ),
        )
        recipients = list(project.member_ids)
        if project.supervisor_id is not None:
            recipients.append(project.supervisor_id)
        self.notifier.publish(
            db,
            SubmissionLockedEvent(
                project_id=project.id,
                project_title=project.title,
                document_type=submission.document_type.code,
                submission_id=submission.id,
                version=submission.version,
                recipients=recipients,
            ),
        )
        return submission

    @staticmethod
    def _not_lockable(submission: DocumentSubmission) -> InvalidState:
        return InvalidState(
            "Only the current approved submission marked final can be locked",
            current_status=submission.status.value,
            required_status=SubmissionStatus.APPROVED.value,
            submission_id=submission.id,
            is_final=submission.is_final,
        )
