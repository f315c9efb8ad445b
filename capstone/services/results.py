"""项目最终成绩的计算与发布。"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from capstone.exceptions import NotFound, Unauthorized
from capstone.models import (
    AuditAction,
    Capability,
    DocumentSubmission,
    FinalResult,
    Project,
    SubmissionStatus,
    User,
)
from capstone.schemas.events import ResultDetails, ResultReleasedEvent
from capstone.schemas.grading import ComputeOutcome, DocumentScoreBreakdown, PendingDocument
from capstone.services.access import require_capability
from capstone.services.audit import AuditTrail
from capstone.services.catalog import DocumentTypeCatalog
from capstone.services.marking import committee_average, is_evaluation_complete, quantize_score
from capstone.services.notifications import Notifier
from capstone.services.settings import SettingsService
from capstone.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def weighted_score(
    supervisor_score: Decimal,
    supervisor_weight: int,
    committee_avg_score: Decimal,
    committee_weight: int,
) -> Decimal:
    """``(supervisor * sw + committee_avg * cw) / 100``，保留两位小数。"""

    raw = (
        Decimal(supervisor_score) * supervisor_weight
        + Decimal(committee_avg_score) * committee_weight
    ) / HUNDRED
    return quantize_score(raw)


class ResultAggregator:
    """汇总各文档得分为项目总分，并控制成绩发布。

    总分是各文档加权得分之和，不再做二次归一化。
    """

    def __init__(
        self,
        settings: SettingsService,
        catalog: DocumentTypeCatalog,
        audit: AuditTrail,
        notifier: Notifier,
    ) -> None:
        self.settings = settings
        self.catalog = catalog
        self.audit = audit
        self.notifier = notifier

    def _get_project(self, db: Session, project_id: int) -> Project:
        project = db.get(Project, project_id)
        if project is None:
            raise NotFound("Project", project_id)
        return project

    def _find_result(self, db: Session, project_id: int, for_update: bool = False) -> Optional[FinalResult]:
        query = db.query(FinalResult).filter(FinalResult.project_id == project_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    # === 计算 ===

    def compute_if_ready(
        self, db: Session, project_id: int, actor: Optional[User] = None
    ) -> ComputeOutcome:
        """所有必需文档都评审完成时计算并保存成绩，否则返回 ``not_ready``。

        ``actor`` 为空表示由评分写入后自动触发。重新计算会覆盖总分与明细，
        但不改变 ``released``。
        """

        if actor is not None:
            require_capability(actor, Capability.COMPUTE_RESULT)
        project = self._get_project(db, project_id)
        required_evaluators = self.settings.required_evaluators(db)
        doc_types = self.catalog.required_for_project(db, project)

        pending: List[PendingDocument] = []
        breakdown: List[DocumentScoreBreakdown] = []
        for doc_type in doc_types:
            submission = (
                db.query(DocumentSubmission)
                .filter(
                    DocumentSubmission.project_id == project.id,
                    DocumentSubmission.document_type_id == doc_type.id,
                    DocumentSubmission.is_current.is_(True),
                )
                .first()
            )
            reason = None
            if submission is None:
                reason = "missing"
            elif submission.status != SubmissionStatus.LOCKED:
                reason = "not_locked"
            elif submission.supervisor_marks is None:
                reason = "no_supervisor_marks"
            elif not is_evaluation_complete(submission, required_evaluators):
                reason = "evaluations_incomplete"
            if reason is not None:
                pending.append(
                    PendingDocument(
                        document_type_id=doc_type.id, doc_type_code=doc_type.code, reason=reason
                    )
                )
                continue

            finalized = [m for m in submission.evaluation_marks if m.is_final]
            supervisor_score = Decimal(submission.supervisor_marks.score)
            committee_avg = committee_average(finalized)
            breakdown.append(
                DocumentScoreBreakdown(
                    submission_id=submission.id,
                    document_type_id=doc_type.id,
                    doc_type_code=doc_type.code,
                    doc_type_title=doc_type.title,
                    supervisor_score=quantize_score(supervisor_score),
                    supervisor_weight=doc_type.supervisor_weight,
                    committee_avg_score=committee_avg,
                    committee_weight=doc_type.committee_weight,
                    evaluator_count=len(finalized),
                    weighted_score=weighted_score(
                        supervisor_score,
                        doc_type.supervisor_weight,
                        committee_avg,
                        doc_type.committee_weight,
                    ),
                )
            )

        if pending or not doc_types:
            logger.info(
                "Result not ready: project_id=%s pending=%s",
                project.id, [p.doc_type_code for p in pending],
            )
            return ComputeOutcome(status="not_ready", project_id=project.id, pending=pending)

        total = quantize_score(sum((b.weighted_score for b in breakdown), Decimal("0")))
        result = self._store(db, project.id, total, breakdown, actor)

        logger.info("Result computed: project_id=%s total=%s", project.id, total)
        self.audit.record(
            db, actor, AuditAction.COMPUTE, "FinalResult", result.id,
            ResultDetails(total_score=total, released=result.released, document_count=len(breakdown)),
        )
        return ComputeOutcome(
            status="computed", project_id=project.id, total_score=total, breakdown=breakdown
        )

    def _store(
        self,
        db: Session,
        project_id: int,
        total: Decimal,
        breakdown: List[DocumentScoreBreakdown],
        actor: Optional[User],
    ) -> FinalResult:
        snapshot = [b.model_dump(mode="json") for b in breakdown]

        def apply(result: FinalResult) -> None:
            result.total_score = total
            result.breakdown_json = snapshot
            result.computed_by_id = actor.id if actor else None
            result.computed_at = utcnow()

        # 行锁保证同一项目同时只有一个写入者
        result = self._find_result(db, project_id, for_update=True)
        if result is not None:
            apply(result)
            db.commit()
        else:
            result = FinalResult(project_id=project_id, released=False)
            apply(result)
            db.add(result)
            try:
                db.commit()
            except IntegrityError:
                # 并发首次插入，改为更新已存在的行
                db.rollback()
                result = self._find_result(db, project_id, for_update=True)
                apply(result)
                db.commit()
        db.refresh(result)
        return result

    # === 发布与查看 ===

    def release(self, db: Session, actor: User, project_id: int) -> FinalResult:
        """发布成绩。已发布时不做任何修改，``released_at`` 保持首次发布的时间。"""

        require_capability(actor, Capability.RELEASE_RESULT)
        project = self._get_project(db, project_id)
        result = self._find_result(db, project.id)
        if result is None:
            raise NotFound("FinalResult", project.id, message="Result has not been computed yet")
        if result.released:
            return result

        outcome = db.execute(
            update(FinalResult)
            .where(FinalResult.id == result.id, FinalResult.released.is_(False))
            .values(released=True, released_at=utcnow(), released_by_id=actor.id)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(result)
        if outcome.rowcount != 1:
            return result

        logger.info("Result released: project_id=%s by=%s", project.id, actor.id)
        self.audit.record(
            db, actor, AuditAction.RELEASE, "FinalResult", result.id,
            ResultDetails(
                total_score=result.total_score,
                released=True,
                document_count=len(result.breakdown_json or []),
            ),
        )
        self.notifier.publish(
            db,
            ResultReleasedEvent(
                project_id=project.id,
                project_title=project.title,
                total_score=result.total_score,
                recipients=project.member_ids,
            ),
        )
        return result

    def get_result(self, db: Session, actor: User, project_id: int) -> FinalResult:
        """委员会查看，包括尚未发布的成绩。"""

        require_capability(actor, Capability.VIEW_RESULT)
        result = self._find_result(db, project_id)
        if result is None:
            raise NotFound("FinalResult", project_id)
        return result

    def get_released(self, db: Session, actor: User, project_id: int) -> FinalResult:
        """学生查看本组成绩。未发布与不存在同样返回 ``NotFound``。"""

        require_capability(actor, Capability.VIEW_RELEASED_RESULT)
        project = self._get_project(db, project_id)
        if not project.has_member(actor.id):
            raise Unauthorized(
                "Only members of the project group may view its result",
                project_id=project.id,
                user_id=actor.id,
            )
        result = self._find_result(db, project.id)
        if result is None or not result.released:
            raise NotFound("FinalResult", project.id)
        return result
