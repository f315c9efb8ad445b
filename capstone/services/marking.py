"""锁定提交的评分：指导教师评分与评审委员会评分。"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from sqlalchemy.orm import Session

from capstone.exceptions import InvalidState, NotFound, ValidationError
from capstone.models import (
    AuditAction,
    Capability,
    DocumentSubmission,
    EvaluationMarks,
    SubmissionStatus,
    SupervisorMarks,
    User,
)
from capstone.schemas.events import MarksDetails
from capstone.schemas.grading import EvaluationSummary
from capstone.services.access import require_assigned_supervisor, require_capability
from capstone.services.audit import AuditTrail
from capstone.services.settings import SettingsService
from capstone.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
MIN_SCORE = Decimal("0")
MAX_SCORE = Decimal("100")


def quantize_score(value: Decimal) -> Decimal:
    """两位小数，银行家舍入。"""

    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_EVEN)


def parse_score(value: Any, field: str = "score") -> Decimal:
    """校验分数：0 到 100，最多两位小数。"""

    if isinstance(value, bool) or value is None:
        raise ValidationError("Score must be a number", field=field)
    try:
        score = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("Score must be a number", field=field, value=str(value))
    if not score.is_finite():
        raise ValidationError("Score must be a finite number", field=field)
    if score < MIN_SCORE or score > MAX_SCORE:
        raise ValidationError(
            "Score must be between 0 and 100", field=field, value=str(score)
        )
    if score != score.quantize(TWO_PLACES):
        raise ValidationError(
            "Score may have at most two decimal places", field=field, value=str(score)
        )
    return score.quantize(TWO_PLACES)


def committee_average(marks: Iterable[EvaluationMarks]) -> Optional[Decimal]:
    """已定稿评分的算术平均；草稿不参与。没有定稿评分时返回 ``None``。"""

    scores = [Decimal(m.score) for m in marks if m.is_final]
    if not scores:
        return None
    return quantize_score(sum(scores, Decimal("0")) / len(scores))


def is_evaluation_complete(submission: DocumentSubmission, required_evaluators: int) -> bool:
    """提交是否已评审完成。

    这是由评分记录推导出的状态而非存储字段：已锁定、存在指导教师评分，
    且定稿的委员会评分不少于要求人数。评分引擎与成绩汇总共用此判断。
    """

    if submission.status != SubmissionStatus.LOCKED:
        return False
    if submission.supervisor_marks is None:
        return False
    finalized = sum(1 for m in submission.evaluation_marks if m.is_final)
    return finalized >= required_evaluators


class MarkingEngine:
    def __init__(self, settings: SettingsService, audit: AuditTrail) -> None:
        self.settings = settings
        self.audit = audit

    def _get_locked(self, db: Session, submission_id: int) -> DocumentSubmission:
        submission = db.get(DocumentSubmission, submission_id)
        if submission is None:
            raise NotFound("DocumentSubmission", submission_id)
        if submission.status != SubmissionStatus.LOCKED:
            raise InvalidState(
                "Marks can only be recorded for locked submissions",
                current_status=submission.status.value,
                required_status=SubmissionStatus.LOCKED.value,
                submission_id=submission.id,
            )
        return submission

    def is_complete(self, db: Session, submission: DocumentSubmission) -> bool:
        return is_evaluation_complete(submission, self.settings.required_evaluators(db))

    # === 指导教师评分 ===

    def submit_supervisor_marks(
        self,
        db: Session,
        actor: User,
        submission_id: int,
        score: Any,
        comments: Optional[str] = None,
    ) -> SupervisorMarks:
        """写入或覆盖指导教师评分。只保留最新一次，不保存历史。

        评审完成后评分不可再修改。
        """

        submission = self._get_locked(db, submission_id)
        require_assigned_supervisor(actor, submission.project, Capability.MARK_SUPERVISOR)
        value = parse_score(score)
        if self.is_complete(db, submission):
            raise InvalidState(
                "Supervisor marks cannot change after the evaluation is complete",
                current_status=submission.status.value,
                submission_id=submission.id,
            )

        marks = submission.supervisor_marks
        if marks is None:
            marks = SupervisorMarks(
                submission_id=submission.id,
                supervisor_id=actor.id,
                score=value,
                comments=comments,
            )
            db.add(marks)
        else:
            marks.supervisor_id = actor.id
            marks.score = value
            marks.comments = comments
        db.commit()
        db.refresh(marks)

        logger.info(
            "Supervisor marks recorded: submission_id=%s score=%s", submission.id, value
        )
        self.audit.record(
            db, actor, AuditAction.MARKS, "DocumentSubmission", submission.id,
            MarksDetails(role="supervisor", score=value, is_final=False),
        )
        return marks

    # === 评审委员会评分 ===

    def submit_evaluation_marks(
        self,
        db: Session,
        actor: User,
        submission_id: int,
        score: Any,
        finalize: bool = False,
        comments: Optional[str] = None,
    ) -> EvaluationMarks:
        """写入评审人自己的评分。``finalize=True`` 后该评审人的评分冻结。

        各评审人的定稿互不影响。
        """

        require_capability(actor, Capability.EVALUATE_SUBMISSION)
        submission = self._get_locked(db, submission_id)
        value = parse_score(score)

        marks = self._own_marks(db, submission.id, actor.id)
        if marks is not None and marks.is_final:
            raise InvalidState(
                "Finalized evaluation marks cannot be changed",
                current_status="finalized",
                submission_id=submission.id,
                evaluator_id=actor.id,
            )
        if marks is None:
            marks = EvaluationMarks(
                submission_id=submission.id,
                evaluator_id=actor.id,
                score=value,
                comments=comments,
            )
            db.add(marks)
        else:
            marks.score = value
            marks.comments = comments
        if finalize:
            marks.is_final = True
            marks.finalized_at = utcnow()
        db.commit()
        db.refresh(marks)

        logger.info(
            "Evaluation marks recorded: submission_id=%s evaluator_id=%s final=%s",
            submission.id, actor.id, marks.is_final,
        )
        self.audit.record(
            db, actor, AuditAction.MARKS, "DocumentSubmission", submission.id,
            MarksDetails(role="evaluator", score=value, is_final=marks.is_final),
        )
        return marks

    def finalize_evaluation(self, db: Session, actor: User, submission_id: int) -> EvaluationMarks:
        """以已保存的分数定稿。已定稿时直接返回。"""

        require_capability(actor, Capability.EVALUATE_SUBMISSION)
        submission = self._get_locked(db, submission_id)
        marks = self._own_marks(db, submission.id, actor.id)
        if marks is None:
            raise NotFound(
                "EvaluationMarks",
                submission.id,
                message="No evaluation marks to finalize for this submission",
            )
        if marks.is_final:
            return marks
        return self.submit_evaluation_marks(
            db, actor, submission.id, marks.score, finalize=True, comments=marks.comments
        )

    def _own_marks(
        self, db: Session, submission_id: int, evaluator_id: int
    ) -> Optional[EvaluationMarks]:
        return (
            db.query(EvaluationMarks)
            .filter(
                EvaluationMarks.submission_id == submission_id,
                EvaluationMarks.evaluator_id == evaluator_id,
            )
            .first()
        )

    def list_evaluation_marks(
        self, db: Session, actor: User, submission_id: int
    ) -> List[EvaluationMarks]:
        require_capability(actor, Capability.EVALUATE_SUBMISSION)
        if db.get(DocumentSubmission, submission_id) is None:
            raise NotFound("DocumentSubmission", submission_id)
        return (
            db.query(EvaluationMarks)
            .filter(EvaluationMarks.submission_id == submission_id)
            .order_by(EvaluationMarks.id.asc())
            .all()
        )

    # === 汇总 ===

    def get_evaluation_summary(self, db: Session, submission_id: int) -> EvaluationSummary:
        submission = db.get(DocumentSubmission, submission_id)
        if submission is None:
            raise NotFound("DocumentSubmission", submission_id)
        required = self.settings.required_evaluators(db)
        marks = list(submission.evaluation_marks)
        finalized = sum(1 for m in marks if m.is_final)
        return EvaluationSummary(
            submission_id=submission.id,
            submission_status=submission.status.value,
            required_evaluators=required,
            total_evaluations=len(marks),
            finalized_evaluations=finalized,
            average_score=committee_average(marks),
            all_finalized=finalized >= required,
            has_supervisor_marks=submission.supervisor_marks is not None,
            evaluation_complete=is_evaluation_complete(submission, required),
        )
