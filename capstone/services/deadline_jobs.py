"""截止日期相关的定时任务：到期锁定与临近提醒。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from capstone.exceptions import InvalidState
from capstone.models import (
    DeadlineBatch,
    DocumentSubmission,
    Project,
    ProjectDeadline,
    SubmissionStatus,
)
from capstone.schemas.events import DeadlineApproachingEvent
from capstone.services.deadlines import DeadlineScheduler
from capstone.services.notifications import Notifier
from capstone.services.submissions import SubmissionLifecycle
from capstone.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass
class DeadlineJobReport:
    locked: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    reminders: int = 0


def _active_project_deadlines(db: Session):
    """(项目, 截止日期) 对，只包含启用批次。"""

    return (
        db.query(Project, ProjectDeadline)
        .select_from(Project)
        .join(DeadlineBatch, Project.deadline_batch_id == DeadlineBatch.id)
        .join(ProjectDeadline, ProjectDeadline.batch_id == DeadlineBatch.id)
        .filter(DeadlineBatch.is_active.is_(True))
        .order_by(Project.id.asc(), ProjectDeadline.sort_order.asc())
        .all()
    )


class DeadlineJobs:
    def __init__(
        self,
        scheduler: DeadlineScheduler,
        lifecycle: SubmissionLifecycle,
        notifier: Notifier,
    ) -> None:
        self.scheduler = scheduler
        self.lifecycle = lifecycle
        self.notifier = notifier

    def lock_passed_deadlines(
        self, db: Session, now: Optional[datetime] = None, report: Optional[DeadlineJobReport] = None
    ) -> DeadlineJobReport:
        """截止日期已过时，锁定已通过且已声明定稿的当前提交。其他状态保持不变。"""

        now = now or utcnow()
        report = report or DeadlineJobReport()
        for project, deadline in _active_project_deadlines(db):
            if not self.scheduler.is_past(deadline, now):
                continue
            submission = self.lifecycle.current_submission(
                db, project.id, deadline.document_type_id
            )
            if submission is None:
                continue
            if submission.status != SubmissionStatus.APPROVED or not submission.is_final:
                continue
            try:
                self.lifecycle.lock_as_system(db, submission.id)
            except InvalidState:
                # 被其他操作抢先锁定或状态已变化
                report.skipped.append(submission.id)
                continue
            report.locked.append(submission.id)

        logger.info(
            "Deadline lock job finished: locked=%d skipped=%d",
            len(report.locked), len(report.skipped),
        )
        return report

    def send_deadline_reminders(
        self,
        db: Session,
        within_hours: int,
        now: Optional[datetime] = None,
        report: Optional[DeadlineJobReport] = None,
    ) -> DeadlineJobReport:
        """对临近截止、但当前提交缺失或尚未定稿的项目发出提醒。"""

        now = now or utcnow()
        report = report or DeadlineJobReport()
        for project, deadline in _active_project_deadlines(db):
            if not self.scheduler.is_approaching(deadline, within_hours, now):
                continue
            submission: Optional[DocumentSubmission] = self.lifecycle.current_submission(
                db, project.id, deadline.document_type_id
            )
            if submission is not None and (
                submission.is_final or submission.status == SubmissionStatus.LOCKED
            ):
                continue
            remaining = as_utc(deadline.deadline_date) - as_utc(now)
            self.notifier.publish(
                db,
                DeadlineApproachingEvent(
                    project_id=project.id,
                    project_title=project.title,
                    document_type=deadline.document_type.code,
                    deadline_date=as_utc(deadline.deadline_date),
                    hours_remaining=int(remaining.total_seconds() // 3600),
                    recipients=project.member_ids,
                ),
            )
            report.reminders += 1

        logger.info("Deadline reminder job finished: reminders=%d", report.reminders)
        return report
