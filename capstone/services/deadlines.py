"""截止日期批次与排期校验。"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from capstone.exceptions import NotFound, SchedulingConflict, ValidationError
from capstone.models import (
    AuditAction,
    Capability,
    DeadlineBatch,
    DocumentType,
    Project,
    ProjectDeadline,
    User,
)
from capstone.schemas.events import CatalogChangeDetails, DeadlinesReplacedDetails
from capstone.schemas.grading import DeadlineEntry
from capstone.services.access import require_capability
from capstone.services.audit import AuditTrail
from capstone.services.settings import SettingsService
from capstone.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)


class DeadlineScheduler:
    """按文档类型顺序为批次设置截止日期，并保证相邻日期的最小间隔。

    只做校验与存储，没有状态机。间隔规则只在设置时检查，不会回溯校验已存在的批次。
    """

    def __init__(self, settings: SettingsService, audit: AuditTrail) -> None:
        self.settings = settings
        self.audit = audit

    # === 批次 ===

    def get_batch(self, db: Session, batch_id: int) -> DeadlineBatch:
        batch = db.get(DeadlineBatch, batch_id)
        if batch is None:
            raise NotFound("DeadlineBatch", batch_id)
        return batch

    def list_batches(self, db: Session, active_only: bool = True) -> List[DeadlineBatch]:
        query = db.query(DeadlineBatch)
        if active_only:
            query = query.filter(DeadlineBatch.is_active.is_(True))
        return query.order_by(DeadlineBatch.applies_from.desc()).all()

    def create_batch(
        self,
        db: Session,
        actor: User,
        name: str,
        applies_from: datetime,
        applies_until: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> DeadlineBatch:
        require_capability(actor, Capability.MANAGE_DEADLINES)
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", field="name")
        if applies_until is not None and as_utc(applies_until) <= as_utc(applies_from):
            raise ValidationError(
                "applies_until must be after applies_from", field="applies_until"
            )
        if db.query(DeadlineBatch).filter(DeadlineBatch.name == name).first():
            raise ValidationError(f"Deadline batch {name} already exists", field="name")

        batch = DeadlineBatch(
            name=name,
            description=description,
            applies_from=applies_from,
            applies_until=applies_until,
            is_active=True,
            created_by_id=actor.id,
        )
        db.add(batch)
        db.commit()
        db.refresh(batch)
        logger.info("Deadline batch created: id=%s name=%s", batch.id, batch.name)
        self.audit.record(
            db, actor, AuditAction.CREATE, "DeadlineBatch", batch.id,
            CatalogChangeDetails(changes={"name": batch.name}),
        )
        return batch

    def deactivate_batch(self, db: Session, actor: User, batch_id: int) -> DeadlineBatch:
        require_capability(actor, Capability.MANAGE_DEADLINES)
        batch = self.get_batch(db, batch_id)
        if batch.is_active:
            batch.is_active = False
            db.commit()
            db.refresh(batch)
            logger.info("Deadline batch deactivated: id=%s", batch.id)
            self.audit.record(
                db, actor, AuditAction.UPDATE, "DeadlineBatch", batch.id,
                CatalogChangeDetails(changes={"is_active": {"before": True, "after": False}}),
            )
        return batch

    def batch_for(self, db: Session, moment: datetime) -> Optional[DeadlineBatch]:
        """适用于 ``moment`` 的启用批次，多个时取开始时间最晚的一个。"""

        for batch in self.list_batches(db, active_only=True):
            if batch.applies_to(moment):
                return batch
        return None

    def assign_batch(
        self,
        db: Session,
        actor: User,
        project_id: int,
        batch_id: Optional[int] = None,
    ) -> Project:
        """把项目挂到批次上。不指定批次时按项目创建时间选择。"""

        require_capability(actor, Capability.MANAGE_DEADLINES)
        project = db.get(Project, project_id)
        if project is None:
            raise NotFound("Project", project_id)
        if batch_id is None:
            batch = self.batch_for(db, project.created_at)
            if batch is None:
                raise NotFound(
                    "DeadlineBatch", None, message="No active deadline batch applies to this project"
                )
        else:
            batch = self.get_batch(db, batch_id)
            if not batch.applies_to(project.created_at):
                raise ValidationError(
                    f"Deadline batch {batch.name} does not apply to this project",
                    field="batch_id",
                )

        before = project.deadline_batch_id
        if before != batch.id:
            project.deadline_batch_id = batch.id
            db.commit()
            db.refresh(project)
            logger.info("Project assigned to batch: project_id=%s batch_id=%s", project.id, batch.id)
            self.audit.record(
                db, actor, AuditAction.UPDATE, "Project", project.id,
                CatalogChangeDetails(
                    changes={"deadline_batch_id": {"before": before, "after": batch.id}}
                ),
            )
        return project

    # === 截止日期 ===

    def set_deadlines(
        self,
        db: Session,
        actor: User,
        batch_id: int,
        entries: Sequence[DeadlineEntry],
    ) -> List[ProjectDeadline]:
        """整体替换批次的截止日期。

        条目按文档类型的 ``display_order`` 排序后，日期必须严格递增，且相邻两项
        间隔不少于最小间隔天数；否则抛出 ``SchedulingConflict``，原有条目保持不变。
        """

        require_capability(actor, Capability.MANAGE_DEADLINES)
        batch = self.get_batch(db, batch_id)

        type_ids = [e.document_type_id for e in entries]
        if len(set(type_ids)) != len(type_ids):
            raise ValidationError("Each document type may appear only once", field="entries")
        doc_types = {
            dt.id: dt
            for dt in db.query(DocumentType).filter(DocumentType.id.in_(type_ids)).all()
        }
        for type_id in type_ids:
            if type_id not in doc_types:
                raise NotFound("DocumentType", type_id)

        ordered = sorted(
            entries,
            key=lambda e: (doc_types[e.document_type_id].display_order, e.document_type_id),
        )
        min_gap = timedelta(days=self.settings.min_deadline_gap_days(db))
        for previous, current in zip(ordered, ordered[1:]):
            prev_date = as_utc(previous.deadline_date)
            cur_date = as_utc(current.deadline_date)
            prev_code = doc_types[previous.document_type_id].code
            cur_code = doc_types[current.document_type_id].code
            if cur_date <= prev_date:
                raise SchedulingConflict(
                    f"Deadline for {cur_code} must be after the deadline for {prev_code}",
                    batch_id=batch.id,
                    previous=prev_code,
                    current=cur_code,
                )
            if cur_date - prev_date < min_gap:
                raise SchedulingConflict(
                    f"Deadlines for {prev_code} and {cur_code} must be at least "
                    f"{min_gap.days} days apart",
                    batch_id=batch.id,
                    previous=prev_code,
                    current=cur_code,
                    min_gap_days=min_gap.days,
                    actual_gap_days=(cur_date - prev_date).total_seconds() / 86400,
                )

        try:
            # 同一事务内先删后插，flush 保证删除先于插入执行
            batch.deadlines.clear()
            db.flush()
            for entry in ordered:
                batch.deadlines.append(
                    ProjectDeadline(
                        document_type_id=entry.document_type_id,
                        deadline_date=entry.deadline_date,
                        sort_order=doc_types[entry.document_type_id].display_order,
                    )
                )
            db.commit()
        except Exception:
            db.rollback()
            raise

        deadlines = self.deadlines_for_batch(db, batch.id)
        logger.info("Deadlines replaced: batch_id=%s count=%d", batch.id, len(deadlines))
        self.audit.record(
            db, actor, AuditAction.UPDATE, "DeadlineBatch", batch.id,
            DeadlinesReplacedDetails(
                batch_id=batch.id,
                entries=[
                    {
                        "document_type_id": d.document_type_id,
                        "deadline_date": as_utc(d.deadline_date).isoformat(),
                    }
                    for d in deadlines
                ],
            ),
        )
        return deadlines

    def deadlines_for_batch(self, db: Session, batch_id: int) -> List[ProjectDeadline]:
        return (
            db.query(ProjectDeadline)
            .filter(ProjectDeadline.batch_id == batch_id)
            .order_by(ProjectDeadline.sort_order.asc(), ProjectDeadline.id.asc())
            .all()
        )

    def deadline_for(
        self, db: Session, project: Project, document_type_id: int
    ) -> Optional[ProjectDeadline]:
        if project.deadline_batch_id is None:
            return None
        return (
            db.query(ProjectDeadline)
            .filter(
                ProjectDeadline.batch_id == project.deadline_batch_id,
                ProjectDeadline.document_type_id == document_type_id,
            )
            .first()
        )

    # === 纯判断 ===

    @staticmethod
    def is_past(deadline: ProjectDeadline | datetime, now: Optional[datetime] = None) -> bool:
        moment = deadline.deadline_date if isinstance(deadline, ProjectDeadline) else deadline
        return as_utc(now or utcnow()) > as_utc(moment)

    @staticmethod
    def is_approaching(
        deadline: ProjectDeadline | datetime,
        within_hours: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """截止时间尚未到达，且在 ``within_hours`` 小时之内。"""

        moment = as_utc(
            deadline.deadline_date if isinstance(deadline, ProjectDeadline) else deadline
        )
        current = as_utc(now or utcnow())
        return current <= moment <= current + timedelta(hours=within_hours)
