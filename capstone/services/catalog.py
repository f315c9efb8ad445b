"""文档类型目录。"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from capstone.exceptions import NotFound, ValidationError
from capstone.models import (
    AuditAction,
    Capability,
    DocumentSubmission,
    DocumentType,
    Project,
    ProjectDeadline,
    User,
)
from capstone.schemas.events import CatalogChangeDetails
from capstone.services.access import require_capability
from capstone.services.audit import AuditTrail

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "title",
    "description",
    "supervisor_weight",
    "committee_weight",
    "display_order",
    "is_active",
)


def _validate_weight(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", field=name)
    if not 0 <= value <= 100:
        raise ValidationError(f"{name} must be between 0 and 100", field=name, value=value)
    return value


class DocumentTypeCatalog:
    """维护需要提交的文档类型及其权重、顺序。

    管理员修改权重不会回溯已经计算的成绩，成绩表保存的是计算时的快照。
    """

    def __init__(self, audit: AuditTrail) -> None:
        self.audit = audit

    def get(self, db: Session, document_type_id: int) -> DocumentType:
        doc_type = db.get(DocumentType, document_type_id)
        if doc_type is None:
            raise NotFound("DocumentType", document_type_id)
        return doc_type

    def list_active(self, db: Session) -> List[DocumentType]:
        return (
            db.query(DocumentType)
            .filter(DocumentType.is_active.is_(True))
            .order_by(DocumentType.display_order.asc(), DocumentType.id.asc())
            .all()
        )

    def create(
        self,
        db: Session,
        actor: User,
        code: str,
        title: str,
        supervisor_weight: int = 20,
        committee_weight: int = 80,
        display_order: int = 0,
        description: Optional[str] = None,
    ) -> DocumentType:
        require_capability(actor, Capability.MANAGE_DOCUMENT_TYPES)
        code = (code or "").strip().upper()
        if not code:
            raise ValidationError("code is required", field="code")
        if not (title or "").strip():
            raise ValidationError("title is required", field="title")
        _validate_weight("supervisor_weight", supervisor_weight)
        _validate_weight("committee_weight", committee_weight)
        if db.query(DocumentType).filter(DocumentType.code == code).first():
            raise ValidationError(f"Document type code {code} already exists", field="code")

        doc_type = DocumentType(
            code=code,
            title=title.strip(),
            description=description,
            supervisor_weight=supervisor_weight,
            committee_weight=committee_weight,
            display_order=display_order,
            is_active=True,
        )
        db.add(doc_type)
        db.commit()
        db.refresh(doc_type)
        logger.info("Document type created: code=%s id=%s", doc_type.code, doc_type.id)
        self.audit.record(
            db, actor, AuditAction.CREATE, "DocumentType", doc_type.id,
            CatalogChangeDetails(changes={
                "code": doc_type.code,
                "supervisor_weight": supervisor_weight,
                "committee_weight": committee_weight,
                "display_order": display_order,
            }),
        )
        return doc_type

    def update(
        self, db: Session, actor: User, document_type_id: int, changes: Dict[str, Any]
    ) -> DocumentType:
        """管理员编辑。只允许修改白名单字段。"""

        require_capability(actor, Capability.MANAGE_DOCUMENT_TYPES)
        doc_type = self.get(db, document_type_id)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        for weight_field in ("supervisor_weight", "committee_weight"):
            if weight_field in changes:
                _validate_weight(weight_field, changes[weight_field])
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError("title is required", field="title")

        applied: Dict[str, Any] = {}
        for key, value in changes.items():
            if getattr(doc_type, key) != value:
                applied[key] = {"before": getattr(doc_type, key), "after": value}
                setattr(doc_type, key, value)
        if "display_order" in applied:
            # 批次内的 sort_order 跟随展示顺序
            db.query(ProjectDeadline).filter(
                ProjectDeadline.document_type_id == doc_type.id
            ).update(
                {ProjectDeadline.sort_order: doc_type.display_order},
                synchronize_session="fetch",
            )
        db.commit()
        db.refresh(doc_type)
        if applied:
            logger.info("Document type updated: id=%s fields=%s", doc_type.id, sorted(applied))
            self.audit.record(
                db, actor, AuditAction.UPDATE, "DocumentType", doc_type.id,
                CatalogChangeDetails(changes=applied),
            )
        return doc_type

    def deactivate(self, db: Session, actor: User, document_type_id: int) -> DocumentType:
        return self.update(db, actor, document_type_id, {"is_active": False})

    def required_for_project(self, db: Session, project: Project) -> List[DocumentType]:
        """项目需要提交的文档类型，按顺序排列。

        有截止日期批次时取批次内的文档类型，否则取全部文档类型。已停用的类型只有在
        项目已有当前提交时才保留，停用之后新文档不再要求提交。
        """

        if project.deadline_batch_id is None:
            candidates = (
                db.query(DocumentType)
                .order_by(DocumentType.display_order.asc(), DocumentType.id.asc())
                .all()
            )
        else:
            candidates = [
                d.document_type
                for d in db.query(ProjectDeadline)
                .filter(ProjectDeadline.batch_id == project.deadline_batch_id)
                .order_by(ProjectDeadline.sort_order.asc(), ProjectDeadline.id.asc())
                .all()
            ]
        inactive = [dt.id for dt in candidates if not dt.is_active]
        submitted = set()
        if inactive:
            submitted = {
                row.document_type_id
                for row in db.query(DocumentSubmission.document_type_id).filter(
                    DocumentSubmission.project_id == project.id,
                    DocumentSubmission.document_type_id.in_(inactive),
                    DocumentSubmission.is_current.is_(True),
                )
            }
        return [dt for dt in candidates if dt.is_active or dt.id in submitted]
