"""审计记录。

审计在核心事务提交之后单独写入，写入失败只记录日志，不影响已经提交的状态变更。
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capstone.models import AuditAction, AuditLog, User

logger = logging.getLogger(__name__)


class AuditTrail:
    def record(
        self,
        db: Session,
        actor: Optional[User],
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[int],
        details: BaseModel,
    ) -> Optional[AuditLog]:
        entry = AuditLog(
            actor_id=actor.id if actor else None,
            action=action.value,
            entity_type=entity_type,
            entity_id=entity_id,
            details_json=details.model_dump(mode="json"),
        )
        try:
            db.add(entry)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning(
                "Failed to write audit log: action=%s entity=%s/%s",
                action.value, entity_type, entity_id,
                exc_info=True,
            )
            return None
        return entry
