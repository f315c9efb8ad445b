"""通知投递。

核心流程只负责在提交之后发出结构化事件；投递是尽力而为的，任何异常都
被记录后吞掉，绝不回滚或阻断触发它的状态变更。
"""

from __future__ import annotations

import logging
from typing import List, Protocol

from pydantic import BaseModel
from sqlalchemy.orm import Session

from capstone.models import Notification

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def deliver(self, db: Session, event: BaseModel) -> None:
        ...


class DatabaseNotificationSink:
    """为每个接收人写一条站内通知。"""

    def deliver(self, db: Session, event: BaseModel) -> None:
        payload = event.model_dump(mode="json")
        kind = payload.pop("kind")
        recipients = payload.pop("recipients", [])
        for recipient_id in dict.fromkeys(recipients):
            db.add(Notification(recipient_id=recipient_id, kind=kind, payload_json=payload))
        db.commit()


class InMemoryNotificationSink:
    """测试用，收集事件。"""

    def __init__(self) -> None:
        self.events: List[BaseModel] = []

    def deliver(self, db: Session, event: BaseModel) -> None:
        self.events.append(event)


class Notifier:
    def __init__(self, sink: NotificationSink | None = None) -> None:
        self.sink: NotificationSink = sink or DatabaseNotificationSink()

    def publish(self, db: Session, event: BaseModel) -> None:
        kind = getattr(event, "kind", type(event).__name__)
        try:
            self.sink.deliver(db, event)
        except Exception:  # 投递失败不影响主流程
            db.rollback()
            logger.warning("Notification delivery failed: kind=%s", kind, exc_info=True)
            return
        logger.info("Notification published: kind=%s", kind)
