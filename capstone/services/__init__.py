"""业务服务层。

服务对象之间通过构造参数组装，``build_services`` 给出默认的组装方式。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from capstone.config import Settings, get_settings
from capstone.services.audit import AuditTrail
from capstone.services.catalog import DocumentTypeCatalog
from capstone.services.deadline_jobs import DeadlineJobs
from capstone.services.deadlines import DeadlineScheduler
from capstone.services.marking import MarkingEngine
from capstone.services.notifications import NotificationSink, Notifier
from capstone.services.results import ResultAggregator
from capstone.services.settings import SettingsService
from capstone.services.submissions import SubmissionLifecycle


@dataclass
class Services:
    settings: SettingsService
    audit: AuditTrail
    notifier: Notifier
    catalog: DocumentTypeCatalog
    scheduler: DeadlineScheduler
    lifecycle: SubmissionLifecycle
    marking: MarkingEngine
    results: ResultAggregator
    jobs: DeadlineJobs


def build_services(
    settings: Optional[Settings] = None, sink: Optional[NotificationSink] = None
) -> Services:
    settings_service = SettingsService(settings or get_settings())
    audit = AuditTrail()
    notifier = Notifier(sink)
    catalog = DocumentTypeCatalog(audit)
    scheduler = DeadlineScheduler(settings_service, audit)
    lifecycle = SubmissionLifecycle(settings_service, catalog, scheduler, audit, notifier)
    return Services(
        settings=settings_service,
        audit=audit,
        notifier=notifier,
        catalog=catalog,
        scheduler=scheduler,
        lifecycle=lifecycle,
        marking=MarkingEngine(settings_service, audit),
        results=ResultAggregator(settings_service, catalog, audit, notifier),
        jobs=DeadlineJobs(scheduler, lifecycle, notifier),
    )
