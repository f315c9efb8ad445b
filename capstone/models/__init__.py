"""SQLAlchemy 模型汇总导出。"""

from capstone.models.audit import AuditLog, Notification, SystemSetting
from capstone.models.deadline import DeadlineBatch, ProjectDeadline
from capstone.models.document_type import DocumentType
from capstone.models.enums import (
    AuditAction,
    Capability,
    SubmissionStatus,
    UserRole,
)
from capstone.models.project import Project, ProjectMember
from capstone.models.result import FinalResult
from capstone.models.submission import DocumentSubmission, EvaluationMarks, SupervisorMarks
from capstone.models.user import User

__all__ = [
    "AuditAction",
    "AuditLog",
    "Capability",
    "DeadlineBatch",
    "DocumentSubmission",
    "DocumentType",
    "EvaluationMarks",
    "FinalResult",
    "Notification",
    "Project",
    "ProjectDeadline",
    "ProjectMember",
    "SubmissionStatus",
    "SupervisorMarks",
    "SystemSetting",
    "User",
    "UserRole",
]
