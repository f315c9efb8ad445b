"""业务枚举定义 - 角色、能力、提交状态等。"""

import enum


class UserRole(str, enum.Enum):
    """用户角色。"""
    STUDENT = "student"
    SUPERVISOR = "supervisor"
    EVALUATION_COMMITTEE = "evaluation_committee"  # 评审委员会：锁定、打分、发布成绩
    FYP_COMMITTEE = "fyp_committee"                # 管理委员会：截止日期批次
    ADMIN = "admin"


class Capability(str, enum.Enum):
    """操作所需的能力。每个服务操作声明自己需要的能力，而不是直接判断角色。"""
    SUBMIT_DOCUMENT = "submit_document"
    REVIEW_SUBMISSION = "review_submission"
    MARK_SUPERVISOR = "mark_supervisor"
    LOCK_SUBMISSION = "lock_submission"
    EVALUATE_SUBMISSION = "evaluate_submission"
    COMPUTE_RESULT = "compute_result"
    RELEASE_RESULT = "release_result"
    VIEW_RESULT = "view_result"
    VIEW_RELEASED_RESULT = "view_released_result"
    MANAGE_DEADLINES = "manage_deadlines"
    MANAGE_DOCUMENT_TYPES = "manage_document_types"


class SubmissionStatus(str, enum.Enum):
    """文档提交状态。

    DRAFT -> PENDING_REVIEW -> (APPROVED | REVISION_REQUESTED) -> LOCKED。
    "已评审完成" 不是存储状态，而是由评分记录推导出的查询状态。
    """
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"
    LOCKED = "locked"


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    MARKS = "marks"
    COMPUTE = "compute"
    RELEASE = "release"
