"""领域异常定义。

所有业务异常都继承 ``CapstoneError``，携带机器可读的 ``code`` 与
``details``，由 API 层统一转换为 JSON 响应。
"""

from typing import Any, Dict, Optional


class CapstoneError(Exception):
    """业务异常基类。"""

    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(CapstoneError):
    """输入不合法：分数越界、权重错误、缺少必要字段等。"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, **details: Any) -> None:
        if field:
            details["field"] = field
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class Unauthorized(CapstoneError):
    """角色不符或不是被指派的操作人。"""

    status_code = 403

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, code="UNAUTHORIZED", details=details)


class NotFound(CapstoneError):
    """实体不存在（包括尚未发布的成绩）。"""

    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"{entity_type} {entity_id} not found",
            code="NOT_FOUND",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class InvalidState(CapstoneError):
    """当前状态不允许该操作。"""

    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        required_status: Optional[str] = None,
        **details: Any,
    ) -> None:
        if current_status is not None:
            details["current_status"] = current_status
        if required_status is not None:
            details["required_status"] = required_status
        super().__init__(message, code="INVALID_STATE", details=details)


class SchedulingConflict(CapstoneError):
    """截止日期顺序或间隔不满足要求。"""

    status_code = 409

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, code="SCHEDULING_CONFLICT", details=details)
