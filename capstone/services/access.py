"""角色与能力检查。

角色是封闭集合，每个角色映射到一组能力；服务操作只声明所需能力，
不在各处散落 ``is_admin()`` 之类的布尔判断。
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from capstone.exceptions import Unauthorized
from capstone.models import Capability, Project, User, UserRole


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.STUDENT: frozenset({
        Capability.SUBMIT_DOCUMENT,
        Capability.VIEW_RELEASED_RESULT,
    }),
    UserRole.SUPERVISOR: frozenset({
        Capability.REVIEW_SUBMISSION,
        Capability.MARK_SUPERVISOR,
    }),
    UserRole.EVALUATION_COMMITTEE: frozenset({
        Capability.LOCK_SUBMISSION,
        Capability.EVALUATE_SUBMISSION,
        Capability.COMPUTE_RESULT,
        Capability.RELEASE_RESULT,
        Capability.VIEW_RESULT,
    }),
    UserRole.FYP_COMMITTEE: frozenset({
        Capability.MANAGE_DEADLINES,
        Capability.COMPUTE_RESULT,
        Capability.VIEW_RESULT,
    }),
    UserRole.ADMIN: frozenset({
        Capability.MANAGE_DEADLINES,
        Capability.MANAGE_DOCUMENT_TYPES,
        Capability.COMPUTE_RESULT,
        Capability.VIEW_RESULT,
    }),
}


def capabilities_for(role: UserRole) -> FrozenSet[Capability]:
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(user: Optional[User], capability: Capability) -> bool:
    if user is None:
        return False
    return capability in capabilities_for(user.role)


def require_capability(user: Optional[User], capability: Capability) -> None:
    """缺少能力时抛出 ``Unauthorized``。"""

    if not has_capability(user, capability):
        raise Unauthorized(
            f"Role is not allowed to {capability.value.replace('_', ' ')}",
            required_capability=capability.value,
            role=user.role.value if user else None,
        )


def require_assigned_supervisor(
    user: User, project: Project, capability: Capability = Capability.REVIEW_SUBMISSION
) -> None:
    require_capability(user, capability)
    if not project.is_supervisor(user.id):
        raise Unauthorized(
            "Only the project's assigned supervisor may perform this action",
            project_id=project.id,
            user_id=user.id,
        )


def require_group_member(user: User, project: Project, leader_only: bool = False) -> None:
    require_capability(user, Capability.SUBMIT_DOCUMENT)
    allowed = project.is_leader(user.id) if leader_only else project.has_member(user.id)
    if not allowed:
        raise Unauthorized(
            "Only the group leader may perform this action"
            if leader_only
            else "Only members of the project group may perform this action",
            project_id=project.id,
            user_id=user.id,
        )


def require_project_access(user: User, project: Project) -> None:
    """组员、指导教师以及可查看成绩的委员会角色可以查看项目的提交。"""

    if project.has_member(user.id) or project.is_supervisor(user.id):
        return
    if has_capability(user, Capability.VIEW_RESULT):
        return
    raise Unauthorized(
        "Not allowed to view this project's submissions",
        project_id=project.id,
        user_id=user.id,
    )
