"""
Security guards for capability-based access control.

Maps token roles to capabilities and turns a successful check into an
AuthContext that carries the tenant and actor explicitly.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List
from fastapi import Depends
from windpark_backend.app.models.enums import UserRole
from windpark_backend.app.core.dependencies import get_current_user
from windpark_backend.app.core.exceptions import InsufficientPermissionsError


READ_CAPABILITIES = frozenset({
    "energy:read",
    "invoices:read",
})

MANAGER_CAPABILITIES = READ_CAPABILITIES | frozenset({
    "energy:create",
    "energy:update",
    "energy:settlements:finalize",
    "invoices:create",
    "invoices:update",
})

ADMIN_CAPABILITIES = MANAGER_CAPABILITIES | frozenset({
    "energy:delete",
    "invoices:delete",
})

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[str]] = {
    UserRole.SUPERADMIN: ADMIN_CAPABILITIES,
    UserRole.ADMIN: ADMIN_CAPABILITIES,
    UserRole.MANAGER: MANAGER_CAPABILITIES,
    UserRole.VIEWER: READ_CAPABILITIES,
}

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


@dataclass(frozen=True)
class AuthContext:
    """Result of a successful authorization check."""
    tenant_id: int
    actor_id: int
    role: UserRole
    username: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def _parse_role(current_user: dict) -> UserRole:
    user_role_str = current_user.get("role")

    if not user_role_str:
        raise InsufficientPermissionsError("Role information missing from token")

    try:
        return UserRole(user_role_str)
    except ValueError:
        raise InsufficientPermissionsError("Invalid role in token")


def authorize(current_user: dict, capability: str) -> AuthContext:
    """
    Check a decoded token against a capability.

    Args:
        current_user: Decoded JWT payload
        capability: Capability name, e.g. "energy:settlements:finalize"

    Returns:
        AuthContext for the caller's tenant

    Raises:
        InsufficientPermissionsError: If the role lacks the capability
    """
    role = _parse_role(current_user)

    if capability not in ROLE_CAPABILITIES.get(role, frozenset()):
        raise InsufficientPermissionsError(
            message=f"Access denied. Missing capability: {capability}",
            details={"capability": capability, "role": role.value}
        )

    return AuthContext(
        tenant_id=int(current_user["tenant_id"]),
        actor_id=int(current_user["user_id"]),
        role=role,
        username=current_user.get("sub", ""),
    )


def require_permission(capability: str):
    """
    Dependency factory for capability-based access control.

    Usage:
        @router.post("/energy/settlements/{settlement_id}/create-invoices")
        async def create_invoices(
            auth: AuthContext = Depends(require_permission("energy:settlements:finalize"))
        ):
            ...

    Args:
        capability: Capability the endpoint requires

    Returns:
        FastAPI dependency function that returns an AuthContext
    """
    async def capability_checker(current_user: dict = Depends(get_current_user)) -> AuthContext:
        return authorize(current_user, capability)

    return capability_checker


def require_role(auth: AuthContext, allowed_roles: List[UserRole], action: str) -> None:
    """
    Additional role check for destructive actions.

    Raises:
        InsufficientPermissionsError: If the caller's role is not allowed
    """
    if auth.role not in allowed_roles:
        raise InsufficientPermissionsError(
            message=f"Only administrators may {action}",
            details={"required": [r.value for r in allowed_roles], "role": auth.role.value}
        )
