"""
Caller Identity

Authentication happens upstream (API gateway / auth service). The gateway
forwards the authenticated principal in two headers which the routes read
through these dependencies:

    X-User-Id:   numeric user id
    X-User-Role: "customer" or "admin"
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from food_ordering.core.exceptions import AccessDenied, AuthenticationRequired, ValidationError
from food_ordering.models import UserRole


@dataclass(frozen=True)
class Principal:
    """The caller as asserted by the gateway."""
    user_id: Optional[int]
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can_access_user(self, user_id: int) -> bool:
        """Admins see everyone; customers only themselves."""
        return self.is_admin or self.user_id == user_id


async def get_principal(
    x_user_id: Optional[int] = Header(None, alias="x-user-id"),
    x_user_role: str = Header("customer", alias="x-user-role"),
) -> Principal:
    try:
        role = UserRole(x_user_role.lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {x_user_role}")
    return Principal(user_id=x_user_id, role=role)


async def require_authenticated(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.user_id is None and not principal.is_admin:
        raise AuthenticationRequired()
    return principal


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise AccessDenied("Administrator role required")
    return principal
