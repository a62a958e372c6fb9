"""Role checks at billing mutation boundaries.

Roles come from the identity provider; the billing core only asks two
questions of them:
- is the caller privileged (instructor, admin, owner)?
- is the caller an administrator (admin, owner)?
"""
from enum import Enum
from functools import wraps
from typing import Callable
from uuid import UUID

import structlog

from aeroledger.exceptions import AuthorizationError

logger = structlog.get_logger(__name__)


class Role(str, Enum):
    """Flight school roles."""

    MEMBER = "member"
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"
    OWNER = "owner"


PRIVILEGED_ROLES = frozenset({Role.INSTRUCTOR, Role.ADMIN, Role.OWNER})
ADMIN_ROLES = frozenset({Role.ADMIN, Role.OWNER})


def _role(value: str | None) -> Role | None:
    try:
        return Role(value)
    except ValueError:
        logger.warning("invalid_role_check", role=value)
        return None


def is_privileged(current_user: dict | None) -> bool:
    """Instructor, admin or owner."""
    return bool(current_user) and _role(current_user.get("role")) in PRIVILEGED_ROLES


def is_admin(current_user: dict | None) -> bool:
    """Admin or owner."""
    return bool(current_user) and _role(current_user.get("role")) in ADMIN_ROLES


def ensure_owner_or_privileged(current_user: dict, user_id: UUID) -> None:
    """
    Allow privileged callers, or the member acting on their own records.

    Raises:
        AuthorizationError: Otherwise
    """
    if is_privileged(current_user) or str(current_user.get("sub")) == str(user_id):
        return
    logger.warning(
        "rbac_ownership_denied",
        user_id=current_user.get("sub"),
        user_role=current_user.get("role"),
        target_user_id=str(user_id),
    )
    raise AuthorizationError("You do not have access to this member's billing records")


def require_roles(*required_roles: Role):
    """
    Decorator to require specific roles for endpoint access.

    Usage:
        @require_roles(Role.ADMIN, Role.OWNER)
        async def reverse_payment(..., current_user: dict = Depends(get_current_user)):
            ...

    Raises:
        AuthorizationError: If the caller's role is not one of ``required_roles``
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            current_user = kwargs.get("current_user") or {}
            user_role = _role(current_user.get("role"))

            if user_role not in required_roles:
                logger.warning(
                    "rbac_permission_denied",
                    user_id=current_user.get("sub"),
                    user_role=current_user.get("role"),
                    required_roles=[r.value for r in required_roles],
                    endpoint=func.__name__,
                )
                raise AuthorizationError(
                    f"Insufficient permissions. Required roles: {', '.join(r.value for r in required_roles)}"
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator
