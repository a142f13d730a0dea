"""Role checks for operator-only endpoints.

Regular users carry no application role. Operators carry ``admin`` in the
token's ``app_metadata.roles`` and may manage the plan catalog.
"""
from enum import Enum
from functools import wraps
from typing import Callable

import structlog
from fastapi import HTTPException, status

from ledger.auth.jwt import roles_from_claims

logger = structlog.get_logger(__name__)


class Role(str, Enum):
    """Application roles."""

    ADMIN = "admin"


def require_roles(*allowed: Role):
    """
    Restrict an endpoint to callers holding at least one of ``allowed``.

    The wrapped endpoint must take ``current_user`` from ``get_current_user``;
    the check runs after FastAPI has resolved it::

        @router.post("/admin/plans")
        @require_roles(Role.ADMIN)
        async def create_plan(..., current_user: dict = Depends(get_current_user)):
            ...

    Raises:
        HTTPException: 401 without a resolved user, 403 without a matching role
    """
    allowed_values = {role.value for role in allowed}

    def decorator(endpoint: Callable) -> Callable:
        @wraps(endpoint)
        async def guarded(*args, **kwargs):
            claims = kwargs.get("current_user")
            if not claims:
                logger.error("rbac_missing_current_user", endpoint=endpoint.__name__)
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

            held = roles_from_claims(claims)
            if allowed_values.isdisjoint(held):
                logger.warning(
                    "rbac_permission_denied",
                    user_id=claims.get("sub"),
                    held_roles=held,
                    endpoint=endpoint.__name__,
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Requires role: {', '.join(sorted(allowed_values))}",
                )

            return await endpoint(*args, **kwargs)

        return guarded

    return decorator
