from __future__ import annotations

import logging

from fastapi import Depends, Header, HTTPException, status

from orgchart.core.auth import extract_roles, validate_token
from orgchart.core.config import settings
from orgchart.models.auth import ADMIN_ROLE, AccessLevel, UserInfo

logger = logging.getLogger(__name__)

DEVELOPMENT_USER = UserInfo(
    id="development-user",
    name="Development User",
    email="developer@localhost",
    roles=[ADMIN_ROLE],
)


async def get_current_user(authorization: str | None = Header(None)) -> UserInfo:
    if not settings.AUTH_ENABLED:
        return DEVELOPMENT_USER

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization.split(" ", 1)[1]

    try:
        payload = await validate_token(
            token,
            settings.AZURE_AD_TENANT_ID,
            settings.AZURE_AD_CLIENT_ID,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Token validation error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    return UserInfo(
        id=payload.get("oid"),
        name=payload.get("name"),
        email=payload.get("preferred_username"),
        roles=extract_roles(payload),
    )


def require_access(level: AccessLevel):
    async def _check_access(user: UserInfo = Depends(get_current_user)) -> UserInfo:  # noqa: B008
        if not user.has_access(level):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: {ADMIN_ROLE}",
            )
        return user

    return _check_access


require_read = require_access(AccessLevel.READ)
require_write = require_access(AccessLevel.WRITE)
