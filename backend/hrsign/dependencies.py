import logging
import uuid
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrsign.auth.models import User
from hrsign.config import settings
from hrsign.database import get_db

logger = logging.getLogger(__name__)

security = HTTPBearer()


def _invalid_token() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def _decode_access_token(token: str) -> tuple[uuid.UUID, uuid.UUID]:
    """Return ``(user_id, company_id)`` from a valid access token."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("type") != "access":
            raise _invalid_token()
        return uuid.UUID(payload["sub"]), uuid.UUID(payload["company_id"])
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
        raise _invalid_token()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    user_id, company_id = _decode_access_token(credentials.credentials)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    # A token minted for another tenant must never resolve to this user.
    if user.company_id != company_id:
        logger.warning("Token company mismatch for user %s", user.id)
        raise _invalid_token()

    return user


def require_roles(*roles: str):
    async def role_checker(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker
