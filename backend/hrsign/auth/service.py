import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hrsign.auth.models import User
from hrsign.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, role: str, company_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload = {"sub": user_id, "role": role, "company_id": company_id, "type": "access", "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def get_company_users(
    db: AsyncSession,
    company_id: uuid.UUID,
    user_ids: list[uuid.UUID],
) -> dict[uuid.UUID, User]:
    """Active users of ``company_id`` among ``user_ids``, keyed by id."""
    if not user_ids:
        return {}
    result = await db.execute(
        select(User).where(User.company_id == company_id, User.id.in_(user_ids), User.is_active.is_(True))
    )
    return {u.id: u for u in result.scalars().all()}
