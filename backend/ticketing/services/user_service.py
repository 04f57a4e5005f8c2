"""
User administration: listing, role changes and the default admin seed.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from fastapi import HTTPException, status

from ticketing.models.user import User
from ticketing.core.config import get_settings
from ticketing.core.security import hash_password
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found",
        )
    return user


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.id.asc()))
    return list(result.scalars().all())


async def update_role(db: AsyncSession, user_id: int, role: str, acting_user_id: int) -> User:
    user = await get_user(db, user_id)
    previous = user.role
    user.role = role
    await db.commit()
    await db.refresh(user)

    logger.info(
        "user_role_updated",
        user_id=user.id,
        previous_role=previous,
        role=role,
        updated_by=acting_user_id,
    )
    return user


async def ensure_default_admin(session_factory: async_sessionmaker[AsyncSession]) -> Optional[User]:
    """
    Create the admin account from ADMIN_DEFAULT_EMAIL / ADMIN_DEFAULT_PASSWORD
    if both are set and no user with that email exists yet.
    """
    settings = get_settings()
    email = settings.ADMIN_DEFAULT_EMAIL
    password = settings.ADMIN_DEFAULT_PASSWORD
    if not email or not password:
        return None

    async with session_factory() as db:
        result = await db.execute(select(User).where(User.email == email.lower()))
        if result.scalar_one_or_none():
            return None

        admin = User(
            name="Admin",
            email=email.lower(),
            hashed_password=hash_password(password),
            role="admin",
        )
        db.add(admin)
        await db.commit()
        await db.refresh(admin)

    logger.info("default_admin_seeded", user_id=admin.id, email=admin.email)
    return admin
