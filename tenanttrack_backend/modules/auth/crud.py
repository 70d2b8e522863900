"""CRUD operations for users."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    first_name: str,
    last_name: str | None = None,
) -> User:
    user = User(
        email=email.lower(), first_name=first_name, last_name=last_name, is_active=True
    )
    db.add(user)
    await db.flush()
    return user
