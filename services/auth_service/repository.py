from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import User


class UserRepository:

    @staticmethod
    async def create(db: AsyncSession, user: User) -> User:
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalars().first()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    @staticmethod
    async def get_by_username_or_email(db: AsyncSession, username: str, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(or_(User.username == username, User.email == email)))
        return result.scalars().first()

    @staticmethod
    async def count(db: AsyncSession) -> int:
        result = await db.execute(select(func.count(User.id)))
        return result.scalar_one()

    @staticmethod
    async def touch_last_login(db: AsyncSession, user_id: int) -> None:
        await db.execute(update(User).where(User.id == user_id).values(last_login=func.now()))
        await db.commit()
