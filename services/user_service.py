from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.user import User
from schemas.quiz import UserRecord
from db.guard import storage_guard
from core.logger import logger

class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    @storage_guard(read_only=True)
    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        result = await self.db.execute(select(User).filter(User.id == user_id))
        user = result.scalar_one_or_none()
        return UserRecord.from_row(user) if user else None

    @storage_guard()
    async def ensure_user_profile(self, user_id: str, email: str, role: str = "student") -> tuple[UserRecord, bool]:
        """Create the profile if absent, update the email if it changed."""
        result = await self.db.execute(select(User).filter(User.id == user_id))
        user = result.scalar_one_or_none()
        is_new = False

        if not user:
            user = User(id=user_id, email=email, role=role)
            self.db.add(user)
            await self.db.commit()
            await self.db.refresh(user)
            is_new = True
            logger.info("New user created", user_id=user_id, role=role)
        elif user.email != email:
            user.email = email
            await self.db.commit()
            logger.info("User email updated", user_id=user_id)

        return UserRecord.from_row(user), is_new
