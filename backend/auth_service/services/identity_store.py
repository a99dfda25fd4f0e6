"""用户存储 - users 表的读写"""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.database import db_errors
from auth_service.core.errors import IdentityConflictError
from auth_service.models.user import User

logger = logging.getLogger(__name__)


class UserPublic(BaseModel):
    """对外返回的用户信息（不含密码哈希）"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    created_via: str
    last_otp_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class IdentityStore:
    """用户存储，以规范化邮箱为自然键"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: int) -> Optional[User]:
        async with db_errors(self.db, "get user"):
            return await self.db.get(User, user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        async with db_errors(self.db, "find user"):
            result = await self.db.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        created_via: str,
        password_hash: Optional[str] = None,
        name: Optional[str] = None,
        last_otp_at: Optional[datetime] = None,
    ) -> User:
        """
        创建用户

        Raises:
            IdentityConflictError: 邮箱已存在（唯一约束冲突）
        """
        user = User(
            email=email,
            created_via=created_via,
            password_hash=password_hash,
            name=name,
            last_otp_at=last_otp_at,
        )
        async with db_errors(self.db, "create user"):
            self.db.add(user)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise IdentityConflictError(f"user {email} already exists") from e
            await self.db.refresh(user)
        return user

    async def get_or_create_otp_user(self, email: str, now: datetime) -> User:
        """
        获取或创建 OTP 用户

        已存在的用户只更新 last_otp_at，不会修改 created_via。
        并发创建时以先提交的一方为准。
        """
        user = await self.find_by_email(email)
        if user is None:
            try:
                return await self.create(email=email, created_via="otp", last_otp_at=now)
            except IdentityConflictError:
                logger.info(f"Concurrent user creation for {email}, reusing existing row")
                user = await self.find_by_email(email)
                if user is None:
                    raise

        async with db_errors(self.db, "update user last_otp_at"):
            user.last_otp_at = now
            await self.db.commit()
            await self.db.refresh(user)
        return user

    async def touch_last_otp(self, email: str, now: datetime) -> bool:
        """记录最近一次发送验证码的时间，用户不存在时返回 False"""
        async with db_errors(self.db, "touch user last_otp_at"):
            result = await self.db.execute(
                update(User)
                .where(User.email == email)
                .values(last_otp_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return result.rowcount > 0

    async def set_password(
        self,
        user: User,
        password_hash: str,
        name: Optional[str] = None,
    ) -> User:
        """为已有用户设置密码（created_via 保持不变）"""
        async with db_errors(self.db, "set user password"):
            user.password_hash = password_hash
            if name:
                user.name = name
            await self.db.commit()
            await self.db.refresh(user)
        return user
