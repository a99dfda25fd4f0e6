"""OTP 记录存储 - otp_requests 表的读写"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.database import db_errors
from auth_service.models.otp import OTPRequest


class OTPStore:
    """OTP 记录存储

    每个写操作单独提交，调用方不依赖跨操作的事务。
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        email: str,
        code: str,
        expires_at: datetime,
        created_at: Optional[datetime] = None,
    ) -> OTPRequest:
        """保存新的 OTP 记录（attempts=0, used=False）"""
        otp = OTPRequest(
            email=email,
            code=code,
            expires_at=expires_at,
            attempts=0,
            used=False,
        )
        if created_at is not None:
            otp.created_at = created_at
        async with db_errors(self.db, "create otp"):
            self.db.add(otp)
            await self.db.commit()
            await self.db.refresh(otp)
        return otp

    async def find_active(
        self,
        email: str,
        now: datetime,
        code: Optional[str] = None,
    ) -> Optional[OTPRequest]:
        """
        查找最新的未使用、未过期的验证码

        Args:
            email: 规范化后的邮箱
            now: 当前时间
            code: 可选，同时按验证码过滤

        Returns:
            OTPRequest 或 None
        """
        stmt = (
            select(OTPRequest)
            .where(
                OTPRequest.email == email,
                OTPRequest.used.is_(False),
                OTPRequest.expires_at > now,
            )
            .order_by(OTPRequest.created_at.desc(), OTPRequest.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if code is not None:
            stmt = stmt.where(OTPRequest.code == code)

        async with db_errors(self.db, "find active otp"):
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

    async def increment_attempts(self, otp_id: int) -> int:
        """原子地增加尝试次数，返回增加后的值"""
        async with db_errors(self.db, "increment otp attempts"):
            await self.db.execute(
                update(OTPRequest)
                .where(OTPRequest.id == otp_id)
                .values(attempts=OTPRequest.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()

            result = await self.db.execute(
                select(OTPRequest.attempts).where(OTPRequest.id == otp_id)
            )
            return result.scalar_one()

    async def mark_used(self, otp_id: int) -> bool:
        """
        标记为已使用

        仅当记录仍未使用时才会更新；返回 False 表示已被其他请求抢先使用。
        """
        async with db_errors(self.db, "mark otp used"):
            result = await self.db.execute(
                update(OTPRequest)
                .where(OTPRequest.id == otp_id, OTPRequest.used.is_(False))
                .values(used=True)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return result.rowcount == 1

    async def delete(self, otp_id: int) -> None:
        """删除记录"""
        async with db_errors(self.db, "delete otp"):
            await self.db.execute(
                delete(OTPRequest)
                .where(OTPRequest.id == otp_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()

    async def delete_expired_for(self, email: str, now: datetime) -> int:
        """清理该邮箱下已过期的记录，返回删除数量"""
        async with db_errors(self.db, "cleanup expired otp"):
            result = await self.db.execute(
                delete(OTPRequest)
                .where(OTPRequest.email == email, OTPRequest.expires_at < now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        return result.rowcount
