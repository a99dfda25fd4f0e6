"""OTP (One-Time Password) 相关模型"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from auth_service.core.clock import utcnow
from auth_service.core.database import Base


class OTPRequest(Base):
    """OTP 验证码请求记录 - 每次发送一行"""

    __tablename__ = "otp_requests"
    __table_args__ = (
        Index("ix_otp_requests_code_email", "code", "email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), index=True)  # 已规范化（小写、去空格）
    code: Mapped[str] = mapped_column(String(10))  # 验证码（6位数字）
    attempts: Mapped[int] = mapped_column(Integer, default=0)  # 验证尝试次数
    used: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)  # 由 OTPStore.create 按注入的时钟写入
    expires_at: Mapped[datetime] = mapped_column(DateTime)  # 创建后不可修改

    def is_blocked(self, max_attempts: int) -> bool:
        """尝试次数是否已用尽"""
        return self.attempts >= max_attempts
