"""用户模型"""

from sqlalchemy import Column, DateTime, Integer, String

from auth_service.core.clock import utcnow
from auth_service.core.database import Base


class User(Base):
    """用户表"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # 认证相关
    password_hash = Column(String(255), nullable=True)  # 密码哈希（可选，OTP用户可能没有）
    created_via = Column(String(20), default="password", nullable=False)  # password / otp，创建后不再修改

    # 个人信息
    name = Column(String(255), nullable=True)

    # 时间戳
    last_otp_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
