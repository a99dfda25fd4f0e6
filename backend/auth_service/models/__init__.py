"""数据模型模块"""

from auth_service.models.user import User
from auth_service.models.otp import OTPRequest

__all__ = [
    "User",
    "OTPRequest",
]
