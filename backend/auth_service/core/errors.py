"""错误类型 - 领域错误与基础设施错误"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """错误码（封闭枚举）"""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    EMAIL_DELIVERY_FAILED = "EMAIL_DELIVERY_FAILED"
    INVALID_OTP = "INVALID_OTP"
    OTP_BLOCKED = "OTP_BLOCKED"
    IDENTITY_CONFLICT = "IDENTITY_CONFLICT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    USER_EXISTS = "USER_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AuthServiceError(Exception):
    """服务错误基类

    message_key 对应 i18n 中 errors.* 的翻译键
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    message_key: str = "internal_error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message_key)

    def extra(self) -> dict[str, Any]:
        """附加到响应 error 字段的数据"""
        return {}


class RateLimitedError(AuthServiceError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    status_code = 429
    message_key = "rate_limited"

    def __init__(self, retry_after: Optional[int] = None, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def extra(self) -> dict[str, Any]:
        if self.retry_after and self.retry_after > 0:
            return {"retry_after": self.retry_after}
        return {}


class DeliveryFailedError(AuthServiceError):
    code = ErrorCode.EMAIL_DELIVERY_FAILED
    status_code = 503
    message_key = "delivery_failed"


class InvalidOrExpiredOTPError(AuthServiceError):
    """验证码无效或已过期（不区分"无记录"、"错误"与"过期"）"""

    code = ErrorCode.INVALID_OTP
    status_code = 400
    message_key = "invalid_otp"

    def __init__(self, attempts_remaining: Optional[int] = None):
        super().__init__()
        self.attempts_remaining = attempts_remaining

    def extra(self) -> dict[str, Any]:
        if self.attempts_remaining is None:
            return {}
        return {"attempts_remaining": self.attempts_remaining}


class OTPBlockedError(AuthServiceError):
    code = ErrorCode.OTP_BLOCKED
    status_code = 403
    message_key = "otp_blocked"


class IdentityConflictError(AuthServiceError):
    code = ErrorCode.IDENTITY_CONFLICT
    status_code = 409
    message_key = "identity_conflict"


class StoreUnavailableError(AuthServiceError):
    """数据库 / Redis 不可用"""

    code = ErrorCode.STORE_UNAVAILABLE
    status_code = 503
    message_key = "store_unavailable"


class InvalidCredentialsError(AuthServiceError):
    code = ErrorCode.INVALID_CREDENTIALS
    status_code = 401
    message_key = "invalid_credentials"


class UserExistsError(AuthServiceError):
    code = ErrorCode.USER_EXISTS
    status_code = 409
    message_key = "user_exists"


class UserNotFoundError(AuthServiceError):
    code = ErrorCode.USER_NOT_FOUND
    status_code = 404
    message_key = "user_not_found"


class UnauthorizedError(AuthServiceError):
    code = ErrorCode.UNAUTHORIZED
    status_code = 401
    message_key = "unauthorized"
