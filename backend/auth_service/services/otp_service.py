"""OTP 验证码服务 - 请求、验证、状态查询"""

import asyncio
import hmac
import logging
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from auth_service.core.clock import Clock, utcnow
from auth_service.core.config import OTPPolicy
from auth_service.core.errors import (
    DeliveryFailedError,
    InvalidOrExpiredOTPError,
    OTPBlockedError,
    RateLimitedError,
    StoreUnavailableError,
)
from auth_service.core.security import TokenIssuer, generate_otp_code
from auth_service.services.counter_store import CounterStore
from auth_service.services.email_service import EmailDeliveryError, EmailProvider, send_otp_email
from auth_service.services.identity_store import IdentityStore, UserPublic
from auth_service.services.otp_store import OTPStore

logger = logging.getLogger(__name__)


class OTPRequestResult(BaseModel):
    """OTP 发送结果（不包含验证码本身）"""

    email: str
    expires_in: int


class OTPVerifyResult(BaseModel):
    """OTP 验证结果"""

    user: UserPublic
    token: str
    expires_at: datetime


class OTPStatus(BaseModel):
    """OTP 状态"""

    has_active_otp: bool
    expires_in_seconds: Optional[int] = None
    attempts_used: Optional[int] = None
    can_request_new: bool
    next_request_available_in: Optional[int] = None


def normalize_email(email: str) -> str:
    """邮箱规范化：去空格、小写"""
    return email.strip().lower()


class OTPService:
    """
    OTP 登录流程

    单条 OTP 记录的状态：
        ISSUED   未使用、未过期、尝试次数未用尽
        CONSUMED 验证成功（used=True），终态
        EXPIRED  当前时间 >= expires_at，查询时判断，终态
        BLOCKED  attempts >= max_attempts，终态
    """

    RATE_LIMIT_KEY_PREFIX = "otp_rate_limit"

    def __init__(
        self,
        otp_store: OTPStore,
        identity_store: IdentityStore,
        counter_store: CounterStore,
        email_provider: EmailProvider,
        token_issuer: TokenIssuer,
        policy: OTPPolicy = OTPPolicy(),
        delivery_timeout: float = 15.0,
        clock: Clock = utcnow,
    ):
        self.otp_store = otp_store
        self.identity_store = identity_store
        self.counter_store = counter_store
        self.email_provider = email_provider
        self.token_issuer = token_issuer
        self.policy = policy
        self.delivery_timeout = delivery_timeout
        self.clock = clock

    def _rate_limit_key(self, email: str) -> str:
        return f"{self.RATE_LIMIT_KEY_PREFIX}:{email}"

    async def request_otp(self, email: str) -> OTPRequestResult:
        """
        发送 OTP 到指定邮箱

        Args:
            email: 邮箱（未规范化也可以）

        Returns:
            OTPRequestResult: 邮箱和有效期（秒）

        Raises:
            RateLimitedError: 窗口内请求次数已达上限
            DeliveryFailedError: 邮件发送失败（记录已删除）
        """
        email = normalize_email(email)
        rate_limit_key = self._rate_limit_key(email)

        # 先检查速率限制，超限时不写库、不生成验证码
        # 检查与计数之间不加锁，并发请求可能短暂超出上限
        current_count = await self.counter_store.get(rate_limit_key)
        if current_count >= self.policy.max_requests_per_window:
            retry_after = await self.counter_store.ttl(rate_limit_key)
            logger.info(f"OTP request rate limited for {email}")
            raise RateLimitedError(retry_after=retry_after)

        code = generate_otp_code(self.policy.code_length)
        now = self.clock()
        otp = await self.otp_store.create(
            email=email,
            code=code,
            expires_at=now + timedelta(seconds=self.policy.ttl_seconds),
            created_at=now,
        )

        # 发送失败（包括超时）时删除记录：未送达的验证码不能是有效的
        try:
            await asyncio.wait_for(
                send_otp_email(
                    self.email_provider,
                    email,
                    code,
                    expires_minutes=self.policy.ttl_seconds // 60,
                ),
                timeout=self.delivery_timeout,
            )
        except (EmailDeliveryError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to send OTP email to {email}: {e!r}")
            await self._discard_undelivered(otp.id)
            raise DeliveryFailedError() from e
        except Exception as e:
            logger.exception(f"Unexpected error sending OTP email to {email}")
            await self._discard_undelivered(otp.id)
            raise DeliveryFailedError() from e

        await self.counter_store.increment(rate_limit_key, self.policy.window_seconds)
        await self._touch_identity(email, now)

        logger.info(f"OTP issued for {email}")
        return OTPRequestResult(email=email, expires_in=self.policy.ttl_seconds)

    async def verify_otp(self, email: str, code: str) -> OTPVerifyResult:
        """
        验证 OTP 并登录（用户不存在时自动创建）

        Args:
            email: 邮箱
            code: 用户输入的验证码

        Returns:
            OTPVerifyResult: 用户信息和 JWT token

        Raises:
            InvalidOrExpiredOTPError: 无记录、验证码错误或已过期
            OTPBlockedError: 尝试次数已用尽
        """
        email = normalize_email(email)
        now = self.clock()

        # 只按邮箱查找，验证码在应用层比较，错误的验证码同样计入尝试次数
        otp = await self.otp_store.find_active(email, now)
        if otp is None:
            raise InvalidOrExpiredOTPError()

        if otp.is_blocked(self.policy.max_attempts):
            raise OTPBlockedError()

        # 先提交尝试次数，再根据比较结果决定响应
        attempts = await self.otp_store.increment_attempts(otp.id)

        if not hmac.compare_digest(otp.code.encode(), code.encode()):
            remaining = self.policy.max_attempts - attempts
            logger.info(f"Invalid OTP attempt for {email}, {max(remaining, 0)} left")
            if remaining <= 0:
                raise OTPBlockedError()
            raise InvalidOrExpiredOTPError(attempts_remaining=remaining)

        # 条件更新保证同一条记录只能成功验证一次
        if not await self.otp_store.mark_used(otp.id):
            logger.info(f"OTP {otp.id} for {email} was consumed concurrently")
            raise InvalidOrExpiredOTPError()

        user = await self.identity_store.get_or_create_otp_user(email, now)
        issued = self.token_issuer.issue(user.id, user.email)

        await self._cleanup_expired(email, now)

        logger.info(f"User {user.id} logged in via OTP")
        return OTPVerifyResult(
            user=UserPublic.model_validate(user),
            token=issued.token,
            expires_at=issued.expires_at,
        )

    async def get_otp_status(self, email: str) -> OTPStatus:
        """查询当前是否有有效验证码以及能否重新请求（只读）"""
        email = normalize_email(email)
        now = self.clock()

        otp = await self.otp_store.find_active(email, now)
        counter = await self.counter_store.peek(self._rate_limit_key(email))

        status = OTPStatus(
            has_active_otp=otp is not None,
            can_request_new=counter.count < self.policy.max_requests_per_window,
        )

        if otp is not None:
            status.expires_in_seconds = max(0, int((otp.expires_at - now).total_seconds()))
            status.attempts_used = otp.attempts

        if not status.can_request_new and counter.ttl_remaining and counter.ttl_remaining > 0:
            status.next_request_available_in = counter.ttl_remaining

        return status

    async def _discard_undelivered(self, otp_id: int) -> None:
        """补偿删除；失败时记录到期后自然失效"""
        try:
            await self.otp_store.delete(otp_id)
        except StoreUnavailableError:
            logger.warning(f"Could not delete undelivered OTP {otp_id}, it will expire on its own")

    async def _touch_identity(self, email: str, now: datetime) -> None:
        try:
            await self.identity_store.touch_last_otp(email, now)
        except StoreUnavailableError:
            logger.warning(f"Could not update last_otp_at for {email}")

    async def _cleanup_expired(self, email: str, now: datetime) -> None:
        try:
            deleted = await self.otp_store.delete_expired_for(email, now)
        except StoreUnavailableError:
            logger.warning(f"Expired OTP cleanup failed for {email}")
            return
        if deleted:
            logger.debug(f"Removed {deleted} expired OTP records for {email}")
