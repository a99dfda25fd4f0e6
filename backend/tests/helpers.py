"""测试辅助：可控时钟、邮件替身、查询工具"""

import asyncio
import re
from datetime import timedelta

from sqlalchemy import select

from auth_service.core.clock import utcnow
from auth_service.models.otp import OTPRequest
from auth_service.services.email_service import EmailDeliveryError, EmailProvider

CODE_PATTERN = re.compile(r"\b(\d{6})\b")


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self):
        self.now = utcnow().replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingEmailProvider(EmailProvider):
    """把发出的邮件留在内存里，供测试读取验证码"""

    def __init__(self):
        self.outbox: list[dict] = []

    async def send(self, to_email: str, subject: str, body: str) -> None:
        self.outbox.append({"to": to_email, "subject": subject, "body": body})


class FailingEmailProvider(EmailProvider):
    def __init__(self):
        self.calls = 0

    async def send(self, to_email: str, subject: str, body: str) -> None:
        self.calls += 1
        raise EmailDeliveryError("mail server down")


class SlowEmailProvider(EmailProvider):
    def __init__(self, delay: float):
        self.delay = delay

    async def send(self, to_email: str, subject: str, body: str) -> None:
        await asyncio.sleep(self.delay)


def last_code(provider: RecordingEmailProvider) -> str:
    """从最后一封邮件中取出验证码"""
    match = CODE_PATTERN.search(provider.outbox[-1]["body"])
    assert match, "no OTP code in email body"
    return match.group(1)


async def fetch_otps(session, email: str) -> list[OTPRequest]:
    """读取某邮箱的全部 OTP 记录（绕过会话缓存）"""
    result = await session.execute(
        select(OTPRequest)
        .where(OTPRequest.email == email)
        .order_by(OTPRequest.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
