"""邮件发送服务"""

import asyncio
import logging
import smtplib
import time
from email.mime.text import MIMEText
from typing import Optional

import httpx

from auth_service.core.config import Settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """邮件未能送达"""


class EmailProvider:
    """邮件发送接口"""

    async def send(self, to_email: str, subject: str, body: str) -> None:
        """
        发送纯文本邮件

        Raises:
            EmailDeliveryError: 发送失败
        """
        raise NotImplementedError


class ConsoleEmailProvider(EmailProvider):
    """开发环境使用：只把邮件内容写到日志"""

    async def send(self, to_email: str, subject: str, body: str) -> None:
        logger.info(
            "\n📧 Console email provider - email would be sent:\n"
            f"To: {to_email}\n"
            f"Subject: {subject}\n"
            f"Body: {body}\n"
            "────────────────────────────────────────"
        )


class SMTPEmailProvider(EmailProvider):
    """
    SMTP 邮件发送

    send_budget 为整次发送（含重试）的时间上限：超过后不再重试，
    也不会再开始投递，调用方超时后邮件不会被晚发出去。
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_username: Optional[str],
        smtp_password: Optional[str],
        from_email: str,
        max_retries: int = 2,
        retry_delay: float = 1,
        timeout: float = 4,
        send_budget: Optional[float] = None,
    ):
        if not smtp_username or not smtp_password:
            raise ValueError("SMTP username and password are required for the smtp email backend")

        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.send_budget = send_budget

    def _backoff(self, attempt: int) -> float:
        return self.retry_delay * (2 ** (attempt - 1))  # 指数退避: 1, 2, 4 秒

    @property
    def worst_case_seconds(self) -> float:
        """所有尝试都等到连接超时时的总耗时"""
        backoff = sum(self._backoff(attempt) for attempt in range(1, self.max_retries))
        return self.max_retries * self.timeout + backoff

    async def send(self, to_email: str, subject: str, body: str) -> None:
        # 在线程池中运行同步代码，避免阻塞事件循环
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, to_email, subject, body)

    def _connect(self, timeout: float) -> smtplib.SMTP:
        # 587 端口使用 STARTTLS
        if self.smtp_port == 587:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=timeout)
            server.ehlo()
            server.starttls()
            server.ehlo()
            return server
        # 465 端口使用 SSL
        if self.smtp_port == 465:
            return smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=timeout)
        return smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=timeout)

    def _send_sync(self, to_email: str, subject: str, body: str) -> None:
        """同步发送邮件（在线程池中运行）- 带重试机制"""
        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self.from_email
        message["To"] = to_email
        message["Subject"] = subject

        deadline = time.monotonic() + self.send_budget if self.send_budget is not None else None

        def remaining() -> float:
            return deadline - time.monotonic() if deadline is not None else self.timeout

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            if attempt > 0:
                wait_time = self._backoff(attempt)
                if remaining() <= wait_time:
                    logger.warning(f"SMTP send budget exhausted after {attempt} attempts")
                    break
                logger.info(f"Retry attempt {attempt + 1}/{self.max_retries} in {wait_time} seconds")
                time.sleep(wait_time)

            if remaining() <= 0:
                logger.warning(f"SMTP send budget exhausted after {attempt} attempts")
                break

            server = None
            try:
                server = self._connect(min(self.timeout, remaining()))
                server.login(self.smtp_username, self.smtp_password)
                if remaining() <= 0:
                    raise EmailDeliveryError(f"SMTP send budget exhausted before delivery to {to_email}")
                server.send_message(message)
                logger.info(f"Email sent successfully to {to_email}")
                return
            except smtplib.SMTPAuthenticationError as e:
                # 认证失败重试没有意义
                logger.error("SMTP authentication failed. Check email credentials.")
                raise EmailDeliveryError("SMTP authentication failed") from e
            except (smtplib.SMTPException, OSError) as e:
                logger.warning(f"SMTP error (attempt {attempt + 1}/{self.max_retries}): {e}")
                last_error = e
            finally:
                if server:
                    try:
                        server.quit()
                    except (smtplib.SMTPException, OSError):
                        pass  # 忽略关闭连接时的错误

        raise EmailDeliveryError(f"SMTP delivery to {to_email} failed after {self.max_retries} attempts") from last_error


class MailgunEmailProvider(EmailProvider):
    """Mailgun HTTP API 邮件发送"""

    def __init__(
        self,
        api_key: Optional[str],
        domain: Optional[str],
        from_email: str,
        base_url: str = "https://api.mailgun.net/v3",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key or not domain:
            raise ValueError("Mailgun API key and domain are required for the mailgun email backend")

        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def send(self, to_email: str, subject: str, body: str) -> None:
        url = f"{self.base_url}/{self.domain}/messages"
        data = {
            "from": self.from_email,
            "to": [to_email],
            "subject": subject,
            "text": body,
        }

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    url,
                    auth=("api", self.api_key),
                    data=data,
                    timeout=self.timeout,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Mailgun rejected email to {to_email}: {e.response.status_code} {e.response.text}")
            raise EmailDeliveryError(f"Mailgun returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to reach Mailgun for {to_email}: {e}")
            raise EmailDeliveryError("Mailgun request failed") from e

        logger.info(f"Email sent successfully to {to_email}")


def create_email_provider(settings: Settings) -> EmailProvider:
    """根据配置选择邮件发送实现"""
    backend = settings.email_backend.lower()

    if backend == "console":
        if settings.is_production:
            logger.warning("Console email backend is active in production, OTP codes will only be logged")
        return ConsoleEmailProvider()

    if backend == "smtp":
        provider = SMTPEmailProvider(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            from_email=settings.email_from,
            max_retries=settings.smtp_max_retries,
            retry_delay=settings.smtp_retry_delay_seconds,
            timeout=settings.smtp_timeout_seconds,
            # 留出一次连接超时的余量，线程里的投递必须在调用方放弃之前结束
            send_budget=settings.email_send_timeout_seconds - settings.smtp_timeout_seconds,
        )
        if provider.worst_case_seconds > settings.email_send_timeout_seconds:
            raise ValueError(
                f"SMTP retries may take {provider.worst_case_seconds}s, "
                f"longer than EMAIL_SEND_TIMEOUT_SECONDS={settings.email_send_timeout_seconds}"
            )
        return provider

    if backend == "mailgun":
        return MailgunEmailProvider(
            api_key=settings.mailgun_api_key,
            domain=settings.mailgun_domain,
            from_email=settings.email_from,
            base_url=settings.mailgun_base_url,
        )

    raise ValueError(f"Unknown email backend: {settings.email_backend}")


async def send_otp_email(
    provider: EmailProvider,
    to_email: str,
    otp_code: str,
    expires_minutes: int = 10,
) -> None:
    """
    发送 OTP 验证码邮件

    Args:
        provider: 邮件发送实现
        to_email: 收件人邮箱
        otp_code: 验证码
        expires_minutes: 有效期（分钟）
    """
    subject = "Your OTP Code"
    body = (
        f"Your OTP code is: {otp_code}\n\n"
        f"This code will expire in {expires_minutes} minutes.\n\n"
        "If you didn't request this code, please ignore this email."
    )
    await provider.send(to_email, subject, body)
