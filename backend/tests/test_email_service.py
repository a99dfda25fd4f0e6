"""邮件发送"""

import logging
import smtplib

import httpx
import pytest

from auth_service.core.config import Settings
from auth_service.services import email_service
from auth_service.services.email_service import (
    ConsoleEmailProvider,
    EmailDeliveryError,
    MailgunEmailProvider,
    SMTPEmailProvider,
    create_email_provider,
    send_otp_email,
)

from helpers import RecordingEmailProvider


async def test_send_otp_email_content():
    provider = RecordingEmailProvider()

    await send_otp_email(provider, "user@example.com", "482913", expires_minutes=10)

    message = provider.outbox[-1]
    assert message["to"] == "user@example.com"
    assert message["subject"] == "Your OTP Code"
    assert "482913" in message["body"]
    assert "10 minutes" in message["body"]


async def test_console_provider_only_logs(caplog):
    provider = ConsoleEmailProvider()

    with caplog.at_level(logging.INFO, logger="auth_service.services.email_service"):
        for i in range(3):
            await provider.send(f"user{i}@example.com", "Your OTP Code", "code 482913")

    assert "user2@example.com" in caplog.text
    # 进程内不保留已发送的验证码
    assert vars(provider) == {}


def test_create_email_provider_console():
    assert isinstance(create_email_provider(Settings(email_backend="console")), ConsoleEmailProvider)


def test_create_email_provider_smtp():
    settings = Settings(email_backend="smtp", smtp_username="mailer", smtp_password="pw")
    provider = create_email_provider(settings)

    assert isinstance(provider, SMTPEmailProvider)
    assert provider.smtp_port == settings.smtp_port


@pytest.mark.parametrize(
    "settings",
    [
        Settings(email_backend="smtp", smtp_username=None, smtp_password=None),
        Settings(email_backend="mailgun", mailgun_api_key=None, mailgun_domain="mg.example.com"),
        Settings(email_backend="carrier-pigeon"),
    ],
)
def test_create_email_provider_rejects_bad_config(settings):
    with pytest.raises(ValueError):
        create_email_provider(settings)


# ============================================================================
# Mailgun
# ============================================================================

def mailgun_provider(handler) -> MailgunEmailProvider:
    return MailgunEmailProvider(
        api_key="key-123",
        domain="mg.example.com",
        from_email="OTP <no-reply@example.com>",
        transport=httpx.MockTransport(handler),
    )


async def test_mailgun_send():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = request.content.decode()
        return httpx.Response(200, json={"id": "<msg@mg>", "message": "Queued"})

    await mailgun_provider(handler).send("user@example.com", "Your OTP Code", "code 123456")

    assert captured["url"] == "https://api.mailgun.net/v3/mg.example.com/messages"
    assert captured["auth"].startswith("Basic ")
    assert "user%40example.com" in captured["body"]


async def test_mailgun_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="Forbidden")

    with pytest.raises(EmailDeliveryError):
        await mailgun_provider(handler).send("user@example.com", "s", "b")


async def test_mailgun_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmailDeliveryError):
        await mailgun_provider(handler).send("user@example.com", "s", "b")


# ============================================================================
# SMTP
# ============================================================================

class FakeSMTP:
    def __init__(self, login_error=None):
        self.login_error = login_error
        self.sent = []

    def login(self, username, password):
        if self.login_error:
            raise self.login_error

    def send_message(self, message):
        self.sent.append(message)

    def quit(self):
        pass


def smtp_provider(**kwargs) -> SMTPEmailProvider:
    return SMTPEmailProvider(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_username="mailer",
        smtp_password="pw",
        from_email="no-reply@example.com",
        retry_delay=0,
        **kwargs,
    )


async def test_smtp_send(monkeypatch):
    provider = smtp_provider()
    server = FakeSMTP()
    monkeypatch.setattr(provider, "_connect", lambda timeout: server)

    await provider.send("user@example.com", "Your OTP Code", "code 123456")

    assert server.sent[0]["To"] == "user@example.com"
    assert server.sent[0]["Subject"] == "Your OTP Code"


async def test_smtp_retries_then_fails(monkeypatch):
    provider = smtp_provider(max_retries=3)
    calls = []

    def broken_connect(timeout):
        calls.append(1)
        raise OSError("connection refused")

    monkeypatch.setattr(provider, "_connect", broken_connect)

    with pytest.raises(EmailDeliveryError):
        await provider.send("user@example.com", "s", "b")
    assert len(calls) == 3


async def test_smtp_auth_error_is_not_retried(monkeypatch):
    provider = smtp_provider(max_retries=3)
    calls = []

    def connect(timeout):
        calls.append(1)
        return FakeSMTP(login_error=smtplib.SMTPAuthenticationError(535, b"bad credentials"))

    monkeypatch.setattr(provider, "_connect", connect)

    with pytest.raises(EmailDeliveryError):
        await provider.send("user@example.com", "s", "b")
    assert len(calls) == 1


def test_smtp_retry_budget_fits_delivery_timeout():
    settings = Settings(email_backend="smtp", smtp_username="mailer", smtp_password="pw")
    provider = create_email_provider(settings)

    assert provider.timeout == settings.smtp_timeout_seconds
    assert provider.max_retries == settings.smtp_max_retries
    assert provider.worst_case_seconds <= settings.email_send_timeout_seconds
    assert provider.send_budget < settings.email_send_timeout_seconds


def test_smtp_retry_budget_longer_than_delivery_timeout_is_rejected():
    settings = Settings(
        email_backend="smtp",
        smtp_username="mailer",
        smtp_password="pw",
        smtp_timeout_seconds=30,
        smtp_max_retries=3,
        email_send_timeout_seconds=15,
    )

    with pytest.raises(ValueError):
        create_email_provider(settings)


class SteppingClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_smtp_stops_retrying_when_budget_spent(monkeypatch):
    clock = SteppingClock()
    monkeypatch.setattr(email_service.time, "monotonic", clock)
    provider = smtp_provider(max_retries=5, timeout=4, send_budget=10)
    timeouts = []

    def slow_failing_connect(timeout):
        timeouts.append(timeout)
        clock.now += timeout
        raise OSError("timed out")

    monkeypatch.setattr(provider, "_connect", slow_failing_connect)

    with pytest.raises(EmailDeliveryError):
        provider._send_sync("user@example.com", "s", "b")
    assert timeouts == [4, 4, 2]


def test_smtp_does_not_deliver_after_budget(monkeypatch):
    clock = SteppingClock()
    monkeypatch.setattr(email_service.time, "monotonic", clock)
    provider = smtp_provider(send_budget=10)
    server = FakeSMTP()

    def slow_login(username, password):
        clock.now += 11

    server.login = slow_login
    monkeypatch.setattr(provider, "_connect", lambda timeout: server)

    with pytest.raises(EmailDeliveryError):
        provider._send_sync("user@example.com", "s", "b")
    assert server.sent == []
