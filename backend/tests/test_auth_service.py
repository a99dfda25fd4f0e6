"""密码注册 / 登录 / token 解析"""

import pytest

from auth_service.core.errors import (
    InvalidCredentialsError,
    UnauthorizedError,
    UserExistsError,
    UserNotFoundError,
)
from auth_service.services.auth import AuthService

EMAIL = "user@example.com"


@pytest.fixture
def auth_service(identity_store, token_issuer):
    return AuthService(identity_store, token_issuer)


async def test_register_creates_password_user(auth_service, token_issuer):
    result = await auth_service.register(" User@Example.com", "secret123", name="Alice")

    assert result.user.email == EMAIL
    assert result.user.name == "Alice"
    assert result.user.created_via == "password"
    assert token_issuer.decode(result.token)["sub"] == str(result.user.id)


async def test_register_twice_fails(auth_service):
    await auth_service.register(EMAIL, "secret123")

    with pytest.raises(UserExistsError):
        await auth_service.register(EMAIL, "another123")


async def test_register_attaches_password_to_otp_user(auth_service, identity_store, clock):
    otp_user = await identity_store.get_or_create_otp_user(EMAIL, clock())

    result = await auth_service.register(EMAIL, "secret123")

    assert result.user.id == otp_user.id
    assert result.user.created_via == "otp"
    login = await auth_service.login(EMAIL, "secret123")
    assert login.user.id == otp_user.id


async def test_login(auth_service):
    registered = await auth_service.register(EMAIL, "secret123")

    result = await auth_service.login("USER@example.com", "secret123")
    assert result.user.id == registered.user.id


@pytest.mark.parametrize(
    "email,password",
    [
        (EMAIL, "wrong-password"),
        ("unknown@example.com", "secret123"),
    ],
)
async def test_login_invalid_credentials(auth_service, email, password):
    await auth_service.register(EMAIL, "secret123")

    with pytest.raises(InvalidCredentialsError):
        await auth_service.login(email, password)


async def test_login_otp_user_without_password(auth_service, identity_store, clock):
    await identity_store.get_or_create_otp_user(EMAIL, clock())

    with pytest.raises(InvalidCredentialsError):
        await auth_service.login(EMAIL, "anything")


async def test_get_user_from_token(auth_service):
    registered = await auth_service.register(EMAIL, "secret123")

    user = await auth_service.get_user_from_token(registered.token)
    assert user.id == registered.user.id
    assert user.email == EMAIL


async def test_get_user_from_invalid_token(auth_service):
    with pytest.raises(UnauthorizedError):
        await auth_service.get_user_from_token("not-a-jwt")


async def test_get_user_from_token_for_missing_user(auth_service, token_issuer):
    issued = token_issuer.issue(999, "ghost@example.com")

    with pytest.raises(UserNotFoundError):
        await auth_service.get_user_from_token(issued.token)
