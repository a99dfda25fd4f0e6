"""认证服务 - 密码注册、登录和当前用户"""

import logging
from datetime import datetime
from typing import Optional

import jwt
from pydantic import BaseModel

from auth_service.core.errors import (
    IdentityConflictError,
    InvalidCredentialsError,
    UnauthorizedError,
    UserExistsError,
    UserNotFoundError,
)
from auth_service.core.security import TokenIssuer, hash_password, verify_password
from auth_service.services.identity_store import IdentityStore, UserPublic
from auth_service.services.otp_service import normalize_email

logger = logging.getLogger(__name__)


class AuthResult(BaseModel):
    """认证结果"""

    user: UserPublic
    token: str
    expires_at: datetime


class AuthService:
    """密码认证服务"""

    def __init__(self, identity_store: IdentityStore, token_issuer: TokenIssuer):
        self.identity_store = identity_store
        self.token_issuer = token_issuer

    def _result(self, user) -> AuthResult:
        issued = self.token_issuer.issue(user.id, user.email)
        return AuthResult(
            user=UserPublic.model_validate(user),
            token=issued.token,
            expires_at=issued.expires_at,
        )

    async def register(self, email: str, password: str, name: Optional[str] = None) -> AuthResult:
        """
        使用邮箱 + 密码注册

        已通过 OTP 创建但没有密码的用户会被补上密码，created_via 保持为 otp。

        Raises:
            UserExistsError: 该邮箱已设置密码
        """
        email = normalize_email(email)
        existing_user = await self.identity_store.find_by_email(email)

        if existing_user and existing_user.password_hash:
            raise UserExistsError()

        if existing_user:
            # 已有 OTP 用户，添加密码
            user = await self.identity_store.set_password(existing_user, hash_password(password), name)
        else:
            try:
                user = await self.identity_store.create(
                    email=email,
                    created_via="password",
                    password_hash=hash_password(password),
                    name=name,
                )
            except IdentityConflictError as e:
                raise UserExistsError() from e

        logger.info(f"User registered: {user.id}")
        return self._result(user)

    async def login(self, email: str, password: str) -> AuthResult:
        """
        使用邮箱 + 密码登录

        Raises:
            InvalidCredentialsError: 用户不存在、未设置密码或密码错误（不区分）
        """
        email = normalize_email(email)
        user = await self.identity_store.find_by_email(email)

        if not user or not user.password_hash:
            raise InvalidCredentialsError()

        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        logger.info(f"User logged in: {user.id}")
        return self._result(user)

    async def get_user_from_token(self, token: str) -> UserPublic:
        """
        校验 JWT token 并返回用户

        Raises:
            UnauthorizedError: token 无效或已过期
            UserNotFoundError: token 对应的用户不存在
        """
        try:
            payload = self.token_issuer.decode(token)
            user_id = int(payload["sub"])
        except (jwt.PyJWTError, KeyError, ValueError) as e:
            raise UnauthorizedError() from e

        user = await self.identity_store.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return UserPublic.model_validate(user)
