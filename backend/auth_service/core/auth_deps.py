"""用户认证依赖函数"""

from typing import Optional

from fastapi import Depends, Header

from auth_service.api.deps import get_auth_service
from auth_service.core.errors import UnauthorizedError
from auth_service.services.auth import AuthService
from auth_service.services.identity_store import UserPublic


def parse_bearer_token(authorization: Optional[str]) -> str:
    """解析 Authorization: Bearer <token>"""
    if not authorization:
        raise UnauthorizedError("Not authenticated")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise UnauthorizedError("Invalid authorization header")

    if scheme.lower() != 'bearer':
        raise UnauthorizedError("Invalid authentication scheme")

    return token


async def get_current_user(
    authorization: Optional[str] = Header(None),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserPublic:
    """
    获取当前登录用户（必须登录）

    从 Authorization header 中解析 JWT token 并验证
    """
    token = parse_bearer_token(authorization)
    return await auth_service.get_user_from_token(token)
