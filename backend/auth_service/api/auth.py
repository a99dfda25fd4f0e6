"""用户认证 API - 密码注册、登录、当前用户"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, EmailStr, Field

from auth_service.api.deps import get_auth_service
from auth_service.core.auth_deps import get_current_user
from auth_service.core.responses import localized_success_response
from auth_service.middleware.endpoint_limit import rate_limit
from auth_service.services.auth import AuthService
from auth_service.services.identity_store import UserPublic

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    """注册请求 - 邮箱 + 密码"""
    email: EmailStr = Field(..., description="邮箱")
    password: str = Field(..., description="密码", min_length=6, max_length=100)
    name: Optional[str] = Field(None, description="姓名", max_length=100)


class LoginRequest(BaseModel):
    """密码登录请求"""
    email: EmailStr = Field(..., description="邮箱")
    password: str = Field(..., description="密码")


@router.post("/register", status_code=status.HTTP_201_CREATED)
@rate_limit(max_requests=5, window=60)
async def register(
    request: Request,
    body: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """
    邮箱 + 密码注册

    已通过 OTP 登录过但没有密码的邮箱可以用这个接口补设密码。
    """
    result = await auth_service.register(body.email, body.password, body.name)
    return localized_success_response(
        request,
        "success.register_success",
        result,
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/login")
@rate_limit(max_requests=10, window=60)
async def login(
    request: Request,
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """邮箱 + 密码登录"""
    result = await auth_service.login(body.email, body.password)
    return localized_success_response(request, "success.login_success", result)


@router.get("/me")
async def me(request: Request, user: UserPublic = Depends(get_current_user)):
    """获取当前登录用户"""
    return localized_success_response(request, "success.profile", {"user": user})
