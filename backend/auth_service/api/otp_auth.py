"""OTP 登录 API - 请求验证码、验证登录、查询状态"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, EmailStr, Field

from auth_service.api.deps import get_otp_service
from auth_service.core.responses import localized_success_response
from auth_service.middleware.endpoint_limit import rate_limit
from auth_service.services.otp_service import OTPService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth/otp", tags=["otp"])


# ============================================================================
# 请求模型
# ============================================================================

class OTPRequestBody(BaseModel):
    """请求验证码"""
    email: EmailStr = Field(..., description="邮箱")


class OTPVerifyBody(BaseModel):
    """验证 OTP"""
    email: EmailStr = Field(..., description="邮箱")
    code: str = Field(..., description="6 位数字验证码", pattern=r"^[0-9]{6}$")


# ============================================================================
# API 端点
# ============================================================================

@router.post("/request")
@rate_limit(max_requests=5, window=60)  # 每分钟最多 5 次
async def request_otp(
    request: Request,
    body: OTPRequestBody,
    otp_service: OTPService = Depends(get_otp_service),
):
    """
    发送 OTP 验证码到邮箱

    同一邮箱 15 分钟内最多 3 次；验证码只通过邮件发送，不会出现在响应中。
    """
    result = await otp_service.request_otp(body.email)
    return localized_success_response(request, "success.otp_sent", result)


@router.post("/verify")
@rate_limit(max_requests=10, window=60)  # 每分钟最多 10 次
async def verify_otp(
    request: Request,
    body: OTPVerifyBody,
    otp_service: OTPService = Depends(get_otp_service),
):
    """
    验证 OTP 并登录

    用户不存在时自动创建（created_via=otp），返回用户信息和 JWT token。
    """
    result = await otp_service.verify_otp(body.email, body.code)
    return localized_success_response(request, "success.otp_verified", result)


@router.get("/status")
@rate_limit(max_requests=30, window=60)
async def otp_status(
    request: Request,
    email: EmailStr = Query(..., description="邮箱"),
    otp_service: OTPService = Depends(get_otp_service),
):
    """查询验证码状态（只读）"""
    status = await otp_service.get_otp_status(email)
    return localized_success_response(request, "success.otp_status", status)
