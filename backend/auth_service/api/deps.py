"""API 依赖 - 从 app.state 和数据库会话组装服务"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.core.database import get_db
from auth_service.services.auth import AuthService
from auth_service.services.identity_store import IdentityStore
from auth_service.services.otp_service import OTPService
from auth_service.services.otp_store import OTPStore


def get_otp_service(request: Request, db: AsyncSession = Depends(get_db)) -> OTPService:
    state = request.app.state
    return OTPService(
        otp_store=OTPStore(db),
        identity_store=IdentityStore(db),
        counter_store=state.counter_store,
        email_provider=state.email_provider,
        token_issuer=state.token_issuer,
        policy=state.otp_policy,
        delivery_timeout=state.settings.email_send_timeout_seconds,
        clock=state.clock,
    )


def get_auth_service(request: Request, db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(
        identity_store=IdentityStore(db),
        token_issuer=request.app.state.token_issuer,
    )
