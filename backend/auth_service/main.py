"""FastAPI 应用入口"""

from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator, Optional
import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from auth_service.api.auth import router as auth_router  # 密码注册/登录
from auth_service.api.health import router as health_router
from auth_service.api.otp_auth import router as otp_router  # OTP 登录
from auth_service.core.clock import utcnow
from auth_service.core.config import OTPPolicy, Settings, get_settings
from auth_service.core.database import create_db_engine, create_session_maker, init_db
from auth_service.core.errors import AuthServiceError, ErrorCode
from auth_service.core.redis import close_redis, create_redis
from auth_service.core.responses import localized_error_response, service_error_response
from auth_service.core.security import TokenIssuer
from auth_service.services.counter_store import MemoryCounterStore, RedisCounterStore
from auth_service.services.email_service import create_email_provider

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 300


async def cleanup_task(counter_store: MemoryCounterStore):
    """定期清理过期计数"""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)  # 每5分钟清理一次
        removed = await counter_store.cleanup()
        if removed:
            logger.debug(f"Removed {removed} expired counters")


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理"""
    settings: Settings = app.state.settings
    configure_logging(settings)

    # 启动时 - 创建连接和服务依赖
    engine = create_db_engine(settings)
    app.state.engine = engine
    app.state.session_maker = create_session_maker(engine)
    if settings.auto_create_tables:
        await init_db(engine)

    app.state.cleanup_task = None
    if settings.rate_limit_backend == "memory":
        app.state.redis = None
        app.state.counter_store = MemoryCounterStore()
        app.state.cleanup_task = asyncio.create_task(cleanup_task(app.state.counter_store))
    else:
        app.state.redis = create_redis(settings)
        app.state.counter_store = RedisCounterStore(app.state.redis)

    app.state.email_provider = create_email_provider(settings)
    app.state.token_issuer = TokenIssuer(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expire_minutes=settings.jwt_expire_minutes,
    )
    app.state.otp_policy = OTPPolicy.from_settings(settings)
    app.state.clock = utcnow

    logger.info(
        f"{settings.app_name} {settings.app_version} started "
        f"(env={settings.environment}, rate_limit={settings.rate_limit_backend}, "
        f"email={settings.email_backend})"
    )

    yield

    # 关闭时
    if app.state.cleanup_task is not None:
        app.state.cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await app.state.cleanup_task
    await close_redis(app.state.redis)
    await engine.dispose()
    logger.info("Shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """创建 FastAPI 应用"""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="邮箱 OTP 登录 API",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS 中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthServiceError)
    async def auth_service_error_handler(request: Request, exc: AuthServiceError):
        """领域错误和存储错误"""
        return service_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """请求参数校验失败统一返回 400"""
        errors = [
            {
                "field": ".".join(str(loc) for loc in err["loc"] if loc not in ("body", "query")),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return localized_error_response(
            request,
            "errors.validation_error",
            status_code=400,
            error_code=ErrorCode.VALIDATION_ERROR,
            error_extra={"errors": errors},
        )

    # 全局异常处理器 - 不暴露内部错误
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return localized_error_response(
            request,
            "errors.internal_error",
            status_code=500,
            error_code=ErrorCode.INTERNAL_ERROR,
        )

    # 注册路由
    app.include_router(otp_router)
    app.include_router(auth_router)
    app.include_router(health_router)

    @app.get("/")
    async def root() -> dict:
        """根端点"""
        return {"message": f"欢迎使用 {settings.app_name}", "docs": "/docs"}

    return app


app = create_app()
