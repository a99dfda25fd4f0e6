"""健康检查 API"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from auth_service.core.database import ping_db
from auth_service.core.errors import StoreUnavailableError
from auth_service.core.redis import get_redis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """健康检查端点（数据库 + 计数存储）"""
    state = request.app.state
    checks = {}

    try:
        await ping_db(state.engine)
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Health check: database unavailable: {e!r}")
        checks["database"] = "unavailable"

    if get_redis(request) is None:
        checks["redis"] = "disabled"
    else:
        try:
            await state.counter_store.ping()
            checks["redis"] = "ok"
        except StoreUnavailableError as e:
            logger.error(f"Health check: redis unavailable: {e!r}")
            checks["redis"] = "unavailable"

    healthy = "unavailable" not in checks.values()
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "version": state.settings.app_version,
            "checks": checks,
        },
    )
