"""API 端点特定限流装饰器"""

import logging
from functools import wraps
from typing import Callable, Collection

from fastapi import Request

from auth_service.core.errors import RateLimitedError, StoreUnavailableError

logger = logging.getLogger(__name__)

KEY_PREFIX = "endpoint_limit"


def get_client_ip(request: Request, trusted_proxies: Collection[str] = ()) -> str:
    """
    获取客户端 IP

    只有直接连接方是受信任的代理时才读取 X-Forwarded-For，
    并从右往左取第一个不属于受信任代理的地址；否则使用连接地址。
    """
    client_ip = request.client.host if request.client else "unknown"
    if client_ip not in trusted_proxies:
        return client_ip

    forwarded = request.headers.get("X-Forwarded-For")
    if not forwarded:
        return client_ip
    for hop in reversed([ip.strip() for ip in forwarded.split(",") if ip.strip()]):
        if hop not in trusted_proxies:
            return hop
    return client_ip


def rate_limit(max_requests: int = 10, window: int = 60):
    """
    端点限流装饰器

    计数保存在 app.state.counter_store 中（Redis 或内存），按 IP + 路径分组。
    计数存储不可用时放行请求，只记录警告。

    Args:
        max_requests: 时间窗口内最大请求数
        window: 时间窗口（秒）

    Example:
        @router.post("/otp/request")
        @rate_limit(max_requests=5, window=60)
        async def request_otp(request: Request, ...):
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            # 从参数中获取 request
            request = None
            for arg in args:
                if isinstance(arg, Request):
                    request = arg
                    break

            if not request:
                request = kwargs.get('request')

            if request:
                client_ip = get_client_ip(request, request.app.state.settings.trusted_proxies)
                key = f"{KEY_PREFIX}:{client_ip}:{request.url.path}"
                counter_store = request.app.state.counter_store

                try:
                    allowed = await counter_store.check_and_increment(key, window, max_requests)
                except StoreUnavailableError:
                    logger.warning(f"Endpoint limit store unavailable, allowing {request.url.path}")
                    allowed = True

                if not allowed:
                    logger.info(f"Endpoint rate limit hit: {key}")
                    try:
                        retry_after = await counter_store.ttl(key)
                    except StoreUnavailableError:
                        retry_after = None
                    raise RateLimitedError(retry_after=retry_after or window)

            return await func(*args, **kwargs)
        return wrapper
    return decorator
