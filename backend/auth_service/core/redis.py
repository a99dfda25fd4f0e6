"""Redis 连接配置"""

from typing import Optional

import redis.asyncio as redis
from fastapi import Request
from redis.asyncio import Redis

from auth_service.core.config import Settings


def create_redis(settings: Settings) -> Redis:
    """创建 Redis 连接池（进程生命周期内复用）"""
    return redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )


async def close_redis(client: Optional[Redis]) -> None:
    """关闭 Redis 连接"""
    if client is not None:
        await client.aclose()


def get_redis(request: Request) -> Optional[Redis]:
    """获取 Redis 连接（FastAPI 依赖），内存限流模式下为 None"""
    return request.app.state.redis
