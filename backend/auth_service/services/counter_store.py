"""限流计数器存储 - 固定窗口，TTL 只在窗口内第一次计数时设置"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from auth_service.core.clock import Clock, utcnow
from auth_service.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterSnapshot:
    """计数器快照"""

    count: int
    ttl_remaining: Optional[int] = None


class CounterStore:
    """计数器存储接口"""

    async def increment(self, key: str, window_seconds: int) -> int:
        """计数 +1 并返回新值；只有创建计数器的那次调用会设置过期时间"""
        raise NotImplementedError

    async def get(self, key: str) -> int:
        """当前计数，不存在时为 0"""
        raise NotImplementedError

    async def ttl(self, key: str) -> Optional[int]:
        """剩余秒数，不存在或未设置过期时为 None"""
        raise NotImplementedError

    async def peek(self, key: str) -> CounterSnapshot:
        """只读查看计数与剩余时间"""
        return CounterSnapshot(count=await self.get(key), ttl_remaining=await self.ttl(key))

    async def check_and_increment(self, key: str, window_seconds: int, max_count: int) -> bool:
        """计数 +1，返回本次请求是否在限额内"""
        count = await self.increment(key, window_seconds)
        return count <= max_count

    async def ping(self) -> bool:
        return True


class RedisCounterStore(CounterStore):
    """基于 Redis 的计数器（多实例共享）"""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def increment(self, key: str, window_seconds: int) -> int:
        # SET NX EX 与 INCR 在同一个 MULTI 中执行：
        # 只有窗口内第一次调用会创建带 TTL 的 key，之后的 INCR 保留原 TTL
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                _, count = await (
                    pipe.set(key, 0, ex=window_seconds, nx=True)
                    .incr(key)
                    .execute()
                )
        except (RedisError, OSError) as e:
            logger.exception(f"Redis increment failed for {key}")
            raise StoreUnavailableError("redis unavailable") from e
        return int(count)

    async def get(self, key: str) -> int:
        try:
            value = await self.redis.get(key)
        except (RedisError, OSError) as e:
            logger.exception(f"Redis get failed for {key}")
            raise StoreUnavailableError("redis unavailable") from e
        return int(value) if value else 0

    async def ttl(self, key: str) -> Optional[int]:
        try:
            seconds = await self.redis.ttl(key)
        except (RedisError, OSError) as e:
            logger.exception(f"Redis ttl failed for {key}")
            raise StoreUnavailableError("redis unavailable") from e
        # -2: key 不存在, -1: 未设置过期
        return seconds if seconds >= 0 else None

    async def peek(self, key: str) -> CounterSnapshot:
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                value, seconds = await pipe.get(key).ttl(key).execute()
        except (RedisError, OSError) as e:
            logger.exception(f"Redis peek failed for {key}")
            raise StoreUnavailableError("redis unavailable") from e
        return CounterSnapshot(
            count=int(value) if value else 0,
            ttl_remaining=seconds if seconds >= 0 else None,
        )

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as e:
            raise StoreUnavailableError("redis unavailable") from e


class MemoryCounterStore(CounterStore):
    """基于内存的计数器（单进程，开发 / 测试用）"""

    def __init__(self, clock: Clock = utcnow):
        # key -> (计数, 过期时间)
        self.counters: Dict[str, Tuple[int, datetime]] = {}
        self.lock = asyncio.Lock()
        self.clock = clock

    def _live_entry(self, key: str, now: datetime) -> Optional[Tuple[int, datetime]]:
        entry = self.counters.get(key)
        if entry is not None and now >= entry[1]:
            del self.counters[key]
            return None
        return entry

    async def increment(self, key: str, window_seconds: int) -> int:
        async with self.lock:
            now = self.clock()
            entry = self._live_entry(key, now)
            if entry is None:
                self.counters[key] = (1, now + timedelta(seconds=window_seconds))
                return 1

            count, expires_at = entry
            self.counters[key] = (count + 1, expires_at)
            return count + 1

    async def get(self, key: str) -> int:
        async with self.lock:
            entry = self._live_entry(key, self.clock())
            return entry[0] if entry else 0

    async def ttl(self, key: str) -> Optional[int]:
        async with self.lock:
            now = self.clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return None
            return math.ceil((entry[1] - now).total_seconds())

    async def cleanup(self) -> int:
        """清理过期数据"""
        async with self.lock:
            now = self.clock()
            expired = [key for key, (_, expires_at) in self.counters.items() if now >= expires_at]
            for key in expired:
                del self.counters[key]
            return len(expired)
