"""时间工具 - 统一使用不带时区的 UTC 时间（数据库列是 timestamp without time zone）"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """当前 UTC 时间（naive）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
