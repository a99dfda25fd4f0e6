"""数据库连接配置"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from auth_service.core.config import Settings
from auth_service.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """ORM 模型基类"""


def create_db_engine(settings: Settings) -> AsyncEngine:
    """根据配置创建异步引擎"""
    url = settings.database_url

    # SQLite 不支持连接池参数（本地开发 / 测试）
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo=settings.debug,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        connect_args={"command_timeout": settings.db_command_timeout},
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """创建会话工厂"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """创建所有表（仅用于本地开发，生产环境使用 alembic）"""
    # 必须导入所有模型以便 SQLAlchemy 能够注册它们
    import auth_service.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db(engine: AsyncEngine) -> bool:
    """检查数据库连接"""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


@asynccontextmanager
async def db_errors(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """把数据库驱动错误转换为 StoreUnavailableError，并回滚当前事务"""
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        logger.exception(f"Database operation failed: {operation}")
        try:
            await session.rollback()
        except (SQLAlchemyError, OSError):
            logger.warning(f"Rollback failed after {operation}")
        raise StoreUnavailableError(f"database unavailable during {operation}") from e


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话（FastAPI 依赖）"""
    session_maker: async_sessionmaker[AsyncSession] = request.app.state.session_maker
    async with session_maker() as session:
        yield session
