"""
File: app/db/session.py
Description: 数据库会话管理 (Async SQLAlchemy)

本模块负责：
1. 创建全局唯一的 AsyncEngine (生产环境基于 postgresql+asyncpg)
2. 连接池参数仅作用于服务端数据库 (SQLite 等嵌入式后端使用方言默认池)
   SQLite 连接建立时开启外键约束 (PRAGMA foreign_keys=ON)
3. 创建 AsyncSession 工厂 (AsyncSessionLocal)，后台任务也从这里开新会话
4. 集成 orjson 用于 JSON 字段序列化

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-17 (Backend-aware engine options, SQLite foreign keys)
"""

from typing import Any

import orjson
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings


def _orjson_serializer(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def _orjson_deserializer(obj: str | bytes) -> Any:
    return orjson.loads(obj)


def build_engine_options(database_uri: str) -> dict[str, Any]:
    """
    按数据库后端组装 create_async_engine 参数。
    """
    options: dict[str, Any] = {
        "echo": settings.is_debug,
        "json_serializer": _orjson_serializer,
        "json_deserializer": _orjson_deserializer,
    }

    if make_url(database_uri).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        return options

    options.update(
        pool_pre_ping=settings.DB_POOL_PRE_PING,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )
    return options


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_uri: str) -> AsyncEngine:
    """
    创建 AsyncEngine。SQLite 默认不校验外键，这里在每个连接上显式开启。
    """
    async_engine = create_async_engine(
        database_uri, **build_engine_options(database_uri)
    )
    if async_engine.dialect.name == "sqlite":
        event.listen(async_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return async_engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: commit 后访问属性不会触发隐式 IO
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


engine: AsyncEngine = build_engine(str(settings.SQLALCHEMY_DATABASE_URI))

AsyncSessionLocal: async_sessionmaker[AsyncSession] = create_session_factory(engine)


async def close_engine() -> None:
    """
    关闭数据库引擎，释放连接池资源。
    """
    await engine.dispose()
