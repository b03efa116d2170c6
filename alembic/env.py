"""
File: alembic/env.py
Description: Alembic 迁移环境配置 - 同步版本 (Windows 完全兼容)

策略：
- 迁移 (Migration): 使用 psycopg (Sync) -> 稳定，无 EventLoop 问题，兼容 SQLAlchemy 2.0
- 运行 (Runtime): 使用 asyncpg (Async) -> 高性能
- 目标元数据: app.db.models.Base.metadata (users + user_settings)

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-17 (Derive sync URL from SQLALCHEMY_DATABASE_URI when POSTGRES_* absent)
"""

import sys
from logging.config import fileConfig
from pathlib import Path
from urllib.parse import quote_plus

from sqlalchemy import create_engine, pool
from sqlalchemy.engine import make_url

from alembic import context  # type: ignore

# ------------------------------------------------------------------------------
# 0. 将项目根目录加入 sys.path
# ------------------------------------------------------------------------------
sys.path.insert(0, str(Path(__file__).parent.parent.resolve()))

# ------------------------------------------------------------------------------
# 1. 导入项目配置与模型
# ------------------------------------------------------------------------------
from app.core.config import settings
from app.db.models import Base

# Alembic Config 对象
config = context.config

# 2. 配置日志
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 异步驱动 -> 同步驱动
SYNC_DRIVERS = {"asyncpg": "psycopg", "aiosqlite": "pysqlite"}


def build_sync_uri() -> str:
    """
    构建同步数据库 URL。
    优先从 POSTGRES_* 组件构建 (对密码做 URL 编码，防止 '@' 等字符破坏连接串)，
    否则把 SQLALCHEMY_DATABASE_URI 的异步驱动替换为同步驱动。
    """
    if settings.POSTGRES_SERVER and settings.POSTGRES_USER:
        encoded_password = quote_plus(settings.POSTGRES_PASSWORD or "")
        return (
            f"postgresql+psycopg://{settings.POSTGRES_USER}:{encoded_password}"
            f"@{settings.POSTGRES_SERVER}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}"
        )

    url = make_url(str(settings.SQLALCHEMY_DATABASE_URI))
    driver = SYNC_DRIVERS.get(url.get_driver_name(), url.get_driver_name())
    sync_url = url.set(drivername=f"{url.get_backend_name()}+{driver}")
    return sync_url.render_as_string(hide_password=False)


# 转义 % 字符 (configparser 插值符号)
config.set_main_option("sqlalchemy.url", build_sync_uri().replace("%", "%%"))

# 3. 指定目标元数据
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """离线模式迁移：生成 SQL 脚本而不实际连接数据库"""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """在线模式迁移：连接数据库并执行迁移"""
    # 使用同步引擎 create_engine
    # 修复 Pylance 报错：get_main_option 可能返回 None，添加 'or ""' 确保它是字符串
    connectable = create_engine(
        config.get_main_option("sqlalchemy.url") or "",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


# ------------------------------------------------------------------------------
# 执行迁移
# ------------------------------------------------------------------------------
if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
