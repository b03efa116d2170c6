"""
File: app/db/models/base.py
Description: ORM 模型基类与组件化定义

本模块采用"组件化组合" (Mixin) 模式：
1. UUIDBase: [基础] 提供 UUID v7 主键 + 自动表名(智能 snake_case) + update 方法
2. TimestampMixin: [组件] 提供 created_at, updated_at (UTC, TIMESTAMPTZ)
3. SoftDeleteMixin: [组件] 提供 deleted_at (非空即视为已注销)
4. UUIDModel: [标准] 聚合了 UUIDBase + TimestampMixin

主键使用 SQLAlchemy 通用 Uuid 类型：PostgreSQL 下为原生 UUID，其他方言为 CHAR(32)。

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (deleted_at-only soft delete, portable Uuid)
"""

import re
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import DateTime, MetaData, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from uuid6 import uuid7

# 约束命名约定
POSTGRES_INDEXES_NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def resolve_table_name(name: str) -> str:
    """
    驼峰命名 (CamelCase) 转蛇形命名 (snake_case)。

    示例:
    - UserSettings -> user_settings
    - APIKey -> api_key
    """
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


class Base(DeclarativeBase):
    """SQLAlchemy 声明式元类"""

    metadata = MetaData(naming_convention=POSTGRES_INDEXES_NAMING_CONVENTION)


# ==============================================================================
# 1. 功能组件 (Mixins)
# ==============================================================================


class TimestampMixin:
    """
    [组件] 时间戳混入类
    强制使用 UTC 时间存储 (TIMESTAMPTZ)。
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        comment="创建时间 (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
        comment="更新时间 (UTC)",
    )


class SoftDeleteMixin:
    """
    [组件] 软删除混入类

    deleted_at 非空表示账号已注销 (canceled)。
    唯一性约束 (如邮箱) 仅作用于 deleted_at IS NULL 的有效行。
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, nullable=True, comment="注销时间 (UTC)"
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ==============================================================================
# 2. 基础模型 (Base Models)
# ==============================================================================


class UUIDBase(Base):
    """
    [纯净版] 仅包含 ID 和 基础工具方法。
    """

    __abstract__ = True

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return resolve_table_name(cls.__name__)

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid7, comment="主键 (UUID v7)"
    )

    def update(self, **kwargs: Any) -> None:
        """
        [工具方法] 动态更新模型属性

        用法:
        user.update(**schema.model_dump(exclude_unset=True))
        """
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)


class UUIDModel(UUIDBase, TimestampMixin):
    """
    [标准版] 业务模型基类 (ID + Update + SnakeCase表名 + UTC 时间戳)。
    """

    __abstract__ = True
