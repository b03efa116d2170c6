"""
File: app/db/models/__init__.py
Description: ORM 模型注册表

每当新增一个 Model 文件，必须在此处导入，
否则 Alembic autogenerate 与测试中的 create_all 都无法发现新表。

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (User + UserSettings)
"""

from app.db.models.base import (
    Base,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDBase,
    UUIDModel,
)
from app.db.models.user import Gender, User
from app.db.models.user_settings import AuthType, UserSettings

__all__ = [
    # 基类
    "Base",
    "UUIDBase",
    "UUIDModel",
    "TimestampMixin",
    "SoftDeleteMixin",
    # 业务模型
    "User",
    "UserSettings",
    # 枚举
    "Gender",
    "AuthType",
]
