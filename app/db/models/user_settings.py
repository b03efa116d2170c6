"""
File: app/db/models/user_settings.py
Description: 用户设置模型 (登录方式 / 三方身份 / Refresh Token)

与 User 1:1 关联：
- auth_type + social_id: 三方身份，(auth_type, social_id) 全局唯一
- refresh_token: 当前唯一有效的 Refresh Token，签发新令牌时整体覆盖

注意：
采用 "No-Relationship" 模式，不显式定义 ORM relationship。
用户被物理删除时，设置行随外键 ON DELETE CASCADE 一并删除。

Author: jinmozhe
Created: 2025-12-02
Updated: 2026-10-17 (One settings row per user: auth type, social id, refresh token)
"""

import uuid
from enum import Enum

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import UUIDModel


class AuthType(str, Enum):
    EMAIL = "email"
    FACEBOOK = "facebook"
    GOOGLE = "google"
    APPLE = "apple"


class UserSettings(UUIDModel):
    """
    用户设置表 (1:1 User)
    """

    __table_args__ = (
        UniqueConstraint("auth_type", "social_id", name="uq_user_settings_social"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        comment="关联用户ID",
    )

    auth_type: Mapped[AuthType] = mapped_column(
        SAEnum(
            AuthType,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=AuthType.EMAIL,
        nullable=False,
        comment="注册方式",
    )

    # 三方唯一ID (Google/Apple sub, Facebook id)
    social_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True, comment="三方唯一ID"
    )

    refresh_token: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="当前有效的 Refresh Token"
    )
