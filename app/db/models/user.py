"""
File: app/db/models/user.py
Description: 用户核心账号模型

继承自 UUIDModel 和 SoftDeleteMixin，自动拥有：
1. UUID v7 主键
2. created_at / updated_at (UTC)
3. deleted_at (注销标记)

约束:
- email 可为空 (三方账号可能不提供)，在有效行 (deleted_at IS NULL) 范围内唯一
- password 可为空：纯三方账号永远不会持有密码哈希

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (Account profile fields, nullable password, scoped email index)
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Index, String, text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.db.models.base import SoftDeleteMixin, UUIDModel


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class User(UUIDModel, SoftDeleteMixin):
    """
    用户模型 (账号域)
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return "users"

    __table_args__ = (
        # 邮箱仅在有效账号范围内唯一
        Index(
            "uq_users_email_active",
            "email",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    # --------------------------------------------------------------------------
    # 核心凭证
    # --------------------------------------------------------------------------

    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="用户邮箱"
    )

    # 存储形式见 app/core/security.py (bcrypt + 传输编码)，永不出现在响应中
    password: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="密码哈希值 (三方账号为空)"
    )

    # --------------------------------------------------------------------------
    # 基础资料
    # --------------------------------------------------------------------------

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # 对外展示名，有效账号之间大小写不敏感唯一 (Service 层校验)
    display_name: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True, comment="展示昵称"
    )

    gender: Mapped[Gender | None] = mapped_column(
        SAEnum(
            Gender,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
    )
    birthday: Mapped[date | None] = mapped_column(Date, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    photo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    thumb_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    locale: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # --------------------------------------------------------------------------
    # 状态
    # --------------------------------------------------------------------------

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="邮箱/三方身份验证时间"
    )
    last_signed_in: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="最近登录时间"
    )
