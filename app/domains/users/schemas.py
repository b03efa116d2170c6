"""
File: app/domains/users/schemas.py
Description: 用户领域 Pydantic 模型 (Schema)

本模块定义了用户相关的输入/输出数据结构：
1. SignUpRequest: 邮箱注册参数 (包含密码明文)
2. ProfileUpdate: 资料更新参数 (所有字段可选)
3. UserRead: 用户信息响应 (屏蔽密码哈希)

规范：
- 严格遵循 Pydantic V2 写法 (ConfigDict)
- 全面采用 Python 3.11+ 新语法 (X | None)
- 响应模型开启 from_attributes=True 以支持 ORM 转换
- 注册 / 更新接口为 multipart 表单 (可带头像)，Router 中收集字段后再构造这些模型

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (Account profile fields)
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.db.models.user import Gender

# bcrypt 上限为 72 字节，这里按字符粗略限制，字节数由 Credential Codec 精确校验
PASSWORD_MAX_LENGTH = 72


# ------------------------------------------------------------------------------
# Input Schemas (输入模型)
# ------------------------------------------------------------------------------


class SignUpRequest(BaseModel):
    """
    邮箱注册模型。
    """

    name: str = Field(..., min_length=1, max_length=100, description="用户名称")
    email: EmailStr = Field(..., description="邮箱 (登录凭证)")
    password: str = Field(
        ..., min_length=6, max_length=PASSWORD_MAX_LENGTH, description="明文密码"
    )
    gender: Gender | None = Field(default=None, description="性别")


class ProfileUpdate(BaseModel):
    """
    资料更新模型。
    所有字段均为可选，仅更新传入的字段 (PATCH 语义)。
    """

    name: str | None = Field(default=None, max_length=100)
    display_name: str | None = Field(
        default=None, min_length=1, max_length=50, description="展示昵称 (唯一)"
    )
    gender: Gender | None = None
    phone: str | None = Field(default=None, max_length=20)
    birthday: date | None = None


# ------------------------------------------------------------------------------
# Output Schemas (输出/响应模型)
# ------------------------------------------------------------------------------


class UserRead(BaseModel):
    """
    用户读取模型 (响应)。
    不包含 password 字段。
    """

    id: UUID = Field(..., description="用户 ID (UUID v7)")
    email: str | None = None
    name: str | None = None
    display_name: str | None = None
    gender: Gender | None = None
    birthday: date | None = None
    phone: str | None = None
    photo_url: str | None = None
    thumb_url: str | None = None
    locale: str | None = None
    verified_at: datetime | None = None
    last_signed_in: datetime | None = None
    created_at: datetime = Field(..., description="创建时间 (UTC)")
    updated_at: datetime = Field(..., description="更新时间 (UTC)")

    # Pydantic V2 配置：允许从 ORM 对象读取数据
    model_config = ConfigDict(from_attributes=True)
