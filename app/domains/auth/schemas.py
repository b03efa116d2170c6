"""
File: app/domains/auth/schemas.py
Description: 认证领域 Pydantic 模型 (Schema)

本模块定义了认证相关的输入/输出数据结构：
1. EmailSignInRequest: 邮箱密码登录请求参数
2. SocialSignInRequest: 三方登录请求参数 (三方 access token / Apple identity token)
3. AuthPayload: 登录成功响应 {token, user}
4. IdTokenPayload: 自愈校验成功响应 {token, user_id}

Refresh Token 只保存在服务端，不下发给客户端。

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-17 (Email / social sign-in payloads)
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.db.models.user_settings import AuthType
from app.domains.users.schemas import UserRead


class EmailSignInRequest(BaseModel):
    email: EmailStr = Field(..., description="邮箱")
    password: str = Field(..., min_length=1, description="用户密码")


class SocialSignInRequest(BaseModel):
    access_token: str = Field(..., min_length=1, description="三方平台颁发的令牌")


class AuthPayload(BaseModel):
    """
    登录成功响应结构。
    """

    token: str = Field(..., description="访问令牌 (JWT, 短效)")
    user: UserRead


class IdTokenPayload(BaseModel):
    token: str = Field(..., description="可用的访问令牌 (可能是新签发的)")
    user_id: UUID


class SocialProvider(str, Enum):
    FACEBOOK = AuthType.FACEBOOK.value
    GOOGLE = AuthType.GOOGLE.value
    APPLE = AuthType.APPLE.value

    @property
    def auth_type(self) -> AuthType:
        return AuthType(self.value)
