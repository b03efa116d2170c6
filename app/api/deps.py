"""
File: app/api/deps.py
Description: 全局依赖注入定义 (DB Session + 请求上下文 + 基础设施)

本模块负责：
1. 数据库会话管理 (get_session_factory / get_db / DBSession)
2. 请求上下文构造 (get_request_context / CurrentContext)：
   locale、correlation_id、已校验的调用者 ID
3. 后台任务执行器与对象存储注入 (测试中可通过 dependency_overrides 替换)

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-17 (Explicit RequestContext replaces CurrentUser)
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.context import RequestContext, parse_accept_language
from app.core.storage import BlobStorage, MinioBlobStorage
from app.core.tasks import BestEffortRunner, runner
from app.db.session import AsyncSessionLocal
from app.domains.auth.service import TokenService

# ------------------------------------------------------------------------------
# 1. Database Dependencies
# ------------------------------------------------------------------------------


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """会话工厂 (后台任务需要自行开会话)"""
    return AsyncSessionLocal


SessionFactory = Annotated[
    async_sessionmaker[AsyncSession], Depends(get_session_factory)
]


async def get_db(factory: SessionFactory) -> AsyncGenerator[AsyncSession, None]:
    """
    获取异步数据库会话依赖。
    使用 async with 确保请求结束时自动关闭 session。
    """
    async with factory() as session:
        yield session


# 数据库会话依赖类型别名
DBSession = Annotated[AsyncSession, Depends(get_db)]


# ------------------------------------------------------------------------------
# 2. Infrastructure Dependencies
# ------------------------------------------------------------------------------


def get_runner() -> BestEffortRunner:
    return runner


def get_storage() -> BlobStorage:
    return MinioBlobStorage()


Runner = Annotated[BestEffortRunner, Depends(get_runner)]
Storage = Annotated[BlobStorage, Depends(get_storage)]


# ------------------------------------------------------------------------------
# 3. Request Context
# ------------------------------------------------------------------------------


def get_bearer_token(
    authorization: Annotated[str | None, Header()] = None,
) -> str | None:
    """
    从 Authorization Header 提取 Bearer Token。
    格式要求: Authorization: Bearer <token>；缺失或格式不符时返回 None
    """
    if not authorization:
        return None

    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param.strip():
        return None
    return param.strip()


BearerToken = Annotated[str | None, Depends(get_bearer_token)]


def get_request_context(
    request: Request,
    token: BearerToken,
    accept_language: Annotated[str | None, Header()] = None,
) -> RequestContext:
    """
    构造本次请求的上下文。
    caller_user_id 仅取自签名与有效期都通过的 Access Token (不查库、不抛出)。
    """
    caller_user_id = None
    if token:
        caller_user_id = TokenService.verify(token).user_id

    return RequestContext(
        locale=parse_accept_language(accept_language) or settings.DEFAULT_LOCALE,
        correlation_id=str(getattr(request.state, "request_id", "")),
        caller_user_id=caller_user_id,
    )


# 用法: async def endpoint(ctx: CurrentContext): ...
CurrentContext = Annotated[RequestContext, Depends(get_request_context)]
