"""
File: app/domains/users/dependencies.py
Description: 用户领域依赖注入 (DI)

本模块负责定义和组装用户领域的依赖项：
1. get_user_repository: 注入 DB 会话，实例化 Repository
2. get_account_service: 注入 Repository、TokenService、对象存储与后台执行器

依赖链：
DBSession → UserRepository ┐
TokenServiceDep ───────────┼→ AccountService → AccountServiceDep
Storage / Runner / Factory ┘

Router 层将直接使用 AccountServiceDep，无需关心底层细节。

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-17 (AccountService wiring)
"""

from typing import Annotated

from fastapi import Depends

from app.api.deps import DBSession, Runner, SessionFactory, Storage
from app.db.models.user import User
from app.domains.auth.dependencies import TokenServiceDep
from app.domains.users.repository import UserRepository
from app.domains.users.service import AccountService


async def get_user_repository(session: DBSession) -> UserRepository:
    """
    获取用户仓储实例 (UserRepository)。
    """
    return UserRepository(model=User, session=session)


UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]


async def get_account_service(
    repo: UserRepoDep,
    token_service: TokenServiceDep,
    storage: Storage,
    runner: Runner,
    factory: SessionFactory,
) -> AccountService:
    """
    获取账号服务实例 (AccountService)。
    repo 与 token_service 共享同一个请求级会话 (FastAPI 依赖缓存)。
    """
    return AccountService(
        repo=repo,
        token_service=token_service,
        storage=storage,
        runner=runner,
        session_factory=factory,
    )


# ==============================================================================
# 导出类型别名，供 Router 层使用
# ==============================================================================

AccountServiceDep = Annotated[AccountService, Depends(get_account_service)]
