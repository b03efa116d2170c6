"""
File: app/domains/auth/dependencies.py
Description: 认证领域依赖注入 (DI)

依赖链：
DBSession → SettingsRepository → TokenService (+ Runner, SessionFactory)
DBSession → UserRepository + TokenService → IdentityService
三方校验器注册表 → VerifierRegistry

Author: jinmozhe
Created: 2026-10-17
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.api.deps import DBSession, Runner, SessionFactory
from app.db.models.user import User
from app.db.models.user_settings import AuthType, UserSettings
from app.domains.auth.identity import IdentityService
from app.domains.auth.providers import IdentityVerifier, build_verifiers
from app.domains.auth.repository import SettingsRepository
from app.domains.auth.service import TokenService
from app.domains.users.repository import UserRepository


async def get_token_service(
    session: DBSession, runner: Runner, factory: SessionFactory
) -> TokenService:
    return TokenService(
        settings_repo=SettingsRepository(model=UserSettings, session=session),
        runner=runner,
        session_factory=factory,
    )


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]


async def get_identity_service(
    session: DBSession, token_service: TokenServiceDep
) -> IdentityService:
    return IdentityService(
        user_repo=UserRepository(model=User, session=session),
        token_service=token_service,
    )


IdentityServiceDep = Annotated[IdentityService, Depends(get_identity_service)]


@lru_cache
def get_verifiers() -> dict[AuthType, IdentityVerifier]:
    """三方校验器注册表 (进程内缓存)"""
    return build_verifiers()


VerifierRegistry = Annotated[dict[AuthType, IdentityVerifier], Depends(get_verifiers)]
