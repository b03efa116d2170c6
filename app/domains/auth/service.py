"""
File: app/domains/auth/service.py
Description: 令牌服务 (Token Service)

本模块封装 Access / Refresh Token 的生命周期：
1. issue: 签发 Access Token，可选同时签发并持久化 Refresh Token (整体覆盖)
2. verify: 仅校验签名与有效期，不访问存储，永不抛出
3. rotate_refresh: 为已有设置行生成并持久化新 Refresh Token；
   设置行缺失 (账号已注销) 或写入失败时只上报不抛出
4. verify_with_refresh: 自愈校验协议

自愈校验决策表 (access 是否有效 / 是否存在有效 refresh)：
| access | refresh | 结果 |
|--------|---------|------|
| 有效   | 有      | 成功，原样返回 access token |
| 有效   | 无      | 成功，原样返回；后台异步补发 refresh token |
| 无效   | 无      | 失败，会话不可恢复 |
| 无效   | 有      | 签名有效 (仅过期) 时成功，按 userId 签发新 access token，refresh 不动；
|        |         | 签名无效时失败 (不按未校验的 userId 换发，伪造令牌无法接管账号) |

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-17 (Persisted refresh tokens, self-healing verification)
"""

from dataclasses import dataclass
from uuid import UUID

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import logger
from app.core.observability import report
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_unverified_claims,
)
from app.core.tasks import BestEffortRunner
from app.db.models.user import User
from app.db.models.user_settings import UserSettings
from app.domains.auth.repository import SettingsRepository

USER_ID_CLAIM = "userId"


@dataclass(frozen=True, slots=True)
class IssuedTokens:
    access_token: str
    refresh_token: str | None = None


@dataclass(frozen=True, slots=True)
class VerifiedToken:
    verified: bool
    user_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class RefreshVerification:
    result: bool
    access_token: str | None = None
    user_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class SignInResult:
    tokens: IssuedTokens
    user: User


def _user_id_from_claims(claims: dict) -> UUID:
    return UUID(str(claims[USER_ID_CLAIM]))


def _is_live(token: str, *, verify_exp: bool = True) -> bool:
    try:
        decode_token(token, verify_exp=verify_exp)
    except JWTError:
        return False
    return True


class TokenService:
    """
    令牌服务类。

    settings_repo 绑定请求级会话 (issue 的写入由调用方 commit)；
    rotate_refresh 可能在请求结束后的后台任务中执行，因此自行从 session_factory 开会话。
    """

    def __init__(
        self,
        settings_repo: SettingsRepository,
        runner: BestEffortRunner,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.settings_repo = settings_repo
        self.runner = runner
        self.session_factory = session_factory

    async def issue(self, user_id: UUID, *, with_refresh: bool = True) -> IssuedTokens:
        """
        签发令牌。with_refresh=True 时覆盖写入新的 Refresh Token (不 commit)。
        """
        access_token = create_access_token(user_id)
        if not with_refresh:
            return IssuedTokens(access_token=access_token)

        refresh_token = create_refresh_token()
        await self.settings_repo.upsert_refresh_token(user_id, refresh_token)
        return IssuedTokens(access_token=access_token, refresh_token=refresh_token)

    @staticmethod
    def verify(access_token: str) -> VerifiedToken:
        """校验签名与有效期。过期 / 篡改 / 缺少 userId 均返回 verified=False"""
        try:
            return VerifiedToken(True, _user_id_from_claims(decode_token(access_token)))
        except (JWTError, KeyError, TypeError, ValueError):
            return VerifiedToken(False)

    async def get_refresh_token(self, user_id: UUID) -> str | None:
        return await self.settings_repo.get_refresh_token(user_id)

    async def rotate_refresh(self, user_id: UUID) -> str | None:
        """
        生成并持久化新的 Refresh Token。

        Returns:
            str | None: 新令牌；设置行不存在或持久化失败时返回 None (已上报)
        """
        refresh_token = create_refresh_token()
        try:
            async with self.session_factory() as session:
                repo = SettingsRepository(model=UserSettings, session=session)
                updated = await repo.update_refresh_token(user_id, refresh_token)
                await session.commit()
        except Exception as exc:
            report("token.refresh_rotation_failed", error=exc, user_id=str(user_id))
            return None

        if not updated:
            report("token.refresh_rotation_skipped", user_id=str(user_id))
            return None

        logger.bind(user_id=str(user_id)).info("Refresh token rotated")
        return refresh_token

    async def verify_with_refresh(self, access_token: str) -> RefreshVerification:
        """自愈校验 (决策表见模块文档)。任何意外异常都上报并返回 result=False"""
        try:
            # 不校验签名直接取 userId，过期令牌也能恢复身份
            user_id = _user_id_from_claims(get_unverified_claims(access_token))
            access = self.verify(access_token)

            refresh_token = await self.get_refresh_token(user_id)
            has_refresh = refresh_token is not None and _is_live(refresh_token)

            if access.verified:
                if not has_refresh:
                    self.runner.spawn_best_effort(
                        lambda: self.rotate_refresh(user_id),
                        event="token.refresh_repair_failed",
                        user_id=str(user_id),
                    )
                return RefreshVerification(True, access_token, user_id)

            if not has_refresh:
                return RefreshVerification(False)

            # 只接受本服务签发、仅是过期的令牌；伪造的 userId 不能换取新令牌
            if not _is_live(access_token, verify_exp=False):
                logger.bind(user_id=str(user_id)).warning(
                    "Rejected access token with invalid signature"
                )
                return RefreshVerification(False)

            logger.bind(user_id=str(user_id)).info("Access token re-issued from refresh")
            return RefreshVerification(True, create_access_token(user_id), user_id)

        except Exception as exc:
            report("token.verify_with_refresh_failed", error=exc)
            return RefreshVerification(False)
