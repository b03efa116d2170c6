"""
File: app/domains/auth/identity.py
Description: 三方身份归并服务 (Identity Reconciliation)

把已通过三方校验的身份 (auth_type, social_id) 映射到唯一的本地用户：
1. 邮箱冲突校验: 邮箱已属于其他账号 (不同三方身份或邮箱注册账号) 时拒绝，防止跨平台账号接管
2. 查找或创建: 按 (auth_type, social_id) 查找，不存在则原子创建 User + UserSettings；
   命中已注销账号时拒绝 (USER_CANCELED_ACCOUNT)
3. 刷新 last_signed_in (按 social_id 匹配)
4. 签发 Access + Refresh Token

算法与 provider 无关，provider 差异全部封装在 app/domains/auth/providers.py。

Author: jinmozhe
Created: 2026-10-17
Updated: 2026-10-17 (Reject canceled social accounts)
"""

from sqlalchemy.exc import IntegrityError

from app.core.context import RequestContext
from app.core.exceptions import AppException, to_client_error
from app.core.logging import logger
from app.db.models.base import utcnow
from app.db.models.user import User
from app.db.models.user_settings import AuthType
from app.domains.auth.constants import AuthError
from app.domains.auth.providers import (
    ExternalIdentity,
    IdentityVerifier,
    SocialVerificationError,
)
from app.domains.auth.service import SignInResult, TokenService
from app.domains.users.constants import UserError
from app.domains.users.repository import UserRepository


class IdentityService:
    def __init__(self, user_repo: UserRepository, token_service: TokenService):
        self.user_repo = user_repo
        self.token_service = token_service

    async def sign_in_with_provider(
        self, ctx: RequestContext, verifier: IdentityVerifier, token: str
    ) -> SignInResult:
        """
        校验三方令牌后登录。
        任何三方校验失败都映射为 SIGN_IN_WITH_SOCIAL_FAILED。
        """
        try:
            identity = await verifier.verify(token)
        except SocialVerificationError:
            raise AppException(
                AuthError.SIGN_IN_WITH_SOCIAL_FAILED,
                message=ctx.t(AuthError.SIGN_IN_WITH_SOCIAL_FAILED),
            ) from None
        except Exception as exc:
            raise to_client_error(
                ctx, exc, AuthError.SIGN_IN_WITH_SOCIAL_FAILED
            ) from exc

        return await self.sign_in_with_social_account(ctx, verifier.kind, identity)

    async def sign_in_with_social_account(
        self, ctx: RequestContext, auth_type: AuthType, identity: ExternalIdentity
    ) -> SignInResult:
        session = self.user_repo.session
        try:
            # 1. 邮箱冲突校验
            if identity.email:
                owner = await self.user_repo.find_email_owner_outside_social(
                    identity.email, auth_type, identity.social_id
                )
                if owner is not None:
                    raise self._email_exists(ctx)

            # 2. 查找或创建
            user = await self.user_repo.get_by_social(auth_type, identity.social_id)
            if user is None:
                user = await self._create(ctx, auth_type, identity)
            elif user.is_deleted:
                # 已注销账号不能通过三方登录复活
                raise AppException(
                    UserError.USER_CANCELED_ACCOUNT,
                    message=ctx.t(UserError.USER_CANCELED_ACCOUNT),
                )

            # 3. 刷新登录时间
            await self.user_repo.touch_last_signed_in_by_social(
                auth_type, identity.social_id, utcnow()
            )

            # 4. 签发令牌
            tokens = await self.token_service.issue(user.id, with_refresh=True)
            await session.commit()
            await session.refresh(user)
        except Exception as exc:
            await session.rollback()
            raise to_client_error(ctx, exc) from exc

        logger.bind(user_id=str(user.id), auth_type=auth_type.value).info(
            "Signed in with social account"
        )
        return SignInResult(tokens=tokens, user=user)

    async def _create(
        self, ctx: RequestContext, auth_type: AuthType, identity: ExternalIdentity
    ) -> User:
        user_data = {
            "name": identity.name,
            "email": identity.email,
            "photo_url": identity.photo_url,
            "verified_at": utcnow(),
            "locale": ctx.locale,
        }
        try:
            user = await self.user_repo.create_social_user(
                user_data, auth_type, identity.social_id
            )
        except IntegrityError:
            # 并发下查不到胜出者，冲突来自邮箱唯一索引
            raise self._email_exists(ctx) from None

        logger.bind(user_id=str(user.id), auth_type=auth_type.value).info(
            "Social user created"
        )
        return user

    @staticmethod
    def _email_exists(ctx: RequestContext) -> AppException:
        return AppException(
            AuthError.EMAIL_ALREADY_EXISTS,
            message=ctx.t(AuthError.EMAIL_ALREADY_EXISTS),
        )
