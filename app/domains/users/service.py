"""
File: app/domains/users/service.py
Description: 账号服务 (业务逻辑层)

本模块编排账号相关的变更流程：
1. sign_up: 邮箱注册 (已注销邮箱单独报错、哈希密码、可选头像上传)
2. sign_in_email: 邮箱登录 (校验密码、签发双 Token、后台刷新 last_signed_in)
3. update_profile: 更新资料 (展示名唯一性、头像替换策略)
4. withdraw_user: 注销账号 (物理删除)
5. get_me: 查询当前用户

注意：
- 所有数据库写操作的事务提交 (Commit) 由本层负责。
- 每个操作都显式接收 RequestContext (调用者 ID / 语言 / 追踪 ID)。
- 旁路副作用 (头像清理、登录时间) 交给 BestEffortRunner，失败只上报，不影响主流程。

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (Account mutations with explicit request context)
"""

from typing import BinaryIO
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid6 import uuid7

from app.core.context import RequestContext
from app.core.error_code import SystemErrorCode
from app.core.exceptions import AppException, to_client_error
from app.core.logging import logger
from app.core.observability import report
from app.core.security import encrypt_credential_async, validate_credential_async
from app.core.storage import BlobStorage
from app.core.tasks import BestEffortRunner
from app.db.models.base import utcnow
from app.db.models.user import User
from app.db.models.user_settings import AuthType
from app.domains.auth.constants import AuthError
from app.domains.auth.service import SignInResult, TokenService
from app.domains.users.constants import UserError
from app.domains.users.repository import UserRepository
from app.domains.users.schemas import ProfileUpdate, SignUpRequest

# 头像对象存放目录
AVATAR_DIR = "users"


def _fail(ctx: RequestContext, error: AuthError | UserError) -> AppException:
    return AppException(error, message=ctx.t(error))


class AccountService:
    """
    账号服务。

    职责：
    - 编排业务流程
    - 执行业务规则校验 (如：邮箱是否属于已注销账号)
    - 调用 Repository 进行数据持久化
    """

    def __init__(
        self,
        repo: UserRepository,
        token_service: TokenService,
        storage: BlobStorage,
        runner: BestEffortRunner,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.repo = repo
        self.token_service = token_service
        self.storage = storage
        self.runner = runner
        self.session_factory = session_factory

    @property
    def session(self) -> AsyncSession:
        return self.repo.session

    # --------------------------------------------------------------------------
    # 注册 / 登录
    # --------------------------------------------------------------------------

    async def sign_up(
        self, ctx: RequestContext, obj_in: SignUpRequest, image: BinaryIO | None = None
    ) -> User:
        """
        邮箱注册。
        """
        photo_url: str | None = None
        try:
            # 1. 唯一性校验 (Fail Fast)
            if await self.repo.get_canceled_by_email(obj_in.email):
                raise _fail(ctx, UserError.USER_CANCELED_ACCOUNT)

            if await self.repo.get_by_email(obj_in.email):
                raise _fail(ctx, AuthError.EMAIL_ALREADY_EXISTS)

            # 2. 密码加密 (使用异步版本，避免阻塞事件循环)
            hashed_password = await encrypt_credential_async(obj_in.password)

            # 3. 头像上传
            if image is not None:
                photo_url = await self._upload_avatar(ctx, image)

            # 4. 持久化与事务提交
            user_data = obj_in.model_dump(exclude={"password"})
            user = await self.repo.create_with_settings(
                {
                    **user_data,
                    "password": hashed_password,
                    "locale": ctx.locale,
                    "photo_url": photo_url,
                },
                {"auth_type": AuthType.EMAIL},
            )
            await self.session.commit()
            await self.session.refresh(user)
        except Exception as exc:
            await self.session.rollback()
            if photo_url:
                self._remove_images(photo_url)
            if isinstance(exc, IntegrityError):
                raise _fail(ctx, AuthError.EMAIL_ALREADY_EXISTS) from exc
            raise to_client_error(ctx, exc, UserError.USER_CREATE_FAILED) from exc

        logger.bind(user_id=str(user.id)).info("User created successfully")
        return user

    async def sign_in_email(
        self, ctx: RequestContext, email: str, password: str
    ) -> SignInResult:
        """
        邮箱密码登录。

        流程:
        1. 按邮箱查询有效账号
        2. 无密码哈希说明是三方账号
        3. 校验密码 (线程池)
        4. 签发 Access + Refresh Token
        5. 后台刷新 last_signed_in (不等待)
        """
        try:
            user = await self.repo.get_by_email(email)
            if user is None:
                raise _fail(ctx, AuthError.USER_NOT_FOUND)

            if not user.password:
                raise _fail(ctx, AuthError.IS_SOCIAL_USER)

            if not await validate_credential_async(password, user.password):
                raise _fail(ctx, AuthError.PASSWORD_INCORRECT)

            tokens = await self.token_service.issue(user.id, with_refresh=True)
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            raise to_client_error(ctx, exc, AuthError.USER_NOT_FOUND) from exc

        user_id = user.id
        self.runner.spawn_best_effort(
            lambda: self._touch_last_signed_in(user_id),
            event="users.touch_last_signed_in_failed",
            user_id=str(user_id),
        )

        logger.bind(user_id=str(user_id)).info("Signed in with email")
        return SignInResult(tokens=tokens, user=user)

    # --------------------------------------------------------------------------
    # 当前用户
    # --------------------------------------------------------------------------

    async def get_me(self, ctx: RequestContext) -> User:
        return await self._current_user(ctx, self._require_caller(ctx))

    async def update_profile(
        self,
        ctx: RequestContext,
        obj_in: ProfileUpdate,
        image: BinaryIO | None = None,
        should_delete_image: bool = False,
    ) -> User:
        """
        更新当前用户资料。

        头像策略：
        - 请求删除头像，或上传新头像且已有旧头像时，旧头像 (photo/thumb) 交给后台清理
        - 清理失败不影响资料更新
        """
        user_id = self._require_caller(ctx)
        try:
            user = await self._current_user(ctx, user_id)
            update_data = obj_in.model_dump(exclude_unset=True)

            # 1. 展示名唯一性 (大小写不敏感，允许沿用自己当前的展示名)
            display_name = update_data.get("display_name")
            if display_name and await self.repo.display_name_taken(
                display_name, user.id
            ):
                raise _fail(ctx, UserError.DISPLAY_NAME_EXISTS)

            # 2. 旧头像清理
            if user.photo_url and (should_delete_image or image is not None):
                self._remove_images(user.photo_url, user.thumb_url)
                update_data.update(photo_url=None, thumb_url=None)

            # 3. 新头像上传
            if image is not None:
                update_data["photo_url"] = await self._upload_avatar(ctx, image)

            # 4. 执行常规字段更新
            updated_user = await self.repo.update(user, update_data)
            await self.session.commit()
            await self.session.refresh(updated_user)
        except Exception as exc:
            await self.session.rollback()
            raise to_client_error(ctx, exc) from exc

        logger.bind(user_id=str(user_id)).info("User updated successfully")
        return updated_user

    async def withdraw_user(self, ctx: RequestContext) -> bool:
        """
        注销当前账号 (物理删除 User 及其设置行)。
        删除失败上报 observability，并以通用错误返回。
        """
        user_id = self._require_caller(ctx)
        user = await self._current_user(ctx, user_id)
        images = (user.photo_url, user.thumb_url)

        try:
            await self.repo.delete_account(user_id)
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            report("users.withdraw_failed", error=exc, user_id=str(user_id))
            raise AppException(
                SystemErrorCode.UNKNOWN, message=ctx.t(SystemErrorCode.UNKNOWN)
            ) from exc

        self._remove_images(*images)
        logger.bind(user_id=str(user_id)).info("User withdrawn")
        return True

    # --------------------------------------------------------------------------
    # 内部方法
    # --------------------------------------------------------------------------

    @staticmethod
    def _require_caller(ctx: RequestContext) -> UUID:
        if ctx.caller_user_id is None:
            raise _fail(ctx, AuthError.NOT_AUTHORIZED)
        return ctx.caller_user_id

    async def _current_user(self, ctx: RequestContext, user_id: UUID) -> User:
        user = await self.repo.get_active(user_id)
        if user is None:
            raise _fail(ctx, AuthError.USER_NOT_FOUND)
        return user

    async def _upload_avatar(self, ctx: RequestContext, image: BinaryIO) -> str:
        try:
            return await self.storage.upload(image, AVATAR_DIR, uuid7().hex)
        except Exception as exc:
            raise to_client_error(ctx, exc, UserError.UPLOAD_FAILED) from exc

    def _remove_images(self, *urls: str | None) -> None:
        for url in urls:
            if url:
                self.runner.spawn_best_effort(
                    lambda url=url: self.storage.remove(url),
                    event="users.image_remove_failed",
                    url=url,
                )

    async def _touch_last_signed_in(self, user_id: UUID) -> None:
        # 后台执行时请求会话可能已关闭，单独开会话
        async with self.session_factory() as session:
            await UserRepository(model=User, session=session).touch_last_signed_in(
                user_id, utcnow()
            )
            await session.commit()
