"""
File: app/domains/users/repository.py
Description: 用户领域仓储层 (Repository)

本模块负责用户数据的数据库访问，继承自通用 BaseRepository。
扩展功能：
1. 有效账号查询 (deleted_at IS NULL) 与已注销账号查询
2. 三方身份 (auth_type, social_id) 查询与并发安全的创建
3. 邮箱 / 展示名唯一性检查
4. last_signed_in 刷新、账号物理删除

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (Social identity lookups, scoped uniqueness checks)
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, delete, func, not_, select, update
from sqlalchemy.exc import IntegrityError

from app.core.logging import logger
from app.db.models.user import User
from app.db.models.user_settings import AuthType, UserSettings
from app.db.repositories.base import BaseRepository


def _social_user_ids(auth_type: AuthType, social_id: str):
    return select(UserSettings.user_id).where(
        UserSettings.auth_type == auth_type, UserSettings.social_id == social_id
    )


class UserRepository(BaseRepository[User]):
    """
    用户仓储类。

    注意：
    除 get_canceled_by_email 外，查询方法默认只返回有效账号 (deleted_at IS NULL)。
    """

    async def get_active(self, user_id: UUID) -> User | None:
        user = await self.get(user_id)
        if user is None or user.is_deleted:
            return None
        return user

    async def get_by_email(self, email: str) -> User | None:
        return await self.first_where(User.email == email, User.deleted_at.is_(None))

    async def get_canceled_by_email(self, email: str) -> User | None:
        """查询使用该邮箱、且已注销的账号"""
        return await self.first_where(
            User.email == email, User.deleted_at.is_not(None)
        )

    async def get_by_social(self, auth_type: AuthType, social_id: str) -> User | None:
        return await self.first_where(User.id.in_(_social_user_ids(auth_type, social_id)))

    async def find_email_owner_outside_social(
        self, email: str, auth_type: AuthType, social_id: str
    ) -> User | None:
        """
        查询拥有该邮箱、但不属于该三方身份的有效账号。
        邮箱注册账号 (social_id 为空) 也算作"其他账号"。
        """
        same_identity = (
            select(UserSettings.id)
            .where(
                UserSettings.user_id == User.id,
                and_(
                    UserSettings.auth_type == auth_type,
                    UserSettings.social_id == social_id,
                ),
            )
            .exists()
        )
        return await self.first_where(
            User.email == email, User.deleted_at.is_(None), not_(same_identity)
        )

    async def display_name_taken(self, display_name: str, exclude_user_id: UUID) -> bool:
        """展示名在其他有效账号中是否已被使用 (大小写不敏感)"""
        user = await self.first_where(
            func.lower(User.display_name) == display_name.lower(),
            User.id != exclude_user_id,
            User.deleted_at.is_(None),
        )
        return user is not None

    # --------------------------------------------------------------------------
    # 写入操作
    # --------------------------------------------------------------------------

    async def create_with_settings(
        self, user_data: dict[str, Any], settings_data: dict[str, Any]
    ) -> User:
        """同一事务内创建 User + UserSettings (不 commit)"""
        user = await self.create(user_data)
        self.session.add(UserSettings(user_id=user.id, **settings_data))
        await self.session.flush()
        return user

    async def create_social_user(
        self, user_data: dict[str, Any], auth_type: AuthType, social_id: str
    ) -> User:
        """
        创建三方账号。

        两个并发请求可能同时判定"不存在"并都尝试创建，
        (auth_type, social_id) 唯一约束保证只有一个成功；
        失败方回滚后重新查询胜出者并返回它。
        若查不到胜出者，说明冲突来自邮箱唯一约束，原样抛出 IntegrityError。
        """
        try:
            return await self.create_with_settings(
                user_data, {"auth_type": auth_type, "social_id": social_id}
            )
        except IntegrityError:
            await self.session.rollback()
            winner = await self.get_by_social(auth_type, social_id)
            if winner is None:
                raise
            logger.bind(user_id=str(winner.id), auth_type=auth_type.value).info(
                "Concurrent social sign-up resolved to existing user"
            )
            return winner

    async def touch_last_signed_in_by_social(
        self, auth_type: AuthType, social_id: str, at: datetime
    ) -> None:
        stmt = (
            update(User)
            .where(User.id.in_(_social_user_ids(auth_type, social_id)))
            .values(last_signed_in=at)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def touch_last_signed_in(self, user_id: UUID, at: datetime) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(last_signed_in=at)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def delete_account(self, user_id: UUID) -> bool:
        """
        物理删除账号及其设置行。

        Returns:
            bool: 是否删除了用户行
        """
        await self.session.execute(
            delete(UserSettings)
            .where(UserSettings.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        return await self.delete(user_id) is not None
