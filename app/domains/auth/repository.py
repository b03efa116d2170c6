"""
File: app/domains/auth/repository.py
Description: 用户设置仓储层 (Refresh Token 持久化)

Refresh Token 以整体覆盖方式存放在 user_settings.refresh_token。
同一用户任意时刻只有一个有效 Refresh Token，后写入者生效 (无乐观锁)。
签发 (issue) 可新建设置行；轮换 (rotate) 只更新已有行，账号注销后不会留下孤立令牌。

Author: jinmozhe
Created: 2026-10-17
Updated: 2026-10-17 (Update-only refresh rotation)
"""

from uuid import UUID

from app.db.models.user_settings import AuthType, UserSettings
from app.db.repositories.base import BaseRepository


class SettingsRepository(BaseRepository[UserSettings]):
    async def get_by_user_id(self, user_id: UUID) -> UserSettings | None:
        return await self.first_where(UserSettings.user_id == user_id)

    async def get_refresh_token(self, user_id: UUID) -> str | None:
        row = await self.get_by_user_id(user_id)
        return row.refresh_token if row else None

    async def upsert_refresh_token(self, user_id: UUID, token: str | None) -> None:
        """
        写入 (覆盖) 用户的 Refresh Token；设置行不存在时新建 (auth_type 默认 email)。
        不 commit。
        """
        row = await self.get_by_user_id(user_id)
        if row is None:
            await self.create(
                {"user_id": user_id, "auth_type": AuthType.EMAIL, "refresh_token": token}
            )
            return

        await self.update(row, {"refresh_token": token})

    async def update_refresh_token(self, user_id: UUID, token: str | None) -> bool:
        """
        只覆盖已存在设置行的 Refresh Token，不新建。不 commit。

        Returns:
            bool: 设置行是否存在
        """
        row = await self.get_by_user_id(user_id)
        if row is None:
            return False

        await self.update(row, {"refresh_token": token})
        return True
