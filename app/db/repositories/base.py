"""
File: app/db/repositories/base.py
Description: 通用异步 Repository 基类 (CRUD)

本模块定义了 BaseRepository，封装了通用的 CRUD 操作。
所有领域的 Repository 应继承此类，以减少样板代码。

特性：
- 泛型支持: BaseRepository[ModelType]
- 纯异步: 基于 sqlalchemy.ext.asyncio
- 只 flush 不 commit：事务边界由 Service 层控制
- update 自动过滤核心系统字段 (id, created_at, updated_at)

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-17 (Dict-based create/update, first_where helper)
"""

from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    通用 CRUD 仓储基类。
    """

    # 受保护的字段，禁止通过通用 update 方法修改
    PROTECTED_FIELDS: ClassVar[set[str]] = {"id", "created_at", "updated_at"}

    def __init__(self, model: type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    # --------------------------------------------------------------------------
    # 查询操作 (Read)
    # --------------------------------------------------------------------------

    async def get(self, id: Any) -> ModelType | None:
        """根据主键 ID 查询单条记录"""
        return await self.session.get(self.model, id)

    async def first_where(self, *criteria: ColumnElement[bool]) -> ModelType | None:
        """按条件查询第一条记录"""
        stmt = select(self.model).where(*criteria).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    # --------------------------------------------------------------------------
    # 写入操作 (Create / Update / Delete)
    # --------------------------------------------------------------------------

    async def create(self, data: dict[str, Any]) -> ModelType:
        """
        创建新记录。
        flush 到数据库以获取默认值，但不 commit。
        """
        db_obj = self.model(**data)

        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)

        return db_obj

    async def update(self, db_obj: ModelType, data: dict[str, Any]) -> ModelType:
        """
        更新现有记录，过滤 PROTECTED_FIELDS 中的字段。
        """
        safe_data = {k: v for k, v in data.items() if k not in self.PROTECTED_FIELDS}

        if hasattr(db_obj, "update"):
            db_obj.update(**safe_data)  # type: ignore[union-attr]
        else:
            for field, value in safe_data.items():
                if hasattr(db_obj, field):
                    setattr(db_obj, field, value)

        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)

        return db_obj

    async def delete(self, id: Any) -> ModelType | None:
        """
        物理删除记录。
        """
        db_obj = await self.get(id)
        if db_obj:
            await self.session.delete(db_obj)
            await self.session.flush()
        return db_obj
