"""
File: app/core/response.py
Description: 统一响应信封（Unified Response Envelope）

所有 HTTP 接口返回 {code, message, data, request_id, timestamp}。
成功时 code 固定为 "success"，失败时为 domain.reason 字符串业务码。

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-17 (Account backend)
"""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar, cast

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

SUCCESS_CODE = "success"


class ResponseBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str = Field(default=SUCCESS_CODE, description="业务状态码")
    message: str = Field(default="Success", description="响应消息")
    request_id: str | None = Field(default=None, description="请求追踪ID")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="响应生成时间",
    )


class ResponseModel(ResponseBase, Generic[T]):
    """
    统一响应信封
    """

    data: T | None = Field(default=None, description="业务数据")

    @classmethod
    def success(
        cls,
        data: T | None = None,
        message: str = "Success",
        request_id: str | None = None,
    ) -> "ResponseModel[T]":
        # Pydantic 模型先转为 JSON 安全的字典
        if hasattr(data, "model_dump"):
            data = cast(Any, data).model_dump(mode="json")

        return cls(
            code=SUCCESS_CODE,
            message=message,
            data=data,
            request_id=request_id,
        )

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        data: Any = None,
        request_id: str | None = None,
    ) -> "ResponseModel[Any]":
        return cls(
            code=code,
            message=message,
            data=data,
            request_id=request_id,
        )
