"""
File: app/core/context.py
Description: 请求上下文 (RequestContext)

每个请求显式构造一个上下文值，按参数传入 Service：
- caller_user_id: 已通过 Access Token 校验的调用者 ID (匿名为 None)
- locale: 客户端语言 (用于错误文案本地化、新用户 locale 字段)
- correlation_id: 请求追踪 ID (与 X-Request-ID 一致)

Author: jinmozhe
Created: 2026-10-17
"""

from dataclasses import dataclass, replace
from uuid import UUID

from uuid6 import uuid7

from app.core.config import settings
from app.core.error_code import BaseErrorCode
from app.core.i18n import translate


@dataclass(frozen=True, slots=True)
class RequestContext:
    locale: str = settings.DEFAULT_LOCALE
    correlation_id: str = ""
    caller_user_id: UUID | None = None

    @classmethod
    def anonymous(cls, locale: str | None = None) -> "RequestContext":
        """脚本 / 测试用的匿名上下文。"""
        return cls(
            locale=locale or settings.DEFAULT_LOCALE, correlation_id=str(uuid7())
        )

    def as_caller(self, user_id: UUID) -> "RequestContext":
        return replace(self, caller_user_id=user_id)

    def t(self, error: BaseErrorCode) -> str:
        """按当前语言翻译错误码文案"""
        return translate(error, self.locale)


def parse_accept_language(header: str | None) -> str | None:
    """
    取 Accept-Language 中的首选语言标签。

    例: "ko-KR,ko;q=0.9,en;q=0.8" -> "ko-KR"
    """
    if not header:
        return None
    first = header.split(",")[0].split(";")[0].strip()
    return first or None
