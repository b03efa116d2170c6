"""
File: app/core/error_code.py
Description: 全局错误码基类与系统级错误定义

定义结构 Tuple(http_status, code, message):
1. http_status: HTTP 响应状态码 (4xx/5xx)
2. code: 字符串业务码 (格式: domain.reason)
3. message: 默认的人类可读错误消息 (多语言文案见 app/core/i18n.py)

Author: jinmozhe
Created: 2026-01-15
Updated: 2026-10-17 (UNKNOWN code for mutation boundary)
"""

from enum import Enum

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_500_INTERNAL_SERVER_ERROR,
)


class BaseErrorCode(Enum):
    """
    错误码枚举基类
    所有业务领域的错误码 Enum 必须继承此类。
    """

    @property
    def http_status(self) -> int:
        """获取映射的 HTTP 状态码"""
        return self.value[0]

    @property
    def code(self) -> str:
        """获取业务错误标识 (domain.reason)"""
        return self.value[1]

    @property
    def msg(self) -> str:
        """获取默认错误描述信息"""
        return self.value[2]


class SystemErrorCode(BaseErrorCode):
    """
    系统通用错误定义 (System Domain)
    """

    INVALID_PARAMS = (HTTP_400_BAD_REQUEST, "system.invalid_params", "参数校验失败")
    UNAUTHORIZED = (HTTP_401_UNAUTHORIZED, "system.unauthorized", "身份认证失败")

    # 变更接口的兜底错误 (生产环境隐藏原始异常文本)
    UNKNOWN = (HTTP_500_INTERNAL_SERVER_ERROR, "system.unknown", "未知错误")

    INTERNAL_ERROR = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "system.internal_error",
        "系统内部错误",
    )
