"""
File: app/core/exceptions.py
Description: 业务异常类、变更接口错误转换与全局异常处理器

本模块负责：
1. 业务异常基类（AppException）接受 BaseErrorCode 枚举
2. to_client_error: 变更接口边界的错误转换 (生产环境隐藏原始异常文本)
3. 全局异常处理器自动将异常映射为：语义化 HTTP 状态码 + 字符串业务码
4. 使用 ResponseModel.fail() 构造统一的失败响应信封

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-17 (Localized client errors at the mutation boundary)
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.context import RequestContext
from app.core.error_code import BaseErrorCode, SystemErrorCode
from app.core.logging import logger
from app.core.response import ResponseModel

# ------------------------------------------------------------------------------
# 1. 自定义业务异常类
# ------------------------------------------------------------------------------


class AppException(Exception):
    """
    应用基础异常类。

    用法示例:
        raise AppException(AuthError.PASSWORD_INCORRECT, message=ctx.t(...))
    """

    def __init__(
        self,
        error: BaseErrorCode,
        message: str = "",
        data: Any = None,
    ):
        self.error = error
        self.http_status = error.http_status
        self.code = error.code
        self.message = message or error.msg
        self.data = data
        super().__init__(self.message)


def to_client_error(
    ctx: RequestContext,
    err: BaseException,
    production_error: BaseErrorCode = SystemErrorCode.UNKNOWN,
) -> AppException:
    """
    变更接口边界的错误转换。

    - AppException 原样透传 (已是本地化的业务错误)
    - 其他异常: 生产环境转换为 production_error 的本地化文案；
      非生产环境保留原始异常文本并记录堆栈，便于调试
    """
    if isinstance(err, AppException):
        return err

    if settings.is_production:
        return AppException(production_error, message=ctx.t(production_error))

    logger.opt(exception=err).bind(
        request_id=ctx.correlation_id, code=production_error.code
    ).error("Mutation failed")
    return AppException(production_error, message=str(err) or repr(err))


# ------------------------------------------------------------------------------
# 2. 辅助函数
# ------------------------------------------------------------------------------


def _get_request_id(request: Request) -> str:
    """尝试从 request.state 获取 request_id，如果不存在则返回 'unknown'"""
    return str(getattr(request.state, "request_id", "unknown"))


# ------------------------------------------------------------------------------
# 3. 全局异常处理器 (Handlers)
# ------------------------------------------------------------------------------


async def app_exception_handler(request: Request, exc: AppException) -> ORJSONResponse:
    """
    处理自定义业务异常 (AppException)
    """
    request_id = _get_request_id(request)

    logger.bind(
        request_id=request_id,
        code=exc.code,
        http_status=exc.http_status,
    ).warning("Business exception occurred")

    response_model = ResponseModel.fail(
        code=exc.code,
        message=exc.message,
        data=exc.data,
        request_id=request_id,
    )

    return ORJSONResponse(
        status_code=exc.http_status,
        content=response_model.model_dump(mode="json"),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """
    处理 Pydantic 校验异常
    映射目标: HTTP 400 Bad Request / Code: system.invalid_params
    """
    request_id = _get_request_id(request)

    errors = exc.errors()
    first_error = errors[0] if errors else {}

    loc = first_error.get("loc", [])
    field_name = str(loc[-1]) if loc else "unknown"
    msg = first_error.get("msg", "Invalid parameter")

    readable_message = f"{field_name}: {msg}"

    logger.bind(
        request_id=request_id,
        detail=readable_message,
    ).warning("Request validation failed")

    response_model = ResponseModel.fail(
        code=SystemErrorCode.INVALID_PARAMS.code,
        message=readable_message,
        request_id=request_id,
    )

    return ORJSONResponse(
        status_code=SystemErrorCode.INVALID_PARAMS.http_status,
        content=response_model.model_dump(mode="json"),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> ORJSONResponse:
    """
    处理框架层面的 HTTP 异常 (如 404 Not Found, 405 Method Not Allowed)
    """
    request_id = _get_request_id(request)

    code_str = "system.not_found" if exc.status_code == 404 else "system.http_error"

    logger.bind(
        request_id=request_id,
        status_code=exc.status_code,
        detail=str(exc.detail),
    ).warning("Framework HTTP exception occurred")

    response_model = ResponseModel.fail(
        code=code_str,
        message=str(exc.detail),
        request_id=request_id,
    )

    return ORJSONResponse(
        status_code=exc.status_code,
        content=response_model.model_dump(mode="json"),
    )


async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """
    处理所有未捕获的异常 (500 Internal Server Error)
    """
    request_id = _get_request_id(request)

    logger.opt(exception=exc).bind(request_id=request_id).error(
        "Unhandled system exception occurred"
    )

    response_model = ResponseModel.fail(
        code=SystemErrorCode.INTERNAL_ERROR.code,
        message=SystemErrorCode.INTERNAL_ERROR.msg,
        request_id=request_id,
    )

    return ORJSONResponse(
        status_code=SystemErrorCode.INTERNAL_ERROR.http_status,
        content=response_model.model_dump(mode="json"),
    )


# ------------------------------------------------------------------------------
# 4. 异常处理器注册函数
# ------------------------------------------------------------------------------


def register_exception_handlers(app: FastAPI) -> None:
    """
    统一注册所有异常处理器。
    """
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore
    app.add_exception_handler(Exception, general_exception_handler)
