"""
File: app/domains/auth/constants.py
Description: 认证领域常量定义 (错误码 + 成功提示)
Namespace: auth.*

遵循 v2.1 架构规范:
1. Error 定义: 继承 BaseErrorCode，包含 (HTTP状态, 业务码, 默认文案)
2. Msg 定义: 纯字符串常量，用于 Router 返回成功响应

Author: jinmozhe
Created: 2026-01-15
Updated: 2026-10-17 (Social sign-in, token verification errors)
"""

from starlette.status import (
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from app.core.error_code import BaseErrorCode

# ==============================================================================
# 1. 错误码定义 (Error Codes)
# 用于 Service 层抛出异常: raise AppException(AuthError.USER_NOT_FOUND)
# ==============================================================================


class AuthError(BaseErrorCode):
    """
    认证领域错误定义
    Tuple Structure: (HTTP_Status, Code_String, Default_Message)
    """

    # HTTP 401: 未登录 / 会话无法恢复
    NOT_AUTHORIZED = (HTTP_401_UNAUTHORIZED, "auth.not_authorized", "未授权")

    # 三方令牌校验失败 (任意 provider 的任意失败统一映射到此)
    SIGN_IN_WITH_SOCIAL_FAILED = (
        HTTP_401_UNAUTHORIZED,
        "auth.sign_in_with_social_failed",
        "三方账号登录失败",
    )

    # HTTP 404: 邮箱登录时账号不存在
    USER_NOT_FOUND = (HTTP_404_NOT_FOUND, "auth.user_not_found", "用户不存在")

    # HTTP 403: 凭证类拒绝
    IS_SOCIAL_USER = (HTTP_403_FORBIDDEN, "auth.is_social_user", "该账号为三方登录账号")
    PASSWORD_INCORRECT = (HTTP_403_FORBIDDEN, "auth.password_incorrect", "密码错误")

    # HTTP 409: 邮箱已被其他账号占用
    EMAIL_ALREADY_EXISTS = (
        HTTP_409_CONFLICT,
        "auth.email_already_exists",
        "该邮箱已被注册",
    )


# ==============================================================================
# 2. 成功提示语 (Success Messages)
# 用于 Router 层返回响应: return ResponseModel.success(message=AuthMsg.LOGIN_SUCCESS)
# ==============================================================================


class AuthMsg:
    """
    认证领域成功提示文案
    """

    LOGIN_SUCCESS = "登录成功"
    TOKEN_VERIFIED = "令牌校验成功"
