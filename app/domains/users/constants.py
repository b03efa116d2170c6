"""
File: app/domains/users/constants.py
Description: 用户领域常量定义 (错误码枚举 + 成功提示)
"""

from starlette.status import (
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from app.core.error_code import BaseErrorCode


class UserError(BaseErrorCode):
    """用户领域错误码"""

    # 格式: (HTTP状态, 业务码, 默认文案)

    # 邮箱属于已注销账号 (需走账号恢复流程，而不是重新注册)
    USER_CANCELED_ACCOUNT = (
        HTTP_409_CONFLICT,
        "users.canceled_account",
        "该账号已注销",
    )
    DISPLAY_NAME_EXISTS = (
        HTTP_409_CONFLICT,
        "users.display_name_exists",
        "该展示名已被占用",
    )
    UPLOAD_FAILED = (HTTP_502_BAD_GATEWAY, "users.upload_failed", "文件上传失败")
    USER_CREATE_FAILED = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "users.create_failed",
        "用户创建失败",
    )


class UserMsg:
    CREATE_SUCCESS = "注册成功"
    UPDATE_SUCCESS = "资料更新成功"
    WITHDRAW_SUCCESS = "账号已注销"
