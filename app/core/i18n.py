"""
File: app/core/i18n.py
Description: 错误文案多语言目录

错误码枚举中的默认文案为中文；其余语言按业务码 (code) 查表。
查不到时回落到枚举默认文案，保证任何语言都能拿到可读消息。

Author: jinmozhe
Created: 2026-10-17
"""

from app.core.error_code import BaseErrorCode

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "auth.not_authorized": "You are not authorized.",
        "auth.user_not_found": "User does not exist.",
        "auth.is_social_user": "This account signed up with a social provider.",
        "auth.password_incorrect": "Password is incorrect.",
        "auth.email_already_exists": "Email already exists.",
        "auth.sign_in_with_social_failed": "Failed to sign in with social account.",
        "users.canceled_account": "This account was canceled.",
        "users.display_name_exists": "Display name already exists.",
        "users.upload_failed": "Failed to upload file.",
        "users.create_failed": "Failed to create user.",
        "system.invalid_params": "Invalid parameters.",
        "system.unauthorized": "Authentication failed.",
        "system.unknown": "Unknown error occurred.",
        "system.internal_error": "Internal server error.",
    },
    "ko": {
        "auth.not_authorized": "권한이 없습니다.",
        "auth.user_not_found": "존재하지 않는 사용자입니다.",
        "auth.is_social_user": "소셜 계정으로 가입된 사용자입니다.",
        "auth.password_incorrect": "비밀번호가 올바르지 않습니다.",
        "auth.email_already_exists": "이미 존재하는 이메일입니다.",
        "auth.sign_in_with_social_failed": "소셜 로그인에 실패했습니다.",
        "users.canceled_account": "탈퇴한 계정입니다.",
        "users.display_name_exists": "이미 사용 중인 닉네임입니다.",
        "users.upload_failed": "파일 업로드에 실패했습니다.",
        "users.create_failed": "사용자 생성에 실패했습니다.",
        "system.unknown": "알 수 없는 오류가 발생했습니다.",
    },
}


def normalize_locale(locale: str | None) -> str:
    """'ko-KR' / 'en_US' -> 'ko' / 'en'"""
    if not locale:
        return ""
    return locale.replace("_", "-").split("-")[0].strip().lower()


def translate(error: BaseErrorCode, locale: str | None) -> str:
    """返回错误码在指定语言下的文案。"""
    catalog = MESSAGES.get(normalize_locale(locale), {})
    return catalog.get(error.code, error.msg)
