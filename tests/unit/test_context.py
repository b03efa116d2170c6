"""
File: tests/unit/test_context.py
Description: 请求上下文、错误文案本地化与变更接口错误转换单元测试

Author: jinmozhe
Created: 2026-10-17
"""

from uuid import uuid4

import pytest

from app.core.config import settings
from app.core.context import RequestContext, parse_accept_language
from app.core.error_code import SystemErrorCode
from app.core.exceptions import AppException, to_client_error
from app.core.i18n import translate
from app.domains.auth.constants import AuthError
from app.domains.users.constants import UserError


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("ko-KR,ko;q=0.9,en;q=0.8", "ko-KR"),
        ("en", "en"),
        ("fr;q=0.5", "fr"),
        ("", None),
        (None, None),
    ],
)
def test_parse_accept_language(header, expected) -> None:
    assert parse_accept_language(header) == expected


def test_translate_falls_back_to_default_message() -> None:
    assert translate(AuthError.USER_NOT_FOUND, "ko-KR") == "존재하지 않는 사용자입니다."
    assert translate(AuthError.USER_NOT_FOUND, "en_US") == "User does not exist."
    # 未收录的语言回落到枚举默认文案
    assert translate(AuthError.USER_NOT_FOUND, "fr") == AuthError.USER_NOT_FOUND.msg


def test_context_as_caller() -> None:
    ctx = RequestContext.anonymous(locale="ko")
    user_id = uuid4()

    caller = ctx.as_caller(user_id)

    assert ctx.caller_user_id is None
    assert caller.caller_user_id == user_id
    assert caller.correlation_id == ctx.correlation_id
    assert caller.t(UserError.DISPLAY_NAME_EXISTS) == "이미 사용 중인 닉네임입니다."


def test_to_client_error_passes_app_exception_through() -> None:
    ctx = RequestContext.anonymous()
    original = AppException(AuthError.PASSWORD_INCORRECT, message="nope")

    assert to_client_error(ctx, original) is original


def test_to_client_error_keeps_raw_text_outside_production() -> None:
    ctx = RequestContext.anonymous()

    err = to_client_error(ctx, RuntimeError("disk full"), UserError.USER_CREATE_FAILED)

    assert err.code == "users.create_failed"
    assert err.http_status == 500
    assert err.message == "disk full"


def test_to_client_error_hides_raw_text_in_production(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "ENVIRONMENT", "prod")
    ctx = RequestContext.anonymous(locale="ko")

    err = to_client_error(ctx, RuntimeError("disk full"))

    assert err.code == SystemErrorCode.UNKNOWN.code
    assert err.message == "알 수 없는 오류가 발생했습니다."
