"""
File: app/domains/auth/router.py
Description: 认证领域 HTTP 路由层

本模块定义认证相关的 API 端点：
1. POST /sign-in/email: 邮箱密码登录
2. POST /sign-in/{provider}: 三方登录 (facebook / google / apple)
3. POST /id-token: 自愈校验 (Access Token 过期但会话有效时换发新 Access Token)

规范：
- 使用统一响应信封 (ResponseModel.success)
- 每个请求显式构造 RequestContext 并传入 Service
- 引用 AuthMsg 常量作为响应消息

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-17 (Email / social sign-in, self-healing id token)
"""

from fastapi import APIRouter

from app.api.deps import BearerToken, CurrentContext
from app.core.exceptions import AppException
from app.core.response import ResponseModel
from app.domains.auth.constants import AuthError, AuthMsg
from app.domains.auth.dependencies import (
    IdentityServiceDep,
    TokenServiceDep,
    VerifierRegistry,
)
from app.domains.auth.schemas import (
    AuthPayload,
    EmailSignInRequest,
    IdTokenPayload,
    SocialProvider,
    SocialSignInRequest,
)
from app.domains.auth.service import SignInResult
from app.domains.users.dependencies import AccountServiceDep
from app.domains.users.schemas import UserRead

router = APIRouter()


def _auth_payload(result: SignInResult) -> AuthPayload:
    return AuthPayload(
        token=result.tokens.access_token, user=UserRead.model_validate(result.user)
    )


# ------------------------------------------------------------------------------
# Endpoints (路由定义)
# ------------------------------------------------------------------------------


@router.post(
    "/sign-in/email",
    response_model=ResponseModel[AuthPayload],
    summary="邮箱登录",
    description="使用邮箱密码登录，成功后返回 Access Token 与用户信息。",
)
async def sign_in_email(
    ctx: CurrentContext,
    body: EmailSignInRequest,
    service: AccountServiceDep,
) -> ResponseModel[AuthPayload]:
    result = await service.sign_in_email(ctx, body.email, body.password)

    return ResponseModel.success(
        data=_auth_payload(result),
        message=AuthMsg.LOGIN_SUCCESS,
        request_id=ctx.correlation_id,
    )


@router.post(
    "/sign-in/{provider}",
    response_model=ResponseModel[AuthPayload],
    summary="三方登录",
    description="使用 Facebook / Google access token 或 Apple identity token 登录。首次登录自动创建账号。",
)
async def sign_in_with_social(
    ctx: CurrentContext,
    provider: SocialProvider,
    body: SocialSignInRequest,
    service: IdentityServiceDep,
    verifiers: VerifierRegistry,
) -> ResponseModel[AuthPayload]:
    verifier = verifiers[provider.auth_type]
    result = await service.sign_in_with_provider(ctx, verifier, body.access_token)

    return ResponseModel.success(
        data=_auth_payload(result),
        message=AuthMsg.LOGIN_SUCCESS,
        request_id=ctx.correlation_id,
    )


@router.post(
    "/id-token",
    response_model=ResponseModel[IdTokenPayload],
    summary="获取可用的访问令牌",
    description="携带 Authorization: Bearer <access token>。令牌过期但会话有效时返回新令牌；会话不可恢复时返回 401。",
)
async def get_id_token(
    ctx: CurrentContext,
    token: BearerToken,
    service: TokenServiceDep,
) -> ResponseModel[IdTokenPayload]:
    if not token:
        raise AppException(
            AuthError.NOT_AUTHORIZED, message=ctx.t(AuthError.NOT_AUTHORIZED)
        )

    verification = await service.verify_with_refresh(token)
    if not verification.result:
        raise AppException(
            AuthError.NOT_AUTHORIZED, message=ctx.t(AuthError.NOT_AUTHORIZED)
        )

    return ResponseModel.success(
        data=IdTokenPayload(
            token=verification.access_token,  # type: ignore[arg-type]
            user_id=verification.user_id,  # type: ignore[arg-type]
        ),
        message=AuthMsg.TOKEN_VERIFIED,
        request_id=ctx.correlation_id,
    )
