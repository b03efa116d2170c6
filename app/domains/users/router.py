"""
File: app/domains/users/router.py
Description: 用户领域 HTTP 路由层

本模块定义了账号管理的 API 端点：
1. 注册接口 (POST /) 保持公开，multipart 表单，可附带头像
2. 详情 / 更新 / 注销接口 (GET/PATCH/DELETE /me) 必须携带有效 Access Token
3. 不提供 /{user_id} 接口，防止越权访问 (IDOR)

调用者身份全部来自 RequestContext.caller_user_id，由 Service 层校验。

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-17 (Multipart sign-up / profile update, withdraw)
"""

from datetime import date
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, File, Form, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError

from app.api.deps import CurrentContext
from app.core.response import ResponseModel
from app.db.models.user import Gender
from app.domains.users.constants import UserMsg
from app.domains.users.dependencies import AccountServiceDep
from app.domains.users.schemas import ProfileUpdate, SignUpRequest, UserRead

router = APIRouter()

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _form_model(schema: type[SchemaT], **data: Any) -> SchemaT:
    """表单字段组装为 Schema；校验失败按请求参数错误 (400) 返回"""
    try:
        return schema(**data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


# ------------------------------------------------------------------------------
# Public Endpoints (公开接口)
# ------------------------------------------------------------------------------


@router.post(
    "",
    response_model=ResponseModel[UserRead],
    status_code=status.HTTP_201_CREATED,
    summary="邮箱注册",
    description="创建新用户。邮箱不可属于有效账号或已注销账号。无需登录。",
)
async def sign_up(
    ctx: CurrentContext,
    service: AccountServiceDep,
    name: Annotated[str, Form()],
    email: Annotated[str, Form()],
    password: Annotated[str, Form()],
    gender: Annotated[Gender | None, Form()] = None,
    image: Annotated[UploadFile | None, File()] = None,
) -> ResponseModel[UserRead]:
    """
    注册接口 (Public)
    """
    user_in = _form_model(
        SignUpRequest, name=name, email=email, password=password, gender=gender
    )
    user = await service.sign_up(ctx, user_in, image.file if image else None)

    return ResponseModel.success(
        data=UserRead.model_validate(user),
        request_id=ctx.correlation_id,
        message=UserMsg.CREATE_SUCCESS,
    )


# ------------------------------------------------------------------------------
# Protected Endpoints (受保护接口 - 需登录)
# ------------------------------------------------------------------------------


@router.get(
    "/me",
    response_model=ResponseModel[UserRead],
    summary="获取我的个人资料",
    description="获取当前登录用户的详细信息。需携带有效 Token。",
)
async def read_user_me(
    ctx: CurrentContext,
    service: AccountServiceDep,
) -> ResponseModel[UserRead]:
    user = await service.get_me(ctx)

    return ResponseModel.success(
        data=UserRead.model_validate(user),
        request_id=ctx.correlation_id,
    )


@router.patch(
    "/me",
    response_model=ResponseModel[UserRead],
    summary="更新我的个人资料",
    description="更新当前登录用户的资料与头像。未传入的字段保持不变。需携带有效 Token。",
)
async def update_user_me(
    ctx: CurrentContext,
    service: AccountServiceDep,
    name: Annotated[str | None, Form()] = None,
    display_name: Annotated[str | None, Form()] = None,
    gender: Annotated[Gender | None, Form()] = None,
    phone: Annotated[str | None, Form()] = None,
    birthday: Annotated[date | None, Form()] = None,
    should_delete_image: Annotated[bool, Form()] = False,
    image: Annotated[UploadFile | None, File()] = None,
) -> ResponseModel[UserRead]:
    """
    更新当前用户接口 (Secured)
    """
    fields = {
        "name": name,
        "display_name": display_name,
        "gender": gender,
        "phone": phone,
        "birthday": birthday,
    }
    # 只把真正提交的字段标记为 set (PATCH 语义)
    user_in = _form_model(
        ProfileUpdate, **{k: v for k, v in fields.items() if v is not None}
    )

    updated_user = await service.update_profile(
        ctx,
        user_in,
        image=image.file if image else None,
        should_delete_image=should_delete_image,
    )

    return ResponseModel.success(
        data=UserRead.model_validate(updated_user),
        request_id=ctx.correlation_id,
        message=UserMsg.UPDATE_SUCCESS,
    )


@router.delete(
    "/me",
    response_model=ResponseModel[bool],
    summary="注销账号",
    description="物理删除当前登录用户。需携带有效 Token。",
)
async def withdraw_user_me(
    ctx: CurrentContext,
    service: AccountServiceDep,
) -> ResponseModel[bool]:
    result = await service.withdraw_user(ctx)

    return ResponseModel.success(
        data=result,
        request_id=ctx.correlation_id,
        message=UserMsg.WITHDRAW_SUCCESS,
    )
