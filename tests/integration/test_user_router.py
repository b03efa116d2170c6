"""
File: tests/integration/test_user_router.py
Description: 用户领域 HTTP 接口集成测试

本模块使用 httpx.AsyncClient 对 API 进行端到端测试，验证：
1. 路由挂载与 URL 路径 (/api/v1/users)
2. 统一响应信封结构 (ResponseModel)
3. 中间件行为 (X-Request-ID)
4. 完整的账号流程 (Sign-up -> Sign-in -> Me -> Patch -> Delete)

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-17 (Multipart sign-up, /me endpoints)
"""

import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.core.tasks import BestEffortRunner

USERS_URL = f"{settings.API_V1_STR}/users"
SIGN_IN_URL = f"{settings.API_V1_STR}/auth/sign-in/email"
PASSWORD = "strongpassword"

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


async def _sign_up(client: AsyncClient, email: str = "api@example.com", **files):
    return await client.post(
        USERS_URL,
        data={"name": "API User", "email": email, "password": PASSWORD, "gender": "female"},
        files=files or None,
    )


async def _auth_headers(
    client: AsyncClient, runner: BestEffortRunner, email: str = "api@example.com"
) -> dict[str, str]:
    response = await client.post(SIGN_IN_URL, json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    # 等待后台的 last_signed_in 刷新完成
    await runner.drain()
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


# ------------------------------------------------------------------------------
# Integration Tests
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_sign_up_api(client: AsyncClient) -> None:
    """
    测试：POST /users 注册接口
    验证：
    1. 状态码 201
    2. 响应包含统一信封 (code=success, request_id)
    3. 返回数据包含 id, created_at，且不含 password
    """
    response = await _sign_up(client)

    assert response.status_code == 201

    body = response.json()
    assert body["code"] == "success"
    assert body["request_id"] is not None
    assert response.headers.get("X-Request-ID") == body["request_id"]

    user_data = body["data"]
    assert user_data["email"] == "api@example.com"
    assert user_data["gender"] == "female"
    assert user_data["photo_url"] is None
    assert "id" in user_data
    assert "created_at" in user_data
    assert "password" not in user_data


@pytest.mark.asyncio
async def test_sign_up_with_image(client: AsyncClient, storage) -> None:
    response = await _sign_up(client, image=("avatar.png", b"\x89PNG", "image/png"))

    assert response.status_code == 201
    photo_url = response.json()["data"]["photo_url"]
    assert photo_url.startswith(f"{storage.root}users/")
    assert storage.objects[photo_url] == b"\x89PNG"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [{"email": "not-an-email"}, {"password": "123"}, {"gender": "unknown"}],
)
async def test_sign_up_invalid_params(client: AsyncClient, overrides) -> None:
    data = {"name": "API User", "email": "api@example.com", "password": PASSWORD}
    response = await client.post(USERS_URL, data={**data, **overrides})

    assert response.status_code == 400
    assert response.json()["code"] == "system.invalid_params"


@pytest.mark.asyncio
async def test_sign_up_duplicate_email(client: AsyncClient) -> None:
    await _sign_up(client)

    response = await _sign_up(client)

    assert response.status_code == 409
    assert response.json()["code"] == "auth.email_already_exists"


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient) -> None:
    response = await client.get(f"{USERS_URL}/me")

    assert response.status_code == 401
    assert response.json()["code"] == "auth.not_authorized"

    response = await client.get(
        f"{USERS_URL}/me", headers={"Authorization": "Bearer garbage"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_read_and_update_me(client: AsyncClient, runner: BestEffortRunner) -> None:
    await _sign_up(client)
    headers = await _auth_headers(client, runner)

    # 1. GET /me
    response = await client.get(f"{USERS_URL}/me", headers=headers)
    assert response.status_code == 200
    me = response.json()["data"]
    assert me["email"] == "api@example.com"
    assert me["last_signed_in"] is not None

    # 2. PATCH /me (multipart 表单)
    response = await client.patch(
        f"{USERS_URL}/me",
        headers=headers,
        data={"display_name": "Apiary", "birthday": "1990-05-17"},
    )
    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["display_name"] == "Apiary"
    assert updated["birthday"] == "1990-05-17"
    assert updated["name"] == "API User"


@pytest.mark.asyncio
async def test_update_me_display_name_taken(
    client: AsyncClient, runner: BestEffortRunner
) -> None:
    await _sign_up(client, email="first@example.com")
    await _sign_up(client, email="second@example.com")
    first = await _auth_headers(client, runner, "first@example.com")
    second = await _auth_headers(client, runner, "second@example.com")

    await client.patch(f"{USERS_URL}/me", headers=first, data={"display_name": "Taken"})
    response = await client.patch(
        f"{USERS_URL}/me",
        headers={**second, "Accept-Language": "ko-KR,ko;q=0.9"},
        data={"display_name": "TAKEN"},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "users.display_name_exists"
    assert body["message"] == "이미 사용 중인 닉네임입니다."


@pytest.mark.asyncio
async def test_update_me_replaces_image(
    client: AsyncClient, runner: BestEffortRunner, storage
) -> None:
    created = await _sign_up(client, image=("old.png", b"old", "image/png"))
    old_url = created.json()["data"]["photo_url"]
    headers = await _auth_headers(client, runner)

    response = await client.patch(
        f"{USERS_URL}/me",
        headers=headers,
        files={"image": ("new.png", b"new", "image/png")},
    )

    assert response.status_code == 200
    new_url = response.json()["data"]["photo_url"]
    assert new_url not in (None, old_url)

    await runner.drain()
    assert storage.removed == [old_url]


@pytest.mark.asyncio
async def test_withdraw_me(client: AsyncClient, runner: BestEffortRunner) -> None:
    await _sign_up(client)
    headers = await _auth_headers(client, runner)

    response = await client.delete(f"{USERS_URL}/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["data"] is True

    # 令牌仍在有效期内，但账号已不存在
    response = await client.get(f"{USERS_URL}/me", headers=headers)
    assert response.status_code == 404
    assert response.json()["code"] == "auth.user_not_found"
