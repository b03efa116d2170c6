"""
File: tests/unit/test_token_service.py
Description: 令牌服务单元测试

覆盖自愈校验决策表的每一行：
1. access 有效 + refresh 存在 -> 原样返回
2. access 有效 + refresh 缺失 -> 原样返回，后台补发 refresh
3. access 无效 + refresh 缺失 -> 失败
4. access 过期 + refresh 存在 -> 换发新 access
5. access 签名无效 + refresh 存在 -> 失败

以及账号注销后，后台补发不会重新建立会话。

Author: jinmozhe
Created: 2026-10-17
Updated: 2026-10-17 (Update-only refresh rotation)
"""

from datetime import timedelta
from uuid import UUID, uuid4

import pytest
from jose import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.security import create_access_token, create_refresh_token
from app.core.tasks import BestEffortRunner
from app.db.models.user import User
from app.db.models.user_settings import AuthType, UserSettings
from app.domains.auth.repository import SettingsRepository
from app.domains.auth.service import TokenService
from app.domains.users.repository import UserRepository

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


async def _create_user(session: AsyncSession, refresh_token: str | None = None) -> UUID:
    repo = UserRepository(model=User, session=session)
    user = await repo.create_with_settings(
        {"name": "Token Owner", "email": f"{uuid4().hex}@example.com"},
        {"auth_type": AuthType.EMAIL, "refresh_token": refresh_token},
    )
    await session.commit()
    return user.id


async def _stored_refresh(
    session_factory: async_sessionmaker[AsyncSession], user_id: UUID
) -> str | None:
    # 新会话读取，避免命中测试会话的 identity map
    async with session_factory() as session:
        repo = SettingsRepository(model=UserSettings, session=session)
        return await repo.get_refresh_token(user_id)


# ------------------------------------------------------------------------------
# issue / verify
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_issue_without_refresh(token_service: TokenService) -> None:
    user_id = uuid4()

    tokens = await token_service.issue(user_id, with_refresh=False)

    assert tokens.refresh_token is None
    verified = TokenService.verify(tokens.access_token)
    assert verified.verified is True
    assert verified.user_id == user_id


@pytest.mark.asyncio
async def test_issue_with_refresh_overwrites_stored_token(
    token_service: TokenService,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user_id = await _create_user(db_session, refresh_token="stale")

    tokens = await token_service.issue(user_id, with_refresh=True)
    await db_session.commit()

    assert tokens.refresh_token is not None
    assert await _stored_refresh(session_factory, user_id) == tokens.refresh_token


def test_verify_rejects_bad_tokens() -> None:
    expired = create_access_token(uuid4(), expires_delta=timedelta(seconds=-30))
    forged = jwt.encode(
        {"userId": str(uuid4())}, "not-our-secret", algorithm=settings.ALGORITHM
    )
    # 签名合法但没有 userId
    refresh_only = create_refresh_token()

    for token in (expired, forged, refresh_only, "garbage", ""):
        assert TokenService.verify(token).verified is False
        assert TokenService.verify(token).user_id is None


# ------------------------------------------------------------------------------
# rotate_refresh
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rotate_refresh_persists_new_token(
    token_service: TokenService,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    user_id = await _create_user(db_session)

    new_token = await token_service.rotate_refresh(user_id)

    assert new_token is not None
    assert await _stored_refresh(session_factory, user_id) == new_token


@pytest.mark.asyncio
async def test_rotate_refresh_failure_returns_none(
    db_session: AsyncSession, runner: BestEffortRunner
) -> None:
    def broken_factory():
        raise RuntimeError("database unavailable")

    service = TokenService(
        settings_repo=SettingsRepository(model=UserSettings, session=db_session),
        runner=runner,
        session_factory=broken_factory,  # type: ignore[arg-type]
    )

    assert await service.rotate_refresh(uuid4()) is None


@pytest.mark.asyncio
async def test_rotate_refresh_never_creates_settings(
    token_service: TokenService,
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    reported: list[str] = []
    monkeypatch.setattr(
        "app.domains.auth.service.report",
        lambda event, **extra: reported.append(event),
    )
    user_id = uuid4()

    assert await token_service.rotate_refresh(user_id) is None

    assert reported == ["token.refresh_rotation_skipped"]
    async with session_factory() as session:
        row = await SettingsRepository(model=UserSettings, session=session).get_by_user_id(
            user_id
        )
    assert row is None


@pytest.mark.asyncio
async def test_settings_row_requires_existing_user(db_session: AsyncSession) -> None:
    repo = SettingsRepository(model=UserSettings, session=db_session)

    # SQLite 连接已开启外键约束
    with pytest.raises(IntegrityError):
        await repo.upsert_refresh_token(uuid4(), create_refresh_token())
        await db_session.flush()


# ------------------------------------------------------------------------------
# verify_with_refresh (决策表)
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_valid_access_with_refresh(
    token_service: TokenService, db_session: AsyncSession, runner: BestEffortRunner
) -> None:
    user_id = await _create_user(db_session, refresh_token=create_refresh_token())
    access_token = create_access_token(user_id)

    verification = await token_service.verify_with_refresh(access_token)

    assert verification.result is True
    assert verification.access_token == access_token
    assert verification.user_id == user_id
    assert runner.pending == 0


@pytest.mark.asyncio
async def test_valid_access_without_refresh_repairs_in_background(
    token_service: TokenService,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    runner: BestEffortRunner,
) -> None:
    user_id = await _create_user(db_session)
    access_token = create_access_token(user_id)

    verification = await token_service.verify_with_refresh(access_token)

    assert verification.result is True
    assert verification.access_token == access_token
    assert verification.user_id == user_id

    await runner.drain()
    assert await _stored_refresh(session_factory, user_id) is not None


@pytest.mark.asyncio
async def test_expired_refresh_counts_as_missing(
    token_service: TokenService,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    runner: BestEffortRunner,
) -> None:
    expired_refresh = create_refresh_token(expires_delta=timedelta(seconds=-30))
    user_id = await _create_user(db_session, refresh_token=expired_refresh)

    # access 过期 + refresh 过期 -> 不可恢复
    expired_access = create_access_token(user_id, expires_delta=timedelta(seconds=-30))
    assert (await token_service.verify_with_refresh(expired_access)).result is False

    # access 有效 + refresh 过期 -> 成功，并补发新的 refresh
    verification = await token_service.verify_with_refresh(create_access_token(user_id))
    assert verification.result is True

    await runner.drain()
    assert await _stored_refresh(session_factory, user_id) not in (None, expired_refresh)


@pytest.mark.asyncio
async def test_expired_access_without_refresh_fails(
    token_service: TokenService, db_session: AsyncSession
) -> None:
    user_id = await _create_user(db_session)
    expired = create_access_token(user_id, expires_delta=timedelta(seconds=-30))

    verification = await token_service.verify_with_refresh(expired)

    assert verification.result is False
    assert verification.access_token is None


@pytest.mark.asyncio
async def test_expired_access_with_refresh_is_reissued(
    token_service: TokenService, db_session: AsyncSession
) -> None:
    refresh_token = create_refresh_token()
    user_id = await _create_user(db_session, refresh_token=refresh_token)
    expired = create_access_token(user_id, expires_delta=timedelta(seconds=-30))

    verification = await token_service.verify_with_refresh(expired)

    assert verification.result is True
    assert verification.user_id == user_id
    assert verification.access_token not in (None, expired)
    assert TokenService.verify(verification.access_token).user_id == user_id  # type: ignore[arg-type]
    # refresh 不动
    assert await token_service.get_refresh_token(user_id) == refresh_token


@pytest.mark.asyncio
async def test_forged_access_with_refresh_fails(
    token_service: TokenService, db_session: AsyncSession
) -> None:
    user_id = await _create_user(db_session, refresh_token=create_refresh_token())
    forged = jwt.encode(
        {"userId": str(user_id)}, "not-our-secret", algorithm=settings.ALGORITHM
    )

    verification = await token_service.verify_with_refresh(forged)

    assert verification.result is False
    assert verification.access_token is None


@pytest.mark.asyncio
async def test_unparseable_token_fails(token_service: TokenService) -> None:
    assert (await token_service.verify_with_refresh("garbage")).result is False
    # 签名合法但没有 userId
    assert (await token_service.verify_with_refresh(create_refresh_token())).result is False


@pytest.mark.asyncio
async def test_withdrawn_account_cannot_regain_session(
    token_service: TokenService,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    runner: BestEffortRunner,
) -> None:
    user_id = await _create_user(db_session, refresh_token=create_refresh_token())
    access_token = create_access_token(user_id)

    await UserRepository(model=User, session=db_session).delete_account(user_id)
    await db_session.commit()

    # access 仍在有效期内：原样通过，但后台补发找不到设置行
    assert (await token_service.verify_with_refresh(access_token)).result is True
    await runner.drain()
    assert await _stored_refresh(session_factory, user_id) is None

    expired = create_access_token(user_id, expires_delta=timedelta(seconds=-30))
    verification = await token_service.verify_with_refresh(expired)

    assert verification.result is False
    assert verification.access_token is None
