"""
File: tests/conftest.py
Description: Pytest 全局 Fixtures 配置 (Async + 每个用例独立的 SQLite 测试库)

说明：
1. 环境变量默认值必须在导入 app 之前设置 (Settings 在导入时校验)
2. 每个用例使用 tmp_path 下独立的 SQLite 文件库 (sqlite+aiosqlite)，create_all 建表
3. 所有异步 fixture 都是 function 级别，与 pytest-asyncio 的用例事件循环一致
4. BestEffortRunner 每个用例新建，teardown 时 drain (先于引擎释放)
5. 对象存储 / 三方校验器使用内存替身，通过 dependency_overrides 注入

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-17 (Per-test SQLite database, storage / verifier doubles)
"""

import asyncio
import os
import sys
from collections.abc import AsyncGenerator
from typing import BinaryIO

# ------------------------------------------------------------------------------
# Windows 平台特定修复 (必须在任何 async 操作之前)
# ------------------------------------------------------------------------------
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# ------------------------------------------------------------------------------
# 1. 环境配置 (必须在导入 app 之前)
# ------------------------------------------------------------------------------
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "local")
# bcrypt 最低工作因子，加快测试
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("APPLE_CLIENT_ID", "com.example.app")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from app.api.deps import get_runner, get_session_factory, get_storage
from app.core.context import RequestContext
from app.core.tasks import BestEffortRunner
from app.db.models import Base
from app.db.models.user import User
from app.db.models.user_settings import AuthType, UserSettings
from app.db.session import build_engine, create_session_factory
from app.domains.auth.dependencies import get_verifiers
from app.domains.auth.identity import IdentityService
from app.domains.auth.providers import ExternalIdentity, SocialVerificationError
from app.domains.auth.repository import SettingsRepository
from app.domains.auth.service import TokenService
from app.domains.users.repository import UserRepository
from app.domains.users.service import AccountService
from app.main import app

# ------------------------------------------------------------------------------
# 2. 测试替身 (Test Doubles)
# ------------------------------------------------------------------------------


class InMemoryStorage:
    """BlobStorage 的内存实现"""

    root = "https://blob.test/accounts/"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.removed: list[str] = []
        self.fail_upload = False
        self.fail_remove = False

    async def upload(self, stream: BinaryIO, dest_dir: str, dest_file: str) -> str:
        if self.fail_upload:
            raise RuntimeError("storage unavailable")
        url = f"{self.root}{dest_dir}/{dest_file}"
        self.objects[url] = stream.read()
        return url

    async def remove(self, url: str) -> str | None:
        if self.fail_remove:
            raise RuntimeError("storage unavailable")
        if not url.startswith(self.root):
            return None
        self.objects.pop(url, None)
        self.removed.append(url)
        return url


class FakeVerifier:
    """按令牌查表返回身份的三方校验器"""

    def __init__(self, kind: AuthType) -> None:
        self.kind = kind
        self.identities: dict[str, ExternalIdentity] = {}

    async def verify(self, token: str) -> ExternalIdentity:
        try:
            return self.identities[token]
        except KeyError:
            raise SocialVerificationError("unknown token") from None


# ------------------------------------------------------------------------------
# 3. 数据库 Fixtures
# ------------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    创建测试专用的数据库引擎 (每个用例一个 SQLite 文件)。
    """
    uri = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = build_engine(uri)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    获取测试用的数据库会话。
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def runner(db_engine: AsyncEngine) -> AsyncGenerator[BestEffortRunner, None]:
    # 依赖 db_engine：保证 drain 在引擎释放之前执行
    best_effort = BestEffortRunner()
    yield best_effort
    await best_effort.drain()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def verifiers() -> dict[AuthType, FakeVerifier]:
    return {
        kind: FakeVerifier(kind)
        for kind in (AuthType.GOOGLE, AuthType.FACEBOOK, AuthType.APPLE)
    }


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext.anonymous()


# ------------------------------------------------------------------------------
# 4. 服务 Fixtures
# ------------------------------------------------------------------------------


@pytest.fixture
def user_repo(db_session: AsyncSession) -> UserRepository:
    return UserRepository(model=User, session=db_session)


@pytest.fixture
def token_service(
    db_session: AsyncSession,
    runner: BestEffortRunner,
    session_factory: async_sessionmaker[AsyncSession],
) -> TokenService:
    return TokenService(
        settings_repo=SettingsRepository(model=UserSettings, session=db_session),
        runner=runner,
        session_factory=session_factory,
    )


@pytest.fixture
def identity_service(
    user_repo: UserRepository, token_service: TokenService
) -> IdentityService:
    return IdentityService(user_repo=user_repo, token_service=token_service)


@pytest.fixture
def account_service(
    user_repo: UserRepository,
    token_service: TokenService,
    storage: InMemoryStorage,
    runner: BestEffortRunner,
    session_factory: async_sessionmaker[AsyncSession],
) -> AccountService:
    return AccountService(
        repo=user_repo,
        token_service=token_service,
        storage=storage,
        runner=runner,
        session_factory=session_factory,
    )


# ------------------------------------------------------------------------------
# 5. HTTP 客户端
# ------------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    runner: BestEffortRunner,
    storage: InMemoryStorage,
    verifiers: dict[AuthType, FakeVerifier],
) -> AsyncGenerator[AsyncClient, None]:
    """
    获取异步 HTTP 客户端 (依赖全部指向测试替身)。
    """
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_verifiers] = lambda: verifiers

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"  # type: ignore
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
