"""
File: app/domains/auth/providers.py
Description: 三方身份校验器 (Google / Facebook / Apple)

每个校验器都实现同一接口：
    kind: AuthType
    async verify(token) -> ExternalIdentity

- Google: access token 调用 userinfo 接口
- Facebook: access token 调用 Graph API /me
- Apple: identity token (JWT)，用 Apple 公钥 (JWKS, 按 kid 选择) 校验签名、aud、iss

任何三方校验失败统一抛出 SocialVerificationError；
APPLE_CLIENT_ID 缺失属于配置错误，抛出 RuntimeError。

Author: jinmozhe
Created: 2026-10-17
"""

import secrets
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from jose import JWTError, jwt

from app.core.config import settings
from app.core.logging import logger
from app.db.models.user_settings import AuthType

# ------------------------------------------------------------------------------
# 1. 数据结构与接口
# ------------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExternalIdentity:
    """已通过三方校验的身份"""

    social_id: str
    name: str
    email: str | None = None
    photo_url: str | None = None


class SocialVerificationError(Exception):
    """三方令牌无效 / 过期 / 三方接口不可用"""


class IdentityVerifier(Protocol):
    kind: AuthType

    async def verify(self, token: str) -> ExternalIdentity: ...


# ------------------------------------------------------------------------------
# 2. 随机展示名 (三方未提供名字时使用)
# ------------------------------------------------------------------------------

COLORS = (
    "amber", "azure", "beige", "black", "blue", "bronze", "coral", "crimson",
    "cyan", "gold", "gray", "green", "indigo", "ivory", "lavender", "lime",
    "magenta", "maroon", "navy", "olive", "orange", "pink", "plum", "purple",
    "red", "salmon", "silver", "teal", "turquoise", "violet", "white", "yellow",
)  # fmt: skip

ANIMALS = (
    "alpaca", "badger", "bear", "beaver", "bison", "camel", "cat", "cheetah",
    "crane", "deer", "dolphin", "eagle", "falcon", "ferret", "fox", "gecko",
    "giraffe", "hamster", "hedgehog", "koala", "lemur", "lion", "lynx", "moose",
    "otter", "owl", "panda", "penguin", "rabbit", "seal", "tiger", "wolf",
)  # fmt: skip


def generate_unique_name() -> str:
    """<color>-<animal><3位数字>，例: "teal-otter417" """
    number = 100 + secrets.randbelow(900)
    return f"{secrets.choice(COLORS)}-{secrets.choice(ANIMALS)}{number}"


# ------------------------------------------------------------------------------
# 3. 校验器实现
# ------------------------------------------------------------------------------


class _HttpVerifier:
    """
    基于 httpx 的校验器基类。
    未注入 client 时每次调用临时创建 AsyncClient (超时取 SOCIAL_HTTP_TIMEOUT)。
    """

    kind: AuthType

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def _get_json(
        self, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(
                    timeout=settings.SOCIAL_HTTP_TIMEOUT
                ) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.bind(provider=self.kind.value).warning(
                f"Social provider request failed: {type(exc).__name__}"
            )
            raise SocialVerificationError(f"{self.kind.value} request failed") from exc

        if not isinstance(data, dict):
            raise SocialVerificationError(f"{self.kind.value} returned unexpected body")
        return data


class GoogleVerifier(_HttpVerifier):
    kind = AuthType.GOOGLE

    def __init__(
        self, client: httpx.AsyncClient | None = None, userinfo_url: str | None = None
    ):
        super().__init__(client)
        self.userinfo_url = userinfo_url or settings.GOOGLE_USERINFO_URL

    async def verify(self, token: str) -> ExternalIdentity:
        data = await self._get_json(self.userinfo_url, {"access_token": token})
        if not data.get("sub"):
            raise SocialVerificationError("google userinfo missing sub")

        return ExternalIdentity(
            social_id=str(data["sub"]),
            name=data.get("name") or generate_unique_name(),
            email=data.get("email") or None,
            photo_url=data.get("picture"),
        )


class FacebookVerifier(_HttpVerifier):
    kind = AuthType.FACEBOOK

    def __init__(
        self, client: httpx.AsyncClient | None = None, graph_url: str | None = None
    ):
        super().__init__(client)
        self.graph_url = (graph_url or settings.FACEBOOK_GRAPH_URL).rstrip("/")

    async def verify(self, token: str) -> ExternalIdentity:
        data = await self._get_json(
            f"{self.graph_url}/me",
            {"fields": "id,name,email,picture", "access_token": token},
        )
        if not data.get("id"):
            raise SocialVerificationError("facebook /me missing id")

        picture = (data.get("picture") or {}).get("data") or {}
        return ExternalIdentity(
            social_id=str(data["id"]),
            name=data.get("name") or generate_unique_name(),
            # 空字符串视为未提供
            email=data.get("email") or None,
            photo_url=picture.get("url"),
        )


class AppleVerifier(_HttpVerifier):
    kind = AuthType.APPLE

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        client_id: str | None = None,
        issuer: str | None = None,
        keys_url: str | None = None,
    ):
        super().__init__(client)
        self.client_id = client_id or settings.APPLE_CLIENT_ID
        self.issuer = issuer or settings.APPLE_ISSUER
        self.keys_url = keys_url or settings.APPLE_KEYS_URL

    async def _signing_key(self, kid: str | None) -> dict[str, Any]:
        keys = (await self._get_json(self.keys_url)).get("keys") or []
        for key in keys:
            if key.get("kid") == kid:
                return key
        raise SocialVerificationError("apple signing key not found")

    async def verify(self, token: str) -> ExternalIdentity:
        if not self.client_id:
            raise RuntimeError("APPLE_CLIENT_ID is not configured")

        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise SocialVerificationError("apple identity token malformed") from exc

        key = await self._signing_key(header.get("kid"))

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[key.get("alg", "RS256")],
                audience=self.client_id,
                issuer=self.issuer,
                options={"verify_at_hash": False},
            )
        except JWTError as exc:
            raise SocialVerificationError("apple identity token rejected") from exc

        if not claims.get("sub"):
            raise SocialVerificationError("apple identity token missing sub")

        # Apple 不提供姓名
        return ExternalIdentity(
            social_id=str(claims["sub"]),
            name=generate_unique_name(),
            email=claims.get("email") or None,
        )


def build_verifiers(
    client: httpx.AsyncClient | None = None,
) -> dict[AuthType, IdentityVerifier]:
    """按 AuthType 组装全部校验器"""
    verifiers: list[IdentityVerifier] = [
        GoogleVerifier(client),
        FacebookVerifier(client),
        AppleVerifier(client),
    ]
    return {verifier.kind: verifier for verifier in verifiers}
