"""
File: app/core/security.py
Description: 安全工具模块 (bcrypt 凭证编解码 + JWT)

本模块负责：
1. 凭证加密 (encrypt_credential): bcrypt 单向哈希 + 可逆的传输安全编码
2. 凭证校验 (validate_credential): 还原编码后做常量时间比较，不匹配返回 False
3. JWT 签发: Access Token (claims: userId) / Refresh Token (仅 exp)
4. JWT 解析: 校验签名+有效期 / 不校验直接读取 claims
5. 异步封装: 哈希属于 CPU 密集型操作，在线程池中执行

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-17 (bcrypt + transport-safe hash codec, refresh tokens)
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwt
from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher
from starlette.concurrency import run_in_threadpool

from app.core.config import settings

# bcrypt 只处理前 72 字节，超长口令直接拒绝
BCRYPT_MAX_BYTES = 72

password_hash = PasswordHash((BcryptHasher(rounds=settings.PASSWORD_HASH_ROUNDS),))

# ------------------------------------------------------------------------------
# 1. 哈希传输编码 (Hash Transport Codec)
# ------------------------------------------------------------------------------


class HashTransportCodec:
    """
    bcrypt 哈希值的可逆文本替换。

    原始哈希可能包含 "/" 与结尾的 "."，在 URL 路径等介质中不安全。
    替换规则：
    - 所有 "/" -> SLASH_MARKER
    - 结尾的 "." -> DOT_MARKER

    两个标记字符都不在 bcrypt 字母表 ([./A-Za-z0-9$]) 中，
    因此 decode(encode(h)) == h 对任意 bcrypt 输出恒成立。
    若 decode 出错会导致合法密码永远无法登录，修改标记前必须保持该性质。
    """

    SLASH_MARKER = "_"
    DOT_MARKER = "-"

    @classmethod
    def encode(cls, raw_hash: str) -> str:
        if cls.SLASH_MARKER in raw_hash or cls.DOT_MARKER in raw_hash:
            raise ValueError("Hash contains a reserved marker character")

        encoded = raw_hash.replace("/", cls.SLASH_MARKER)
        if encoded.endswith("."):
            encoded = encoded[:-1] + cls.DOT_MARKER
        return encoded

    @classmethod
    def decode(cls, stored: str) -> str:
        decoded = stored.replace(cls.SLASH_MARKER, "/")
        if decoded.endswith(cls.DOT_MARKER):
            decoded = decoded[:-1] + "."
        return decoded


# ------------------------------------------------------------------------------
# 2. 凭证处理 (Credential Codec)
# ------------------------------------------------------------------------------


def encrypt_credential(plaintext: str) -> str:
    """
    生成可存储的凭证 (bcrypt 哈希 + 传输编码)。

    Raises:
        ValueError: 口令超过 bcrypt 的 72 字节上限
    """
    if len(plaintext.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Credential must be at most {BCRYPT_MAX_BYTES} bytes")
    return HashTransportCodec.encode(password_hash.hash(plaintext))


def validate_credential(plaintext: str, stored: str) -> bool:
    """
    校验明文与存储形式是否匹配。

    不匹配时返回 False，不抛出；仅存储值无法识别等基础设施问题会向上传播。
    """
    if len(plaintext.encode("utf-8")) > BCRYPT_MAX_BYTES:
        return False
    return password_hash.verify(plaintext, HashTransportCodec.decode(stored))


async def encrypt_credential_async(plaintext: str) -> str:
    """在线程池中执行 encrypt_credential，避免阻塞事件循环"""
    return await run_in_threadpool(encrypt_credential, plaintext)


async def validate_credential_async(plaintext: str, stored: str) -> bool:
    """在线程池中执行 validate_credential，避免阻塞事件循环"""
    return await run_in_threadpool(validate_credential, plaintext, stored)


# ------------------------------------------------------------------------------
# 3. JWT 处理 (JSON Web Token)
# ------------------------------------------------------------------------------


def _secret_key() -> str:
    secret_key = settings.SECRET_KEY
    if secret_key is None:
        raise ValueError("SECRET_KEY configuration is missing.")
    return secret_key


def _encode(claims: dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = {**claims, "exp": datetime.now(UTC) + expires_delta}
    return jwt.encode(to_encode, _secret_key(), algorithm=settings.ALGORITHM)


def create_access_token(user_id: Any, expires_delta: timedelta | None = None) -> str:
    """
    生成 Access Token (短效, 无状态)。

    Args:
        user_id: 用户 ID，写入 userId claim
        expires_delta: 自定义有效期 (默认 ACCESS_TOKEN_EXPIRE_MINUTES)；
            传入负值可得到一个已过期的令牌
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode({"userId": str(user_id)}, expires_delta)


def create_refresh_token(expires_delta: timedelta | None = None) -> str:
    """
    生成 Refresh Token (长效, 除 exp 外无任何 claim)。
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode({}, expires_delta)


def decode_token(token: str, *, verify_exp: bool = True) -> dict[str, Any]:
    """
    校验签名与有效期并返回 claims。
    verify_exp=False 时只校验签名 (用于确认过期令牌确实由本服务签发)。

    Raises:
        JWTError: 签名错误 / 已过期 / 格式错误
    """
    return jwt.decode(
        token,
        _secret_key(),
        algorithms=[settings.ALGORITHM],
        options={"verify_exp": verify_exp},
    )


def get_unverified_claims(token: str) -> dict[str, Any]:
    """
    不做任何校验直接读取 claims (用于从过期令牌中恢复 userId)。

    Raises:
        JWTError: 令牌结构无法解析
    """
    return jwt.get_unverified_claims(token)
