"""
File: app/core/storage.py
Description: 对象存储客户端 (MinIO / S3 兼容)

本模块负责：
1. 创建全局 MinIO 客户端 (惰性初始化)
2. upload: 上传文件流，返回公开访问 URL
3. remove: 删除本存储根路径下的对象；非本存储 URL 静默忽略 (返回 None)

MinIO SDK 为同步实现，所有网络调用放入线程池执行。

Author: jinmozhe
Created: 2026-10-17
"""

from functools import lru_cache
from typing import BinaryIO, Protocol
from urllib.parse import quote, unquote

from minio import Minio
from minio.error import S3Error
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.logging import logger

# 未知长度的流按 10MB 分片上传
UPLOAD_PART_SIZE = 10 * 1024 * 1024

MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class BlobStorage(Protocol):
    """Service 层依赖的存储接口"""

    async def upload(self, stream: BinaryIO, dest_dir: str, dest_file: str) -> str: ...

    async def remove(self, url: str) -> str | None: ...


def resolve_object_name(dest_file: str, dest_dir: str) -> str:
    prefix = f"{dest_dir}/" if dest_dir else ""
    return unquote(f"{prefix}{dest_file}")


@lru_cache
def get_minio_client() -> Minio:
    """返回按配置创建的 MinIO 客户端 (进程内缓存)"""
    return Minio(
        settings.MINIO_ENDPOINT,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE,
    )


class MinioBlobStorage:
    """
    基于 MinIO 的 BlobStorage 实现。
    """

    def __init__(
        self,
        client: Minio | None = None,
        bucket: str | None = None,
        public_url: str | None = None,
    ):
        self._client = client
        self.bucket = bucket or settings.MINIO_BUCKET
        self.public_url = public_url or settings.storage_public_url

    @property
    def client(self) -> Minio:
        if self._client is None:
            self._client = get_minio_client()
        return self._client

    async def upload(self, stream: BinaryIO, dest_dir: str, dest_file: str) -> str:
        object_name = resolve_object_name(dest_file, dest_dir)

        await run_in_threadpool(
            self.client.put_object,
            self.bucket,
            object_name,
            stream,
            length=-1,
            part_size=UPLOAD_PART_SIZE,
        )

        logger.bind(object_name=object_name).info("Blob uploaded")
        return self.public_url + quote(object_name)

    async def remove(self, url: str) -> str | None:
        if not url.startswith(self.public_url):
            return None

        object_name = unquote(url[len(self.public_url) :])
        if not object_name:
            return None

        try:
            await run_in_threadpool(self.client.remove_object, self.bucket, object_name)
        except S3Error as exc:
            if exc.code not in MISSING_OBJECT_CODES:
                raise

        logger.bind(object_name=object_name).info("Blob removed")
        return url
