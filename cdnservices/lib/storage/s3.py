"""S3-compatible storage backend (requires ``pip install cdnservices[s3]``)."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

try:
    import aioboto3
except ImportError as exc:
    raise ImportError(
        "S3 storage backend requires aioboto3. Install it with: pip install cdnservices[s3]"
    ) from exc

from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cdnservices.lib.errors import BackendError, StorageNotFoundError
from cdnservices.lib.storage.base import DEFAULT_CONTENT_TYPE, StorageBackend, StoredFile

if TYPE_CHECKING:
    from cdnservices.config import S3DiskConfig

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


@contextmanager
def _translate_errors(path: str) -> Iterator[None]:
    """Convert botocore failures into storage errors."""
    try:
        yield
    except ClientError as exc:
        if _is_not_found(exc):
            raise StorageNotFoundError(path) from exc
        raise BackendError(f"S3 request for {path} failed: {exc}") from exc
    except BotoCoreError as exc:
        raise BackendError(f"S3 request for {path} failed: {exc}") from exc


class S3StorageBackend(StorageBackend):
    """Store files in an S3-compatible bucket."""

    def __init__(self, config: S3DiskConfig) -> None:
        self._config = config
        self._session = aioboto3.Session()
        self._botocore_config = Config(
            connect_timeout=config.timeout,
            read_timeout=config.timeout,
            retries={"total_max_attempts": 1},
        )

    def _client_kwargs(self) -> dict:
        kwargs: dict = {
            "region_name": self._config.region,
            "config": self._botocore_config,
        }
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key_id:
            kwargs["aws_access_key_id"] = self._config.access_key_id
        if self._config.secret_access_key:
            kwargs["aws_secret_access_key"] = self._config.secret_access_key
        return kwargs

    def _client(self):
        return self._session.client("s3", **self._client_kwargs())

    def _full_key(self, path: str) -> str:
        if self._config.prefix:
            return f"{self._config.prefix.rstrip('/')}/{path}"
        return path

    async def exists(self, path: str) -> bool:
        try:
            await self._head(path)
        except StorageNotFoundError:
            return False
        except BackendError:
            logger.warning("S3 existence check failed for %s", path, exc_info=True)
            return False
        return True

    async def read(self, path: str) -> bytes:
        with _translate_errors(path):
            async with self._client() as s3:
                response = await s3.get_object(Bucket=self._config.bucket, Key=self._full_key(path))
                return await response["Body"].read()

    async def write(self, path: str, data: bytes, content_type: str | None = None) -> StoredFile:
        content_type = content_type or DEFAULT_CONTENT_TYPE
        put_kwargs: dict = {
            "Bucket": self._config.bucket,
            "Key": self._full_key(path),
            "Body": data,
            "ContentType": content_type,
        }
        if self._config.acl:
            put_kwargs["ACL"] = self._config.acl

        with _translate_errors(path):
            async with self._client() as s3:
                await s3.put_object(**put_kwargs)

        return StoredFile(path=path, url=self.url(path), content_type=content_type, size=len(data))

    async def delete(self, path: str) -> bool:
        # DeleteObject succeeds for missing keys, so probe first to report absence
        if not await self.exists(path):
            return False
        try:
            with _translate_errors(path):
                async with self._client() as s3:
                    await s3.delete_object(Bucket=self._config.bucket, Key=self._full_key(path))
        except (StorageNotFoundError, BackendError):
            logger.warning("S3 delete failed for %s", path, exc_info=True)
            return False
        return True

    async def copy(self, src: str, dst: str) -> bool:
        with _translate_errors(src):
            async with self._client() as s3:
                await s3.copy_object(
                    Bucket=self._config.bucket,
                    Key=self._full_key(dst),
                    CopySource={"Bucket": self._config.bucket, "Key": self._full_key(src)},
                )
        return True

    async def size(self, path: str) -> int:
        head = await self._head(path)
        return int(head.get("ContentLength") or 0)

    async def last_modified(self, path: str) -> int:
        head = await self._head(path)
        modified = head.get("LastModified")
        return int(modified.timestamp()) if modified else 0

    async def mime_type(self, path: str) -> str:
        head = await self._head(path)
        return head.get("ContentType") or DEFAULT_CONTENT_TYPE

    def url(self, path: str) -> str:
        full_key = self._full_key(path)

        # CDN / custom public URL
        if self._config.url:
            return f"{self._config.url.rstrip('/')}/{full_key}"

        # Path-style for custom endpoints (MinIO and friends)
        if self._config.endpoint_url:
            return f"{self._config.endpoint_url.rstrip('/')}/{self._config.bucket}/{full_key}"

        return f"https://{self._config.bucket}.s3.{self._config.region}.amazonaws.com/{full_key}"

    async def temporary_url(self, path: str, ttl: int = 3600) -> str:
        with _translate_errors(path):
            async with self._client() as s3:
                return await s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self._config.bucket, "Key": self._full_key(path)},
                    ExpiresIn=ttl,
                )

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        full_prefix = self._full_key(prefix)
        with _translate_errors(prefix):
            async with self._client() as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self._config.bucket, Prefix=full_prefix):
                    for obj in page.get("Contents", []):
                        key = obj["Key"]
                        # Strip prefix to return logical paths
                        if self._config.prefix and key.startswith(self._config.prefix):
                            key = key[len(self._config.prefix.rstrip("/")) + 1:]
                        yield key

    async def close(self) -> None:
        """Clients are opened per call; nothing persistent to release."""

    async def _head(self, path: str) -> dict:
        with _translate_errors(path):
            async with self._client() as s3:
                return await s3.head_object(Bucket=self._config.bucket, Key=self._full_key(path))
