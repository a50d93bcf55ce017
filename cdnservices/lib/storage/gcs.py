"""Google Cloud Storage backend (requires ``pip install cdnservices[gcs]``)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

try:
    from google.cloud import storage
except ImportError as exc:
    raise ImportError(
        "GCS storage backend requires google-cloud-storage. "
        "Install it with: pip install cdnservices[gcs]"
    ) from exc

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError

from cdnservices.lib.errors import BackendError, StorageNotFoundError
from cdnservices.lib.storage.base import DEFAULT_CONTENT_TYPE, StorageBackend, StoredFile

if TYPE_CHECKING:
    from google.cloud.storage import Blob, Bucket

    from cdnservices.config import GCSDiskConfig

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(path: str) -> Iterator[None]:
    """Convert Google client failures into storage errors."""
    try:
        yield
    except NotFound as exc:
        raise StorageNotFoundError(path) from exc
    # requests' transport errors subclass OSError
    except (GoogleAPIError, GoogleAuthError, OSError) as exc:
        raise BackendError(f"GCS request for {path} failed: {exc}") from exc


class GCSStorageBackend(StorageBackend):
    """Store files in a Google Cloud Storage bucket.

    The google-cloud-storage client is blocking, so every call runs in a
    worker thread with the disk timeout passed through to the client.
    """

    def __init__(self, config: GCSDiskConfig, client: storage.Client | None = None) -> None:
        self._config = config
        self._client = client
        self._bucket_handle: Bucket | None = None

    def _bucket(self) -> Bucket:
        if self._bucket_handle is None:
            if self._client is None:
                if self._config.key_file:
                    self._client = storage.Client.from_service_account_json(
                        self._config.key_file, project=self._config.project_id
                    )
                else:
                    self._client = storage.Client(project=self._config.project_id)
            self._bucket_handle = self._client.bucket(self._config.bucket)
        return self._bucket_handle

    async def _blob_metadata(self, path: str) -> Blob:
        with _translate_errors(path):
            blob = await asyncio.to_thread(
                self._bucket().get_blob, path, timeout=self._config.timeout
            )
        if blob is None:
            raise StorageNotFoundError(path)
        return blob

    async def exists(self, path: str) -> bool:
        try:
            with _translate_errors(path):
                return await asyncio.to_thread(
                    self._bucket().blob(path).exists, timeout=self._config.timeout
                )
        except BackendError:
            logger.warning("GCS existence check failed for %s", path, exc_info=True)
            return False

    async def read(self, path: str) -> bytes:
        with _translate_errors(path):
            return await asyncio.to_thread(
                self._bucket().blob(path).download_as_bytes, timeout=self._config.timeout
            )

    async def write(self, path: str, data: bytes, content_type: str | None = None) -> StoredFile:
        content_type = content_type or DEFAULT_CONTENT_TYPE
        with _translate_errors(path):
            await asyncio.to_thread(
                self._bucket().blob(path).upload_from_string,
                data,
                content_type=content_type,
                timeout=self._config.timeout,
            )
        return StoredFile(path=path, url=self.url(path), content_type=content_type, size=len(data))

    async def delete(self, path: str) -> bool:
        try:
            with _translate_errors(path):
                await asyncio.to_thread(
                    self._bucket().blob(path).delete, timeout=self._config.timeout
                )
        except StorageNotFoundError:
            return False
        except BackendError:
            logger.warning("GCS delete failed for %s", path, exc_info=True)
            return False
        return True

    async def copy(self, src: str, dst: str) -> bool:
        with _translate_errors(src):
            bucket = self._bucket()
            await asyncio.to_thread(
                bucket.copy_blob, bucket.blob(src), bucket, dst, timeout=self._config.timeout
            )
        return True

    async def size(self, path: str) -> int:
        blob = await self._blob_metadata(path)
        return int(blob.size or 0)

    async def last_modified(self, path: str) -> int:
        blob = await self._blob_metadata(path)
        return int(blob.updated.timestamp()) if blob.updated else 0

    async def mime_type(self, path: str) -> str:
        blob = await self._blob_metadata(path)
        return blob.content_type or DEFAULT_CONTENT_TYPE

    def url(self, path: str) -> str:
        if self._config.url:
            return f"{self._config.url.rstrip('/')}/{path}"
        return f"https://storage.googleapis.com/{self._config.bucket}/{path}"

    async def temporary_url(self, path: str, ttl: int = 3600) -> str:
        with _translate_errors(path):
            return await asyncio.to_thread(
                self._bucket().blob(path).generate_signed_url,
                version="v4",
                expiration=timedelta(seconds=ttl),
                method="GET",
            )

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        def _names() -> list[str]:
            blobs = self._bucket().list_blobs(prefix=prefix or None, timeout=self._config.timeout)
            return [blob.name for blob in blobs]

        with _translate_errors(prefix):
            names = await asyncio.to_thread(_names)
        for name in names:
            yield name

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
