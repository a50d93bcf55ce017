"""Azure Blob Storage backend (requires ``pip install cdnservices[azure]``)."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

try:
    from azure.storage.blob.aio import BlobServiceClient
except ImportError as exc:
    raise ImportError(
        "Azure storage backend requires azure-storage-blob. "
        "Install it with: pip install cdnservices[azure]"
    ) from exc

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobClient, BlobSasPermissions, ContentSettings, generate_blob_sas

from cdnservices.lib.errors import BackendError, StorageNotFoundError
from cdnservices.lib.storage.base import DEFAULT_CONTENT_TYPE, StorageBackend, StoredFile

if TYPE_CHECKING:
    from azure.storage.blob.aio import ContainerClient

    from cdnservices.config import AzureDiskConfig

logger = logging.getLogger(__name__)


@contextmanager
def _translate_errors(path: str) -> Iterator[None]:
    """Convert Azure SDK failures into storage errors."""
    try:
        yield
    except ResourceNotFoundError as exc:
        raise StorageNotFoundError(path) from exc
    except AzureError as exc:
        raise BackendError(f"Azure request for {path} failed: {exc}") from exc


class AzureStorageBackend(StorageBackend):
    """Store files as block blobs in an Azure container.

    ``copy`` uses a server-side copy from the source blob URL. The service
    completes such copies asynchronously, so the backend polls the destination
    until the copy leaves the ``pending`` state or the disk timeout elapses.
    """

    def __init__(self, config: AzureDiskConfig) -> None:
        self._config = config

    @asynccontextmanager
    async def _container(self) -> AsyncIterator[ContainerClient]:
        service = BlobServiceClient.from_connection_string(
            self._config.connection_string,
            connection_timeout=self._config.timeout,
            read_timeout=self._config.timeout,
        )
        async with service:
            yield service.get_container_client(self._config.container)

    def _sync_blob(self, path: str) -> BlobClient:
        """Offline blob client, used only for URL and SAS construction."""
        return BlobClient.from_connection_string(
            self._config.connection_string,
            container_name=self._config.container,
            blob_name=path,
        )

    async def exists(self, path: str) -> bool:
        try:
            await self._properties(path)
        except StorageNotFoundError:
            return False
        except BackendError:
            logger.warning("Azure existence check failed for %s", path, exc_info=True)
            return False
        return True

    async def read(self, path: str) -> bytes:
        with _translate_errors(path):
            async with self._container() as container:
                downloader = await container.get_blob_client(path).download_blob()
                return await downloader.readall()

    async def write(self, path: str, data: bytes, content_type: str | None = None) -> StoredFile:
        content_type = content_type or DEFAULT_CONTENT_TYPE
        with _translate_errors(path):
            async with self._container() as container:
                await container.get_blob_client(path).upload_blob(
                    data,
                    overwrite=True,
                    content_settings=ContentSettings(content_type=content_type),
                )
        return StoredFile(path=path, url=self.url(path), content_type=content_type, size=len(data))

    async def delete(self, path: str) -> bool:
        try:
            with _translate_errors(path):
                async with self._container() as container:
                    await container.get_blob_client(path).delete_blob()
        except StorageNotFoundError:
            return False
        except BackendError:
            logger.warning("Azure delete failed for %s", path, exc_info=True)
            return False
        return True

    async def copy(self, src: str, dst: str) -> bool:
        with _translate_errors(src):
            async with self._container() as container:
                source = container.get_blob_client(src)
                destination = container.get_blob_client(dst)
                await destination.start_copy_from_url(source.url)

                deadline = time.monotonic() + self._config.timeout
                properties = await destination.get_blob_properties()
                while properties.copy.status == "pending":
                    if time.monotonic() >= deadline:
                        raise BackendError(f"Azure copy {src} -> {dst} did not finish in time")
                    await asyncio.sleep(self._config.copy_poll_interval)
                    properties = await destination.get_blob_properties()

        if properties.copy.status not in (None, "success"):
            raise BackendError(
                f"Azure copy {src} -> {dst} ended with status {properties.copy.status}"
            )
        return True

    async def size(self, path: str) -> int:
        properties = await self._properties(path)
        return int(properties.size or 0)

    async def last_modified(self, path: str) -> int:
        properties = await self._properties(path)
        return int(properties.last_modified.timestamp()) if properties.last_modified else 0

    async def mime_type(self, path: str) -> str:
        properties = await self._properties(path)
        return properties.content_settings.content_type or DEFAULT_CONTENT_TYPE

    def url(self, path: str) -> str:
        if self._config.url:
            return f"{self._config.url.rstrip('/')}/{path}"
        return self._sync_blob(path).url

    async def temporary_url(self, path: str, ttl: int = 3600) -> str:
        blob = self._sync_blob(path)
        account_key = getattr(blob.credential, "account_key", None)
        if not account_key:
            raise BackendError("Azure connection string has no account key to sign URLs with")

        sas = generate_blob_sas(
            account_name=blob.account_name,
            container_name=self._config.container,
            blob_name=path,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(UTC) + timedelta(seconds=ttl),
        )
        return f"{blob.url}?{sas}"

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        with _translate_errors(prefix):
            async with self._container() as container:
                async for blob in container.list_blobs(name_starts_with=prefix or None):
                    yield blob.name

    async def close(self) -> None:
        """Service clients are opened per call; nothing persistent to release."""

    async def _properties(self, path: str):
        with _translate_errors(path):
            async with self._container() as container:
                return await container.get_blob_client(path).get_blob_properties()
