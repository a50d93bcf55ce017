"""Storage manager: registry of named storage disks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from cdnservices.config import DEFAULT_LOCAL_ROOT, DEFAULT_LOCAL_URL
from cdnservices.lib.errors import ConfigurationError
from cdnservices.lib.storage.local import LocalStorageBackend

if TYPE_CHECKING:
    from cdnservices.config import DiskConfig, StorageConfig
    from cdnservices.lib.storage.base import StorageBackend

logger = logging.getLogger(__name__)

LOCAL_DISK = "local"


class StorageManager:
    """Registry that builds every configured disk once and hands them out by name.

    The ``local`` disk always resolves: when it is not configured an implicit
    local backend rooted at ``storage`` is created on first use.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self._backends: dict[str, StorageBackend] = {
            name: create_storage_backend(disk_cfg) for name, disk_cfg in config.disks.items()
        }

    @property
    def default_disk(self) -> str:
        return self._config.default

    @property
    def disk_names(self) -> list[str]:
        names = list(self._config.disks.keys())
        if LOCAL_DISK not in names:
            names.append(LOCAL_DISK)
        return names

    def disk(self, name: str | None = None) -> StorageBackend:
        """Return the backend for *name*, or the default disk when omitted."""
        name = name or self._config.default
        backend = self._backends.get(name)
        if backend is not None:
            return backend

        if name == LOCAL_DISK:
            logger.info("Disk 'local' not configured, using %s", DEFAULT_LOCAL_ROOT)
            backend = LocalStorageBackend(root=Path(DEFAULT_LOCAL_ROOT), url_prefix=DEFAULT_LOCAL_URL)
            self._backends[name] = backend
            return backend

        raise ConfigurationError(f"Storage disk '{name}' is not configured")

    def local_disks(self) -> dict[str, LocalStorageBackend]:
        """Configured local backends, used to serve their files over HTTP."""
        return {
            name: backend
            for name, backend in self._backends.items()
            if isinstance(backend, LocalStorageBackend)
        }

    async def close(self) -> None:
        """Release resources held by backends."""
        for backend in self._backends.values():
            await backend.close()


def create_storage_backend(config: DiskConfig) -> StorageBackend:
    """Instantiate a storage backend from its disk configuration."""
    driver = config.driver

    if driver == "local":
        return LocalStorageBackend(root=Path(config.root), url_prefix=config.url)

    if driver == "s3":
        from cdnservices.lib.storage.s3 import S3StorageBackend

        return S3StorageBackend(config)

    if driver == "azure":
        from cdnservices.lib.storage.azure import AzureStorageBackend

        return AzureStorageBackend(config)

    if driver == "gcs":
        from cdnservices.lib.storage.gcs import GCSStorageBackend

        return GCSStorageBackend(config)

    raise ValueError(f"Unknown storage driver '{driver}'. Use 'local', 's3', 'azure', or 'gcs'.")
