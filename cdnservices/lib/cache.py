"""Write-through filesystem cache of rendered variants."""

from __future__ import annotations

import logging

from cdnservices.lib.errors import BackendError, InvalidPathError
from cdnservices.lib.storage.local import LocalStorageBackend

logger = logging.getLogger(__name__)


class DerivativeCache:
    """Rendered variants stored as ``{key}.{format}`` in a flat cache directory.

    Entries are created on first request and never expire; any entry can be
    rebuilt from its original.
    """

    def __init__(self, store: LocalStorageBackend) -> None:
        self._store = store

    @property
    def store(self) -> LocalStorageBackend:
        return self._store

    @staticmethod
    def filename(key: str, fmt: str) -> str:
        return f"{key}.{fmt}"

    async def has(self, key: str, fmt: str) -> bool:
        return await self._store.exists(self.filename(key, fmt))

    async def get(self, key: str, fmt: str) -> bytes:
        return await self._store.read(self.filename(key, fmt))

    async def put(self, key: str, fmt: str, data: bytes) -> None:
        await self._store.write(self.filename(key, fmt), data)

    async def put_best_effort(self, key: str, fmt: str, data: bytes) -> bool:
        """Store a rendered variant, logging and swallowing storage failures.

        Returns whether the entry was written.
        """
        try:
            await self.put(key, fmt, data)
        except (BackendError, InvalidPathError):
            logger.warning("Failed to cache variant %s", key, exc_info=True)
            return False
        return True

    async def purge(self, image_id: str) -> int:
        """Remove every cached variant of an image. Returns the number removed."""
        removed = 0
        async for name in self._store.list_keys(prefix=f"{image_id}_"):
            if await self._store.delete(name):
                logger.debug("Deleted cache file %s", name)
                removed += 1
        return removed

    async def count(self) -> int:
        return sum([1 async for _ in self._store.list_keys()])
