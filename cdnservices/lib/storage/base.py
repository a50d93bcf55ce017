"""Storage backend protocol and common types."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class StoredFile:
    """Metadata for a file written to a backend."""

    path: str
    url: str
    content_type: str
    size: int


@runtime_checkable
class StorageBackend(Protocol):
    """Interface shared by every storage disk driver.

    ``exists`` and ``delete`` never raise: faults collapse to ``False``.
    Every other I/O operation raises :class:`~cdnservices.lib.errors.StorageNotFoundError`
    for a missing path and :class:`~cdnservices.lib.errors.BackendError` for
    transport faults.

    Drivers subclass this protocol explicitly to inherit :meth:`move`.
    """

    async def exists(self, path: str) -> bool:
        """Check whether a path exists."""
        ...

    async def read(self, path: str) -> bytes:
        """Retrieve the raw bytes stored at a path."""
        ...

    async def write(self, path: str, data: bytes, content_type: str | None = None) -> StoredFile:
        """Store data at a path, replacing any existing file."""
        ...

    async def delete(self, path: str) -> bool:
        """Remove a path. Returns ``False`` if nothing was removed."""
        ...

    async def copy(self, src: str, dst: str) -> bool:
        """Copy a file within the backend."""
        ...

    async def size(self, path: str) -> int:
        """Size of the stored file in bytes."""
        ...

    async def last_modified(self, path: str) -> int:
        """Last modification time as a unix timestamp."""
        ...

    async def mime_type(self, path: str) -> str:
        """Content type recorded for (or guessed from) the path."""
        ...

    def url(self, path: str) -> str:
        """Public URL for a path. Does not check existence."""
        ...

    async def temporary_url(self, path: str, ttl: int = 3600) -> str:
        """URL valid for ``ttl`` seconds."""
        ...

    def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        """Yield all paths starting with the given prefix."""
        ...

    async def move(self, src: str, dst: str) -> bool:
        """Copy then delete the source.

        Not atomic: when the delete fails after a successful copy the move is
        reported as failed although ``dst`` now holds a duplicate.
        """
        await self.copy(src, dst)
        if not await self.delete(src):
            logger.warning("Move %s -> %s copied but could not remove the source", src, dst)
            return False
        return True

    async def close(self) -> None:
        """Release resources held by the backend."""
