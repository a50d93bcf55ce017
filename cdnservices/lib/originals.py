"""Local working copies of uploaded originals, indexed by image id."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from cdnservices.lib.storage.local import LocalStorageBackend

logger = logging.getLogger(__name__)


def image_id_for(filename: str) -> str:
    """Image id encoded in a working-copy filename (``{id}{ext}``)."""
    return filename.partition(".")[0]


class OriginalStore:
    """Working-copy directory plus an explicit ``id -> filename`` index.

    The index is built once from a sorted directory listing (the first
    filename seen for an id wins; later duplicates are ignored) and is kept
    current by :meth:`add` and :meth:`remove`, so lookups only scan the
    directory on a miss (see :meth:`find`).
    """

    def __init__(self, store: LocalStorageBackend) -> None:
        self._store = store
        self._index: dict[str, str] = {}

    @property
    def store(self) -> LocalStorageBackend:
        return self._store

    async def load(self) -> int:
        """Rebuild the index from the working directory. Returns the entry count."""
        index: dict[str, str] = {}
        async for name in self._store.list_keys():
            if "/" in name:
                continue
            image_id = image_id_for(name)
            if image_id in index:
                logger.warning(
                    "Ignoring %s: id %s already maps to %s", name, image_id, index[image_id]
                )
                continue
            index[image_id] = name
        self._index = index
        logger.debug("Indexed %d originals in %s", len(index), self._store.root)
        return len(index)

    def locate(self, image_id: str) -> str | None:
        return self._index.get(image_id)

    async def find(self, image_id: str) -> str | None:
        """Like :meth:`locate`, but falls back to the working directory.

        Another server process sharing the directory may have written the
        working copy after this index was built.
        """
        filename = self._index.get(image_id)
        if filename is not None:
            return filename
        async for name in self._store.list_keys():
            if "/" not in name and image_id_for(name) == image_id:
                logger.debug("Indexed %s found on disk as %s", image_id, name)
                self._index[image_id] = name
                return name
        return None

    def forget(self, image_id: str) -> None:
        self._index.pop(image_id, None)

    def __contains__(self, image_id: str) -> bool:
        return image_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(list(self._index.items()))

    async def add(self, image_id: str, filename: str, data: bytes) -> None:
        await self._store.write(filename, data)
        self._index[image_id] = filename

    async def read(self, filename: str) -> bytes:
        return await self._store.read(filename)

    async def remove(self, image_id: str) -> bool:
        filename = self._index.pop(image_id, None)
        if filename is None:
            return False
        return await self._store.delete(filename)
