"""Local filesystem storage backend."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path, PurePosixPath
from stat import S_ISREG

from cdnservices.lib.errors import BackendError, InvalidPathError, StorageNotFoundError
from cdnservices.lib.storage.base import DEFAULT_CONTENT_TYPE, StorageBackend, StoredFile

logger = logging.getLogger(__name__)

_TEMP_SUFFIX = ".tmp"


class LocalStorageBackend(StorageBackend):
    """Store files on the local filesystem under a root directory.

    Logical paths are joined under ``root``. Paths with ``..`` components,
    NUL bytes, or a leading ``/`` are rejected with :class:`InvalidPathError`.
    """

    def __init__(self, root: Path, url_prefix: str = "/storage") -> None:
        self._root = Path(root)
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    @property
    def url_prefix(self) -> str:
        return self._url_prefix

    async def exists(self, path: str) -> bool:
        try:
            full_path = self.resolve(path)
        except InvalidPathError:
            return False
        return await asyncio.to_thread(full_path.is_file)

    async def read(self, path: str) -> bytes:
        full_path = self.resolve(path)
        try:
            return await asyncio.to_thread(full_path.read_bytes)
        except (FileNotFoundError, IsADirectoryError) as exc:
            raise StorageNotFoundError(path) from exc
        except OSError as exc:
            raise BackendError(f"Failed to read {path}: {exc}") from exc

    async def write(self, path: str, data: bytes, content_type: str | None = None) -> StoredFile:
        full_path = self.resolve(path)
        try:
            await asyncio.to_thread(self._write_file, full_path, data)
        except OSError as exc:
            raise BackendError(f"Failed to write {path}: {exc}") from exc
        return StoredFile(
            path=path,
            url=self.url(path),
            content_type=content_type or self._guess_type(path),
            size=len(data),
        )

    async def delete(self, path: str) -> bool:
        try:
            full_path = self.resolve(path)
            await asyncio.to_thread(full_path.unlink)
        except (InvalidPathError, FileNotFoundError):
            return False
        except OSError:
            logger.warning("Failed to delete %s", path, exc_info=True)
            return False
        return True

    async def copy(self, src: str, dst: str) -> bool:
        src_path = self.resolve(src)
        dst_path = self.resolve(dst)
        try:
            data = await asyncio.to_thread(src_path.read_bytes)
            await asyncio.to_thread(self._write_file, dst_path, data)
        except FileNotFoundError as exc:
            raise StorageNotFoundError(src) from exc
        except OSError as exc:
            raise BackendError(f"Failed to copy {src} to {dst}: {exc}") from exc
        return True

    async def size(self, path: str) -> int:
        return (await self._stat(path)).st_size

    async def last_modified(self, path: str) -> int:
        return int((await self._stat(path)).st_mtime)

    async def mime_type(self, path: str) -> str:
        # Ensure the file exists so missing paths fail like the remote drivers
        await self._stat(path)
        return self._guess_type(path)

    def url(self, path: str) -> str:
        return f"{self._url_prefix}/{path.lstrip('/')}"

    async def temporary_url(self, path: str, ttl: int = 3600) -> str:
        # No signing on local disks; the permanent URL never expires
        return self.url(path)

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        base = self._root
        for path in await asyncio.to_thread(self._walk, base):
            key = path.relative_to(base).as_posix()
            if key.startswith(prefix):
                yield key

    async def close(self) -> None:
        """No persistent resources to clean up."""

    # -- path handling --

    def resolve(self, path: str) -> Path:
        """Map a logical path to a filesystem path under the root."""
        if not path or "\x00" in path:
            raise InvalidPathError(f"Invalid storage path: {path!r}")

        logical = PurePosixPath(path)
        if logical.is_absolute() or ".." in logical.parts:
            raise InvalidPathError(f"Invalid storage path: {path!r}")

        full_path = self._root / logical
        root = self._root.resolve()
        try:
            resolved = full_path.resolve()
        except (OSError, ValueError) as exc:
            raise InvalidPathError(f"Invalid storage path: {path!r}") from exc

        # Symlinks must not lead outside the root either
        if not resolved.is_relative_to(root):
            raise InvalidPathError(f"Invalid storage path: {path!r}")

        return full_path

    # -- internal helpers --

    async def _stat(self, path: str) -> os.stat_result:
        full_path = self.resolve(path)
        try:
            stat = await asyncio.to_thread(full_path.stat)
        except FileNotFoundError as exc:
            raise StorageNotFoundError(path) from exc
        except OSError as exc:
            raise BackendError(f"Failed to stat {path}: {exc}") from exc
        if not S_ISREG(stat.st_mode):
            raise StorageNotFoundError(path)
        return stat

    @staticmethod
    def _guess_type(path: str) -> str:
        return mimetypes.guess_type(path)[0] or DEFAULT_CONTENT_TYPE

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        """Write via a temp file in the target directory, then rename over the target."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=_TEMP_SUFFIX, dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _walk(base: Path) -> list[Path]:
        if not base.exists():
            return []
        return sorted(
            p
            for p in base.rglob("*")
            if p.is_file() and not (p.name.startswith(".") and p.name.endswith(_TEMP_SUFFIX))
        )
