"""ASGI middleware serving files of local storage disks at their public URL."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from typing import TYPE_CHECKING

from litestar.types import ASGIApp, Receive, Scope, Send

from cdnservices.lib.errors import InvalidPathError
from cdnservices.lib.storage.base import DEFAULT_CONTENT_TYPE

if TYPE_CHECKING:
    from cdnservices.lib.storage.local import LocalStorageBackend
    from cdnservices.lib.storage.manager import StorageManager

logger = logging.getLogger(__name__)


async def _send_not_found(send: Send) -> None:
    await send({
        "type": "http.response.start",
        "status": 404,
        "headers": [(b"content-type", b"text/plain"), (b"content-length", b"9")],
    })
    await send({"type": "http.response.body", "body": b"Not Found"})


class LocalDiskFilesMiddleware:
    """Serve ``{url}/{path}`` for every local disk whose ``url`` is a site path.

    Local disks with an absolute ``url`` (another host) are left alone, as are
    remote drivers which serve through their own URLs.
    """

    def __init__(self, app: ASGIApp, storage: StorageManager) -> None:
        self.app = app
        self._storage = storage

    def _match(self, path: str) -> tuple[LocalStorageBackend, str] | None:
        for backend in self._storage.local_disks().values():
            prefix = backend.url_prefix
            if not prefix.startswith("/"):
                continue
            if path.startswith(prefix + "/"):
                return backend, path[len(prefix) + 1:]
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        match = self._match(scope["path"])
        if match is None:
            await self.app(scope, receive, send)
            return

        backend, key = match
        try:
            full_path = backend.resolve(key)
        except InvalidPathError:
            await _send_not_found(send)
            return

        if not await asyncio.to_thread(full_path.is_file):
            await _send_not_found(send)
            return

        try:
            content = await asyncio.to_thread(full_path.read_bytes)
        except OSError:
            logger.warning("Failed to read %s", full_path, exc_info=True)
            await _send_not_found(send)
            return

        media_type = mimetypes.guess_type(full_path.name)[0] or DEFAULT_CONTENT_TYPE
        await send({
            "type": "http.response.start",
            "status": 200,
            "headers": [
                (b"content-type", media_type.encode()),
                (b"content-length", str(len(content)).encode()),
            ],
        })
        body = b"" if scope["method"] == "HEAD" else content
        await send({"type": "http.response.body", "body": body})
