"""Application factory wiring storage, the image service and HTTP routes."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from litestar import Litestar
from litestar.types import ASGIApp

from cdnservices.config import Settings, get_settings
from cdnservices.controllers.health import HealthController
from cdnservices.controllers.images import ImagesController
from cdnservices.lib import observability
from cdnservices.lib.cache import DerivativeCache
from cdnservices.lib.exceptions import EXCEPTION_HANDLERS
from cdnservices.lib.originals import OriginalStore
from cdnservices.lib.storage.local import LocalStorageBackend
from cdnservices.lib.storage.manager import LOCAL_DISK, StorageManager
from cdnservices.middleware.storage import LocalDiskFilesMiddleware
from cdnservices.services.image_service import ImageService

logger = logging.getLogger(__name__)

# Headroom for multipart boundaries and the non-file form fields
MULTIPART_OVERHEAD = 64 * 1024


def build_image_service(settings: Settings) -> ImageService:
    storage = StorageManager(settings.storage)
    # Materialize the implicit local disk so its files can be served
    storage.disk(LOCAL_DISK)

    originals = OriginalStore(LocalStorageBackend(Path(settings.images.upload_dir), url_prefix="/uploads"))
    cache = DerivativeCache(LocalStorageBackend(Path(settings.images.cache_dir), url_prefix="/cache"))
    return ImageService(
        storage=storage,
        originals=originals,
        cache=cache,
        max_upload_size=settings.images.max_upload_size,
    )


def create_app(settings: Settings | None = None, image_service: ImageService | None = None) -> Litestar:
    """Create the Litestar application.

    Settings default to :func:`get_settings`; tests pass their own settings
    and may inject a prebuilt service.
    """
    settings = settings or get_settings()
    service = image_service or build_image_service(settings)

    async def on_startup(_app: Litestar) -> None:
        """Create working directories and index existing originals."""
        for directory in (service.originals.store.root, service.cache.store.root):
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
        for backend in service.storage.local_disks().values():
            await asyncio.to_thread(backend.root.mkdir, parents=True, exist_ok=True)
        await service.startup()
        logger.info(
            "Image service ready: disks=%s default=%s",
            service.storage.disk_names,
            service.storage.default_disk,
        )

    async def on_shutdown(_app: Litestar) -> None:
        await service.close()

    app = Litestar(
        on_startup=[on_startup],
        on_shutdown=[on_shutdown],
        route_handlers=[HealthController, ImagesController],
        exception_handlers=EXCEPTION_HANDLERS,
        request_max_body_size=settings.images.max_upload_size + MULTIPART_OVERHEAD,
        debug=settings.debug,
    )
    app.state.image_service = service
    app.state.secret_key = settings.secret_key
    app.state.started_at = time.monotonic()
    return app


def create_asgi_app(settings: Settings | None = None) -> ASGIApp:
    """Full ASGI stack: local disk file serving around the instrumented app."""
    settings = settings or get_settings()
    observability.configure(settings.logfire)

    app = create_app(settings)
    return LocalDiskFilesMiddleware(
        observability.instrument_app(app),
        storage=app.state.image_service.storage,
    )
