"""Image service: upload ingest, original lookup and the variant pipeline."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4
from weakref import WeakValueDictionary

from cdnservices.lib import observability
from cdnservices.lib.cache import DerivativeCache
from cdnservices.lib.errors import DecodeError, NotFoundError, StorageNotFoundError, ValidationError
from cdnservices.lib.imaging import (
    PRESET_SIZES,
    UPLOAD_IMAGE_TYPES,
    VARIANT_FORMATS,
    cache_key,
    is_allowed_upload,
    parse_variant_spec,
    probe_image,
    render_variant,
    variant_urls,
)
from cdnservices.lib.originals import OriginalStore
from cdnservices.lib.storage.manager import StorageManager

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "images"

Renderer = Callable[[bytes, int, int, str], bytes]


def _isoformat(timestamp: int | float) -> str:
    return datetime.fromtimestamp(timestamp, UTC).isoformat()


@dataclass
class UploadedImage:
    """Record of an ingested original, returned to the uploader."""

    id: str
    original_name: str
    filename: str
    path: str
    size: int
    mimetype: str
    disk: str
    uploaded_by: str | None
    uploaded_at: datetime
    url: str
    urls: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "originalName": self.original_name,
            "filename": self.filename,
            "path": self.path,
            "size": self.size,
            "mimetype": self.mimetype,
            "disk": self.disk,
            "uploadedBy": self.uploaded_by,
            "uploadedAt": self.uploaded_at.isoformat(),
            "url": self.url,
            "urls": self.urls,
        }


@dataclass
class RenderedVariant:
    data: bytes
    content_type: str
    cache_hit: bool


class ImageService:
    """Coordinates storage disks, working copies and the derivative cache.

    One instance is created per application and shared by all requests.
    """

    def __init__(
        self,
        storage: StorageManager,
        originals: OriginalStore,
        cache: DerivativeCache,
        max_upload_size: int,
        renderer: Renderer = render_variant,
    ) -> None:
        self.storage = storage
        self.originals = originals
        self.cache = cache
        self.max_upload_size = max_upload_size
        self._renderer = renderer
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    async def startup(self) -> None:
        count = await self.originals.load()
        logger.info("Indexed %d originals in %s", count, self.originals.store.root)

    async def close(self) -> None:
        await self.storage.close()

    # -- upload --

    def validate_upload(self, data: bytes, original_filename: str, mimetype: str) -> None:
        if not data:
            raise ValidationError("No file uploaded")
        if len(data) > self.max_upload_size:
            raise ValidationError(
                f"File size {len(data)} exceeds limit {self.max_upload_size}"
            )
        if not is_allowed_upload(original_filename, mimetype):
            raise ValidationError(
                f"Only image files are allowed ({', '.join(UPLOAD_IMAGE_TYPES)})"
            )

    async def ingest(
        self,
        data: bytes,
        original_filename: str,
        mimetype: str,
        disk: str | None = None,
        subject_id: str | None = None,
    ) -> UploadedImage:
        """Store a new original on the selected disk and in the working directory."""
        self.validate_upload(data, original_filename, mimetype)
        disk_name = disk or self.storage.default_disk
        backend = self.storage.disk(disk_name)

        image_id = str(uuid4())
        ext = os.path.splitext(original_filename)[1]
        filename = f"{image_id}{ext}"
        path = f"{IMAGE_PREFIX}/{filename}"

        stored = await backend.write(path, data, content_type=mimetype)
        try:
            await self.originals.add(image_id, filename, data)
        except Exception:
            logger.warning(
                "Working copy for %s failed, removing %s from disk %s", image_id, path, disk_name
            )
            await backend.delete(path)
            raise

        logger.info("Uploaded %s to disk %s by %s", image_id, disk_name, subject_id)
        return UploadedImage(
            id=image_id,
            original_name=original_filename,
            filename=filename,
            path=path,
            size=len(data),
            mimetype=mimetype,
            disk=disk_name,
            uploaded_by=subject_id,
            uploaded_at=datetime.now(UTC),
            url=stored.url,
            urls=variant_urls(image_id),
        )

    # -- lookup --

    async def locate(self, image_id: str) -> str:
        filename = await self.originals.find(image_id)
        if filename is None:
            raise NotFoundError("Image not found")
        return filename

    async def read_original(self, image_id: str) -> tuple[str, bytes]:
        filename = await self.locate(image_id)
        try:
            data = await self.originals.read(filename)
        except StorageNotFoundError as exc:
            # Removed by another process since it was indexed
            self.originals.forget(image_id)
            raise NotFoundError("Image not found") from exc
        return filename, data

    async def get_original(self, image_id: str) -> tuple[bytes, str]:
        filename, data = await self.read_original(image_id)
        return data, await self.originals.store.mime_type(filename)

    async def get_variant(self, image_id: str, size_token: str, format_token: str) -> RenderedVariant:
        """Serve a cached rendition or render, cache and serve it."""
        spec = parse_variant_spec(size_token, format_token)
        await self.locate(image_id)
        key = cache_key(image_id, spec.width, spec.height, spec.format)

        # Requests for the same key wait for the first render instead of repeating it
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if await self.cache.has(key, spec.format):
                try:
                    data = await self.cache.get(key, spec.format)
                except StorageNotFoundError:
                    logger.debug("Cache entry %s vanished before read", key)
                else:
                    logger.debug("Serving from cache: %s", key)
                    return RenderedVariant(data=data, content_type=spec.content_type, cache_hit=True)

            _, original = await self.read_original(image_id)
            logger.info("Processing image: %s -> %dx%d %s", image_id, spec.width, spec.height, spec.format)
            with observability.span("render variant", image_id=image_id, key=key):
                data = await asyncio.to_thread(
                    self._renderer, original, spec.width, spec.height, spec.format
                )
            await self.cache.put_best_effort(key, spec.format, data)

        return RenderedVariant(data=data, content_type=spec.content_type, cache_hit=False)

    async def info(self, image_id: str) -> dict:
        filename, data = await self.read_original(image_id)
        store = self.originals.store
        try:
            metadata = await asyncio.to_thread(probe_image, data)
        except DecodeError:
            # Vector uploads such as SVG are stored but not rasterised
            ext = os.path.splitext(filename)[1].lstrip(".").lower()
            logger.debug("Cannot probe %s, reporting extension only", filename)
            metadata = {"format": ext or None}
        return {
            "id": image_id,
            "filename": filename,
            "size": len(data),
            "uploadedAt": _isoformat(await store.last_modified(filename)),
            "metadata": metadata,
            "availableFormats": sorted(set(VARIANT_FORMATS.values())),
            "availableSizes": [*PRESET_SIZES, "custom"],
        }

    async def list_images(self) -> list[dict]:
        store = self.originals.store
        await self.originals.load()
        images = []
        for image_id, filename in self.originals:
            try:
                size = await store.size(filename)
                modified = await store.last_modified(filename)
            except StorageNotFoundError:
                logger.warning("Indexed original %s is missing from %s", filename, store.root)
                continue
            images.append({
                "id": image_id,
                "filename": filename,
                "size": size,
                "uploadedAt": _isoformat(modified),
                "urls": variant_urls(image_id),
            })
        return images

    # -- delete --

    async def delete(self, image_id: str, disk: str | None = None) -> dict:
        """Remove an original from a disk, its working copy and its cached variants.

        Idempotent: deleting an unknown id succeeds with nothing removed.
        """
        backend = self.storage.disk(disk)
        filename = await self.originals.find(image_id)

        removed_from_disk = False
        removed_working_copy = False
        if filename is not None:
            path = f"{IMAGE_PREFIX}/{filename}"
            removed_from_disk = await backend.delete(path)
            if removed_from_disk:
                logger.info("Deleted from storage: %s", path)
            removed_working_copy = await self.originals.remove(image_id)

        purged = await self.cache.purge(image_id)
        return {
            "removedFromDisk": removed_from_disk,
            "removedWorkingCopy": removed_working_copy,
            "purgedVariants": purged,
        }

    async def stats(self) -> dict:
        await self.originals.load()
        return {
            "uploadedImages": len(self.originals),
            "cachedImages": await self.cache.count(),
        }
