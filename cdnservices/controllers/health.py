"""Service-level endpoints: health check, description and runtime info."""

import time
from datetime import UTC, datetime

from litestar import Controller, Request, get

from cdnservices import __version__
from cdnservices.lib.imaging import PRESET_SIZES, UPLOAD_IMAGE_TYPES, VARIANT_FORMATS

SERVICE_NAME = "cdn-services"

FEATURES = [
    "image-upload",
    "image-processing",
    "format-conversion",
    "resizing",
    "caching",
    "authentication",
    "multi-storage",
]


class HealthController(Controller):
    path = "/"

    @get("/health")
    async def health(self) -> dict:
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "features": FEATURES,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @get("/")
    async def index(self, request: Request) -> dict:
        """Describe the API surface."""
        return {
            "message": "CDN Services with Image Processing",
            "version": __version__,
            "endpoints": {
                "health": "GET /health",
                "systemInfo": "GET /info",
                "upload": "POST /api/upload (Auth Required)",
                "list": "GET /api/images",
                "image": "GET /api/image/{id}",
                "processedImage": "GET /api/image/{id}/{size}/{format}",
                "imageInfo": "GET /api/info/{id}",
                "delete": "DELETE /api/image/{id} (Auth Required)",
            },
            "disks": request.app.state.image_service.storage.disk_names,
            "supportedFormats": sorted(VARIANT_FORMATS),
            "supportedSizes": [*PRESET_SIZES, "custom (e.g., 200x300)"],
            "examples": [
                "/api/image/abc123/100x100/webp",
                "/api/image/abc123/thumbnail/jpeg",
                "/api/image/abc123/500x500/png",
            ],
        }

    @get("/info")
    async def info(self, request: Request) -> dict:
        service = request.app.state.image_service
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "features": FEATURES,
            "stats": await service.stats(),
            "limits": {
                "maxFileSize": service.max_upload_size,
                "uploadTypes": list(UPLOAD_IMAGE_TYPES),
                "supportedFormats": sorted(VARIANT_FORMATS),
            },
            "uptime": time.monotonic() - request.app.state.started_at,
        }
