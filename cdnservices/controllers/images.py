"""Image API controller: upload, originals, variants, info, delete, listing."""

from __future__ import annotations

from litestar import Controller, Request, delete, get, post
from litestar.datastructures import UploadFile
from litestar.response import Response

from cdnservices.auth.guards import get_subject_id, subject_guard
from cdnservices.lib.errors import ValidationError
from cdnservices.services.image_service import ImageService

VARIANT_CACHE_CONTROL = "public, max-age=31536000"


def _service(request: Request) -> ImageService:
    return request.app.state.image_service


class ImagesController(Controller):
    """JSON and binary endpoints under ``/api``."""

    path = "/api"

    @post("/upload", guards=[subject_guard])
    async def upload(self, request: Request) -> Response:
        """Accept a multipart ``image`` field and an optional ``disk`` name."""
        form = await request.form()
        upload = form.get("image")
        if not isinstance(upload, UploadFile):
            raise ValidationError("No file uploaded")

        disk = form.get("disk")
        if disk is not None and not isinstance(disk, str):
            raise ValidationError("Field 'disk' must be a string")

        content = await upload.read()
        uploaded = await _service(request).ingest(
            content,
            original_filename=upload.filename or "untitled",
            mimetype=upload.content_type or "application/octet-stream",
            disk=disk or None,
            subject_id=get_subject_id(request),
        )
        return Response(
            content={"success": True, "file": uploaded.to_dict()},
            status_code=201,
            media_type="application/json",
        )

    @get("/image/{image_id:str}")
    async def original(self, request: Request, image_id: str) -> Response:
        data, content_type = await _service(request).get_original(image_id)
        return Response(content=data, media_type=content_type)

    @get("/image/{image_id:str}/{size:str}/{fmt:str}")
    async def variant(self, request: Request, image_id: str, size: str, fmt: str) -> Response:
        rendered = await _service(request).get_variant(image_id, size, fmt)
        return Response(
            content=rendered.data,
            media_type=rendered.content_type,
            headers={
                "Cache-Control": VARIANT_CACHE_CONTROL,
                "X-Cache": "HIT" if rendered.cache_hit else "MISS",
            },
        )

    @get("/info/{image_id:str}")
    async def info(self, request: Request, image_id: str) -> dict:
        return await _service(request).info(image_id)

    @delete("/image/{image_id:str}", guards=[subject_guard], status_code=200)
    async def remove(self, request: Request, image_id: str, disk: str | None = None) -> dict:
        """Delete an original everywhere. Succeeds even when nothing was found."""
        result = await _service(request).delete(image_id, disk=disk)
        return {
            "success": True,
            "message": "Image deleted successfully",
            "deletedBy": get_subject_id(request),
            **result,
        }

    @get("/images")
    async def list_images(self, request: Request) -> dict:
        images = await _service(request).list_images()
        return {"success": True, "count": len(images), "images": images}
