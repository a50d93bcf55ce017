"""On-demand image variant generation using Pillow."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from cdnservices.lib.errors import DecodeError, InvalidSizeError, UnsupportedFormatError

PRESET_SIZES: dict[str, tuple[int, int]] = {
    "thumbnail": (150, 150),
    "small": (300, 300),
    "medium": (800, 800),
    "large": (1920, 1080),
}

# Requested format token -> canonical format
VARIANT_FORMATS: dict[str, str] = {
    "jpeg": "jpeg",
    "jpg": "jpeg",
    "png": "png",
    "webp": "webp",
    "gif": "gif",
}

# Types accepted at upload, matched against the extension and the mimetype
UPLOAD_IMAGE_TYPES = ("jpeg", "jpg", "png", "gif", "webp", "svg", "bmp", "tiff")

_SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$")

_PIL_FORMATS = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
}

# Modes each encoder writes as-is; anything else is converted to RGB(A)
_WRITABLE_MODES: dict[str, tuple[str, ...]] = {
    "jpeg": ("RGB", "L"),
    "png": ("1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"),
    "webp": ("RGB", "RGBA"),
    "gif": ("1", "L", "P", "RGB", "RGBA"),
}

_SAVE_OPTIONS: dict[str, dict] = {
    "jpeg": {"quality": 85},
    "png": {"compress_level": 8},
    "webp": {"quality": 85},
    "gif": {},
}


@dataclass(frozen=True)
class VariantSpec:
    """Normalized transform request: contain-fit box plus output format."""

    width: int
    height: int
    format: str

    @property
    def content_type(self) -> str:
        return content_type_for(self.format)


def content_type_for(fmt: str) -> str:
    return f"image/{fmt}"


def parse_size(token: str) -> tuple[int, int]:
    """Resolve a preset name or an explicit ``WxH`` token to a bounding box."""
    if token in PRESET_SIZES:
        return PRESET_SIZES[token]

    match = _SIZE_PATTERN.match(token)
    if match is None:
        raise InvalidSizeError(f"Invalid size {token!r}: use a preset or WIDTHxHEIGHT")

    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise InvalidSizeError(f"Invalid size {token!r}: width and height must be positive")
    return width, height


def parse_format(token: str) -> str:
    """Return the canonical output format for a requested format token."""
    fmt = VARIANT_FORMATS.get(token.lower())
    if fmt is None:
        raise UnsupportedFormatError(
            f"Unsupported format {token!r}: use one of {', '.join(VARIANT_FORMATS)}"
        )
    return fmt


def parse_variant_spec(size_token: str, format_token: str) -> VariantSpec:
    fmt = parse_format(format_token)
    width, height = parse_size(size_token)
    return VariantSpec(width=width, height=height, format=fmt)


def cache_key(image_id: str, width: int, height: int, fmt: str) -> str:
    """Derive the derivative cache key, e.g. ``abc_300x300_webp``."""
    return f"{image_id}_{width}x{height}_{fmt}"


def variant_urls(image_id: str) -> dict[str, str]:
    """Public API URLs for the original and each preset rendition."""
    return {
        "original": f"/api/image/{image_id}",
        "thumbnail": f"/api/image/{image_id}/thumbnail/jpeg",
        "small": f"/api/image/{image_id}/300x300/webp",
        "medium": f"/api/image/{image_id}/800x800/webp",
        "large": f"/api/image/{image_id}/1920x1080/webp",
    }


def is_allowed_upload(filename: str, mimetype: str) -> bool:
    """Both the file extension and the mimetype must name an allowed image type."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    mimetype = mimetype.lower()
    ext_ok = any(t in ext for t in UPLOAD_IMAGE_TYPES)
    mime_ok = any(t in mimetype for t in UPLOAD_IMAGE_TYPES)
    return ext_ok and mime_ok


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    return img


def _writable(img: Image.Image, fmt: str) -> Image.Image:
    if img.mode in _WRITABLE_MODES[fmt]:
        return img
    if fmt != "jpeg" and img.has_transparency_data:
        return img.convert("RGBA")
    return img.convert("RGB")


def render_variant(data: bytes, width: int, height: int, fmt: str) -> bytes:
    """Resize an image to fit within ``width`` x ``height`` and encode it as ``fmt``.

    Preserves aspect ratio and never upscales: an original smaller than the
    box keeps its native dimensions.
    """
    img = _open(data)

    # thumbnail() fits inside the box and leaves smaller images untouched
    img.thumbnail((width, height), Image.LANCZOS)

    img = _writable(img, fmt)

    buf = io.BytesIO()
    try:
        img.save(buf, format=_PIL_FORMATS[fmt], **_SAVE_OPTIONS[fmt])
    except (OSError, ValueError) as exc:
        raise DecodeError(f"Could not encode image as {fmt}: {exc}") from exc
    return buf.getvalue()


def probe_image(data: bytes) -> dict:
    """Describe an image: dimensions, format, colour mode and density."""
    img = _open(data)
    bands = img.getbands()
    dpi = img.info.get("dpi")
    return {
        "width": img.width,
        "height": img.height,
        "format": (img.format or "").lower() or None,
        "space": img.mode,
        "channels": len(bands),
        "density": round(float(dpi[0])) if dpi else None,
        "hasAlpha": "A" in bands or "transparency" in img.info,
    }
