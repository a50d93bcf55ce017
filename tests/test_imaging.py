"""Tests for variant parsing, cache keys and Pillow rendering."""

import io

import pytest
from PIL import Image

from cdnservices.lib.errors import DecodeError, InvalidSizeError, UnsupportedFormatError
from cdnservices.lib.imaging import (
    PRESET_SIZES,
    VariantSpec,
    cache_key,
    is_allowed_upload,
    parse_size,
    parse_variant_spec,
    probe_image,
    render_variant,
    variant_urls,
)


def _open(data):
    return Image.open(io.BytesIO(data))


class TestParseVariantSpec:
    @pytest.mark.parametrize("preset", list(PRESET_SIZES))
    def test_preset_matches_explicit_size(self, preset):
        width, height = PRESET_SIZES[preset]
        assert parse_variant_spec(preset, "webp") == parse_variant_spec(f"{width}x{height}", "webp")

    def test_explicit_size(self):
        assert parse_variant_spec("200x300", "png") == VariantSpec(200, 300, "png")

    def test_jpg_is_canonicalized(self):
        spec = parse_variant_spec("thumbnail", "jpg")
        assert spec.format == "jpeg"
        assert spec.content_type == "image/jpeg"

    def test_format_is_case_insensitive(self):
        assert parse_variant_spec("small", "WEBP").format == "webp"

    @pytest.mark.parametrize("token", ["abc", "100", "100x", "x100", "-5x10", "10x10x10", "huge"])
    def test_invalid_size(self, token):
        with pytest.raises(InvalidSizeError):
            parse_size(token)

    @pytest.mark.parametrize("token", ["0x100", "100x0"])
    def test_zero_dimension_rejected(self, token):
        with pytest.raises(InvalidSizeError):
            parse_size(token)

    @pytest.mark.parametrize("fmt", ["bmp", "tiff", "svg", "avif", ""])
    def test_unsupported_format(self, fmt):
        with pytest.raises(UnsupportedFormatError):
            parse_variant_spec("small", fmt)

    def test_format_checked_before_size(self):
        with pytest.raises(UnsupportedFormatError):
            parse_variant_spec("not-a-size", "bmp")


class TestCacheKey:
    def test_key_shape(self):
        assert cache_key("abc", 300, 300, "webp") == "abc_300x300_webp"

    def test_preset_and_explicit_share_key(self):
        a = parse_variant_spec("thumbnail", "jpg")
        b = parse_variant_spec("150x150", "jpeg")
        assert cache_key("id", a.width, a.height, a.format) == cache_key("id", b.width, b.height, b.format)

    def test_distinct_inputs_give_distinct_keys(self):
        keys = {
            cache_key("id", 100, 200, "png"),
            cache_key("id", 200, 100, "png"),
            cache_key("id", 100, 200, "webp"),
            cache_key("id2", 100, 200, "png"),
        }
        assert len(keys) == 4


class TestRenderVariant:
    def test_downscale_preserves_aspect_ratio(self, make_image):
        data = render_variant(make_image(400, 200), 100, 100, "png")
        img = _open(data)
        assert img.format == "PNG"
        assert img.size == (100, 50)

    def test_never_upscales(self, make_image):
        data = render_variant(make_image(40, 30), 1920, 1080, "webp")
        img = _open(data)
        assert img.format == "WEBP"
        assert img.size == (40, 30)

    def test_fits_within_box(self, make_image):
        img = _open(render_variant(make_image(1000, 3000), 300, 300, "jpeg"))
        assert img.width <= 300 and img.height <= 300
        assert img.size == (100, 300)

    def test_rgba_to_jpeg(self, make_image):
        data = render_variant(make_image(50, 50, mode="RGBA", color=(0, 0, 255, 128)), 20, 20, "jpeg")
        img = _open(data)
        assert img.format == "JPEG"
        assert img.mode == "RGB"

    def test_gif_output(self, make_image):
        assert _open(render_variant(make_image(60, 60), 30, 30, "gif")).format == "GIF"

    @pytest.mark.parametrize("fmt", ["png", "gif", "jpeg", "webp"])
    def test_cmyk_source(self, make_image, fmt):
        source = make_image(50, 40, fmt="JPEG", mode="CMYK", color=(0, 200, 200, 0))
        img = _open(render_variant(source, 20, 20, fmt))
        assert img.format == fmt.upper()
        assert img.size == (20, 16)

    def test_palette_transparency_kept_for_webp(self):
        src = Image.new("P", (30, 30), 0)
        src.info["transparency"] = 0
        buf = io.BytesIO()
        src.save(buf, format="PNG")
        assert _open(render_variant(buf.getvalue(), 10, 10, "webp")).mode == "RGBA"

    def test_garbage_raises_decode_error(self):
        with pytest.raises(DecodeError):
            render_variant(b"not an image", 10, 10, "png")


class TestProbeImage:
    def test_metadata(self, make_image):
        meta = probe_image(make_image(64, 48, mode="RGBA", color=(1, 2, 3, 4)))
        assert meta["width"] == 64
        assert meta["height"] == 48
        assert meta["format"] == "png"
        assert meta["channels"] == 4
        assert meta["hasAlpha"] is True

    def test_undecodable(self):
        with pytest.raises(DecodeError):
            probe_image(b"<svg xmlns='http://www.w3.org/2000/svg'/>")


class TestUploadTypes:
    @pytest.mark.parametrize("filename,mimetype", [
        ("photo.jpg", "image/jpeg"),
        ("photo.JPEG", "image/jpeg"),
        ("logo.png", "image/png"),
        ("icon.svg", "image/svg+xml"),
    ])
    def test_allowed(self, filename, mimetype):
        assert is_allowed_upload(filename, mimetype)

    @pytest.mark.parametrize("filename,mimetype", [
        ("notes.txt", "text/plain"),
        ("photo.png", "text/plain"),
        ("script.exe", "image/png"),
        ("noext", "image/png"),
    ])
    def test_rejected(self, filename, mimetype):
        assert not is_allowed_upload(filename, mimetype)


def test_variant_urls():
    urls = variant_urls("abc")
    assert urls["original"] == "/api/image/abc"
    assert urls["thumbnail"] == "/api/image/abc/thumbnail/jpeg"
    assert urls["large"] == "/api/image/abc/1920x1080/webp"
