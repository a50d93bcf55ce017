"""Shared pytest fixtures."""

import io
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from PIL import Image

from cdnservices.auth.tokens import create_signed_token
from cdnservices.config import ImagesConfig, LocalDiskConfig, Settings, StorageConfig, get_settings
from cdnservices.lib.cache import DerivativeCache
from cdnservices.lib.originals import OriginalStore
from cdnservices.lib.storage.local import LocalStorageBackend
from cdnservices.lib.storage.manager import StorageManager
from cdnservices.services.image_service import ImageService

TEST_SECRET = "test-secret-key"


@pytest.fixture
def make_image():
    """Factory returning encoded image bytes of the requested size and format."""
    def _make(width=64, height=48, fmt="PNG", mode="RGB", color=(200, 30, 30)):
        img = Image.new(mode, (width, height), color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()
    return _make


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with every directory under ``tmp_path``."""
    return Settings(
        secret_key=TEST_SECRET,
        storage=StorageConfig(
            default="local",
            disks={"local": LocalDiskConfig(root=str(tmp_path / "storage"), url="/storage")},
        ),
        images=ImagesConfig(
            upload_dir=str(tmp_path / "uploads"),
            cache_dir=str(tmp_path / "cache"),
            max_upload_size=1024 * 1024,
        ),
    )


@pytest.fixture
def image_service(settings) -> ImageService:
    storage = StorageManager(settings.storage)
    return ImageService(
        storage=storage,
        originals=OriginalStore(LocalStorageBackend(Path(settings.images.upload_dir))),
        cache=DerivativeCache(LocalStorageBackend(Path(settings.images.cache_dir))),
        max_upload_size=settings.images.max_upload_size,
    )


@pytest.fixture
def auth_token():
    return create_signed_token({"sub": "user-1"}, TEST_SECRET, expires_in=3600)


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_config_path(temp_app_yaml):
    """Patch get_config_path to point at a temporary app.yaml."""
    patchers = []

    def _mock(config: dict):
        config_path = temp_app_yaml(config)
        patcher = patch("cdnservices.config.get_config_path", return_value=config_path)
        patchers.append(patcher)
        return patcher.start()

    yield _mock
    for patcher in patchers:
        patcher.stop()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
