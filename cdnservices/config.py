import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from the working directory so env vars are available for YAML interpolation
load_dotenv(Path.cwd() / ".env")

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

DEFAULT_LOCAL_ROOT = "storage"
DEFAULT_LOCAL_URL = "/storage"
DEFAULT_TIMEOUT = 30.0


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    return Path.cwd() / "app.yaml"


def load_app_config() -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class LocalDiskConfig(BaseModel):
    """Disk stored on the local filesystem."""

    driver: Literal["local"] = "local"
    root: str = DEFAULT_LOCAL_ROOT
    url: str = DEFAULT_LOCAL_URL


class S3DiskConfig(BaseModel):
    """Disk stored in an S3-compatible bucket."""

    driver: Literal["s3"]
    bucket: str
    region: str = "us-east-1"
    url: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    acl: str | None = None
    prefix: str = ""
    timeout: float = DEFAULT_TIMEOUT


class AzureDiskConfig(BaseModel):
    """Disk stored in an Azure Blob Storage container."""

    driver: Literal["azure"]
    connection_string: str
    container: str = "files"
    url: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    copy_poll_interval: float = 0.5


class GCSDiskConfig(BaseModel):
    """Disk stored in a Google Cloud Storage bucket."""

    driver: Literal["gcs"]
    bucket: str
    project_id: str | None = None
    key_file: str | None = None
    url: str | None = None
    timeout: float = DEFAULT_TIMEOUT


DiskConfig = Annotated[
    LocalDiskConfig | S3DiskConfig | AzureDiskConfig | GCSDiskConfig,
    Field(discriminator="driver"),
]


class StorageConfig(BaseModel):
    """Named storage disks and the default disk name."""

    default: str = "local"
    disks: dict[str, DiskConfig] = {}


class ImagesConfig(BaseModel):
    """Working copy, derivative cache and upload limits."""

    upload_dir: str = "uploads"
    cache_dir: str = "cache"
    max_upload_size: int = 50 * 1024 * 1024


class LogfireConfig(BaseModel):
    """Pydantic Logfire observability configuration."""

    enabled: bool = False
    service_name: str = "cdn-services"
    environment: str | None = None
    sample_rate: float = 1.0
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    debug: bool = False
    secret_key: str

    # Loaded from app.yaml
    storage: StorageConfig = StorageConfig()
    images: ImagesConfig = ImagesConfig()
    logfire: LogfireConfig = LogfireConfig()


@lru_cache
def get_settings() -> Settings:
    """Load settings from .env and app.yaml."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    updates = {}

    if "storage" in app_config:
        updates["storage"] = StorageConfig(**app_config["storage"])

    if "images" in app_config:
        updates["images"] = ImagesConfig(**app_config["images"])

    if "logfire" in app_config:
        updates["logfire"] = LogfireConfig(**app_config["logfire"])

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings
