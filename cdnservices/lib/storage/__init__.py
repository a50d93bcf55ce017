"""Pluggable multi-backend storage disks."""

from cdnservices.lib.storage.base import StorageBackend, StoredFile
from cdnservices.lib.storage.local import LocalStorageBackend
from cdnservices.lib.storage.manager import StorageManager

__all__ = ["LocalStorageBackend", "StorageBackend", "StorageManager", "StoredFile"]
