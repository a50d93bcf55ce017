"""Error taxonomy shared by storage, imaging and the HTTP layer."""

from __future__ import annotations


class ImageServiceError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.error)
        self.message = message or self.error


class ValidationError(ImageServiceError):
    """Bad client input (upload type, size, path)."""

    status_code = 400
    error = "Validation Error"


class InvalidPathError(ValidationError):
    """Logical storage path escapes its root or is otherwise malformed."""

    error = "Invalid Path"


class ConfigurationError(ImageServiceError):
    """A storage disk was requested that is not configured."""

    status_code = 400
    error = "Configuration Error"


class AuthError(ImageServiceError):
    status_code = 401
    error = "Unauthorized"


class NotFoundError(ImageServiceError):
    status_code = 404
    error = "Not Found"


class StorageNotFoundError(NotFoundError):
    """The requested path does not exist in a storage backend."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File not found: {path}")
        self.path = path


class UnsupportedFormatError(ImageServiceError):
    status_code = 400
    error = "Unsupported Format"


class InvalidSizeError(ImageServiceError):
    status_code = 400
    error = "Invalid Size"


class BackendError(ImageServiceError):
    """Transport, credential or protocol failure talking to a storage provider."""

    status_code = 500
    error = "Storage Backend Error"


class DecodeError(ImageServiceError):
    """Image bytes are corrupt or in a format the decoder does not understand."""

    status_code = 500
    error = "Decode Error"
