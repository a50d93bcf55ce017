import logging
import traceback
from typing import Any

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

from cdnservices.lib import observability
from cdnservices.lib.errors import ImageServiceError

logger = logging.getLogger(__name__)


def _error_body(request: Request, error: str, message: str, exc: Exception) -> dict:
    """Structured error body; the traceback is only exposed in debug mode."""
    body: dict = {"success": False, "error": error, "message": message}
    if request.app.debug:
        body["details"] = "".join(traceback.format_exception(exc))
    return body


def service_error_handler(request: Request, exc: ImageServiceError) -> Response:
    """Map service errors onto their status codes."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s", exc.error, request.method, request.url.path, exc.message,
            exc_info=exc,
        )
    return Response(
        content=_error_body(request, exc.error, exc.message, exc),
        status_code=exc.status_code,
        media_type="application/json",
    )


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Framework HTTP errors (404 routes, 405, 413 bodies) in the same JSON shape."""
    status_code = exc.status_code
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return Response(
        content=_error_body(request, detail, detail, exc),
        status_code=status_code,
        media_type="application/json",
    )


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Log unexpected exceptions and answer with a generic 500."""
    if not observability.exception(
        "Unhandled exception on {method} {path}",
        method=request.method,
        path=request.url.path,
    ):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return Response(
        content=_error_body(request, "Internal Server Error", "An unexpected error occurred.", exc),
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/json",
    )


EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    ImageServiceError: service_error_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}
