"""Optional Pydantic Logfire integration.

Everything here is a no-op until :func:`configure` succeeds, so callers never
check whether tracing is on.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from litestar.types import ASGIApp

    from cdnservices.config import LogfireConfig

logger = logging.getLogger(__name__)

# The logfire module once configured, otherwise None
_logfire: Any = None


def is_available() -> bool:
    return _logfire is not None


def configure(config: LogfireConfig) -> bool:
    """Configure logfire when enabled. Returns whether tracing is active."""
    global _logfire

    if not config.enabled:
        return False

    try:
        import logfire
    except ImportError:
        logger.warning("Logfire is enabled but not installed; pip install cdnservices[logfire]")
        return False

    options: dict[str, Any] = {
        "service_name": config.service_name,
        "send_to_logfire": "if-token-present",
        "console": logfire.ConsoleOptions() if config.console else False,
    }
    if config.environment:
        options["environment"] = config.environment
    if config.sample_rate < 1.0:
        options["trace_sample_rate"] = config.sample_rate

    logfire.configure(**options)
    _logfire = logfire
    return True


def instrument_app(app: ASGIApp) -> ASGIApp:
    """Wrap an ASGI app so each request becomes a trace."""
    if _logfire is None:
        return app
    return _logfire.instrument_asgi(app)


@contextmanager
def span(name: str, **attrs: Any) -> Iterator[Any]:
    if _logfire is None:
        yield None
        return
    with _logfire.span(name, **attrs) as current:
        yield current


def exception(msg: str, **attrs: Any) -> bool:
    """Report an exception with traceback. Returns ``False`` when tracing is off."""
    if _logfire is None:
        return False
    _logfire.exception(msg, **attrs)
    return True
