"""Route guard requiring an authenticated subject."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cdnservices.auth.tokens import subject_from_payload, verify_signed_token
from cdnservices.lib.errors import AuthError

if TYPE_CHECKING:
    from litestar.connection import ASGIConnection
    from litestar.handlers.base import BaseRouteHandler

SUBJECT_STATE_KEY = "subject_id"


def bearer_token(connection: ASGIConnection) -> str | None:
    header = connection.headers.get("authorization", "")
    if not header:
        return None
    token = header[7:] if header.startswith("Bearer ") else header
    return token.strip() or None


async def subject_guard(connection: ASGIConnection, _: BaseRouteHandler) -> None:
    """Verify the bearer token and attach the subject id to ``connection.state``."""
    token = bearer_token(connection)
    if token is None:
        raise AuthError("No authorization token provided")

    secret = connection.app.state.secret_key
    payload = verify_signed_token(token, secret)
    if payload is None:
        raise AuthError("Invalid or expired token")

    subject_id = subject_from_payload(payload)
    if subject_id is None:
        raise AuthError("Token has no subject")

    connection.state[SUBJECT_STATE_KEY] = subject_id


def get_subject_id(connection: ASGIConnection) -> str | None:
    return connection.state.get(SUBJECT_STATE_KEY)
