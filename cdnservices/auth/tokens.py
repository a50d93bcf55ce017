"""Signed bearer tokens identifying the calling subject.

HMAC-SHA256 over a base64url JSON payload, stdlib only.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time

SUBJECT_CLAIMS = ("sub", "user_id", "id")


def _sign(payload_b64: str, secret: str) -> bytes:
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).digest()


def create_signed_token(payload: dict, secret: str, expires_in: int) -> str:
    """Create a signed token carrying ``payload`` plus an ``exp`` claim.

    Returns:
        URL-safe base64 string: ``base64(json_payload).base64(signature)``
    """
    payload = {**payload, "exp": int(time.time()) + expires_in}
    payload_bytes = json.dumps(payload, separators=(",", ":")).encode()
    payload_b64 = base64.urlsafe_b64encode(payload_bytes).decode()
    sig_b64 = base64.urlsafe_b64encode(_sign(payload_b64, secret)).decode()
    return f"{payload_b64}.{sig_b64}"


def verify_signed_token(token: str, secret: str) -> dict | None:
    """Verify and decode a signed token.

    Returns:
        Decoded payload dict, or ``None`` if the token is invalid, expired,
        or has been tampered with.
    """
    parts = token.split(".")
    if len(parts) != 2:
        return None

    payload_b64, sig_b64 = parts

    try:
        actual_sig = base64.urlsafe_b64decode(sig_b64)
    except (binascii.Error, ValueError):
        return None

    if not hmac.compare_digest(_sign(payload_b64, secret), actual_sig):
        return None

    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (binascii.Error, ValueError):
        return None

    if not isinstance(payload, dict):
        return None

    exp = payload.get("exp")
    if not isinstance(exp, (int, float)) or time.time() > exp:
        return None

    return payload


def subject_from_payload(payload: dict) -> str | None:
    """First non-empty subject claim of a verified payload."""
    for claim in SUBJECT_CLAIMS:
        value = payload.get(claim)
        if value not in (None, ""):
            return str(value)
    return None
