"""Password hashing and the signed session cookie.

The session token is ``<payload>.<signature>`` where the payload is the
URL-safe base64 of ``{"sub": login, "exp": unix_ts}`` and the signature an
HMAC-SHA256 over it keyed with ``SESSION_SECRET``.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Optional

from passlib.context import CryptContext

from ..config import settings
from ..redirect import CookieMutation

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_COOKIE_NAME = "redirect_hub_session"
SESSION_TTL = timedelta(hours=12)


def normalize_username(username: Optional[str]) -> str:
    return (username or "").strip().lower()


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    if not password or not hashed_password:
        return False
    try:
        return _pwd_context.verify(password, hashed_password)
    except ValueError:
        return False


def _sign(payload: bytes) -> bytes:
    secret = settings.SESSION_SECRET
    if not secret:
        raise RuntimeError("SESSION_SECRET must be configured")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()


def _encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def issue_session_token(login: str, *, lifetime: timedelta = SESSION_TTL) -> str:
    """Return a signed token naming ``login`` that expires after ``lifetime``."""

    claims = {"sub": login, "exp": int(time.time() + lifetime.total_seconds())}
    payload = json.dumps(claims, separators=(",", ":"), sort_keys=True).encode()
    return f"{_encode(payload)}.{_encode(_sign(payload))}"


def read_session_token(token: Optional[str]) -> Optional[str]:
    """Return the login carried by ``token``, or ``None`` if it is not valid."""

    payload_part, _, signature_part = (token or "").partition(".")
    if not payload_part or not signature_part:
        return None
    try:
        payload = _decode(payload_part)
        signature = _decode(signature_part)
    except (ValueError, binascii.Error):
        return None
    if not hmac.compare_digest(signature, _sign(payload)):
        return None

    try:
        claims = json.loads(payload)
    except ValueError:
        return None
    login, expires = claims.get("sub"), claims.get("exp")
    if not isinstance(login, str) or not login or not isinstance(expires, int):
        return None
    if expires <= time.time():
        return None
    return login


def session_cookie(token: str, *, max_age: Optional[int] = None) -> CookieMutation:
    """Build the ``Set-Cookie`` for ``token``; an empty token expires the cookie."""

    if max_age is None:
        max_age = int(SESSION_TTL.total_seconds()) if token else 0
    return CookieMutation(
        name=SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        secure=settings.PUBLIC_BASE.startswith("https://"),
    )


def clear_session_cookie(response):
    return session_cookie("").apply(response)


__all__ = [
    "SESSION_COOKIE_NAME",
    "SESSION_TTL",
    "clear_session_cookie",
    "hash_password",
    "issue_session_token",
    "normalize_username",
    "read_session_token",
    "session_cookie",
    "verify_password",
]
