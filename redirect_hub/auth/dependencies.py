"""FastAPI dependencies resolving the caller from the session cookie."""
from __future__ import annotations

from fastapi import HTTPException, Request, status

from ..redirect import ANONYMOUS, Authenticated, Identity
from .security import SESSION_COOKIE_NAME, read_session_token


class SessionAuthContext:
    """AuthContext backed by the signed session cookie of ``request``."""

    def __init__(self, request: Request) -> None:
        self.request = request

    def current_identity(self) -> Identity:
        login = read_session_token(self.request.cookies.get(SESSION_COOKIE_NAME))
        return ANONYMOUS if login is None else Authenticated(login)


def require_login(request: Request) -> str:
    """Return the caller's login or answer ``401``."""

    identity = SessionAuthContext(request).current_identity()
    if not isinstance(identity, Authenticated):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Not authenticated")
    return identity.login


__all__ = ["SessionAuthContext", "require_login"]
