"""Decide where ``/redirect`` sends a browser and which preference cookie to set.

A user may store a preferred URL. Along with it a random hash is generated once
and handed to the browser in a long-lived cookie holding ``login|hash``. When
the same browser comes back without a session, the cookie is accepted only if
its hash still equals the stored one; overwriting the stored hash therefore
revokes every cookie issued before. Without a usable preference the browser is
sent to the internal or external home page.
"""
from __future__ import annotations

import hmac
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional, Protocol, Tuple, TypeVar, Union
from urllib.parse import urlsplit

from fastapi.responses import RedirectResponse, Response

from .configuration import REDIRECT_EXTERNAL_HOME, REDIRECT_INTERNAL_HOME

logger = logging.getLogger(__name__)

PREFERRED_URL = "preferred-url"
PREFERRED_HASH = "preferred-hash"
PREFERRED_COOKIE_HASH = "preferred-redirect-hash"
REAL_USER_HEADER = "X-Real-User"

PREFERENCE_COOKIE_TTL = timedelta(days=365)
PREFERENCE_COOKIE_TTL_SECONDS = int(PREFERENCE_COOKIE_TTL.total_seconds())

HASH_LENGTH = 100
HASH_ALPHABET = string.ascii_letters + string.digits

# characters a URI may never contain, even percent-encoding aside
_ILLEGAL_URL_CHARACTERS = re.compile(r'[\x00-\x20\x7f<>"{}|\\^`]|%(?![0-9A-Fa-f]{2})')


class InvalidRedirectURL(ValueError):
    """A redirect location does not parse as a URI reference."""


@dataclass(frozen=True)
class Anonymous:
    """Identity of a request without a logged-in user."""


@dataclass(frozen=True)
class Authenticated:
    login: str


Identity = Union[Anonymous, Authenticated]
ANONYMOUS = Anonymous()


class AuthContext(Protocol):
    def current_identity(self) -> Identity: ...


class SettingRecord(Protocol):
    value: str


class SettingsStore(Protocol):
    def get_all(self, login: str) -> Dict[str, str]: ...

    def get_one(self, login: str, name: str) -> Optional[str]: ...

    def upsert(self, login: str, name: str, value: str) -> object: ...

    def find_one(self, login: str, name: str) -> Optional[SettingRecord]: ...


class AffiliationLookup(Protocol):
    def is_internal(self, login: str) -> bool: ...


class Config(Protocol):
    def get(self, name: str) -> Optional[str]: ...


HashMismatchObserver = Callable[[str, str], None]
ResponseT = TypeVar("ResponseT", bound=Response)


def generate_preference_hash(length: int = HASH_LENGTH) -> str:
    """Return a random ASCII alphanumeric token."""

    return "".join(secrets.choice(HASH_ALPHABET) for _ in range(length))


def parse_location(url: Optional[str]) -> str:
    """Return ``url`` unchanged if it is a syntactically valid URI reference."""

    if url is None or not url.strip():
        raise InvalidRedirectURL("redirect URL is empty")
    if _ILLEGAL_URL_CHARACTERS.search(url):
        raise InvalidRedirectURL(f"illegal character in redirect URL: {url!r}")
    try:
        urlsplit(url).port  # raises on a bad port or IPv6 host
    except ValueError as exc:
        raise InvalidRedirectURL(f"malformed redirect URL {url!r}: {exc}") from exc
    return url


def parse_cookie_token(value: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a ``login|hash`` cookie value, ``None`` for any other shape."""

    if not value or not value.strip():
        return None
    parts = [part for part in value.split("|") if part]
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


@dataclass(frozen=True)
class CookieMutation:
    """A ``Set-Cookie`` carrying the preference token."""

    name: str
    value: str
    path: str = "/"
    max_age: int = PREFERENCE_COOKIE_TTL_SECONDS
    secure: bool = True
    httponly: bool = True

    @classmethod
    def for_login(cls, login: str, preference_hash: str) -> "CookieMutation":
        return cls(name=PREFERRED_COOKIE_HASH, value=f"{login}|{preference_hash}")

    def apply(self, response: ResponseT) -> ResponseT:
        response.set_cookie(
            self.name,
            self.value,
            max_age=self.max_age,
            expires=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
        )
        return response


@dataclass(frozen=True)
class RedirectDecision:
    location: str
    cookie: Optional[CookieMutation] = None

    def to_response(self) -> RedirectResponse:
        response = RedirectResponse(self.location, status_code=302)
        if self.cookie is not None:
            self.cookie.apply(response)
        return response


def _preference_cookie(login: str, preference_hash: Optional[str]) -> Optional[CookieMutation]:
    if preference_hash is None:
        return None
    return CookieMutation.for_login(login, preference_hash)


class RedirectDecider:
    """Compute redirect targets and preference cookies for one request."""

    def __init__(
        self,
        auth: AuthContext,
        user_settings: SettingsStore,
        affiliation: AffiliationLookup,
        configuration: Config,
        *,
        on_hash_mismatch: Optional[HashMismatchObserver] = None,
    ) -> None:
        self.auth = auth
        self.user_settings = user_settings
        self.affiliation = affiliation
        self.configuration = configuration
        self.on_hash_mismatch = on_hash_mismatch

    def handle_redirect(
        self,
        cookie_value: Optional[str],
        identity: Optional[Identity] = None,
    ) -> RedirectDecision:
        """Return the redirect for ``identity`` (the current one by default).

        Anonymous requests rely on the preference cookie and never get a cookie
        back. Authenticated requests ignore the cookie, use their stored
        settings and get the cookie re-issued whenever a hash is stored.
        """

        if identity is None:
            identity = self.auth.current_identity()

        if isinstance(identity, Authenticated):
            login = identity.login
            stored = self.user_settings.get_all(login)
            location = self._location(stored.get(PREFERRED_URL), identity)
            return RedirectDecision(location, _preference_cookie(login, stored.get(PREFERRED_HASH)))

        return RedirectDecision(self._location(self._url_from_cookie(cookie_value), identity))

    def save_or_update(self, login: str, new_url: str) -> CookieMutation:
        """Store ``new_url`` as the preference of ``login``.

        The preference hash is created on first use and kept afterwards, so
        cookies already handed out stay valid.
        """

        new_url = parse_location(new_url)
        self.user_settings.upsert(login, PREFERRED_URL, new_url)

        existing = self.user_settings.find_one(login, PREFERRED_HASH)
        if existing is not None:
            preference_hash = existing.value
        else:
            preference_hash = generate_preference_hash()
            self.user_settings.upsert(login, PREFERRED_HASH, preference_hash)
            logger.info("Generated preference hash for %s", login)
        return CookieMutation.for_login(login, preference_hash)

    def attach_preference_cookie(self, response: ResponseT, login: str) -> ResponseT:
        """Add the stored preference cookie and ``X-Real-User`` to ``response``."""

        cookie = _preference_cookie(login, self.user_settings.get_one(login, PREFERRED_HASH))
        if cookie is not None:
            cookie.apply(response)
        response.headers[REAL_USER_HEADER] = login
        return response

    def resolve_home(self, identity: Identity) -> str:
        if isinstance(identity, Authenticated) and self.affiliation.is_internal(identity.login):
            return self._configured_url(REDIRECT_INTERNAL_HOME)
        return self._configured_url(REDIRECT_EXTERNAL_HOME)

    def _location(self, preferred_url: Optional[str], identity: Identity) -> str:
        if preferred_url is None:
            return self.resolve_home(identity)
        return parse_location(preferred_url)

    def _configured_url(self, name: str) -> str:
        try:
            return parse_location(self.configuration.get(name))
        except InvalidRedirectURL as exc:
            raise InvalidRedirectURL(f"configuration {name!r}: {exc}") from exc

    def _url_from_cookie(self, cookie_value: Optional[str]) -> Optional[str]:
        token = parse_cookie_token(cookie_value)
        if token is None:
            return None

        login, submitted_hash = token
        stored = self.user_settings.get_all(login)
        stored_hash = stored.get(PREFERRED_HASH)
        if stored_hash is not None and hmac.compare_digest(
            submitted_hash.encode("utf-8"), stored_hash.encode("utf-8")
        ):
            return stored.get(PREFERRED_URL)

        if stored_hash is None:
            logger.warning(
                "Preference cookie for %s without a stored hash: %s|%s",
                login, login, submitted_hash,
            )
        else:
            logger.warning(
                "Attempt to access preferred URL with cookie value: %s|%s",
                login, submitted_hash,
            )
        if self.on_hash_mismatch is not None:
            self.on_hash_mismatch(login, submitted_hash)
        return None


__all__ = [
    "ANONYMOUS",
    "HASH_ALPHABET",
    "HASH_LENGTH",
    "PREFERRED_COOKIE_HASH",
    "PREFERRED_HASH",
    "PREFERRED_URL",
    "REAL_USER_HEADER",
    "AffiliationLookup",
    "Anonymous",
    "AuthContext",
    "Authenticated",
    "Config",
    "CookieMutation",
    "Identity",
    "InvalidRedirectURL",
    "RedirectDecider",
    "RedirectDecision",
    "SettingsStore",
    "generate_preference_hash",
    "parse_cookie_token",
    "parse_location",
]
