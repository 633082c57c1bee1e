"""Cooldown tracking for repeated failed logins."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Deque, Dict, Optional

from ..config import settings


_TimeProvider = Callable[[], datetime]


@dataclass
class RateLimitState:
    """Whether a client is currently blocked, and for how long."""

    blocked: bool
    retry_after: int = 0


@dataclass
class _ClientAttempts:
    failures: Deque[datetime] = field(default_factory=deque)
    blocked_until: Optional[datetime] = None


class LoginRateLimiter:
    """Block a client for ``block_seconds`` after ``max_attempts`` failures."""

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        block_seconds: int,
        time_provider: Optional[_TimeProvider] = None,
    ) -> None:
        for name, value in (
            ("max_attempts", max_attempts),
            ("window_seconds", window_seconds),
            ("block_seconds", block_seconds),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be greater than zero")

        self._max_attempts = max_attempts
        self._window = timedelta(seconds=window_seconds)
        self._block = timedelta(seconds=block_seconds)
        self._now: _TimeProvider = time_provider or (lambda: datetime.now(timezone.utc))
        self._clients: Dict[str, _ClientAttempts] = {}
        self._lock = Lock()

    def _refresh(self, client: str, now: datetime) -> RateLimitState:
        entry = self._clients.get(client)
        if entry is None:
            return RateLimitState(blocked=False)
        if entry.blocked_until is not None:
            if entry.blocked_until > now:
                seconds = int((entry.blocked_until - now).total_seconds())
                return RateLimitState(blocked=True, retry_after=max(seconds, 1))
            entry.blocked_until = None
        threshold = now - self._window
        while entry.failures and entry.failures[0] < threshold:
            entry.failures.popleft()
        if not entry.failures:
            self._clients.pop(client, None)
        return RateLimitState(blocked=False)

    def status(self, client: str) -> RateLimitState:
        with self._lock:
            return self._refresh(client, self._now())

    def register_failure(self, client: str) -> RateLimitState:
        """Record a failed attempt and return the resulting state."""

        with self._lock:
            now = self._now()
            state = self._refresh(client, now)
            if state.blocked:
                return state
            entry = self._clients.setdefault(client, _ClientAttempts())
            entry.failures.append(now)
            if len(entry.failures) < self._max_attempts:
                return RateLimitState(blocked=False)
            entry.failures.clear()
            entry.blocked_until = now + self._block
            return RateLimitState(
                blocked=True, retry_after=max(int(self._block.total_seconds()), 1)
            )

    def register_success(self, client: str) -> None:
        with self._lock:
            self._clients.pop(client, None)


_login_rate_limiter: LoginRateLimiter | None = None


def get_login_rate_limiter() -> LoginRateLimiter:
    """Return the process-wide limiter, building it from settings on first use."""

    if _login_rate_limiter is None:
        reset_login_rate_limiter()
    assert _login_rate_limiter is not None
    return _login_rate_limiter


def reset_login_rate_limiter(limiter: Optional[LoginRateLimiter] = None) -> None:
    """Replace the global limiter, primarily for startup and tests."""

    global _login_rate_limiter
    _login_rate_limiter = limiter or LoginRateLimiter(
        max_attempts=settings.LOGIN_ATTEMPT_LIMIT,
        window_seconds=settings.LOGIN_ATTEMPT_WINDOW,
        block_seconds=settings.LOGIN_BACKOFF_SECONDS,
    )


__all__ = ["LoginRateLimiter", "RateLimitState", "get_login_rate_limiter", "reset_login_rate_limiter"]
