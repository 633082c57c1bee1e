from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi import Request
from sqlmodel import select

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from redirect_hub import database
from redirect_hub.auth.dependencies import SessionAuthContext
from redirect_hub.auth.models import AUDIT_SUMMARY_MAX_LENGTH, AuditLog, User
from redirect_hub.auth.security import (
    SESSION_COOKIE_NAME,
    hash_password,
    issue_session_token,
    read_session_token,
    verify_password,
)
from redirect_hub.auth.service import authenticate, create_user, init_storage, record_audit_event
from redirect_hub.auth.throttling import LoginRateLimiter
from redirect_hub.config import settings
from redirect_hub.database import reset_session_factory
from redirect_hub.redirect import ANONYMOUS, Authenticated


@pytest.fixture()
def db(tmp_path):
    original_url = settings.DATABASE_URL
    reset_session_factory(f"sqlite:///{Path(tmp_path) / 'redirect.sqlite3'}")
    try:
        yield
    finally:
        reset_session_factory(original_url)


def _request_with_cookie(value: str | None) -> Request:
    headers = []
    if value is not None:
        headers.append((b"cookie", f"{SESSION_COOKIE_NAME}={value}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def test_hash_and_verify_password() -> None:
    password = "s3cret-value"
    hashed = hash_password(password)
    assert hashed != password
    assert verify_password(password, hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("", hashed)


def test_init_storage_seeds_initial_user(db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "INITIAL_ADMIN_USERNAME", "Seed-Admin")
    monkeypatch.setattr(settings, "INITIAL_ADMIN_PASSWORD", "ultra-secret")
    monkeypatch.setattr(settings, "INITIAL_ADMIN_COMPANY", "Ligoj")

    init_storage()
    init_storage()
    with database.SessionLocal() as session:
        seeded = session.exec(select(User)).one()
        assert seeded.username == "seed-admin"
        assert seeded.company == "Ligoj"
        assert authenticate(session, " SEED-admin ", "ultra-secret") is not None
        assert authenticate(session, "seed-admin", "wrong") is None
        assert authenticate(session, "nobody", "ultra-secret") is None


def test_create_user_validates_login(db) -> None:
    init_storage()
    with database.SessionLocal() as session:
        guest = create_user(session, "guest-user", "guest-pass")
        assert guest.id is not None
        assert guest.company is None

        for bad in ("bad|name", "   ", "x" * 65):
            with pytest.raises(ValueError):
                create_user(session, bad, "pass")


def test_audit_summary_is_clipped_to_column_size(db) -> None:
    init_storage()
    with database.SessionLocal() as session:
        record_audit_event(session, "login_failed", "Failed login for " + "a" * 400, actor="b" * 80)

    with database.SessionLocal() as session:
        entry = session.exec(select(AuditLog)).one()
        assert len(entry.summary) == AUDIT_SUMMARY_MAX_LENGTH
        assert entry.summary.endswith("...")
        assert len(entry.actor) <= 64


def test_session_token_round_trip_and_tampering() -> None:
    token = issue_session_token("alice")
    assert read_session_token(token) == "alice"

    payload, signature = token.split(".")
    assert read_session_token(f"{payload}.{signature[:-2]}xx") is None
    assert read_session_token(f"{issue_session_token('bob').split('.')[0]}.{signature}") is None
    assert read_session_token("garbage") is None
    assert read_session_token("") is None
    assert read_session_token(None) is None

    assert read_session_token(issue_session_token("alice", lifetime=timedelta(seconds=-1))) is None


def test_session_token_depends_on_secret(monkeypatch) -> None:
    token = issue_session_token("alice")
    monkeypatch.setattr(settings, "SESSION_SECRET", "another-secret")
    assert read_session_token(token) is None


def test_session_auth_context_reads_identity_from_cookie() -> None:
    assert SessionAuthContext(_request_with_cookie(None)).current_identity() == ANONYMOUS
    assert SessionAuthContext(_request_with_cookie("forged.token")).current_identity() == ANONYMOUS

    identity = SessionAuthContext(_request_with_cookie(issue_session_token("alice"))).current_identity()
    assert identity == Authenticated("alice")


def test_login_rate_limiter_blocks_after_max_attempts() -> None:
    now = [datetime(2024, 1, 1, tzinfo=timezone.utc)]
    limiter = LoginRateLimiter(
        max_attempts=2,
        window_seconds=60,
        block_seconds=30,
        time_provider=lambda: now[0],
    )

    assert limiter.register_failure("10.0.0.1").blocked is False
    state = limiter.register_failure("10.0.0.1")
    assert state.blocked is True
    assert state.retry_after == 30
    assert limiter.status("10.0.0.2").blocked is False

    now[0] += timedelta(seconds=10)
    assert limiter.status("10.0.0.1").retry_after == 20

    now[0] += timedelta(seconds=25)
    assert limiter.status("10.0.0.1").blocked is False

    limiter.register_failure("10.0.0.1")
    limiter.register_success("10.0.0.1")
    assert limiter.register_failure("10.0.0.1").blocked is False


def test_login_rate_limiter_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError):
        LoginRateLimiter(max_attempts=0, window_seconds=1, block_seconds=1)
