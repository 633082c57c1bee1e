"""Account and audit-trail operations."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlmodel import Session, select

from .. import database
from ..config import settings
from .models import AUDIT_SUMMARY_MAX_LENGTH, LOGIN_MAX_LENGTH, AuditLog, User
from .security import hash_password, normalize_username, verify_password

logger = logging.getLogger(__name__)


def init_storage() -> None:
    """Create missing tables and seed ``INITIAL_ADMIN_*`` into an empty user table."""

    database.create_tables()
    login = normalize_username(settings.INITIAL_ADMIN_USERNAME)
    if not login or not settings.INITIAL_ADMIN_PASSWORD:
        return
    with database.SessionLocal() as session:
        if session.exec(select(User.id)).first() is not None:
            return
        create_user(
            session,
            login,
            settings.INITIAL_ADMIN_PASSWORD,
            company=settings.INITIAL_ADMIN_COMPANY or None,
        )
        logger.info("Seeded initial user %s", login)


def find_user(session: Session, login: str) -> Optional[User]:
    return session.exec(select(User).where(User.username == normalize_username(login))).first()


def authenticate(session: Session, login: str, password: str) -> Optional[User]:
    user = find_user(session, login)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


def create_user(
    session: Session,
    username: str,
    password: str,
    *,
    company: Optional[str] = None,
) -> User:
    """Persist a new account; logins end up in ``login|hash`` cookies, so no ``|``."""

    login = normalize_username(username)
    if not login:
        raise ValueError("username cannot be empty")
    if "|" in login:
        raise ValueError("username cannot contain '|'")
    if len(login) > LOGIN_MAX_LENGTH:
        raise ValueError(f"username cannot exceed {LOGIN_MAX_LENGTH} characters")

    user = User(
        username=login,
        hashed_password=hash_password(password),
        company=company.strip() if company else None,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _clip(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def record_audit_event(
    session: Session,
    action: str,
    summary: Optional[str] = None,
    *,
    actor: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Commit an :class:`AuditLog` row; ``summary`` is clipped to the column size."""

    entry = AuditLog(
        actor=_clip(actor, LOGIN_MAX_LENGTH),
        action=action,
        summary=_clip(summary, AUDIT_SUMMARY_MAX_LENGTH),
        data=data or {},
    )
    session.add(entry)
    session.commit()
    return entry


__all__ = [
    "authenticate",
    "create_user",
    "find_user",
    "init_storage",
    "record_audit_event",
]
