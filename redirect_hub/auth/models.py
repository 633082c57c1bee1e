"""Tables for accounts and the audit trail."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, JSON, String
from sqlmodel import Field, SQLModel

LOGIN_MAX_LENGTH = 64
AUDIT_SUMMARY_MAX_LENGTH = 255


def _created_at_column() -> Column:
    return Column(DateTime(timezone=True), nullable=False)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(
        sa_column=Column(String(LOGIN_MAX_LENGTH), unique=True, index=True, nullable=False)
    )
    hashed_password: str = Field(sa_column=Column(String(255), nullable=False))
    # matched against INTERNAL_COMPANIES to pick the home page
    company: Optional[str] = Field(
        default=None, sa_column=Column(String(120), nullable=True, index=True)
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=_created_at_column(),
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    actor: Optional[str] = Field(
        default=None, sa_column=Column(String(LOGIN_MAX_LENGTH), nullable=True, index=True)
    )
    action: str = Field(sa_column=Column(String(120), nullable=False, index=True))
    summary: Optional[str] = Field(
        default=None, sa_column=Column(String(AUDIT_SUMMARY_MAX_LENGTH), nullable=True)
    )
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=_created_at_column(),
    )


__all__ = ["AUDIT_SUMMARY_MAX_LENGTH", "AuditLog", "LOGIN_MAX_LENGTH", "User"]
