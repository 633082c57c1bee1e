"""System-wide configuration values with environment fallbacks.

Values live in the ``system_configuration`` table so that an operator can
change them without a restart. A key missing from the table falls back to the
matching :class:`~redirect_hub.config.Settings` attribute, named after the key
in upper case with ``.`` and ``-`` replaced by ``_`` (``redirect.external.home``
reads ``REDIRECT_EXTERNAL_HOME``).
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Column, String, Text
from sqlmodel import Field, Session, SQLModel, select

from .config import settings

REDIRECT_EXTERNAL_HOME = "redirect.external.home"
REDIRECT_INTERNAL_HOME = "redirect.internal.home"


class SystemConfiguration(SQLModel, table=True):
    __tablename__ = "system_configuration"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(
        sa_column=Column(String(190), unique=True, index=True, nullable=False)
    )
    value: str = Field(sa_column=Column(Text, nullable=False))


def _settings_attribute(name: str) -> str:
    return name.upper().replace(".", "_").replace("-", "_")


class ConfigurationStore:
    """Look up configuration values, database first."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, name: str) -> Optional[str]:
        entry = self.session.exec(
            select(SystemConfiguration).where(SystemConfiguration.name == name)
        ).first()
        if entry is not None:
            return entry.value
        fallback = getattr(settings, _settings_attribute(name), None)
        if fallback is None or fallback == "":
            return None
        return str(fallback)

    def put(self, name: str, value: str) -> SystemConfiguration:
        entry = self.session.exec(
            select(SystemConfiguration).where(SystemConfiguration.name == name)
        ).first()
        if entry is None:
            entry = SystemConfiguration(name=name, value=value)
        else:
            entry.value = value
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry


__all__ = [
    "REDIRECT_EXTERNAL_HOME",
    "REDIRECT_INTERNAL_HOME",
    "ConfigurationStore",
    "SystemConfiguration",
]
