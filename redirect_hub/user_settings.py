"""Per-user key/value settings persisted in the ``user_settings`` table."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy import Column, String, Text, UniqueConstraint
from sqlalchemy.exc import IntegrityError
from sqlmodel import Field, Session, SQLModel, select

logger = logging.getLogger(__name__)


class UserSetting(SQLModel, table=True):
    """One ``name = value`` pair owned by a login."""

    __tablename__ = "user_settings"
    __table_args__ = (
        UniqueConstraint("login", "name", name="uq_user_settings_login_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    login: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    name: str = Field(sa_column=Column(String(120), nullable=False))
    value: str = Field(sa_column=Column(Text, nullable=False))


class UserSettingStore:
    """Read and write settings of any login through a SQLModel session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_one(self, login: str, name: str) -> Optional[UserSetting]:
        statement = select(UserSetting).where(
            UserSetting.login == login, UserSetting.name == name
        )
        return self.session.exec(statement).first()

    def get_one(self, login: str, name: str) -> Optional[str]:
        setting = self.find_one(login, name)
        return setting.value if setting else None

    def get_all(self, login: str) -> Dict[str, str]:
        statement = select(UserSetting).where(UserSetting.login == login)
        return {setting.name: setting.value for setting in self.session.exec(statement)}

    def upsert(self, login: str, name: str, value: str) -> UserSetting:
        """Create or overwrite ``name`` for ``login``; the last writer wins."""

        setting = self.find_one(login, name)
        if setting is None:
            setting = UserSetting(login=login, name=name, value=value)
            self.session.add(setting)
            try:
                self.session.commit()
            except IntegrityError:
                # another request inserted the same key first
                self.session.rollback()
                logger.info("Concurrent insert of setting %s for %s, updating", name, login)
                setting = self.find_one(login, name)
                if setting is None:
                    raise
                setting.value = value
                self.session.add(setting)
                self.session.commit()
        else:
            setting.value = value
            self.session.add(setting)
            self.session.commit()
        self.session.refresh(setting)
        return setting


__all__ = ["UserSetting", "UserSettingStore"]
