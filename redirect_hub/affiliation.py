"""Decide whether a login belongs to one of the internal companies."""
from __future__ import annotations

from typing import AbstractSet, Optional

from sqlmodel import Session, select

from .auth.models import User
from .config import settings


class CompanyAffiliation:
    """A login is internal when its user's company is in ``internal_companies``.

    Company names are compared case-insensitively. Unknown logins and users
    without a company are external.
    """

    def __init__(
        self,
        session: Session,
        internal_companies: Optional[AbstractSet[str]] = None,
    ) -> None:
        self.session = session
        if internal_companies is None:
            internal_companies = settings.INTERNAL_COMPANIES
        self._internal = {company.strip().lower() for company in internal_companies}

    def is_internal(self, login: str) -> bool:
        company = self.session.exec(
            select(User.company).where(User.username == login)
        ).first()
        if not company:
            return False
        return company.strip().lower() in self._internal


__all__ = ["CompanyAffiliation"]
