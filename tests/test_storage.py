from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlmodel import select

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from redirect_hub import database
from redirect_hub.affiliation import CompanyAffiliation
from redirect_hub.auth.service import create_user, init_storage
from redirect_hub.config import settings
from redirect_hub.configuration import (
    REDIRECT_EXTERNAL_HOME,
    REDIRECT_INTERNAL_HOME,
    ConfigurationStore,
)
from redirect_hub.user_settings import UserSetting, UserSettingStore


@pytest.fixture()
def db(tmp_path):
    original_url = settings.DATABASE_URL
    database.reset_session_factory(f"sqlite:///{tmp_path / 'redirect.sqlite3'}")
    init_storage()
    try:
        yield
    finally:
        database.reset_session_factory(original_url)


def test_user_settings_upsert_and_lookup(db) -> None:
    with database.SessionLocal() as session:
        store = UserSettingStore(session)
        assert store.get_all("alice") == {}
        assert store.find_one("alice", "preferred-url") is None

        store.upsert("alice", "preferred-url", "https://x/a")
        store.upsert("alice", "preferred-hash", "h1")
        store.upsert("bob", "preferred-url", "https://y/b")
        store.upsert("alice", "preferred-url", "https://x/updated")

    with database.SessionLocal() as session:
        store = UserSettingStore(session)
        assert store.get_all("alice") == {
            "preferred-url": "https://x/updated",
            "preferred-hash": "h1",
        }
        assert store.get_one("bob", "preferred-url") == "https://y/b"
        assert store.get_one("bob", "preferred-hash") is None
        rows = session.exec(select(UserSetting).where(UserSetting.login == "alice")).all()
        assert len(rows) == 2


def test_user_settings_upsert_recovers_from_concurrent_insert(db, monkeypatch) -> None:
    with database.SessionLocal() as session:
        UserSettingStore(session).upsert("alice", "preferred-hash", "first-writer")

    with database.SessionLocal() as session:
        store = UserSettingStore(session)
        real_find_one = store.find_one
        calls = {"count": 0}

        def _stale_find_one(login: str, name: str):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return real_find_one(login, name)

        monkeypatch.setattr(store, "find_one", _stale_find_one)
        setting = store.upsert("alice", "preferred-hash", "second-writer")
        assert setting.value == "second-writer"

    with database.SessionLocal() as session:
        assert UserSettingStore(session).get_one("alice", "preferred-hash") == "second-writer"


def test_configuration_prefers_database_over_settings(db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "REDIRECT_EXTERNAL_HOME", "https://env/external")
    monkeypatch.setattr(settings, "REDIRECT_INTERNAL_HOME", "")

    with database.SessionLocal() as session:
        configuration = ConfigurationStore(session)
        assert configuration.get(REDIRECT_EXTERNAL_HOME) == "https://env/external"
        assert configuration.get(REDIRECT_INTERNAL_HOME) is None
        assert configuration.get("unknown.key") is None

        configuration.put(REDIRECT_EXTERNAL_HOME, "https://db/external")
        configuration.put(REDIRECT_EXTERNAL_HOME, "https://db/external-2")
        assert configuration.get(REDIRECT_EXTERNAL_HOME) == "https://db/external-2"


def test_company_affiliation(db) -> None:
    with database.SessionLocal() as session:
        create_user(session, "carol", "pass-carol", company="Ligoj ")
        create_user(session, "dave", "pass-dave", company="Partner")
        create_user(session, "erin", "pass-erin")

        affiliation = CompanyAffiliation(session, internal_companies={"ligoj"})
        assert affiliation.is_internal("carol") is True
        assert affiliation.is_internal("dave") is False
        assert affiliation.is_internal("erin") is False
        assert affiliation.is_internal("nobody") is False


def test_company_affiliation_defaults_to_settings(db, monkeypatch) -> None:
    monkeypatch.setattr(settings, "INTERNAL_COMPANIES", frozenset({"Partner"}))
    with database.SessionLocal() as session:
        create_user(session, "dave", "pass-dave", company="partner")
        assert CompanyAffiliation(session).is_internal("dave") is True
