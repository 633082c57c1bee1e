import os
from pathlib import Path
from dotenv import load_dotenv
load_dotenv()  # reads .env in the project root


def _split_list(value: str) -> frozenset[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


class Settings:
    # default home of the SQLite file; created on first engine build
    DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).expanduser().resolve()

    WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
    WEB_PORT = int(os.getenv("WEB_PORT", "443"))
    PUBLIC_BASE = os.getenv("PUBLIC_BASE", "https://localhost")

    SSL_CERTFILE = os.getenv("SSL_CERTFILE", "")
    SSL_KEYFILE  = os.getenv("SSL_KEYFILE", "")

    DATABASE_URL = os.getenv(
        "DATABASE_URL", f"sqlite:///{DATA_DIR / 'redirect.sqlite3'}"
    )
    SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret")
    INITIAL_ADMIN_USERNAME = os.getenv("INITIAL_ADMIN_USERNAME", "")
    INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD", "")
    INITIAL_ADMIN_COMPANY = os.getenv("INITIAL_ADMIN_COMPANY", "")
    LOGIN_ATTEMPT_LIMIT = int(os.getenv("LOGIN_ATTEMPT_LIMIT", "5"))
    LOGIN_ATTEMPT_WINDOW = int(os.getenv("LOGIN_ATTEMPT_WINDOW", "300"))
    LOGIN_BACKOFF_SECONDS = int(os.getenv("LOGIN_BACKOFF_SECONDS", "900"))

    # ------------------------------------------------------------------
    # Redirect defaults -------------------------------------------------

    # fallbacks for ``redirect.*`` keys missing from system_configuration
    REDIRECT_EXTERNAL_HOME = os.getenv("REDIRECT_EXTERNAL_HOME", "")
    REDIRECT_INTERNAL_HOME = os.getenv("REDIRECT_INTERNAL_HOME", "")

    # companies whose members land on the internal home page
    INTERNAL_COMPANIES = _split_list(os.getenv("INTERNAL_COMPANIES", ""))


settings = Settings()
