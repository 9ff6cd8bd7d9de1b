import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_secs: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_secs = session_max_age_secs
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finance.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINANCE_TIMEZONE", "Europe/Warsaw")
    session_secret = os.getenv(
        "FINANCE_SESSION_SECRET",
        "3f1c9a7be0d24b58a6c2e41f9d07b3a5c8e2f6d10a4b7c93e5f2a8d6b1c0e47f",
    )
    session_max_age_secs = int(
        os.getenv("FINANCE_SESSION_MAX_AGE_SECS", str(7 * 24 * 3600))
    )
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_secs=session_max_age_secs,
        log_level=log_level,
    )
