import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        session_https_only: bool,
        csrf_max_age_hours: int,
        bcrypt_rounds: int,
        default_currency: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.session_https_only = session_https_only
        self.csrf_max_age_hours = csrf_max_age_hours
        self.bcrypt_rounds = bcrypt_rounds
        self.default_currency = default_currency


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Asia/Manila")
    session_secret = os.getenv(
        "BUDGET_SESSION_SECRET",
        "5d1f0c7e9a4b2e8f6c3a1d7b9e0f4a2c8b6d3e1f7a9c0b2d4e6f8a1c3e5b7d9f",
    )
    session_max_age_hours = int(os.getenv("BUDGET_SESSION_MAX_AGE_HOURS", "720"))
    session_https_only = _env_flag("BUDGET_SESSION_HTTPS_ONLY", "false")
    csrf_max_age_hours = int(os.getenv("BUDGET_CSRF_MAX_AGE_HOURS", "12"))
    bcrypt_rounds = int(os.getenv("BUDGET_BCRYPT_ROUNDS", "12"))
    default_currency = os.getenv("BUDGET_DEFAULT_CURRENCY", "PHP").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        session_https_only=session_https_only,
        csrf_max_age_hours=csrf_max_age_hours,
        bcrypt_rounds=bcrypt_rounds,
        default_currency=default_currency,
    )
