import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_currency: str,
        category_match: str,
        seed_sample_data: bool,
        mail_sync_minutes: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_currency = default_currency
        self.category_match = category_match
        self.seed_sample_data = seed_sample_data
        self.mail_sync_minutes = mail_sync_minutes
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("WALLET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("WALLET_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "wallet.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("WALLET_TIMEZONE", "Asia/Singapore")
    default_currency = os.getenv("WALLET_DEFAULT_CURRENCY", "SGD").upper()
    category_match = os.getenv("WALLET_CATEGORY_MATCH", "exact").strip().lower()
    seed_sample_data = _env_flag("WALLET_SEED_SAMPLE_DATA", "1")
    mail_sync_minutes = int(os.getenv("WALLET_MAIL_SYNC_MINUTES", "0"))
    log_level = os.getenv("WALLET_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_currency=default_currency,
        category_match=category_match,
        seed_sample_data=seed_sample_data,
        mail_sync_minutes=mail_sync_minutes,
        log_level=log_level,
    )
