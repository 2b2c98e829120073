"""
Core - Environment-driven settings.
"""

import os
from dataclasses import dataclass, replace
from functools import lru_cache


def get_engine_url(database_type: str | None = None) -> str:
    """Build the database URL from the environment."""
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    db_type = database_type or os.getenv("DATABASE_TYPE", "sqlite")

    if db_type == "sqlite":
        db_path = os.getenv("DATABASE_PATH", "./data/bizledger.db")
        return f"sqlite:///{db_path}"
    elif db_type == "postgresql":
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        dbname = os.getenv("DB_NAME", "bizledger")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        return f"postgresql://{user}:{password}@{host}:{port}/{dbname}"
    else:
        raise ValueError(f"Unsupported database type: {db_type}")


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_json: bool = True
    default_currency: str = "USD"
    adjustment_account_code: str = "3900"
    adjustment_account_name: str = "Balance Adjustments"
    payroll_page_size: int = 10

    def override(self, **changes) -> "Settings":
        return replace(self, **changes)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=get_engine_url(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_flag("LOG_JSON", True),
        default_currency=os.getenv("DEFAULT_CURRENCY", "USD"),
        adjustment_account_code=os.getenv("ADJUSTMENT_ACCOUNT_CODE", "3900"),
        adjustment_account_name=os.getenv("ADJUSTMENT_ACCOUNT_NAME", "Balance Adjustments"),
        payroll_page_size=int(os.getenv("PAYROLL_PAGE_SIZE", "10")),
    )
