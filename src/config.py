from __future__ import annotations

from functools import cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.money import Currency


class AppSettings(BaseSettings):
    database_url: str = "sqlite:///group_ledger.db"
    default_currency: Currency = Currency.INR
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="GROUP_LEDGER_", extra="ignore"
    )


@cache
def config() -> AppSettings:
    return AppSettings()
