"""
Configuration settings for the dynamic ticketing core.

Uses Pydantic Settings to load environment variables for the store of record,
lock/timeout behaviour, pricing windows, logging and the contention simulator.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("dynamic_ticketing", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(10, alias="DB_POOL_MAX_SIZE")
    db_pool_timeout_seconds: float = Field(30.0, alias="DB_POOL_TIMEOUT_SECONDS")

    # Store of record
    store_backend: Literal["postgres", "memory"] = Field("postgres", alias="STORE_BACKEND")
    lock_timeout_ms: int = Field(5_000, alias="LOCK_TIMEOUT_MS")

    # Pricing
    demand_window_minutes: int = Field(60, alias="DEMAND_WINDOW_MINUTES")
    currency_symbol: str = Field("$", alias="CURRENCY_SYMBOL")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Contention simulation defaults
    simulation_concurrency: int = Field(8, alias="SIMULATION_CONCURRENCY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
