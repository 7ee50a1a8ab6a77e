"""
ZimPay Payroll - Settings

Pydantic settings read from the environment or a .env file. Payroll
behaviour that varies between deployments (worker pool size, split
tolerance, tax year start) lives here rather than in the database.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION
    # ===========================================
    app_name: str = "ZimPay Payroll Engine"
    app_env: str = "development"
    debug: bool = False
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # ===========================================
    # STORAGE AND BROKER
    # ===========================================
    # postgresql+asyncpg://... in deployments
    database_url_async: str = "sqlite+aiosqlite:///./zimpay.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10
    redis_url: str = "redis://localhost:6379/0"
    celery_task_time_limit: int = 1800

    # ===========================================
    # PAYROLL PROCESSING
    # ===========================================
    payroll_worker_pool_size: int = Field(default=8, ge=1)
    split_tolerance: Decimal = Decimal("0.01")
    elderly_allowance_age: int = 55
    tax_year_start_month: int = Field(default=1, ge=1, le=12)

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
