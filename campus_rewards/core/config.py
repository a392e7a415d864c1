from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    internal_api_token: str = Field(
        default="dev_internal_token_change_me",
        alias="INTERNAL_API_TOKEN",
    )
    internal_api_allowlist: str = Field(
        default="127.0.0.1/32,::1/128",
        alias="INTERNAL_API_ALLOWLIST",
    )
    internal_api_trusted_proxies: str = Field(default="", alias="INTERNAL_API_TRUSTED_PROXIES")

    redemption_token_secret: str = Field(
        default="dev_redemption_token_secret_change_me_0123456789",
        alias="REDEMPTION_TOKEN_SECRET",
        min_length=32,
    )
    redemption_token_ttl_seconds: int = Field(default=300, alias="REDEMPTION_TOKEN_TTL_SECONDS", gt=0)
    redemption_ttl_days: int = Field(default=7, alias="REDEMPTION_TTL_DAYS", gt=0)
    scan_base_url: str = Field(default="http://localhost:3000/scan", alias="SCAN_BASE_URL")
    campus_timezone: str = Field(default="Asia/Manila", alias="CAMPUS_TIMEZONE")

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(alias="REDIS_URL")

    celery_broker_url: str = Field(alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(alias="CELERY_RESULT_BACKEND")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
