from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    sentry_dsn: str = Field(default="", alias="SENTRY_DSN")
    sentry_environment: str | None = Field(default=None, alias="SENTRY_ENVIRONMENT")
    sentry_release: str | None = Field(default=None, alias="SENTRY_RELEASE")
    sentry_send_default_pii: bool = Field(default=False, alias="SENTRY_SEND_DEFAULT_PII")
    sentry_repanic: bool = Field(default=False, alias="SENTRY_REPANIC")
    sentry_wait_for_delivery: bool = Field(default=False, alias="SENTRY_WAIT_FOR_DELIVERY")
    sentry_timeout: float | None = Field(default=None, alias="SENTRY_TIMEOUT")
    log_level: LogLevel = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def reporting_enabled(self) -> bool:
        return bool(self.sentry_dsn)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
