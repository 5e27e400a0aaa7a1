from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    BROKER_NAME,
    HTTP_HOST,
    HTTP_PORT,
    LOG_LEVEL,
    OVERFLOW_POLICY,
    SUBSCRIBER_QUEUE_SIZE,
)


class Settings(BaseSettings):
    """Process settings; every field can be overridden with a PUBSUB_* variable."""

    host: str = HTTP_HOST
    port: int = HTTP_PORT
    broker_name: str = BROKER_NAME
    subscriber_queue_size: int = Field(default=SUBSCRIBER_QUEUE_SIZE, ge=1)
    overflow_policy: Literal["drop_oldest", "disconnect"] = OVERFLOW_POLICY
    log_level: str = LOG_LEVEL

    model_config = SettingsConfigDict(
        env_prefix="PUBSUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
