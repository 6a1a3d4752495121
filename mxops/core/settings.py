# Copyright 2022 TOSIT.IO
# SPDX-License-Identifier: Apache-2.0

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from mxops.core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_PLATFORM_URL,
    DEFAULT_POLL_BUDGET_SECONDS,
    DEFAULT_RUN_BUDGET_SECONDS,
)


class Settings(BaseSettings):
    """Runtime configuration, read from `MXOPS_*` variables and `.env`."""

    model_config = SettingsConfigDict(
        env_prefix="MXOPS_", env_file=".env", extra="ignore"
    )

    DATABASE_DSN: Optional[str] = None
    PLATFORM_URL: str = DEFAULT_PLATFORM_URL
    HTTP_TIMEOUT: int = DEFAULT_HTTP_TIMEOUT
    BATCH_SIZE: int = DEFAULT_BATCH_SIZE
    RUN_BUDGET_SECONDS: int = DEFAULT_RUN_BUDGET_SECONDS
    POLL_BUDGET_SECONDS: int = DEFAULT_POLL_BUDGET_SECONDS
    MANDRILL_API_KEY: Optional[str] = None
    MANDRILL_URL: str = "https://mandrillapp.com/api/1.0/messages/send.json"
    MAIL_FROM_EMAIL: str = "noreply@mxops.local"
    MAIL_FROM_NAME: str = "Mendix Monitoring"


def get_settings() -> Settings:
    return Settings()
