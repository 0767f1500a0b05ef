"""
Shared settings base.

Every settings group reads from the process environment and an optional
.env file; each group adds its own env_prefix.

Dependencies: pydantic_settings
System role: Common loader behaviour for the chunk index configuration
"""

from pydantic import Field
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict


class BaseSettings(PydanticBaseSettings):
    """Settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Root level applied by configure_logging")
