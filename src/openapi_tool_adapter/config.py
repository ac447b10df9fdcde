"""Configuration for the OpenAPI tool adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", extra="ignore"
    )

    mcp_server_name: str = Field(default="openapi-tool-adapter")
    mcp_server_version: str = Field(default="0.1.0")
    mcp_transport: str = Field(default="stdio")
    mcp_host: str = Field(default="0.0.0.0")
    mcp_port: int = Field(default=8000)
    mcp_path: Optional[str] = Field(default=None)

    api_doc_location: str = Field(default="")
    api_doc_timeout_seconds: float = Field(default=30)
    api_host_url: str = Field(default="")
    api_server_index: int = Field(default=0)
    optimize_schema: bool = Field(default=True)
    api_authorization: Optional[str] = Field(default=None)

    api_connect_timeout_ms: int = Field(default=30000, ge=0)
    api_read_timeout_ms: int = Field(default=10000, ge=0)
    api_max_retries: int = Field(default=3, ge=1)
    api_retry_delay_ms: int = Field(default=1000, ge=0)

    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
