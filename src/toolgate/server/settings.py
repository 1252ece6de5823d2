"""Process-wide configuration, fixed at startup."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from toolgate.tools.base import ToolCapability
from toolgate.utilities.logging import LogLevel


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """toolgate server settings.

    All settings can be configured via environment variables with the prefix TOOLGATE_.
    For example, TOOLGATE_CAPABILITIES=tabs,history grants those capabilities.
    """

    model_config = SettingsConfigDict(
        env_prefix="TOOLGATE_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # Server settings
    debug: bool = False
    log_level: LogLevel = "INFO"

    # HTTP settings
    host: str = "localhost"
    port: int = 8000
    streamable_http_path: str = "/mcp"
    sse_path: str = "/sse"
    message_path: str = "/sse/messages"
    health_path: str = "/health"
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # Tool settings
    capabilities: Annotated[list[ToolCapability] | None, NoDecode] = None
    """Capabilities granted to every session. None leaves every tool visible."""
    vision: bool = False
    """Offer the reduced vision-mode tool set instead of the full one."""
    action_timeout: float | None = 30.0

    # StreamableHTTP settings
    json_response: bool = False
    max_body_bytes: int = 4 * 1024 * 1024

    # Event-stream settings
    sse_queue_size: int = Field(default=32, gt=0)
    sse_send_timeout: float = 30.0
    sse_ping_interval: int = 15

    # Lifecycle settings
    shutdown_timeout: float = 15.0

    @field_validator("capabilities", "cors_allow_origins", mode="before")
    @classmethod
    def _parse_comma_separated(cls, value: Any) -> Any:
        return _split_csv(value)
