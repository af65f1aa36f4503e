"""Configuration and directory management for Talent Agent."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler

from talent_agent.errors import ConfigError

TALENT_DIR = Path.home() / ".talent-agent"
CREDENTIALS_PATH = TALENT_DIR / "credentials.json"
ENV_FILE_PATH = Path.cwd() / ".env"

# Environment variable names, keyed by settings field
ENV_VARS = {
    "api_url": "TALENT_PROTOCOL_API_URL",
    "api_key": "TALENT_PROTOCOL_API_KEY",
    "pro_url": "TALENT_PRO_URL",
    "default_session": "TALENT_CLI_SESSION",
    "session_mode": "TALENT_SESSION_MODE",
    "http_timeout": "TALENT_HTTP_TIMEOUT",
    "log_level": "TALENT_LOG_LEVEL",
}


class Settings(BaseSettings):
    """Environment-driven settings for the remote backends."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    api_url: str = Field(default="", validation_alias="TALENT_PROTOCOL_API_URL")
    api_key: str = Field(default="", validation_alias="TALENT_PROTOCOL_API_KEY")
    pro_url: str = Field(default="", validation_alias="TALENT_PRO_URL")
    default_session: str | None = Field(default=None, validation_alias="TALENT_CLI_SESSION")
    session_mode: Literal["local", "remote"] = Field(
        default="local", validation_alias="TALENT_SESSION_MODE"
    )
    http_timeout: float = Field(default=120.0, validation_alias="TALENT_HTTP_TIMEOUT")
    log_level: str = Field(default="WARNING", validation_alias="TALENT_LOG_LEVEL")

    @property
    def chat_base_url(self) -> str:
        """Base URL of the agent API (chat, sessions, profile detail)."""
        return self.pro_url.rstrip("/") + "/api"

    def require(self, *fields: str) -> None:
        """Raise ConfigError naming every required field that is empty."""
        missing = [ENV_VARS[f] for f in fields if not getattr(self, f)]
        if missing:
            raise ConfigError(
                "Missing required environment variables: " + ", ".join(missing)
            )


def ensure_dirs() -> None:
    """Ensure the Talent Agent config directory exists."""
    TALENT_DIR.mkdir(mode=0o700, parents=True, exist_ok=True)


def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "WARNING", debug: bool = False) -> None:
    """Send log records to stderr through rich, keeping stdout for results."""
    logging.basicConfig(
        level=logging.DEBUG if debug else level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
