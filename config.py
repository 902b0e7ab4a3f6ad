"""TV Remote Configuration.

Configuration is loaded from environment variables and .env file.
Copy .env.example to .env and override what you need.
"""

from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = structlog.get_logger(__name__)


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Name shown on the TV when it asks to allow this remote
    app_name: str = "SamsungWebRemote"

    # Where the last pairing (ip, mac, token) is remembered
    token_file: Path = Path(".tokens") / "tv-token.json"

    # Timeouts in seconds
    discovery_timeout: float = Field(default=2.0, gt=0)
    probe_timeout: float = Field(default=2.0, gt=0)
    handshake_timeout: float = Field(default=15.0, gt=0)

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000

    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lowercase level names like 'debug'."""
        return str(v).upper() if v else "INFO"

    def validate_config(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of warning messages for suspicious configuration.
        """
        warnings = []

        if not self.app_name.strip():
            warnings.append("APP_NAME is empty. The TV will show a blank remote name.")

        if self.handshake_timeout < 5:
            warnings.append(
                "HANDSHAKE_TIMEOUT is below 5s. First-time pairing needs time to approve on the TV."
            )

        if self.token_file.exists() and self.token_file.is_dir():
            warnings.append(f"TOKEN_FILE {self.token_file} is a directory.")

        return warnings

    def log_config_status(self) -> None:
        """Log configuration status at startup."""
        warnings = self.validate_config()

        log.info(
            "Configuration loaded",
            app_name=self.app_name,
            token_file=str(self.token_file),
            port=self.port,
        )

        for warning in warnings:
            log.warning(warning)


@lru_cache
def get_config() -> Config:
    return Config()
