"""Configuration management for incident sync."""

from pathlib import Path
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .exceptions import ConfigurationError

DEFAULT_EXCLUDED_SERVICES = ["worldclock", "google", "hn", "reddit", "statsig"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # GitHub settings
    github_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("INCIDENT_TOKEN", "GITHUB_TOKEN"),
    )
    github_repository: str | None = Field(default=None, alias="GITHUB_REPOSITORY")
    github_api_url: str = Field(default="https://api.github.com", alias="GITHUB_API_URL")

    # Outage detection
    min_outage_duration: int = Field(default=2, ge=1, alias="MIN_OUTAGE_DURATION")
    active_window_hours: float = Field(default=2.0, gt=0, alias="ACTIVE_WINDOW_HOURS")
    eta_hours: float = Field(default=24.0, gt=0, alias="ETA_HOURS")
    # Comma-separated in the environment: EXCLUDED_SERVICES=hn,reddit
    excluded_services: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_SERVICES),
        alias="EXCLUDED_SERVICES",
    )

    # Rate limiting between mutating tracker calls
    api_delay_ms: int = Field(default=500, ge=0, alias="API_DELAY_MS")

    # Files
    logs_dir: Path = Field(default=Path("./logs"), alias="LOGS_DIR")
    ledger_file: Path = Field(default=Path("./incidents.json"), alias="LEDGER_FILE")
    urls_file: Path = Field(default=Path("./urls.cfg"), alias="URLS_FILE")

    # Published ledger
    ledger_url: str | None = Field(default=None, alias="LEDGER_URL")
    ledger_cache_ttl_seconds: int = Field(default=300, ge=0, alias="LEDGER_CACHE_TTL_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("excluded_services", mode="before")
    @classmethod
    def _split_services(cls, value):
        if isinstance(value, str):
            return [name.strip() for name in value.split(",") if name.strip()]
        return value

    @property
    def api_delay_seconds(self) -> float:
        """Delay between mutating tracker calls, in seconds."""
        return self.api_delay_ms / 1000

    def get_token(self) -> str:
        """Get the tracker token or fail before any network activity."""
        if not self.github_token:
            raise ConfigurationError("INCIDENT_TOKEN or GITHUB_TOKEN not set")
        return self.github_token

    def get_repository(self) -> tuple[str, str]:
        """Split GITHUB_REPOSITORY into (owner, name)."""
        if not self.github_repository:
            raise ConfigurationError("GITHUB_REPOSITORY not set")
        owner, _, name = self.github_repository.partition("/")
        if not owner or not name:
            raise ConfigurationError(
                f"GITHUB_REPOSITORY must look like owner/name, got {self.github_repository!r}"
            )
        return owner, name


# Global settings instance
settings = Settings()
