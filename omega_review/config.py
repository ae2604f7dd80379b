"""
Configuration management for Omega Review.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def resolve_path(raw: str) -> Path:
    """Resolve a configured path, anchoring relative paths at the CWD."""
    path = Path(raw.strip())
    if path.is_absolute():
        return path
    return Path.cwd() / path


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="OMEGA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Omega Review")
    debug: bool = Field(default=False)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # Storage
    artifact_dir: str = Field(
        default=".omega/artifacts",
        description="Directory holding one JSON file per artifact hash",
    )
    market_file: str = Field(
        default=".omega/market.json",
        description="JSON document holding the bounty table",
    )
    artifact_scan_limit: int = Field(
        default=200,
        ge=0,
        description="Maximum number of files read by the lazy artifact directory scan",
    )

    # Job queue
    queue_mode: str = Field(
        default="simulated",
        description="Default sandbox tag for new jobs: 'simulated' or 'docker'",
    )
    runner: str = Field(default="simulated", description="Reproduction runner type")
    runner_delay_scale: float = Field(
        default=1.0,
        ge=0.0,
        description="Multiplier for the simulated runner's artificial delay",
    )

    # Logging
    log_level: str = Field(default="INFO")

    # Rate limiting (HTTP layer only)
    rate_limit_window_seconds: int = Field(default=300, ge=1)
    rate_limit_mint: int = Field(default=30, ge=1)
    rate_limit_claim: int = Field(default=40, ge=1)
    rate_limit_submit: int = Field(default=40, ge=1)

    @property
    def artifact_path(self) -> Path:
        return resolve_path(self.artifact_dir)

    @property
    def market_path(self) -> Path:
        return resolve_path(self.market_file)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
