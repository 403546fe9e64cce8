"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re
from datetime import date, time

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="PostgreSQL async connection string",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # SERVEL upstream
    servel_base_url: str = Field(
        default="https://elecciones.servel.cl",
        description="Base URL serving the result archives",
    )
    servel_allowed_domains: str = Field(
        default="elecciones.servel.cl",
        description="Comma-separated list of hosts the fetcher may contact",
    )
    servel_presidential_code: int = Field(default=4, description="Election code of the presidential race", gt=0)
    servel_senators_code: int = Field(default=5, description="Election code of the senatorial race", gt=0)
    servel_deputies_code: int = Field(default=6, description="Election code of the deputies race", gt=0)

    @field_validator("servel_base_url")
    @classmethod
    def validate_servel_base_url(cls, v: str) -> str:
        # Stray backticks show up when the URL is pasted from markdown docs
        v = v.strip().replace("`", "")
        if not v.startswith(("http://", "https://")):
            msg = "servel_base_url must be an http(s) URL"
            raise ValueError(msg)
        return v.rstrip("/")

    @property
    def servel_allowed_domain_list(self) -> list[str]:
        """Parse allowed domains string into a lowercase list."""
        if not self.servel_allowed_domains.strip():
            return []
        return [d.strip().lower() for d in self.servel_allowed_domains.split(",") if d.strip()]

    # Synchronization
    sync_enabled: bool = Field(
        default=True,
        description="Start the automatic sync scheduler with the API server",
    )
    sync_interval: int = Field(
        default=60,
        description="Seconds between scheduler ticks",
        ge=5,
    )
    sync_batch_size: int = Field(
        default=1000,
        description="Records per upsert chunk",
        gt=0,
    )
    sync_table_batch_size: int = Field(
        default=500,
        description="Records per upsert chunk for per-table result dumps",
        gt=0,
    )
    sync_small_timeout: float = Field(
        default=30.0,
        description="HTTP timeout in seconds for small archives",
        gt=0,
    )
    sync_large_timeout: float = Field(
        default=120.0,
        description="HTTP timeout in seconds for per-table result archives",
        gt=0,
    )

    # Phase scheduling
    smart_scheduling_enabled: bool = Field(
        default=True,
        description="Pick resources by election-day phase instead of syncing everything every tick",
    )
    election_timezone: str = Field(
        default="America/Santiago",
        description="IANA timezone the phase boundaries are expressed in",
    )
    election_date: date | None = Field(
        default=None,
        description="Election day; when set, earlier days are before-open and later days are tally",
    )
    installation_start: time = Field(default=time(7, 0), description="Local time the installation phase opens")
    voting_start: time = Field(default=time(8, 0), description="Local time the voting phase opens")
    tally_start: time = Field(default=time(18, 0), description="Local time the tally phase opens")
    installation_threshold: float = Field(
        default=99.5,
        description="Installed-tables percentage that ends installation-status polling",
        gt=0,
        le=100,
    )

    @model_validator(mode="after")
    def validate_phase_order(self) -> "Settings":
        if not self.installation_start <= self.voting_start <= self.tally_start:
            msg = "Phase boundaries must satisfy installation_start <= voting_start <= tally_start"
            raise ValueError(msg)
        return self

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )
    cors_origin_regex: str = Field(
        default="",
        description="Regex pattern for allowed CORS origins",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )
    rate_limit_per_minute: int = Field(
        default=200,
        description="Maximum API requests per minute per IP address",
        gt=0,
    )
    trusted_proxy_headers: str = Field(
        default="CF-Connecting-IP,X-Forwarded-For,X-Real-IP",
        description="Comma-separated list of HTTP headers to check for real client IP, in priority order",
    )

    @property
    def trusted_proxy_header_list(self) -> list[str]:
        """Parse trusted proxy headers string into a list."""
        if not self.trusted_proxy_headers.strip():
            return []
        return [h.strip() for h in self.trusted_proxy_headers.split(",") if h.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
