"""cachesync settings, read with pydantic-settings.

Credentials come from environment variables (or a .env file). Nothing is
required to import the package; `require_sync_settings()` checks what a sync
run needs before one starts.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cachesync.models import Coordinates


class Settings(BaseSettings):
    """Settings for sync runs, the search CLI and the API server.

    Required for a sync run:
    - GEOCACHING_USERNAME / GEOCACHING_PASSWORD: geocaching.com sign-in
    - GOOGLE_APPLICATION_CREDENTIALS: service account JSON key path
    - SPREADSHEET_ID: target spreadsheet
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    port: int = 8080
    environment: str = "development"
    log_level: str = "INFO"

    # Search service
    geocaching_api_url: str = "https://www.geocaching.com"
    geocaching_username: str = ""
    geocaching_password: str = ""

    # Target spreadsheet
    google_application_credentials: str = ""
    spreadsheet_id: str = ""

    # Distance origin and default search centre (Brisbane)
    home_latitude: float = -27.4705
    home_longitude: float = 153.0260

    # Write batching and retry
    batch_size: int = 500
    max_retries: int = 15
    max_backoff_seconds: float = 60.0

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def home(self) -> Coordinates:
        return Coordinates(latitude=self.home_latitude, longitude=self.home_longitude)

    def missing_sync_settings(self, *, dry_run: bool = False) -> list[str]:
        """Names of the settings a sync run needs that are not set.

        A dry run never touches the spreadsheet, so only the search service
        credentials are required.
        """
        missing = []
        if not self.geocaching_username:
            missing.append("GEOCACHING_USERNAME")
        if not self.geocaching_password:
            missing.append("GEOCACHING_PASSWORD")
        if dry_run:
            return missing
        if not self.google_application_credentials:
            missing.append("GOOGLE_APPLICATION_CREDENTIALS")
        if not self.spreadsheet_id:
            missing.append("SPREADSHEET_ID")
        return missing

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of: {allowed}")
        return v

    @field_validator("batch_size", "max_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("max_backoff_seconds")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("home_latitude")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        if not -90 <= v <= 90:
            raise ValueError("latitude must be between -90 and 90")
        return v

    @field_validator("home_longitude")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        if not -180 <= v <= 180:
            raise ValueError("longitude must be between -180 and 180")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v


def require_sync_settings(settings: Settings, *, dry_run: bool = False) -> None:
    """Raise ValueError listing every missing setting a sync run needs."""
    missing = settings.missing_sync_settings(dry_run=dry_run)
    if missing:
        raise ValueError("Configuration errors:\n  - " + "\n  - ".join(
            f"{name} must be set" for name in missing
        ))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once and cached for the lifetime of the process.
    """
    return Settings()
