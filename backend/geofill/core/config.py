from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    debug: bool = Field(False, alias="GEOFILL_DEBUG")
    storage_root: Path = Field(Path("./data"), alias="GEOFILL_STORAGE_ROOT")

    zip_db_path: Path | None = Field(None, alias="GEOFILL_ZIP_DB_PATH")
    zip_seed_csv: Path | None = Field(None, alias="GEOFILL_ZIP_SEED_CSV")
    default_iso: str = Field("US", alias="GEOFILL_DEFAULT_ISO")

    geocoder_provider: Literal["google", "nominatim"] = Field(
        "nominatim", alias="GEOFILL_GEOCODER_PROVIDER"
    )
    geocoder_user_agent: str = Field(
        "geofill-geocoder", alias="GEOFILL_GEOCODER_USER_AGENT"
    )
    geocoder_domain: str | None = Field(None, alias="GEOFILL_GEOCODER_DOMAIN")
    geocoder_api_key: str | None = Field(None, alias="GEOFILL_GEOCODER_API_KEY")
    geocoder_timeout: float = Field(10.0, alias="GEOFILL_GEOCODER_TIMEOUT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator("storage_root", mode="before")
    def _expand_storage_root(cls, value: Path | str) -> Path:
        """Expand user and resolve the storage directory."""
        path = Path(value).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("geocoder_provider", mode="before")
    def _normalize_provider(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("default_iso", mode="before")
    def _normalize_iso(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @property
    def resolved_zip_db_path(self) -> Path:
        if self.zip_db_path is not None:
            return Path(self.zip_db_path).expanduser()
        return self.storage_root / "zip_codes.db"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()  # type: ignore[call-arg]
