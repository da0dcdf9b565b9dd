"""
Runtime settings, read from ``AMENITY_BOOKING_*`` environment variables.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AMENITY_BOOKING_", env_file=".env", extra="ignore")

    data_dir: Path = Field(default=Path("data"))
    catalog_file: Optional[Path] = Field(default=None, description="YAML catalog; defaults are generated when unset")

    reminder_lead_minutes: int = Field(default=15, ge=0)
    dispatch_interval_seconds: float = Field(default=1.0, gt=0)

    # Off keeps updates from being re-checked against other bookings.
    recheck_overlap_on_update: bool = Field(default=False)

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5000)


@lru_cache
def get_settings() -> Settings:
    return Settings()
