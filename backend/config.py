"""
Configuration and settings for the itinerary planner backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.firebase_constants import ITINERARIES_COLLECTION


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Firebase project (Firestore + Authentication)
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    firebase_credentials_path: Optional[str] = Field(
        default=None, validation_alias="GOOGLE_APPLICATION_CREDENTIALS"
    )
    itineraries_collection: str = Field(
        default=ITINERARIES_COLLECTION, validation_alias="ITINERARIES_COLLECTION"
    )

    # Open live subscriptions kept by the server-side page registry
    max_live_pages: int = Field(
        default=1000, ge=1, validation_alias="PLANNER_MAX_LIVE_PAGES"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="PLANNER_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
