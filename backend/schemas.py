"""
Pydantic schemas for the itinerary planner API.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.planner import Notification
from shared.types import Itinerary, ItineraryDraft, TripType


class ItineraryOut(BaseModel):
    id: str
    title: str
    destination: str
    type: TripType
    duration: str
    activities: list[str]
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_favorite: Optional[bool] = None

    @classmethod
    def from_itinerary(cls, itinerary: Itinerary) -> "ItineraryOut":
        return cls(**asdict(itinerary))


class ItineraryListResponse(BaseModel):
    items: list[ItineraryOut]
    is_loading: bool
    authenticated: bool


class FavoritesResponse(BaseModel):
    items: list[ItineraryOut]
    empty_state: Optional[str] = None


class DraftPayload(BaseModel):
    """Creation form as submitted by the client."""

    title: str = Field(default="", max_length=200)
    destination: str = Field(default="", max_length=200)
    type: str = Field(default=TripType.ADVENTURE.value)
    duration: str = Field(default="", max_length=100)
    activities: str = Field(default="", max_length=2000)
    start_date: str = ""
    end_date: str = ""

    def to_draft(self) -> ItineraryDraft:
        return ItineraryDraft(**self.model_dump())


class ItineraryPatch(BaseModel):
    """Partial update. Only fields present in the request body are applied."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=200)
    destination: Optional[str] = Field(default=None, max_length=200)
    type: Optional[TripType] = None
    duration: Optional[str] = Field(default=None, max_length=100)
    activities: Optional[list[str]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_favorite: Optional[bool] = None


class NotificationOut(BaseModel):
    title: str
    description: str
    variant: Literal["default", "destructive"]

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationOut":
        return cls(
            title=notification.title,
            description=notification.description,
            variant=notification.variant.value,
        )


class MutationResponse(BaseModel):
    notification: Optional[NotificationOut] = None
