# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import List, Optional


class TripType(StrEnum):
    ADVENTURE = "adventure"
    LEISURE = "leisure"
    WORK = "work"


@dataclass
class Itinerary:
    """A saved itinerary, as delivered by a live subscription snapshot."""

    id: str
    title: str
    destination: str
    type: TripType
    duration: str
    activities: List[str]
    user_id: str
    created_at: datetime
    updated_at: datetime
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_favorite: Optional[bool] = None


@dataclass
class ItineraryInput:
    """Fields supplied by the user when creating an itinerary.

    The owner, identifier and timestamps are stamped by the data layer.
    """

    title: str
    destination: str
    type: TripType
    duration: str
    activities: List[str] = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_favorite: Optional[bool] = None


@dataclass
class ItineraryDraft:
    """Raw creation form state. Activities are a comma-separated string and
    dates are ISO "YYYY-MM-DD" strings (empty when not supplied)."""

    title: str = ""
    destination: str = ""
    type: str = TripType.ADVENTURE.value
    duration: str = ""
    activities: str = ""
    start_date: str = ""
    end_date: str = ""


# Fields a patch may touch. Owner, identifier and timestamps are managed.
EDITABLE_FIELDS = frozenset(
    {
        "title",
        "destination",
        "type",
        "duration",
        "activities",
        "start_date",
        "end_date",
        "is_favorite",
    }
)
