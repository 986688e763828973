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

from datetime import date, datetime, timezone
from typing import Any, Optional


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Converts a stored timestamp into a plain timezone-aware datetime.

    Firestore returns `DatetimeWithNanoseconds` (a datetime subclass); the
    in-memory store keeps plain datetimes and older rows may hold epoch
    seconds. Missing values stay None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return datetime(
            value.year,
            value.month,
            value.day,
            value.hour,
            value.minute,
            value.second,
            value.microsecond,
            tzinfo=value.tzinfo,
        ).astimezone(timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    raise TypeError(f"Unsupported timestamp value: {value!r}")


def to_date(value: Any) -> Optional[date]:
    """Converts a stored timestamp into a calendar date (UTC)."""
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    converted = to_datetime(value)
    return converted.date() if converted else None


def from_date(value: Optional[date]) -> Optional[datetime]:
    """
    Converts a calendar date into the timestamp stored in Firestore.

    Firestore has no date-only type, so dates are stored as UTC midnight.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
