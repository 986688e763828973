"""
Planner page view-model.

Owns the transient state of the planner page (creation draft, active tab,
search query, auth prompt, notifications) and turns user actions into
`ItineraryBinding` calls. Errors from the binding are translated into
user-visible notifications here and nowhere else.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Deque, List, Mapping, Optional

from backend.errors import (
    InvalidItineraryError,
    PlannerError,
    UnauthenticatedError,
)
from backend.itineraries import ItineraryBinding, validate_itinerary_input
from backend.session import Session
from backend.store import RecordStore
from shared.types import Itinerary, ItineraryDraft, ItineraryInput, TripType

logger = logging.getLogger(__name__)


class Tab(StrEnum):
    EXPLORE = "explore"
    CREATE = "create"
    FAVORITES = "favorites"


class NotificationVariant(StrEnum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    variant: NotificationVariant = NotificationVariant.DEFAULT


@dataclass(frozen=True)
class FavoritesView:
    """Favorites tab contents. `empty_state` is set when there is nothing to list."""

    items: List[Itinerary]
    empty_state: Optional[str] = None


SIGN_IN_FOR_FAVORITES = "Sign in to save favorites"
NO_FAVORITES_YET = "No Favorites Yet"

_SAMPLE_TIMESTAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)

# Shown to signed-out visitors. Never persisted and never mutable.
SAMPLE_ITINERARIES = (
    Itinerary(
        id="1",
        title="Tokyo Adventure",
        destination="Tokyo, Japan",
        type=TripType.ADVENTURE,
        duration="7 days",
        activities=["Shibuya Crossing", "Mount Fuji", "Temple Visits"],
        user_id="",
        created_at=_SAMPLE_TIMESTAMP,
        updated_at=_SAMPLE_TIMESTAMP,
        is_favorite=False,
    ),
    Itinerary(
        id="2",
        title="Bali Relaxation",
        destination="Bali, Indonesia",
        type=TripType.LEISURE,
        duration="5 days",
        activities=["Beach Hopping", "Spa Treatments", "Sunset Dinners"],
        user_id="",
        created_at=_SAMPLE_TIMESTAMP,
        updated_at=_SAMPLE_TIMESTAMP,
        is_favorite=False,
    ),
    Itinerary(
        id="3",
        title="NYC Business Trip",
        destination="New York, USA",
        type=TripType.WORK,
        duration="3 days",
        activities=["Conference", "Client Meetings", "Times Square"],
        user_id="",
        created_at=_SAMPLE_TIMESTAMP,
        updated_at=_SAMPLE_TIMESTAMP,
        is_favorite=False,
    ),
)

_DRAFT_FIELDS = frozenset(f.name for f in fields(ItineraryDraft))

# Routes only read the latest notification; older ones are dropped.
MAX_NOTIFICATIONS = 20
DEFAULT_MAX_PAGES = 1000


def parse_activities(raw: str) -> List[str]:
    """Splits a comma-separated activities string, dropping blank entries."""
    return [activity.strip() for activity in raw.split(",") if activity.strip()]


def parse_draft(draft: ItineraryDraft) -> ItineraryInput:
    """
    Converts the creation form into validated input.

    Mirrors the form's required fields: title, destination, type, duration and
    at least one activity.
    """
    activities = parse_activities(draft.activities)
    if not activities:
        raise InvalidItineraryError("activities is required")
    return validate_itinerary_input(
        ItineraryInput(
            title=draft.title.strip(),
            destination=draft.destination.strip(),
            type=draft.type,
            duration=draft.duration.strip(),
            activities=activities,
            start_date=draft.start_date or None,
            end_date=draft.end_date or None,
        )
    )


def _matches(itinerary: Itinerary, query: str) -> bool:
    haystack = [itinerary.title, itinerary.destination, *itinerary.activities]
    return any(query in value.lower() for value in haystack)


class PlannerPage:
    """View-model for one visitor of the planner page."""

    def __init__(self, store: RecordStore, session: Optional[Session] = None):
        self.binding = ItineraryBinding(store, session)
        self.draft = ItineraryDraft()
        self.selected_tab = Tab.EXPLORE
        self.search_query = ""
        self.show_auth_prompt = False
        self.notifications: Deque[Notification] = deque(maxlen=MAX_NOTIFICATIONS)
        self.last_error: Optional[Exception] = None
        # Serializes user actions arriving from concurrent requests.
        self.lock = threading.RLock()

    @property
    def session(self) -> Optional[Session]:
        return self.binding.session

    @property
    def is_authenticated(self) -> bool:
        return self.binding.session is not None

    @property
    def is_loading(self) -> bool:
        return self.binding.is_loading

    @property
    def display_items(self) -> List[Itinerary]:
        """Live items when signed in, the samples otherwise, filtered by search."""
        items = (
            list(self.binding.items)
            if self.is_authenticated
            else list(SAMPLE_ITINERARIES)
        )
        query = self.search_query.strip().lower()
        if query:
            items = [item for item in items if _matches(item, query)]
        return items

    def favorites(self) -> FavoritesView:
        if not self.is_authenticated:
            return FavoritesView(items=[], empty_state=SIGN_IN_FOR_FAVORITES)
        items = [item for item in self.binding.items if item.is_favorite]
        if not items:
            return FavoritesView(items=[], empty_state=NO_FAVORITES_YET)
        return FavoritesView(items=items)

    def notify(
        self,
        title: str,
        description: str,
        variant: NotificationVariant = NotificationVariant.DEFAULT,
    ) -> Notification:
        notification = Notification(title, description, variant)
        self.notifications.append(notification)
        return notification

    def _fail(self, error: Exception, description: str) -> bool:
        self.last_error = error
        if not isinstance(error, PlannerError):
            logger.error("Itinerary operation failed", exc_info=error)
        self.notify("Error", description, NotificationVariant.DESTRUCTIVE)
        return False

    def _prompt_sign_in(self) -> bool:
        self.show_auth_prompt = True
        self.last_error = UnauthenticatedError("User must be authenticated")
        return False

    def set_session(self, session: Optional[Session]) -> None:
        self.binding.set_session(session)
        if session is not None:
            self.show_auth_prompt = False

    def select_tab(self, tab: Tab | str) -> None:
        self.selected_tab = Tab(tab)

    def open_create(self) -> None:
        """Hero "Create Itinerary" action."""
        if self.is_authenticated:
            self.selected_tab = Tab.CREATE
        else:
            self.show_auth_prompt = True

    def update_draft(self, name: str, value: str) -> None:
        if name not in _DRAFT_FIELDS:
            raise InvalidItineraryError(f"Unknown form field: {name}")
        setattr(self.draft, name, value)

    def submit(self, draft: Optional[ItineraryDraft] = None) -> bool:
        """
        Submits the creation form. Returns True when the itinerary was saved.

        Signed-out visitors get the sign-in prompt instead of a submission.
        """
        if draft is not None:
            self.draft = draft
        self.last_error = None
        if not self.is_authenticated:
            return self._prompt_sign_in()

        try:
            itinerary_input = parse_draft(self.draft)
        except InvalidItineraryError as e:
            return self._fail(e, f"Please check the form: {e}")

        try:
            self.binding.create(itinerary_input)
        except Exception as e:
            return self._fail(e, "Failed to create itinerary. Please try again.")

        self.draft = ItineraryDraft()
        self.notify(
            "Itinerary created!",
            "Your travel itinerary has been saved successfully.",
        )
        self.selected_tab = Tab.EXPLORE
        return True

    def _find(self, itinerary_id: str) -> Optional[Itinerary]:
        return next(
            (item for item in self.binding.items if item.id == itinerary_id), None
        )

    def toggle_favorite(self, itinerary_id: str) -> bool:
        """Flips the favorite flag of one of the user's own itineraries."""
        self.last_error = None
        if not self.is_authenticated:
            return self._prompt_sign_in()
        current = self._find(itinerary_id)
        current_favorite = bool(current.is_favorite) if current else False
        try:
            self.binding.toggle_favorite(itinerary_id, current_favorite)
        except Exception as e:
            return self._fail(e, "Failed to update favorite. Please try again.")
        return True

    def update(self, itinerary_id: str, changes: Mapping[str, Any]) -> bool:
        self.last_error = None
        if not self.is_authenticated:
            return self._prompt_sign_in()
        try:
            self.binding.update(itinerary_id, changes)
        except Exception as e:
            return self._fail(e, "Failed to update itinerary. Please try again.")
        self.notify("Itinerary updated", "Your changes have been saved.")
        return True

    def delete(self, itinerary_id: str) -> bool:
        self.last_error = None
        if not self.is_authenticated:
            return self._prompt_sign_in()
        try:
            self.binding.delete(itinerary_id)
        except Exception as e:
            return self._fail(e, "Failed to delete itinerary. Please try again.")
        self.notify("Itinerary deleted", "The itinerary has been removed.")
        return True

    def sign_out(self) -> Notification:
        self.binding.set_session(None)
        self.draft = ItineraryDraft()
        return self.notify("Signed out", "You have been successfully signed out.")

    def close(self) -> None:
        self.binding.close()


class PageRegistry:
    """
    Keeps one planner page (and so one live subscription) per signed-in user.

    At most `max_pages` pages stay open; the least recently used page is
    closed when another user arrives. Signed-out visitors get a fresh page
    without a subscription.
    """

    def __init__(self, store: RecordStore, max_pages: int = DEFAULT_MAX_PAGES):
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        self._store = store
        self._max_pages = max_pages
        self._pages: OrderedDict[str, PlannerPage] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    def page_for(self, session: Optional[Session]) -> PlannerPage:
        if session is None:
            return PlannerPage(self._store)
        evicted: List[PlannerPage] = []
        with self._lock:
            page = self._pages.get(session.uid)
            if page is not None:
                self._pages.move_to_end(session.uid)
                return page
            page = PlannerPage(self._store, session)
            self._pages[session.uid] = page
            while len(self._pages) > self._max_pages:
                uid, oldest = self._pages.popitem(last=False)
                logger.info("Evicting idle planner page for %s", uid)
                evicted.append(oldest)
        for oldest in evicted:
            with oldest.lock:
                oldest.close()
        return page

    def sign_out(self, uid: str) -> Optional[Notification]:
        with self._lock:
            page = self._pages.pop(uid, None)
        if page is None:
            return None
        with page.lock:
            return page.sign_out()

    def close(self) -> None:
        with self._lock:
            pages, self._pages = list(self._pages.values()), OrderedDict()
        for page in pages:
            page.close()
