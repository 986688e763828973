"""
Live itinerary data binding.

`ItineraryBinding` keeps an always-current, newest-first list of the signed-in
user's itineraries by holding exactly one live subscription on the record
store, and exposes create/update/delete/toggle-favorite wrappers. The wrappers
are also available as plain functions for stateless callers.
"""

from __future__ import annotations

import functools
import logging
import threading
from dataclasses import asdict
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from dacite import Config, DaciteError, from_dict
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from backend.errors import InvalidItineraryError, UnauthenticatedError
from backend.session import Session
from backend.store import DocumentList, RecordStore, Subscription
from shared.firebase_constants import (
    CREATED_AT_FIELD,
    OWNER_FIELD,
    UPDATED_AT_FIELD,
)
from shared.json_utils import convert_keys
from shared.timestamps import from_date, to_date, to_datetime
from shared.types import EDITABLE_FIELDS, Itinerary, ItineraryInput, TripType

logger = logging.getLogger(__name__)

Listener = Callable[["ItineraryBinding"], None]

_REQUIRED_TEXT_FIELDS = ("title", "destination", "duration")
_DATE_FIELDS = ("start_date", "end_date")


def _coerce_trip_type(value: Any) -> TripType:
    try:
        return TripType(value)
    except ValueError as e:
        raise InvalidItineraryError(f"Unknown trip type: {value!r}") from e


def _coerce_date(field_name: str, value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as e:
            raise InvalidItineraryError(
                f"{field_name} must be an ISO date (YYYY-MM-DD)"
            ) from e
    raise InvalidItineraryError(f"{field_name} must be a date")


def _coerce_activities(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(a, str) for a in value
    ):
        raise InvalidItineraryError("activities must be a list of strings")
    return list(value)


def _coerce_favorite(value: Any) -> Optional[bool]:
    if value is not None and not isinstance(value, bool):
        raise InvalidItineraryError("is_favorite must be a boolean")
    return value


def validate_itinerary_input(data: ItineraryInput) -> ItineraryInput:
    """Checks required fields and normalizes types. Raises InvalidItineraryError."""
    for name in _REQUIRED_TEXT_FIELDS:
        value = getattr(data, name)
        if not isinstance(value, str) or not value.strip():
            raise InvalidItineraryError(f"{name} is required")
    data.type = _coerce_trip_type(data.type)
    data.activities = _coerce_activities(data.activities or [])
    for name in _DATE_FIELDS:
        setattr(data, name, _coerce_date(name, getattr(data, name)))
    data.is_favorite = _coerce_favorite(data.is_favorite)
    return data


def itinerary_input_from_payload(payload: Mapping[str, Any]) -> ItineraryInput:
    """Builds an ItineraryInput from a camelCase client payload."""
    fields = convert_keys(dict(payload), "camel_to_snake")
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise InvalidItineraryError(
            f"Unsupported fields: {', '.join(sorted(unknown))}"
        )
    try:
        data = from_dict(
            data_class=ItineraryInput,
            data=fields,
            config=Config(check_types=False),
        )
    except DaciteError as e:
        raise InvalidItineraryError(f"Malformed itinerary: {e}") from e
    return validate_itinerary_input(data)


def itinerary_to_document(data: ItineraryInput, owner_id: str) -> Dict[str, Any]:
    """
    Converts creation input into a stored document.

    Both timestamps use the same server timestamp so createdAt == updatedAt on
    creation. Absent dates are stored as null.
    """
    fields = asdict(data)
    if fields.get("is_favorite") is None:
        fields.pop("is_favorite", None)
    fields["type"] = str(data.type)
    for name in _DATE_FIELDS:
        fields[name] = from_date(fields[name])
    document = convert_keys(fields, "snake_to_camel")
    document[OWNER_FIELD] = owner_id
    document[CREATED_AT_FIELD] = SERVER_TIMESTAMP
    document[UPDATED_AT_FIELD] = SERVER_TIMESTAMP
    return document


def itinerary_patch_to_document(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Converts a snake_case partial update into a stored patch.

    Omitted fields are left untouched; a field explicitly set to None is
    cleared (stored as null). updatedAt is always refreshed.
    """
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise InvalidItineraryError(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}"
        )
    patch: Dict[str, Any] = {}
    for name, value in fields.items():
        if name in _DATE_FIELDS:
            value = from_date(_coerce_date(name, value))
        elif name == "type":
            value = str(_coerce_trip_type(value))
        elif name == "activities" and value is not None:
            value = _coerce_activities(value)
        elif name == "is_favorite":
            value = _coerce_favorite(value)
        elif name in _REQUIRED_TEXT_FIELDS and (
            not isinstance(value, str) or not value.strip()
        ):
            raise InvalidItineraryError(f"{name} is required")
        patch[name] = value
    document = convert_keys(patch, "snake_to_camel")
    document[UPDATED_AT_FIELD] = SERVER_TIMESTAMP
    return document


def itinerary_from_document(doc_id: str, data: Mapping[str, Any]) -> Itinerary:
    """Converts a stored document into an Itinerary with native date values."""
    fields = convert_keys(dict(data), "camel_to_snake")
    fields["id"] = doc_id
    fields["activities"] = list(fields.get("activities") or [])
    fields["created_at"] = to_datetime(fields.get("created_at"))
    fields["updated_at"] = to_datetime(fields.get("updated_at"))
    for name in _DATE_FIELDS:
        fields[name] = to_date(fields.get(name))
    return from_dict(
        data_class=Itinerary,
        data=fields,
        config=Config(cast=[TripType], check_types=False),
    )


def _items_from_snapshot(documents: DocumentList) -> List[Itinerary]:
    """Converts a snapshot, skipping stored documents that cannot be read."""
    items = []
    for doc_id, data in documents:
        try:
            items.append(itinerary_from_document(doc_id, data))
        except (DaciteError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed itinerary %s: %s", doc_id, e)
    return items


def _require_session(session: Optional[Session]) -> Session:
    if session is None:
        raise UnauthenticatedError("User must be authenticated")
    return session


def create_itinerary(
    store: RecordStore, session: Optional[Session], data: ItineraryInput
) -> None:
    """
    Adds a new itinerary owned by the session's user.

    Nothing is returned: the live subscription delivers the new record and its
    store-assigned id.
    """
    session = _require_session(session)
    document = itinerary_to_document(validate_itinerary_input(data), session.uid)
    doc_id = store.add(document)
    logger.info("Created itinerary %s for %s", doc_id, session.uid)


def update_itinerary(
    store: RecordStore,
    session: Optional[Session],
    itinerary_id: str,
    fields: Mapping[str, Any],
) -> None:
    session = _require_session(session)
    store.update(
        itinerary_id, itinerary_patch_to_document(fields), owner_id=session.uid
    )
    logger.info(
        "Updated itinerary %s (%s)", itinerary_id, ", ".join(sorted(fields)) or "-"
    )


def delete_itinerary(
    store: RecordStore, session: Optional[Session], itinerary_id: str
) -> None:
    """Deletes an itinerary. A missing id raises ItineraryNotFoundError."""
    session = _require_session(session)
    store.delete(itinerary_id, owner_id=session.uid)
    logger.info("Deleted itinerary %s", itinerary_id)


def toggle_favorite(
    store: RecordStore,
    session: Optional[Session],
    itinerary_id: str,
    current_favorite: bool,
) -> None:
    # No optimistic locking: concurrent toggles are last-write-wins.
    update_itinerary(
        store, session, itinerary_id, {"is_favorite": not current_favorite}
    )


class ItineraryBinding:
    """
    Binds one session to a live view of its itineraries.

    Snapshots may arrive on a store thread (Firestore watch), so state changes
    happen under a lock. Every teardown bumps a generation counter; snapshot
    callbacks carry the generation they were opened with and are dropped once
    it is stale.
    """

    def __init__(self, store: RecordStore, session: Optional[Session] = None):
        self._store = store
        self._lock = threading.RLock()
        self._generation = 0
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Listener] = []
        self.session: Optional[Session] = None
        self.items: List[Itinerary] = []
        self.is_loading = True
        self.set_session(session)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Registers a callback run after every state change. Returns a remover."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self)

    def _release(self) -> None:
        with self._lock:
            self._generation += 1
            subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()
            logger.info("Closed itinerary subscription")

    def set_session(self, session: Optional[Session]) -> None:
        """
        Switches the bound identity.

        The previous subscription is released and the items cleared before the
        new subscription opens, so records of the previous user are never
        visible under the new identity.
        """
        self._release()
        with self._lock:
            self.session = session
            self.items = []
            self.is_loading = session is not None
            generation = self._generation
        self._notify()
        if session is None:
            return

        subscription = self._store.watch(
            session.uid, functools.partial(self._on_snapshot, generation)
        )
        with self._lock:
            if generation == self._generation:
                self._subscription = subscription
                logger.info("Opened itinerary subscription for %s", session.uid)
                return
        # Superseded by another set_session/close while opening.
        subscription.unsubscribe()

    def _on_snapshot(self, generation: int, documents: DocumentList) -> None:
        items = _items_from_snapshot(documents)
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropped snapshot from a released subscription")
                return
            self.items = items
            self.is_loading = False
        self._notify()

    def close(self) -> None:
        """Releases the subscription; later snapshots are ignored."""
        self._release()

    def create(self, data: ItineraryInput) -> None:
        create_itinerary(self._store, self.session, data)

    def update(self, itinerary_id: str, fields: Mapping[str, Any]) -> None:
        update_itinerary(self._store, self.session, itinerary_id, fields)

    def delete(self, itinerary_id: str) -> None:
        delete_itinerary(self._store, self.session, itinerary_id)

    def toggle_favorite(self, itinerary_id: str, current_favorite: bool) -> None:
        toggle_favorite(self._store, self.session, itinerary_id, current_favorite)
