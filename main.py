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

# Cloud functions for the travel planner backend - itinerary mutations.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from dataclasses import asdict, dataclass
from typing import Any, Optional

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options
from google.api_core import exceptions

# Local application imports
from backend import itineraries
from backend.errors import (
    InvalidItineraryError,
    ItineraryNotFoundError,
    PermissionDeniedError,
    PlannerError,
    UnauthenticatedError,
)
from backend.session import Session
from backend.store import FirestoreRecordStore, RecordStore
from shared.firebase_constants import ITINERARIES_COLLECTION
from shared.json_utils import convert_keys

MAX_ITINERARY_ID_LENGTH = 128

_ERROR_CODES = (
    (UnauthenticatedError, https_fn.FunctionsErrorCode.UNAUTHENTICATED),
    (InvalidItineraryError, https_fn.FunctionsErrorCode.INVALID_ARGUMENT),
    (ItineraryNotFoundError, https_fn.FunctionsErrorCode.NOT_FOUND),
    (PermissionDeniedError, https_fn.FunctionsErrorCode.PERMISSION_DENIED),
)

initialize_app()


@dataclass
class MutationResult:
    status: str


def _record_store() -> RecordStore:
    return FirestoreRecordStore(firestore.client(), ITINERARIES_COLLECTION)


def _session_from_auth(auth: Any) -> Optional[Session]:
    """Builds a Session from the verified auth context of a callable request."""
    if auth is None:
        return None
    token = auth.token or {}
    return Session(
        uid=auth.uid, email=token.get("email"), display_name=token.get("name")
    )


def _to_https_error(error: PlannerError) -> https_fn.HttpsError:
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return https_fn.HttpsError(code, str(error))
    return https_fn.HttpsError(https_fn.FunctionsErrorCode.INTERNAL, str(error))


def _require_itinerary_id(data: dict) -> str:
    itinerary_id = data.get("id")
    if not itinerary_id or not isinstance(itinerary_id, str):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify id parameter.",
        )
    if len(itinerary_id) > MAX_ITINERARY_ID_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Incorrect id length.",
        )
    return itinerary_id


def _run_mutation(operation, session: Optional[Session], *args) -> dict:
    """
    Runs a data-layer mutation and maps its failures to callable errors.

    The session is checked before any Firestore client is opened.
    """
    if session is None:
        raise _to_https_error(UnauthenticatedError("User must be authenticated"))
    try:
        operation(_record_store(), session, *args)
    except PlannerError as e:
        logger.warn(f"Itinerary mutation rejected: {e}")
        raise _to_https_error(e) from e
    except exceptions.GoogleAPICallError as e:
        logger.error(f"Firestore call failed: {e}")
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAVAILABLE, f"Firestore call failed: {e}"
        ) from e

    return asdict(MutationResult(status="success"))


def start_create(session: Optional[Session], data: dict) -> dict:
    try:
        itinerary_input = itineraries.itinerary_input_from_payload(
            data.get("itinerary") or {}
        )
    except InvalidItineraryError as e:
        raise _to_https_error(e) from e
    return _run_mutation(itineraries.create_itinerary, session, itinerary_input)


def start_update(session: Optional[Session], data: dict) -> dict:
    itinerary_id = _require_itinerary_id(data)
    updates = convert_keys(data.get("updates") or {}, "camel_to_snake")
    return _run_mutation(itineraries.update_itinerary, session, itinerary_id, updates)


def start_delete(session: Optional[Session], data: dict) -> dict:
    itinerary_id = _require_itinerary_id(data)
    return _run_mutation(itineraries.delete_itinerary, session, itinerary_id)


def start_toggle_favorite(session: Optional[Session], data: dict) -> dict:
    itinerary_id = _require_itinerary_id(data)
    current_favorite = data.get("currentFavorite", False)
    if not isinstance(current_favorite, bool):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "currentFavorite must be a boolean.",
        )
    return _run_mutation(
        itineraries.toggle_favorite, session, itinerary_id, current_favorite
    )


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def create_itinerary(req: https_fn.CallableRequest) -> dict:
    """
    Creates an itinerary owned by the caller.

    Args:
        req (https_fn.CallableRequest): The request, containing `itinerary`
            (title, destination, type, duration, activities and optional
            startDate/endDate as ISO dates).

    Returns:
        A dictionary representation of the MutationResult object. The new
        record reaches clients through their live query.
    """
    return start_create(_session_from_auth(req.auth), req.data or {})


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def update_itinerary(req: https_fn.CallableRequest) -> dict:
    """
    Patches the fields in `updates` on the caller's itinerary `id`.

    Omitted fields are untouched; null clears a field.
    """
    return start_update(_session_from_auth(req.auth), req.data or {})


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def delete_itinerary(req: https_fn.CallableRequest) -> dict:
    return start_delete(_session_from_auth(req.auth), req.data or {})


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def toggle_favorite(req: https_fn.CallableRequest) -> dict:
    """Flips isFavorite given the caller's `currentFavorite` value."""
    return start_toggle_favorite(_session_from_auth(req.auth), req.data or {})
