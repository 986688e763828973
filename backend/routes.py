"""
HTTP routes for the itinerary planner API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from backend.dependencies import (
    get_current_session,
    get_page_registry,
    require_session,
)
from backend.errors import (
    InvalidItineraryError,
    ItineraryNotFoundError,
    PermissionDeniedError,
    UnauthenticatedError,
)
from backend.planner import SAMPLE_ITINERARIES, PageRegistry, PlannerPage
from backend.schemas import (
    DraftPayload,
    FavoritesResponse,
    ItineraryListResponse,
    ItineraryOut,
    ItineraryPatch,
    MutationResponse,
    NotificationOut,
)
from backend.session import Session

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS = (
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (ItineraryNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidItineraryError, 422),
)


def _http_error(page: PlannerPage) -> HTTPException:
    """Map the page's last failure to an HTTP error. Anything else is a 502."""
    error = page.last_error
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    logger.warning("Record store rejected request: %s", error)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=page.notifications[-1].description
        if page.notifications
        else "Record store error",
    )


def _last_notification(page: PlannerPage) -> Optional[NotificationOut]:
    if not page.notifications:
        return None
    return NotificationOut.from_notification(page.notifications[-1])


@router.get("/samples", response_model=list[ItineraryOut])
def list_samples():
    return [ItineraryOut.from_itinerary(item) for item in SAMPLE_ITINERARIES]


@router.get("/itineraries", response_model=ItineraryListResponse)
def list_itineraries(
    q: str = Query("", max_length=200, description="Search text"),
    session: Optional[Session] = Depends(get_current_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    """
    The browse view: the caller's live itineraries, or the samples when
    signed out.
    """
    page = registry.page_for(session)
    with page.lock:
        page.search_query = q
        items = page.display_items
        return ItineraryListResponse(
            items=[ItineraryOut.from_itinerary(item) for item in items],
            is_loading=page.is_loading,
            authenticated=page.is_authenticated,
        )


@router.get("/itineraries/favorites", response_model=FavoritesResponse)
def list_favorites(
    session: Optional[Session] = Depends(get_current_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    page = registry.page_for(session)
    with page.lock:
        view = page.favorites()
        return FavoritesResponse(
            items=[ItineraryOut.from_itinerary(item) for item in view.items],
            empty_state=view.empty_state,
        )


@router.post(
    "/itineraries",
    response_model=MutationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_itinerary(
    payload: DraftPayload,
    session: Optional[Session] = Depends(get_current_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    page = registry.page_for(session)
    with page.lock:
        if not page.submit(payload.to_draft()):
            raise _http_error(page)
        return MutationResponse(notification=_last_notification(page))


@router.patch("/itineraries/{itinerary_id}", response_model=MutationResponse)
def update_itinerary(
    itinerary_id: str,
    payload: ItineraryPatch,
    session: Session = Depends(require_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    page = registry.page_for(session)
    with page.lock:
        if not page.update(itinerary_id, payload.model_dump(exclude_unset=True)):
            raise _http_error(page)
        return MutationResponse(notification=_last_notification(page))


@router.delete(
    "/itineraries/{itinerary_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def delete_itinerary(
    itinerary_id: str,
    session: Session = Depends(require_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    page = registry.page_for(session)
    with page.lock:
        if not page.delete(itinerary_id):
            raise _http_error(page)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/itineraries/{itinerary_id}/favorite", response_model=MutationResponse)
def toggle_favorite(
    itinerary_id: str,
    session: Session = Depends(require_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    page = registry.page_for(session)
    with page.lock:
        if not page.toggle_favorite(itinerary_id):
            raise _http_error(page)
        return MutationResponse()


@router.post("/session/sign-out", response_model=MutationResponse)
def sign_out(
    session: Session = Depends(require_session),
    registry: PageRegistry = Depends(get_page_registry),
):
    notification = registry.sign_out(session.uid)
    return MutationResponse(
        notification=NotificationOut.from_notification(notification)
        if notification
        else None
    )
