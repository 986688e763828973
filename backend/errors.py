"""
Errors raised by the itinerary data layer.

The data layer never swallows these; the page view-model turns them into
notifications and the HTTP/callable surfaces map them to status codes.
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for itinerary planner errors."""


class UnauthenticatedError(PlannerError):
    """A mutation was attempted without an authenticated identity."""


class InvalidItineraryError(PlannerError):
    """Input was rejected before reaching the record store."""


class ItineraryNotFoundError(PlannerError):
    def __init__(self, itinerary_id: str):
        super().__init__(f"Itinerary {itinerary_id} not found")
        self.itinerary_id = itinerary_id


class PermissionDeniedError(PlannerError):
    def __init__(self, itinerary_id: str):
        super().__init__(f"Itinerary {itinerary_id} is not owned by the caller")
        self.itinerary_id = itinerary_id
