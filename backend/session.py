"""
Identity resolution for incoming requests.

Sign-in and token refresh happen in the client against Firebase
Authentication; the backend only turns a bearer token into a `Session`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from firebase_admin import App, auth

from backend.errors import UnauthenticatedError

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Session:
    """The authenticated identity threaded through the data layer."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def greeting_name(self) -> str:
        return self.display_name or self.email or self.uid


class IdentityProvider(Protocol):
    """Resolves an Authorization header into a session (None when absent)."""

    def resolve(self, authorization: Optional[str]) -> Optional[Session]:
        ...


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if not authorization.startswith(_BEARER_PREFIX):
        raise UnauthenticatedError("Invalid authorization header format")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise UnauthenticatedError("Empty bearer token")
    return token


class FirebaseIdentityProvider:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(self, app: Optional[App] = None):
        self.app = app

    def resolve(self, authorization: Optional[str]) -> Optional[Session]:
        token = _bearer_token(authorization)
        if token is None:
            return None
        try:
            claims = auth.verify_id_token(token, app=self.app)
        except (auth.InvalidIdTokenError, ValueError) as e:
            logger.warning("Rejected ID token: %s", e)
            raise UnauthenticatedError("Invalid ID token") from e
        return Session(
            uid=claims["uid"],
            email=claims.get("email"),
            display_name=claims.get("name"),
        )


class DevIdentityProvider:
    """
    Development/test provider: the bearer token is the uid itself.

    Only wired when the in-memory backends are in use.
    """

    def resolve(self, authorization: Optional[str]) -> Optional[Session]:
        token = _bearer_token(authorization)
        if token is None:
            return None
        return Session(uid=token)
