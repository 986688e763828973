"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from typing import Optional

import firebase_admin
from fastapi import Depends, Header, HTTPException, status
from firebase_admin import credentials, firestore

from backend.config import get_settings
from backend.errors import UnauthenticatedError
from backend.planner import PageRegistry
from backend.session import (
    DevIdentityProvider,
    FirebaseIdentityProvider,
    IdentityProvider,
    Session,
)
from backend.store import FirestoreRecordStore, InMemoryRecordStore, RecordStore

logger = logging.getLogger(__name__)

_firebase_app: firebase_admin.App | None = None
_record_store: RecordStore | None = None
_identity_provider: IdentityProvider | None = None
_page_registry: PageRegistry | None = None


def _use_in_memory() -> bool:
    settings = get_settings()
    return settings.use_in_memory_backends or not settings.firebase_project_id


def get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app:
        return _firebase_app

    settings = get_settings()
    credential = (
        credentials.Certificate(settings.firebase_credentials_path)
        if settings.firebase_credentials_path
        else None
    )
    try:
        _firebase_app = firebase_admin.get_app()
    except ValueError:
        _firebase_app = firebase_admin.initialize_app(
            credential, {"projectId": settings.firebase_project_id}
        )
    return _firebase_app


def get_record_store() -> RecordStore:
    """
    Return a singleton record store so live subscriptions outlive requests.
    """
    global _record_store
    if _record_store:
        return _record_store

    if _use_in_memory():
        logger.info("Using in-memory record store")
        _record_store = InMemoryRecordStore()
    else:
        settings = get_settings()
        _record_store = FirestoreRecordStore(
            firestore.client(app=get_firebase_app()),
            collection=settings.itineraries_collection,
        )
    return _record_store


def get_identity_provider() -> IdentityProvider:
    global _identity_provider
    if _identity_provider:
        return _identity_provider

    if _use_in_memory():
        _identity_provider = DevIdentityProvider()
    else:
        _identity_provider = FirebaseIdentityProvider(get_firebase_app())
    return _identity_provider


def get_page_registry() -> PageRegistry:
    global _page_registry
    if _page_registry:
        return _page_registry
    _page_registry = PageRegistry(
        get_record_store(), max_pages=get_settings().max_live_pages
    )
    return _page_registry


def get_current_session(
    authorization: Optional[str] = Header(None),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> Optional[Session]:
    """Resolve the caller's session; None for signed-out visitors."""
    try:
        return provider.resolve(authorization)
    except UnauthenticatedError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_session(
    session: Optional[Session] = Depends(get_current_session),
) -> Session:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User must be authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session
