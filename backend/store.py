"""
Record store abstraction for Firestore and an in-memory implementation.

Both stores expose the same small surface the data-binding layer needs: a
live query over one owner's documents ordered by creation time (newest
first), plus add/patch/delete by document id. `SERVER_TIMESTAMP` sentinels in
written data resolve to the commit time.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from backend.errors import ItineraryNotFoundError, PermissionDeniedError
from shared.firebase_constants import (
    CREATED_AT_FIELD,
    ITINERARIES_COLLECTION,
    OWNER_FIELD,
)

logger = logging.getLogger(__name__)

# One snapshot: (document id, document data) pairs in query order.
DocumentList = List[Tuple[str, Dict[str, Any]]]
SnapshotCallback = Callable[[DocumentList], None]


class Subscription(Protocol):
    """Handle to a live query. After `unsubscribe` no callbacks are delivered."""

    def unsubscribe(self) -> None:
        ...


class RecordStore(Protocol):
    """Defines the operations the planner needs from the document store."""

    def watch(self, owner_id: str, callback: SnapshotCallback) -> Subscription:
        ...

    def add(self, data: Dict[str, Any]) -> str:
        ...

    def update(
        self, doc_id: str, fields: Dict[str, Any], *, owner_id: str
    ) -> None:
        ...

    def delete(self, doc_id: str, *, owner_id: str) -> None:
        ...


def _check_owner(doc_id: str, data: Optional[Dict[str, Any]], owner_id: str) -> None:
    if data is None:
        raise ItineraryNotFoundError(doc_id)
    if data.get(OWNER_FIELD) != owner_id:
        raise PermissionDeniedError(doc_id)


@dataclass
class _InMemoryWatch:
    store: "InMemoryRecordStore"
    watch_id: int
    owner_id: str
    callback: SnapshotCallback
    active: bool = True

    def unsubscribe(self) -> None:
        self.active = False
        self.store._remove_watch(self.watch_id)


class InMemoryRecordStore:
    """
    Dict-backed emulation of the Firestore collection for development and tests.

    Snapshots are delivered synchronously: once when a watch opens and again
    after every write that touches the watched owner's documents.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self._watches: Dict[int, _InMemoryWatch] = {}
        self._watch_ids = itertools.count(1)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_commit: Optional[datetime] = None
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.documents.clear()
            self._watches.clear()
            self._last_commit = None

    def _commit_time(self) -> datetime:
        # Commit times are strictly increasing, as they are in Firestore.
        now = self._clock()
        if self._last_commit is not None and now <= self._last_commit:
            now = self._last_commit + timedelta(microseconds=1)
        self._last_commit = now
        return now

    @staticmethod
    def _resolve(data: Dict[str, Any], commit_time: datetime) -> Dict[str, Any]:
        return {
            key: commit_time if value is SERVER_TIMESTAMP else copy.deepcopy(value)
            for key, value in data.items()
        }

    def _query(self, owner_id: str) -> DocumentList:
        matches = [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in self.documents.items()
            if data.get(OWNER_FIELD) == owner_id
        ]
        matches.sort(
            key=lambda item: item[1].get(CREATED_AT_FIELD)
            or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return matches

    def _remove_watch(self, watch_id: int) -> None:
        with self._lock:
            self._watches.pop(watch_id, None)

    def _notify(self, owner_id: str) -> None:
        with self._lock:
            pending = [
                (watch, self._query(owner_id))
                for watch in self._watches.values()
                if watch.owner_id == owner_id
            ]
        for watch, documents in pending:
            if watch.active:
                watch.callback(documents)

    def watch(self, owner_id: str, callback: SnapshotCallback) -> _InMemoryWatch:
        with self._lock:
            handle = _InMemoryWatch(
                store=self,
                watch_id=next(self._watch_ids),
                owner_id=owner_id,
                callback=callback,
            )
            self._watches[handle.watch_id] = handle
            documents = self._query(owner_id)
        callback(documents)
        return handle

    def add(self, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        with self._lock:
            self.documents[doc_id] = self._resolve(data, self._commit_time())
            owner_id = self.documents[doc_id].get(OWNER_FIELD)
        self._notify(owner_id)
        return doc_id

    def update(
        self, doc_id: str, fields: Dict[str, Any], *, owner_id: str
    ) -> None:
        with self._lock:
            existing = self.documents.get(doc_id)
            _check_owner(doc_id, existing, owner_id)
            existing.update(self._resolve(fields, self._commit_time()))
        self._notify(owner_id)

    def delete(self, doc_id: str, *, owner_id: str) -> None:
        with self._lock:
            _check_owner(doc_id, self.documents.get(doc_id), owner_id)
            del self.documents[doc_id]
        self._notify(owner_id)


class FirestoreRecordStore:
    """
    Cloud Firestore implementation backed by the Admin SDK client.

    The Admin SDK bypasses security rules, so update/delete read the document
    in a transaction and reject writes to documents owned by someone else.
    """

    def __init__(self, client, collection: str = ITINERARIES_COLLECTION):
        self.client = client
        self.collection_name = collection

    def _collection(self):
        return self.client.collection(self.collection_name)

    def watch(self, owner_id: str, callback: SnapshotCallback) -> Subscription:
        query = self._collection().where(
            filter=FieldFilter(OWNER_FIELD, "==", owner_id)
        ).order_by(CREATED_AT_FIELD, direction=firestore.Query.DESCENDING)

        def on_snapshot(docs, changes, read_time):
            callback([(doc.id, doc.to_dict() or {}) for doc in docs])

        logger.info("Opening itinerary watch for %s", owner_id)
        return query.on_snapshot(on_snapshot)

    def add(self, data: Dict[str, Any]) -> str:
        _, doc_ref = self._collection().add(data)
        return doc_ref.id

    def update(
        self, doc_id: str, fields: Dict[str, Any], *, owner_id: str
    ) -> None:
        doc_ref = self._collection().document(doc_id)
        transaction = self.client.transaction()

        @firestore.transactional
        def _update_transaction(transaction, doc_ref):
            snapshot = doc_ref.get(transaction=transaction)
            _check_owner(
                doc_id, snapshot.to_dict() if snapshot.exists else None, owner_id
            )
            transaction.update(doc_ref, fields)

        _update_transaction(transaction, doc_ref)

    def delete(self, doc_id: str, *, owner_id: str) -> None:
        doc_ref = self._collection().document(doc_id)
        transaction = self.client.transaction()

        @firestore.transactional
        def _delete_transaction(transaction, doc_ref):
            snapshot = doc_ref.get(transaction=transaction)
            _check_owner(
                doc_id, snapshot.to_dict() if snapshot.exists else None, owner_id
            )
            transaction.delete(doc_ref)

        _delete_transaction(transaction, doc_ref)
