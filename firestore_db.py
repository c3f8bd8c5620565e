import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from google.api_core.exceptions import GoogleAPICallError, NotFound, RetryError, ServiceUnavailable
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

# -----------------------
# SETTINGS
# -----------------------
RESTAURANTS = "restaurants"
CATEGORIES = "categories"
MENU_ITEMS = "menuItems"
ORDERS = "orders"
TABLES = "tables"
USERS = "users"
STAFF_INVITES = "staffInvites"
TABLE_SESSIONS = "tableSessions"

MAX_RETRIES = 3
RETRY_SLEEP_SECONDS = 1.0

Filter = Tuple[str, str, Any]
OrderBy = Tuple[str, str]
Unsubscribe = Callable[[], None]


def _snapshot_to_dict(snap) -> Dict[str, Any]:
    return {"id": snap.id, **(snap.to_dict() or {})}


class FirestoreStore:
    """
    Document store backed by Firestore Native.

    The client is created by ``open()`` and released by ``close()``, which also
    tears down any live snapshot listeners.
    """

    def __init__(self, project: Optional[str] = None, database: str = "default", client=None):
        self.project = project
        self.database = database
        self._client = client
        self._watches: List[Any] = []

    # -----------------------
    # lifecycle
    # -----------------------
    def open(self) -> "FirestoreStore":
        if self._client is None:
            # database="default" forces Firestore Native
            self._client = firestore.Client(project=self.project, database=self.database)
        return self

    def close(self) -> None:
        for watch in self._watches:
            watch.unsubscribe()
        self._watches.clear()
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    @property
    def client(self) -> firestore.Client:
        if self._client is None:
            raise StoreError("Firestore store is not open")
        return self._client

    # -----------------------
    # reads
    # -----------------------
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        snap = self._call(self.client.collection(collection).document(doc_id).get)
        if not snap.exists:
            return None
        return _snapshot_to_dict(snap)

    def list(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = self._query(collection, filters, order_by, limit)
        return [_snapshot_to_dict(s) for s in self._call(query.get)]

    # -----------------------
    # writes
    # -----------------------
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc = {
            **data,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        }
        ref = self.client.collection(collection).document()
        self._call(ref.set, doc)
        return ref.id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ref = self.client.collection(collection).document(doc_id)
        try:
            self._call(ref.update, {**data, "updatedAt": firestore.SERVER_TIMESTAMP})
        except NotFound:
            raise NotFoundError(collection, doc_id)

    def delete(self, collection: str, doc_id: str) -> None:
        self._call(self.client.collection(collection).document(doc_id).delete)

    # -----------------------
    # real-time
    # -----------------------
    def subscribe_collection(
        self,
        collection: str,
        callback: Callable[[List[Dict[str, Any]]], None],
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
    ) -> Unsubscribe:
        query = self._query(collection, filters, order_by, None)

        def on_snapshot(snapshots, changes, read_time):
            callback([_snapshot_to_dict(s) for s in snapshots])

        return self._track(query.on_snapshot(on_snapshot))

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Optional[Dict[str, Any]]], None],
    ) -> Unsubscribe:
        ref = self.client.collection(collection).document(doc_id)

        def on_snapshot(snapshots, changes, read_time):
            for snap in snapshots:
                callback(_snapshot_to_dict(snap) if snap.exists else None)

        return self._track(ref.on_snapshot(on_snapshot))

    # -----------------------
    # helpers
    # -----------------------
    def _query(self, collection, filters, order_by, limit):
        query = self.client.collection(collection)
        for field, op, value in filters:
            query = query.where(filter=FieldFilter(field, op, value))
        for field, direction in order_by:
            query = query.order_by(
                field,
                direction=firestore.Query.DESCENDING if direction == "desc" else firestore.Query.ASCENDING,
            )
        if limit:
            query = query.limit(limit)
        return query

    def _track(self, watch) -> Unsubscribe:
        self._watches.append(watch)

        def unsubscribe():
            if watch in self._watches:
                self._watches.remove(watch)
                watch.unsubscribe()

        return unsubscribe

    def _call(self, fn, *args):
        """
        Runs a Firestore call, retrying temporary errors.
        Raises StoreError if it still fails.
        """
        last_err = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                return fn(*args)
            except NotFound:
                raise
            except (ServiceUnavailable, GoogleAPICallError, RetryError) as e:
                last_err = e
                logger.warning("Firestore call failed (attempt %d/%d): %s", attempt, MAX_RETRIES, e)
                time.sleep(RETRY_SLEEP_SECONDS * attempt)

        raise StoreError(f"Firestore call failed after {MAX_RETRIES} attempts: {last_err}")
