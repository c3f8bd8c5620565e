import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from errors import NotFoundError
from firestore_db import Filter, OrderBy, Unsubscribe
from models import Base, Document

logger = logging.getLogger(__name__)


def _encode(value):
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj):
    if set(obj) == {"$date"}:
        return datetime.fromisoformat(obj["$date"])
    return obj


def _dumps(value) -> str:
    return json.dumps(value, default=_encode)


def _loads(text: str):
    return json.loads(text, object_hook=_decode)


_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
    "array_contains": lambda a, b: b in (a or []),
}


def _matches(doc: Dict[str, Any], filters: Sequence[Filter]) -> bool:
    return all(_OPS[op](doc.get(field), value) for field, op, value in filters)


def _sorted(docs: List[Dict[str, Any]], order_by: Sequence[OrderBy]) -> List[Dict[str, Any]]:
    # stable sorts applied from the last key to the first
    for field, direction in reversed(order_by):
        present = [d for d in docs if d.get(field) is not None]
        missing = [d for d in docs if d.get(field) is None]
        present.sort(key=lambda d: d[field], reverse=direction == "desc")
        docs = present + missing
    return docs


class SqlStore:
    """
    Document store kept in a SQL database (SQLite locally).

    Same interface as FirestoreStore. Subscriptions are served in-process:
    listeners are re-run after every write to their collection.
    """

    def __init__(self, url: str = "sqlite:///local.db"):
        self.url = url
        self.engine = None
        self.Session = None
        self._lock = threading.Lock()
        self._listeners: List[Dict[str, Any]] = []

    # -----------------------
    # lifecycle
    # -----------------------
    def open(self) -> "SqlStore":
        if self.engine is not None:
            return self

        kwargs: Dict[str, Any] = {"json_serializer": _dumps, "json_deserializer": _loads}
        if self.url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url or self.url == "sqlite://":
                kwargs["poolclass"] = StaticPool

        self.engine = create_engine(self.url, echo=False, **kwargs)
        self.Session = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

        # create tables if they don't exist
        Base.metadata.create_all(self.engine)
        return self

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self.Session = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    # -----------------------
    # reads
    # -----------------------
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self.Session() as s:
            row = s.get(Document, (collection, doc_id))
            if row is None:
                return None
            return {"id": row.id, **row.data}

    def list(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self.Session() as s:
            rows = s.scalars(select(Document).where(Document.collection == collection)).all()
            docs = [{"id": r.id, **r.data} for r in rows]

        docs = _sorted([d for d in docs if _matches(d, filters)], order_by)
        return docs[:limit] if limit else docs

    # -----------------------
    # writes
    # -----------------------
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        doc_id = uuid.uuid4().hex[:20]
        with self.Session() as s:
            s.add(Document(
                collection=collection,
                id=doc_id,
                data={**data, "createdAt": now, "updatedAt": now},
                created_at=now,
                updated_at=now,
            ))
            s.commit()
        self._notify(collection, doc_id)
        return doc_id

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        with self.Session() as s:
            row = s.get(Document, (collection, doc_id))
            if row is None:
                raise NotFoundError(collection, doc_id)
            # new dict so the JSON column is flagged dirty
            row.data = {**row.data, **data, "updatedAt": now}
            row.updated_at = now
            s.commit()
        self._notify(collection, doc_id)

    def delete(self, collection: str, doc_id: str) -> None:
        with self.Session() as s:
            row = s.get(Document, (collection, doc_id))
            if row is not None:
                s.delete(row)
                s.commit()
        self._notify(collection, doc_id)

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
        listener = {
            "collection": collection,
            "doc_id": None,
            "fire": lambda: callback(self.list(collection, filters, order_by)),
        }
        return self._listen(listener)

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        callback: Callable[[Optional[Dict[str, Any]]], None],
    ) -> Unsubscribe:
        listener = {
            "collection": collection,
            "doc_id": doc_id,
            "fire": lambda: callback(self.get(collection, doc_id)),
        }
        return self._listen(listener)

    def _listen(self, listener) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)
        listener["fire"]()

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, collection: str, doc_id: str) -> None:
        with self._lock:
            targets = [
                l for l in self._listeners
                if l["collection"] == collection and l["doc_id"] in (None, doc_id)
            ]
        for listener in targets:
            try:
                listener["fire"]()
            except Exception:
                logger.exception("Listener on %s failed", collection)
