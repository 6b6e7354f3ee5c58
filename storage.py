"""Booking and museum persistence.

Stores must be swappable: BookingStore and MuseumCatalog talk to a backend
interface and return schema models. The backend (MongoDB or the local
key/value cache) is picked once, when the application is built.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from errors import BackendUnavailableError, NotFoundError
from museums import seed_museums
from schemas import Booking, BookingFilter, Museum, MuseumUpdate
from session import BOOKINGS_KEY, KeyValueStore, SessionContext

logger = logging.getLogger(__name__)

BOOKING_COLLECTION = "booking"
MUSEUM_COLLECTION = "museum"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _created_key(doc: Dict[str, Any]) -> datetime:
    value = doc.get("created_at")
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.min.replace(tzinfo=timezone.utc)


def newest_first(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(docs, key=_created_key, reverse=True)


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ------------------------------------------------------------
# Booking backends
# ------------------------------------------------------------

class BookingBackend(ABC):
    """Interface for booking persistence operations.

    Implementations raise BackendUnavailableError when the store cannot be reached.
    """

    name = "abstract"

    @abstractmethod
    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a booking document and return it with its new id."""
        ...

    @abstractmethod
    def find(self, date: Optional[str] = None, museum_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return matching documents ordered by created_at descending."""
        ...

    @abstractmethod
    def get(self, booking_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def update(self, booking_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Merge fields into a booking. Return the result, or None if the id is unknown."""
        ...

    @abstractmethod
    def delete(self, booking_id: str) -> bool:
        """Remove a booking. Return False if the id is unknown."""
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class MongoBookingBackend(BookingBackend):
    """MongoDB-backed booking store."""

    name = "mongo"

    def __init__(self, db: Optional[Database] = None, collection: str = BOOKING_COLLECTION) -> None:
        self._db = db
        self.collection = collection

    def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return fn(*args, database=self._db, **kwargs)
        except (PyMongoError, RuntimeError) as exc:
            logger.error("Mongo %s on %s failed: %s", operation, self.collection, exc)
            raise BackendUnavailableError(operation) from exc

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(doc)
        stored.pop("id", None)
        stored.setdefault("created_at", _now())
        booking_id = self._call("insert", database.create_document, self.collection, stored)
        return {**stored, "id": booking_id}

    def find(self, date: Optional[str] = None, museum_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {}
        if date is not None:
            query["date"] = date
        if museum_id is not None:
            query["museum.id"] = museum_id
        docs = self._call("find", database.get_documents, self.collection, query, sort_by="created_at")
        return [database.to_public(d) for d in docs]

    def get(self, booking_id: str) -> Optional[Dict[str, Any]]:
        doc = self._call("get", database.get_document, self.collection, booking_id)
        return database.to_public(doc) if doc else None

    def update(self, booking_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        changes = {k: v for k, v in fields.items() if k not in ("id", "_id")}
        doc = self._call("update", database.update_document, self.collection, booking_id, changes)
        return database.to_public(doc) if doc else None

    def delete(self, booking_id: str) -> bool:
        return self._call("delete", database.delete_document, self.collection, booking_id)

    def count(self) -> int:
        target = self._call("count", database.get_database)
        try:
            return target[self.collection].count_documents({})
        except PyMongoError as exc:
            logger.error("Mongo count on %s failed: %s", self.collection, exc)
            raise BackendUnavailableError("count") from exc


class LocalBookingBackend(BookingBackend):
    """Bookings kept as a JSON list under one key of a KeyValueStore."""

    name = "local"

    def __init__(self, store: KeyValueStore, key: str = BOOKINGS_KEY) -> None:
        self.store = store
        self.key = key

    def _load(self) -> List[Dict[str, Any]]:
        raw = self.store.get(self.key)
        if not raw:
            return []
        try:
            docs = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Local booking data under %s is corrupt: %s", self.key, exc)
            raise BackendUnavailableError("load") from exc
        if not isinstance(docs, list):
            logger.error("Local booking data under %s is not a list", self.key)
            raise BackendUnavailableError("load")
        return docs

    def _save(self, docs: List[Dict[str, Any]]) -> None:
        try:
            self.store.set(self.key, json.dumps(docs, default=_json_default))
        except OSError as exc:
            logger.error("Could not write local booking data: %s", exc)
            raise BackendUnavailableError("save") from exc

    def insert(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        docs = self._load()
        created_at = doc.get("created_at") or _now()
        stamp = int(_created_key({"created_at": created_at}).timestamp() * 1000)
        stored = {
            **doc,
            "id": f"booking_{stamp}_{uuid.uuid4().hex[:6]}",
            "created_at": created_at,
        }
        # round-trip through JSON so the returned copy matches what a later read gives back
        stored = json.loads(json.dumps(stored, default=_json_default))
        docs.append(stored)
        self._save(docs)
        return dict(stored)

    def find(self, date: Optional[str] = None, museum_id: Optional[str] = None) -> List[Dict[str, Any]]:
        flt = BookingFilter(date=date, museum_id=museum_id)
        return newest_first([d for d in self._load() if isinstance(d, dict) and flt.matches(d)])

    def get(self, booking_id: str) -> Optional[Dict[str, Any]]:
        for doc in self._load():
            if isinstance(doc, dict) and doc.get("id") == booking_id:
                return doc
        return None

    def update(self, booking_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        docs = self._load()
        for index, doc in enumerate(docs):
            if isinstance(doc, dict) and doc.get("id") == booking_id:
                changes = json.loads(json.dumps(fields, default=_json_default))
                changes.pop("id", None)
                docs[index] = {**doc, **changes}
                self._save(docs)
                return docs[index]
        return None

    def delete(self, booking_id: str) -> bool:
        docs = self._load()
        remaining = [d for d in docs if not (isinstance(d, dict) and d.get("id") == booking_id)]
        if len(remaining) == len(docs):
            return False
        self._save(remaining)
        return True

    def count(self) -> int:
        return len(self._load())


# ------------------------------------------------------------
# BookingStore
# ------------------------------------------------------------

class BookingStore:
    """The booking persistence adapter used by every caller.

    Reads degrade to the session's last-known booking list when the backend
    is down, and say so through SessionContext.report_degraded. Writes never
    degrade and are never retried here.
    """

    def __init__(self, backend: BookingBackend, session: Optional[SessionContext] = None) -> None:
        self.backend = backend
        self.session = session

    def create(self, booking: Booking) -> Booking:
        doc = booking.model_dump(exclude={"id"})
        if doc.get("created_at") is None:
            doc["created_at"] = _now()
        stored = self.backend.insert(doc)
        logger.info("Created booking %s (ticket %s) for %s on %s %s",
                    stored.get("id"), booking.ticket_number, booking.museum.id, booking.date, booking.time)
        return Booking.model_validate(stored)

    def list_documents(self, date: Optional[str] = None, museum_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Raw booking documents, malformed ones included. Used by the statistics view."""
        try:
            docs = self.backend.find(date=date, museum_id=museum_id)
        except BackendUnavailableError:
            cached = self.session.cached_bookings() if self.session is not None else None
            if cached is None:
                raise
            self.session.report_degraded("Using cached data. Live data unavailable.")
            flt = BookingFilter(date=date, museum_id=museum_id)
            return newest_first([d for d in cached if isinstance(d, dict) and flt.matches(d)])
        if date is None and museum_id is None and self.session is not None:
            self.session.cache_bookings(docs)
        return docs

    def list(self, date: Optional[str] = None, museum_id: Optional[str] = None) -> List[Booking]:
        return self._parse(self.list_documents(date=date, museum_id=museum_id))

    def recent(self, limit: int = 10) -> List[Booking]:
        return self.list()[:limit]

    def get(self, booking_id: str) -> Booking:
        doc = self.backend.get(booking_id)
        if doc is None:
            raise NotFoundError("booking", booking_id)
        return Booking.model_validate(doc)

    def update(self, booking_id: str, fields: Union[Dict[str, Any], BaseModel]) -> Booking:
        if isinstance(fields, BaseModel):
            changes = fields.model_dump(exclude_unset=True)
        else:
            changes = {k: v.model_dump() if isinstance(v, BaseModel) else v for k, v in fields.items()}
        doc = self.backend.update(booking_id, changes)
        if doc is None:
            raise NotFoundError("booking", booking_id)
        logger.info("Updated booking %s: %s", booking_id, sorted(changes))
        return Booking.model_validate(doc)

    def delete(self, booking_id: str) -> str:
        if not self.backend.delete(booking_id):
            raise NotFoundError("booking", booking_id)
        logger.info("Deleted booking %s", booking_id)
        return booking_id

    @staticmethod
    def _parse(docs: List[Dict[str, Any]]) -> List[Booking]:
        bookings = []
        for doc in docs:
            try:
                bookings.append(Booking.model_validate(doc))
            except ValidationError:
                logger.warning("Skipping malformed booking document %s", doc.get("id") if isinstance(doc, dict) else doc)
        return bookings


# ------------------------------------------------------------
# Museum backends
# ------------------------------------------------------------

class MuseumBackend(ABC):
    """Interface for museum persistence operations."""

    @abstractmethod
    def all(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def get(self, museum_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def put(self, doc: Dict[str, Any]) -> None:
        """Insert or replace a museum by its id."""
        ...

    @abstractmethod
    def update(self, museum_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class MongoMuseumBackend(MuseumBackend):
    """Museums stored with the museum id as the document _id."""

    def __init__(self, db: Optional[Database] = None, collection: str = MUSEUM_COLLECTION) -> None:
        self._db = db
        self.collection = collection

    def _collection(self):
        try:
            return database.get_database(self._db)[self.collection]
        except RuntimeError as exc:
            raise BackendUnavailableError("connect") from exc

    def _run(self, operation: str, fn):
        try:
            return fn(self._collection())
        except PyMongoError as exc:
            logger.error("Mongo %s on %s failed: %s", operation, self.collection, exc)
            raise BackendUnavailableError(operation) from exc

    def all(self) -> List[Dict[str, Any]]:
        return self._run("find", lambda c: [database.to_public(d) for d in c.find({})])

    def get(self, museum_id: str) -> Optional[Dict[str, Any]]:
        doc = self._run("get", lambda c: c.find_one({"_id": museum_id}))
        return database.to_public(doc) if doc else None

    def put(self, doc: Dict[str, Any]) -> None:
        body = {k: v for k, v in doc.items() if k != "id"}
        self._run("put", lambda c: c.replace_one({"_id": doc["id"]}, body, upsert=True))

    def update(self, museum_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        doc = self._run("update", lambda c: database.update_document(
            self.collection, museum_id, fields, database=c.database))
        return database.to_public(doc) if doc else None

    def count(self) -> int:
        return self._run("count", lambda c: c.count_documents({}))


class LocalMuseumBackend(MuseumBackend):
    """In-process museum table."""

    def __init__(self, museums: Optional[List[Museum]] = None) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {m.id: m.model_dump() for m in (museums or [])}

    def all(self) -> List[Dict[str, Any]]:
        return [dict(d) for d in self._docs.values()]

    def get(self, museum_id: str) -> Optional[Dict[str, Any]]:
        doc = self._docs.get(museum_id)
        return dict(doc) if doc else None

    def put(self, doc: Dict[str, Any]) -> None:
        self._docs[doc["id"]] = dict(doc)

    def update(self, museum_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if museum_id not in self._docs:
            return None
        self._docs[museum_id] = {**self._docs[museum_id], **fields}
        return dict(self._docs[museum_id])

    def count(self) -> int:
        return len(self._docs)


class MuseumCatalog:
    """Museum lookups with a fallback to the static seed data."""

    def __init__(self, backend: MuseumBackend, session: Optional[SessionContext] = None) -> None:
        self.backend = backend
        self.session = session

    def _degraded(self, message: str) -> None:
        if self.session is not None:
            self.session.report_degraded(message)
        else:
            logger.warning("Degraded mode: %s", message)

    def initialize(self) -> int:
        """Seed the collection when it is empty. Returns how many museums were written."""
        try:
            if self.backend.count() > 0:
                return 0
            seeds = seed_museums()
            for museum in seeds:
                self.backend.put(museum.model_dump())
        except BackendUnavailableError:
            logger.error("Could not initialize museums")
            return 0
        logger.info("Museums initialized (%d)", len(seeds))
        return len(seeds)

    def list(self) -> List[Museum]:
        try:
            docs = self.backend.all()
        except BackendUnavailableError:
            self._degraded("Museum list served from built-in data.")
            return seed_museums()
        return [Museum.model_validate(d) for d in docs]

    def get(self, museum_id: str) -> Museum:
        try:
            doc = self.backend.get(museum_id)
        except BackendUnavailableError:
            self._degraded("Museum details served from built-in data.")
            doc = next((m.model_dump() for m in seed_museums() if m.id == museum_id), None)
        if doc is None:
            raise NotFoundError("museum", museum_id)
        return Museum.model_validate(doc)

    def by_state(self, state: str) -> List[Museum]:
        return [m for m in self.list() if m.state == state]

    def update(self, museum_id: str, fields: Union[MuseumUpdate, Dict[str, Any]]) -> Museum:
        if isinstance(fields, BaseModel):
            changes = fields.model_dump(exclude_unset=True)
        else:
            changes = dict(fields)
        doc = self.backend.update(museum_id, changes)
        if doc is None:
            raise NotFoundError("museum", museum_id)
        logger.info("Updated museum %s: %s", museum_id, sorted(changes))
        return Museum.model_validate(doc)

    def update_current_visitors(self, museum_id: str, count: int) -> Museum:
        return self.update(museum_id, {"current_visitors": count})
