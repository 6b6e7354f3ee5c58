"""
Database Helpers

Thin pymongo helpers shared by the Mongo-backed stores. The client is only
created when both DATABASE_URL and DATABASE_NAME are set; otherwise `db`
stays None and callers are expected to use the local backend.

Every helper accepts an optional `database` so stores can be pointed at a
different database (tests, admin scripts) without touching the module global.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = client[DATABASE_NAME]


def get_database(database: Optional[Database] = None) -> Database:
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not initialized. Set DATABASE_URL and DATABASE_NAME.")
    return target


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> Union[ObjectId, str]:
    """Booking ids are ObjectIds; museum ids are plain strings."""
    if ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]],
                    database: Optional[Database] = None) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id as a string."""
    target = get_database(database)
    if isinstance(data, BaseModel):
        doc = data.model_dump(exclude_none=True)
    else:
        doc = dict(data)
    now = _now()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = target[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, sort_by: Optional[str] = None,
                  database: Optional[Database] = None) -> List[Dict[str, Any]]:
    target = get_database(database)
    cursor = target[collection_name].find(filter_dict or {})
    if sort_by:
        cursor = cursor.sort(sort_by, DESCENDING)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, doc_id: str,
                 database: Optional[Database] = None) -> Optional[Dict[str, Any]]:
    target = get_database(database)
    return target[collection_name].find_one({"_id": to_object_id(doc_id)})


def update_document(collection_name: str, doc_id: str, fields: Dict[str, Any],
                    database: Optional[Database] = None) -> Optional[Dict[str, Any]]:
    """Apply a $set and return the updated document, or None if the id is unknown."""
    target = get_database(database)
    changes = dict(fields)
    changes["updated_at"] = _now()
    return target[collection_name].find_one_and_update(
        {"_id": to_object_id(doc_id)},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


def delete_document(collection_name: str, doc_id: str,
                    database: Optional[Database] = None) -> bool:
    target = get_database(database)
    result = target[collection_name].delete_one({"_id": to_object_id(doc_id)})
    return result.deleted_count > 0


def to_public(doc: dict) -> dict:
    if not doc:
        return doc
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("updated_at", None)
    return d
