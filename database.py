"""
MongoDB access for the storefront API

Each entity lives in a collection named after it in lowercase
(product, order, user, shopconfig). Timestamps are naive UTC, which is
what pymongo hands back on reads.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from errors import InternalError
from pagination import PageParams, page_envelope
from settings import get_settings

logger = logging.getLogger(__name__)

# tombstone-exclusion predicate shared by reads and mutations
NOT_DELETED = {"isDeleted.status": {"$ne": True}}

_settings = get_settings()
client: Optional[MongoClient] = None
db: Optional[Database] = None

if _settings.database_url and _settings.database_name:
    client = MongoClient(_settings.database_url)
    db = client[_settings.database_name]


def get_db() -> Database:
    if db is None:
        raise InternalError("Database not configured")
    return db


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(id_str: Any) -> Optional[ObjectId]:
    try:
        return ObjectId(str(id_str))
    except (InvalidId, TypeError):
        return None


def serialize(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    doc = dict(document)
    doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert ``data`` with fresh timestamps and return the stored document."""
    payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utc_now()
    payload["createdAt"] = now
    payload["updatedAt"] = now
    result = database[collection_name].insert_one(payload)
    payload["_id"] = result.inserted_id
    return payload


def find_page(
    collection: Collection,
    query: Dict[str, Any],
    params: PageParams,
    transform: Callable[[Dict[str, Any]], Any] = serialize,
) -> Dict[str, Any]:
    cursor = (
        collection.find(query)
        .sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
        .skip(params.skip)
        .limit(params.limit)
    )
    data = [transform(doc) for doc in cursor]
    total = collection.count_documents(query)
    return page_envelope(data, total, params)
