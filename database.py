"""
MongoDB access for HiveHelp.

One collection per schema in schemas.py, named after the lower-cased class
(User -> "user"). Documents reference each other by string id.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import config
from errors import Internal, InvalidInput

logger = logging.getLogger(__name__)

# MongoClient connects lazily, so importing this module never blocks on the server
_client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
db: Optional[Database] = _client[config.DATABASE_NAME]


def use_database(database: Database) -> None:
    """Swap the active database (tests and maintenance scripts)."""
    global db
    db = database


def collection(name: str):
    if db is None:
        raise Internal("Database not available")
    return db[name]


def ensure_indexes() -> None:
    collection("user").create_index([("email", ASCENDING)], unique=True)
    collection("product").create_index([("owner_beekeeper_id", ASCENDING)])
    collection("appointment").create_index([("customer_id", ASCENDING)])
    collection("appointment").create_index([("beekeeper_id", ASCENDING)])
    collection("order").create_index([("customer_id", ASCENDING)])
    collection("order").create_index([("product_id", ASCENDING)])
    logger.info("✅ Database indexes ensured")


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
) -> List[dict]:
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidInput("Invalid id")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy a document for the wire: string _id, never the password hash."""
    if doc is None:
        return None
    out = {**doc}
    if "_id" in out:
        out["_id"] = str(out["_id"])
    out.pop("password_hash", None)
    return out


def _lookup(collection_name: str, ids: Iterable[Optional[str]], fields: Sequence[str]) -> Dict[str, dict]:
    """Map id -> {_id, <fields>} for every id that still resolves."""
    oids = []
    for ref in set(i for i in ids if i):
        try:
            oids.append(ObjectId(ref))
        except (InvalidId, TypeError):
            continue
    if not oids:
        return {}
    projection = {f: 1 for f in fields}
    found = collection(collection_name).find({"_id": {"$in": oids}}, projection)
    return {str(d["_id"]): {"_id": str(d["_id"]), **{f: d.get(f) for f in fields}} for d in found}


def lookup_users(ids: Iterable[Optional[str]], fields: Sequence[str] = ("name",)) -> Dict[str, dict]:
    return _lookup("user", ids, fields)


def lookup_products(ids: Iterable[Optional[str]], fields: Sequence[str] = ("name",)) -> Dict[str, dict]:
    return _lookup("product", ids, fields)
