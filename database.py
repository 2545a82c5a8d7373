"""
MongoDB access for the Tasks API.

One MongoClient per process. Each collection is reached through a small
Repository exposing the handful of operations the services rely on; every
call runs inside `guard`, so driver failures surface as API errors.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings
from errors import ConflictError, DependencyError

logger = logging.getLogger(__name__)

USERS = "users"
TASKS = "tasks"

client: Optional[MongoClient] = None
db: Optional[Database] = None


def init_db(settings: Settings) -> Database:
    global client, db
    client = MongoClient(
        settings.database_url,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
    )
    db = client[settings.database_name]
    try:
        ensure_indexes(db)
    except PyMongoError as e:
        # The API still starts; requests will fail with DependencyError until the DB is back
        logger.error(f"Could not create indexes: {e}", extra={"operation": "create_index"})
    return db


def close_db():
    global client, db
    if client is not None:
        client.close()
    client = None
    db = None


def ensure_indexes(database: Database):
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[TASKS].create_index([("assignedUser", ASCENDING)])


def get_db() -> Database:
    """FastAPI dependency returning the active database."""
    if db is None:
        raise DependencyError("connect")
    return db


@contextmanager
def guard(operation: str):
    """Translate driver errors into API errors."""
    try:
        yield
    except DuplicateKeyError as e:
        logger.warning(f"Duplicate key on {operation}: {e}", extra={"operation": operation})
        raise ConflictError() from e
    except PyMongoError as e:
        logger.error(f"Database {operation} failed: {e}", exc_info=True, extra={"operation": operation})
        raise DependencyError(operation) from e


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str):
        return None
    try:
        return ObjectId(value)
    except InvalidId:
        return None


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    return out


class Repository:
    """CRUD over one collection with filter/sort/skip/limit/projection queries."""

    def __init__(self, database: Database, name: str):
        self.name = name
        self.collection = database[name]

    def find_by_id(self, doc_id, projection: Optional[dict] = None) -> Optional[dict]:
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        with guard(f"{self.name}.find_by_id"):
            return self.collection.find_one({"_id": oid}, projection)

    def find(
        self,
        filter_dict: Optional[dict] = None,
        projection: Optional[dict] = None,
        sort: Optional[list] = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list:
        with guard(f"{self.name}.find"):
            cursor = self.collection.find(filter_dict or {}, projection)
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)

    def count(self, filter_dict: Optional[dict] = None) -> int:
        with guard(f"{self.name}.count"):
            return self.collection.count_documents(filter_dict or {})

    def insert(self, data: dict) -> dict:
        doc = dict(data)
        doc["createdAt"] = datetime.now(timezone.utc)
        with guard(f"{self.name}.insert"):
            result = self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def replace(self, doc: dict) -> dict:
        with guard(f"{self.name}.replace"):
            self.collection.replace_one({"_id": doc["_id"]}, doc)
        return doc

    def update(self, doc_id, changes: dict) -> bool:
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        with guard(f"{self.name}.update"):
            result = self.collection.update_one({"_id": oid}, changes)
        return result.matched_count > 0

    def update_many(self, filter_dict: dict, changes: dict) -> int:
        with guard(f"{self.name}.update_many"):
            result = self.collection.update_many(filter_dict, changes)
        return result.modified_count

    def remove(self, doc_id) -> bool:
        oid = to_object_id(doc_id)
        if oid is None:
            return False
        with guard(f"{self.name}.remove"):
            result = self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0
