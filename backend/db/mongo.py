from pymongo import MongoClient, ASCENDING
from pymongo.database import Database as MongoDatabase
from pymongo.errors import ServerSelectionTimeoutError, ConnectionFailure, PyMongoError
from bson import ObjectId
from bson.errors import InvalidId
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import functools
import logging

from backend.core.errors import RecordNotFoundError, StorageError

logger = logging.getLogger(__name__)


class Database:
    """Handle over the dock check-in collections.

    Built once per application (or per test) and handed to services through
    request dependencies instead of living as module globals.
    """

    def __init__(self, db: MongoDatabase, client: Optional[MongoClient] = None):
        self.client = client
        self.db = db
        self.check_ins = db["check_ins"]
        self.appointments = db["appointments"]
        self.profiles = db["profiles"]
        self.docks = db["docks"]  # claim/cycle state, one document per dock
        self.dock_blocks = db["dock_blocks"]  # manual blocks keyed by dock number

    def ensure_indexes(self):
        try:
            self.check_ins.create_index([("dock_number", ASCENDING), ("status", ASCENDING)])
            self.check_ins.create_index([("check_in_time", ASCENDING)])
            self.appointments.create_index([("scheduled_date", ASCENDING), ("scheduled_time", ASCENDING)])
            self.profiles.create_index("email", unique=True)
            self.docks.create_index("dock_number", unique=True)
            self.dock_blocks.create_index("dock_number", unique=True)
        except PyMongoError as e:
            logger.warning(f"Could not create indexes: {e}")

    def close(self):
        if self.client is not None:
            self.client.close()


def connect_database(mongo_url: str, db_name: str) -> Database:
    """Create a MongoDB client with timeout settings and wrap it in a Database handle"""
    client = MongoClient(
        mongo_url,
        serverSelectionTimeoutMS=5000,  # 5 seconds timeout
        connectTimeoutMS=5000,
        socketTimeoutMS=5000,
        maxPoolSize=10,
        retryWrites=True
    )
    try:
        client.server_info()
        logger.info(f"Successfully connected to MongoDB at {mongo_url}")
    except (ServerSelectionTimeoutError, ConnectionFailure) as e:
        logger.error(f"Failed to connect to MongoDB at {mongo_url}: {e}")
        logger.warning("Application will continue but database operations will fail")
    return Database(client[db_name], client=client)


def utcnow() -> datetime:
    """Current time in the form MongoDB stores it: naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Convert a timestamp to naive UTC for writes and range queries"""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def as_utc(value: Any) -> Optional[datetime]:
    """Normalize a stored timestamp; naive values are taken as UTC"""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_object_id(record_id: str) -> ObjectId:
    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        raise RecordNotFoundError(f"No record with id {record_id}")


def serialize_document(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a raw MongoDB document into a plain dict with a string id"""
    data = dict(doc)
    if '_id' in data:
        data['id'] = str(data.pop('_id'))
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = as_utc(value)
    return data


def wrap_storage_errors(operation: str):
    """Decorator turning PyMongoError into StorageError for service methods"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except PyMongoError as e:
                logger.error(f"Storage error during {operation}: {str(e)}")
                raise StorageError(f"Failed to {operation}: {str(e)}") from e
        return wrapper
    return decorator
