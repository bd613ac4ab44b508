"""
Database abstraction for MongoDB and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, PyMongoError
from pymongo.server_api import ServerApi

from ecotrack.errors import (
    InvalidIdError,
    StorageError,
    StorageUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class DbClient(Protocol):
    """Interface for database access."""

    def ping(self) -> None:
        ...

    def close(self) -> None:
        ...

    def list_challenges(self) -> list[dict]:
        ...

    def get_challenge(self, oid: ObjectId) -> Optional[dict]:
        ...

    def create_challenge(self, document: dict) -> "InsertAck":
        ...

    def list_user_challenges(self) -> list[dict]:
        ...

    def join_challenge(self, user_id: str, challenge_id: str) -> "InsertAck":
        ...

    def list_events(self) -> list[dict]:
        ...

    def get_event(self, oid: ObjectId) -> Optional[dict]:
        ...

    def create_event(self, document: dict) -> "InsertAck":
        ...

    def update_event(self, oid: ObjectId, fields: dict) -> "UpdateAck":
        ...

    def delete_event(self, oid: ObjectId) -> "DeleteAck":
        ...


@dataclass
class InsertAck:
    inserted_id: str
    acknowledged: bool = True

    def as_dict(self) -> dict:
        return {"acknowledged": self.acknowledged, "insertedId": self.inserted_id}


@dataclass
class UpdateAck:
    matched_count: int
    modified_count: int
    acknowledged: bool = True
    upserted_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "acknowledged": self.acknowledged,
            "matchedCount": self.matched_count,
            "modifiedCount": self.modified_count,
            "upsertedId": self.upserted_id,
            "upsertedCount": 0 if self.upserted_id is None else 1,
        }


@dataclass
class DeleteAck:
    deleted_count: int
    acknowledged: bool = True

    def as_dict(self) -> dict:
        return {"acknowledged": self.acknowledged, "deletedCount": self.deleted_count}


def parse_object_id(value: str) -> ObjectId:
    """Convert a path identifier into an ObjectId, rejecting malformed values."""
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidIdError(value)
    return ObjectId(value)


def to_json_document(value: Any) -> Any:
    """Replace ObjectIds with their hex strings so documents are JSON friendly."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: to_json_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_json_document(item) for item in value]
    return value


def _join_record(user_id: str, challenge_id: str) -> dict:
    return {
        "userId": user_id,
        "challengeId": challenge_id,
        "joinedAt": datetime.now(timezone.utc),
    }


def _value_key(value: Any) -> tuple:
    # BSON comparison order: null < numbers < strings < objects < arrays
    # < binary < ObjectId < booleans < dates.
    if value is None:
        return (1, 0)
    if isinstance(value, bool):
        return (8, int(value))
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, dict):
        return (4, tuple((str(k), _value_key(v)) for k, v in value.items()))
    if isinstance(value, list):
        return (5, tuple(_value_key(item) for item in value))
    if isinstance(value, bytes):
        return (6, value)
    if isinstance(value, ObjectId):
        return (7, value.binary)
    if isinstance(value, datetime):
        return (9, value.timestamp())
    return (10, str(value))


def _sort_key(field_name: str):
    # An ascending sort on an array field uses its smallest element; an empty
    # array sorts before null and missing values.
    def key(document: dict) -> tuple:
        value = document.get(field_name)
        if isinstance(value, list):
            if not value:
                return (0, 0)
            return min(_value_key(item) for item in value)
        return _value_key(value)

    return key


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.challenges: Dict[ObjectId, dict] = {}
        self.user_challenges: Dict[ObjectId, dict] = {}
        self.events: Dict[ObjectId, dict] = {}
        self._lock = threading.Lock()

    def ping(self) -> None:
        return None

    def close(self) -> None:
        return None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.challenges.clear()
            self.user_challenges.clear()
            self.events.clear()

    def _insert(self, table: Dict[ObjectId, dict], document: dict) -> InsertAck:
        oid = ObjectId()
        stored = copy.deepcopy(document)
        stored["_id"] = oid
        with self._lock:
            table[oid] = stored
        return InsertAck(inserted_id=str(oid))

    def _get(self, table: Dict[ObjectId, dict], oid: ObjectId) -> Optional[dict]:
        with self._lock:
            document = table.get(oid)
            return to_json_document(copy.deepcopy(document)) if document else None

    def _list(
        self, table: Dict[ObjectId, dict], sort_field: Optional[str] = None
    ) -> list[dict]:
        with self._lock:
            documents = [copy.deepcopy(doc) for doc in table.values()]
        if sort_field:
            documents.sort(key=_sort_key(sort_field))
        return [to_json_document(doc) for doc in documents]

    def list_challenges(self) -> list[dict]:
        return self._list(self.challenges, sort_field="duration")

    def get_challenge(self, oid: ObjectId) -> Optional[dict]:
        return self._get(self.challenges, oid)

    def create_challenge(self, document: dict) -> InsertAck:
        return self._insert(self.challenges, document)

    def list_user_challenges(self) -> list[dict]:
        return self._list(self.user_challenges)

    def join_challenge(self, user_id: str, challenge_id: str) -> InsertAck:
        return self._insert(self.user_challenges, _join_record(user_id, challenge_id))

    def list_events(self) -> list[dict]:
        return self._list(self.events, sort_field="date")

    def get_event(self, oid: ObjectId) -> Optional[dict]:
        return self._get(self.events, oid)

    def create_event(self, document: dict) -> InsertAck:
        return self._insert(self.events, document)

    def update_event(self, oid: ObjectId, fields: dict) -> UpdateAck:
        with self._lock:
            event = self.events.get(oid)
            if event is None:
                return UpdateAck(matched_count=0, modified_count=0)
            changed = any(
                key not in event or event[key] != value for key, value in fields.items()
            )
            event.update(copy.deepcopy(fields))
        return UpdateAck(matched_count=1, modified_count=1 if changed else 0)

    def delete_event(self, oid: ObjectId) -> DeleteAck:
        with self._lock:
            removed = self.events.pop(oid, None)
        return DeleteAck(deleted_count=0 if removed is None else 1)


class MongoDbClient:
    """
    pymongo-backed implementation. One MongoClient is shared by all request
    threads; the driver pools connections internally.
    """

    def __init__(
        self,
        uri: str,
        *,
        db_name: str = "track_eco",
        challenges_collection: str = "Challenges",
        user_challenges_collection: str = "UserChallenges",
        events_collection: str = "event",
        server_selection_timeout_ms: int = 5000,
        client: Optional[MongoClient] = None,
    ):
        if not uri and client is None:
            raise ValueError("MONGODB_URI is required for MongoDbClient")
        self.client = client or MongoClient(
            uri,
            server_api=ServerApi("1", strict=True, deprecation_errors=True),
            tz_aware=True,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
        )
        db = self.client[db_name]
        self.challenges: Collection = db[challenges_collection]
        self.user_challenges: Collection = db[user_challenges_collection]
        self.events: Collection = db[events_collection]

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except ConnectionFailure as exc:
            logger.error("MongoDB unreachable during %s: %s", operation, exc)
            raise StorageUnavailableError() from exc
        except (InvalidDocument, OverflowError) as exc:
            logger.warning("Rejected document during %s: %s", operation, exc)
            raise ValidationError("Document cannot be stored") from exc
        except PyMongoError as exc:
            logger.exception("MongoDB error during %s", operation)
            raise StorageError() from exc

    def ping(self) -> None:
        with self._translate_errors("ping"):
            self.client.admin.command("ping")

    def close(self) -> None:
        self.client.close()

    def _find_all(self, collection: Collection, sort_field: Optional[str] = None) -> list[dict]:
        with self._translate_errors(f"find {collection.name}"):
            cursor = collection.find()
            if sort_field:
                cursor = cursor.sort(sort_field, ASCENDING)
            return [to_json_document(doc) for doc in cursor]

    def _find_by_id(self, collection: Collection, oid: ObjectId) -> Optional[dict]:
        with self._translate_errors(f"find_one {collection.name}"):
            document = collection.find_one({"_id": oid})
        return to_json_document(document) if document else None

    def _insert(self, collection: Collection, document: dict) -> InsertAck:
        with self._translate_errors(f"insert_one {collection.name}"):
            # insert_one mutates its argument with the generated _id.
            result = collection.insert_one(dict(document))
        return InsertAck(
            inserted_id=str(result.inserted_id), acknowledged=result.acknowledged
        )

    def list_challenges(self) -> list[dict]:
        return self._find_all(self.challenges, sort_field="duration")

    def get_challenge(self, oid: ObjectId) -> Optional[dict]:
        return self._find_by_id(self.challenges, oid)

    def create_challenge(self, document: dict) -> InsertAck:
        return self._insert(self.challenges, document)

    def list_user_challenges(self) -> list[dict]:
        return self._find_all(self.user_challenges)

    def join_challenge(self, user_id: str, challenge_id: str) -> InsertAck:
        return self._insert(self.user_challenges, _join_record(user_id, challenge_id))

    def list_events(self) -> list[dict]:
        return self._find_all(self.events, sort_field="date")

    def get_event(self, oid: ObjectId) -> Optional[dict]:
        return self._find_by_id(self.events, oid)

    def create_event(self, document: dict) -> InsertAck:
        return self._insert(self.events, document)

    def update_event(self, oid: ObjectId, fields: dict) -> UpdateAck:
        with self._translate_errors("update_one event"):
            result = self.events.update_one({"_id": oid}, {"$set": fields})
        upserted_id = result.upserted_id
        return UpdateAck(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            acknowledged=result.acknowledged,
            upserted_id=str(upserted_id) if upserted_id is not None else None,
        )

    def delete_event(self, oid: ObjectId) -> DeleteAck:
        with self._translate_errors("delete_one event"):
            result = self.events.delete_one({"_id": oid})
        return DeleteAck(
            deleted_count=result.deleted_count, acknowledged=result.acknowledged
        )
