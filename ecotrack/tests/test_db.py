import unittest
from datetime import datetime
from unittest.mock import MagicMock

import bson
from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import ASCENDING
from pymongo.errors import AutoReconnect, OperationFailure

from ecotrack.db import InMemoryDbClient, MongoDbClient, parse_object_id
from ecotrack.errors import (
    InvalidIdError,
    StorageError,
    StorageUnavailableError,
    ValidationError,
)


class ParseObjectIdTests(unittest.TestCase):
    def test_valid_id(self):
        oid = ObjectId()
        self.assertEqual(parse_object_id(str(oid)), oid)

    def test_malformed_ids(self):
        for value in ("", "123", "zzzzzzzzzzzzzzzzzzzzzzzz", "abcdefabcdef"):
            with self.assertRaises(InvalidIdError):
                parse_object_id(value)


class InMemoryDbClientTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_missing_sort_field_sorts_first(self):
        self.db.create_challenge({"title": "b", "duration": 5})
        self.db.create_challenge({"title": "a"})
        self.db.create_challenge({"title": "c", "duration": 2.5})
        titles = [c["title"] for c in self.db.list_challenges()]
        self.assertEqual(titles, ["a", "c", "b"])

    def test_sort_follows_bson_type_order(self):
        for title, duration in (
            ("bool", True),
            ("array", [9, 4]),
            ("object", {"days": 3}),
            ("string", "long"),
            ("number", 10),
            ("missing", None),
            ("empty", []),
        ):
            document = {"title": title}
            if duration is not None:
                document["duration"] = duration
            self.db.create_challenge(document)

        titles = [c["title"] for c in self.db.list_challenges()]
        # The array sorts by its smallest element, 4, ahead of 10.
        self.assertEqual(
            titles, ["empty", "missing", "array", "number", "string", "object", "bool"]
        )

    def test_insert_does_not_alias_caller_document(self):
        document = {"title": "Cleanup", "tags": ["park"]}
        ack = self.db.create_event(document)
        document["tags"].append("beach")
        self.assertNotIn("_id", document)

        stored = self.db.get_event(ObjectId(ack.inserted_id))
        self.assertEqual(stored["tags"], ["park"])
        self.assertEqual(stored["_id"], ack.inserted_id)

    def test_update_reports_unchanged_documents(self):
        ack = self.db.create_event({"title": "Cleanup", "date": "2025-01-01"})
        oid = ObjectId(ack.inserted_id)

        result = self.db.update_event(oid, {"title": "Cleanup"})
        self.assertEqual((result.matched_count, result.modified_count), (1, 0))

        result = self.db.update_event(oid, {"location": "Park"})
        self.assertEqual((result.matched_count, result.modified_count), (1, 1))
        self.assertEqual(self.db.get_event(oid)["date"], "2025-01-01")

    def test_join_stamps_time(self):
        self.db.join_challenge("u1", "c1")
        record = self.db.list_user_challenges()[0]
        self.assertIsInstance(record["joinedAt"], datetime)
        self.assertIsNotNone(record["joinedAt"].tzinfo)

    def test_delete(self):
        ack = self.db.create_event({"title": "Cleanup"})
        oid = ObjectId(ack.inserted_id)
        self.assertEqual(self.db.delete_event(oid).deleted_count, 1)
        self.assertEqual(self.db.delete_event(oid).deleted_count, 0)

    def test_reset(self):
        self.db.create_challenge({"title": "a"})
        self.db.join_challenge("u1", "c1")
        self.db.reset()
        self.assertEqual(self.db.list_challenges(), [])
        self.assertEqual(self.db.list_user_challenges(), [])


class MongoDbClientTests(unittest.TestCase):
    """
    Exercises the pymongo client against mocked collections.
    """

    def setUp(self):
        self.collections = {
            "Challenges": MagicMock(name="Challenges"),
            "UserChallenges": MagicMock(name="UserChallenges"),
            "event": MagicMock(name="event"),
        }
        self.mongo = MagicMock()
        self.mongo.__getitem__.return_value.__getitem__.side_effect = (
            self.collections.__getitem__
        )
        self.db = MongoDbClient("mongodb://unused", client=self.mongo)

    def test_uses_configured_database(self):
        self.mongo.__getitem__.assert_called_with("track_eco")
        self.assertIs(self.db.events, self.collections["event"])

    def test_requires_uri(self):
        with self.assertRaises(ValueError):
            MongoDbClient("")

    def test_list_challenges_sorts_by_duration(self):
        oid = ObjectId()
        cursor = self.collections["Challenges"].find.return_value
        cursor.sort.return_value = [{"_id": oid, "duration": 3}]

        result = self.db.list_challenges()

        cursor.sort.assert_called_once_with("duration", ASCENDING)
        self.assertEqual(result, [{"_id": str(oid), "duration": 3}])

    def test_list_user_challenges_unsorted(self):
        # A plain list cursor has no usable sort(field, direction).
        self.collections["UserChallenges"].find.return_value = [
            {"_id": ObjectId(), "userId": "u1"}
        ]
        result = self.db.list_user_challenges()
        self.assertEqual(result[0]["userId"], "u1")

    def test_get_event_missing_returns_none(self):
        self.collections["event"].find_one.return_value = None
        oid = ObjectId()
        self.assertIsNone(self.db.get_event(oid))
        self.collections["event"].find_one.assert_called_once_with({"_id": oid})

    def test_create_event_does_not_mutate_payload(self):
        oid = ObjectId()
        result = MagicMock(inserted_id=oid, acknowledged=True)
        self.collections["event"].insert_one.return_value = result
        payload = {"title": "Cleanup"}

        ack = self.db.create_event(payload)

        self.assertEqual(ack.as_dict(), {"acknowledged": True, "insertedId": str(oid)})
        self.assertEqual(payload, {"title": "Cleanup"})

    def test_join_challenge_document(self):
        self.collections["UserChallenges"].insert_one.return_value = MagicMock(
            inserted_id=ObjectId(), acknowledged=True
        )
        self.db.join_challenge("u1", "c1")
        inserted = self.collections["UserChallenges"].insert_one.call_args.args[0]
        self.assertEqual(inserted["userId"], "u1")
        self.assertEqual(inserted["challengeId"], "c1")
        self.assertIsInstance(inserted["joinedAt"], datetime)

    def test_update_event_uses_set(self):
        oid = ObjectId()
        self.collections["event"].update_one.return_value = MagicMock(
            matched_count=1, modified_count=1, acknowledged=True, upserted_id=None
        )

        ack = self.db.update_event(oid, {"title": "New"})

        self.collections["event"].update_one.assert_called_once_with(
            {"_id": oid}, {"$set": {"title": "New"}}
        )
        self.assertEqual(
            ack.as_dict(),
            {
                "acknowledged": True,
                "matchedCount": 1,
                "modifiedCount": 1,
                "upsertedId": None,
                "upsertedCount": 0,
            },
        )

    def test_delete_event(self):
        self.collections["event"].delete_one.return_value = MagicMock(
            deleted_count=0, acknowledged=True
        )
        ack = self.db.delete_event(ObjectId())
        self.assertEqual(ack.as_dict(), {"acknowledged": True, "deletedCount": 0})

    def test_connectivity_errors_become_unavailable(self):
        self.collections["event"].find_one.side_effect = AutoReconnect("down")
        with self.assertRaises(StorageUnavailableError):
            self.db.get_event(ObjectId())

    def test_other_driver_errors_become_storage_errors(self):
        self.collections["event"].delete_one.side_effect = OperationFailure("denied")
        with self.assertRaises(StorageError) as ctx:
            self.db.delete_event(ObjectId())
        self.assertNotIsInstance(ctx.exception, StorageUnavailableError)
        self.assertNotIn("denied", ctx.exception.message)

    def test_unencodable_documents_become_validation_errors(self):
        self.collections["Challenges"].insert_one.side_effect = InvalidDocument("bad")
        with self.assertRaises(ValidationError):
            self.db.create_challenge({"title": "x"})

    def test_unencodable_integers_become_validation_errors(self):
        self.collections["event"].insert_one.side_effect = lambda doc: bson.encode(doc)
        with self.assertRaises(ValidationError):
            self.db.create_event({"title": "x", "attendees": 2**70})

    def test_ping(self):
        self.db.ping()
        self.mongo.admin.command.assert_called_once_with("ping")


if __name__ == "__main__":
    unittest.main()
