# Copyright 2024-present MongoDB, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Test the collection module."""
from __future__ import annotations

import sys

sys.path[0:0] = [""]

import unittest

from bson import ObjectId
from bson.errors import InvalidId

from mongowire import ASCENDING, DESCENDING
from mongowire.asynchronous.collection import AsyncCollection, ReturnDocument
from mongowire.errors import (
    BulkWriteError,
    DuplicateKeyError,
    InvalidName,
    OperationFailure,
)
from mongowire.results import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult
from test.asynchronous import AsyncMockServerTest
from test.asynchronous.mock_server import MockServer

_IS_SYNC = False


class TestCollection(AsyncMockServerTest):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client, self.db = await self.connected_client()
        self.coll = self.db.test

    def test_get_collection(self):
        self.assertIsInstance(self.coll, AsyncCollection)
        self.assertEqual("test.test", self.coll.full_name)
        self.assertIs(self.coll, self.db.get_collection("test"))
        self.assertIs(self.coll, self.db["test"])
        self.assertEqual("test.test.sub", self.coll.sub.full_name)
        self.assertRaises(AttributeError, lambda: self.coll._private)
        self.assertRaises(TypeError, self.db.get_collection, 5)
        self.assertRaises(InvalidName, self.db.get_collection, "")
        self.assertRaises(InvalidName, self.db.get_collection, "te$t")
        self.assertRaises(InvalidName, self.db.get_collection, ".test")
        self.assertRaises(InvalidName, self.db.get_collection, "test.")
        self.assertRaises(InvalidName, self.db.get_collection, "tes..t")
        with self.assertRaises(NotImplementedError):
            bool(self.coll)

    async def test_insert_one(self):
        doc = {"x": 1}
        result = await self.coll.insert_one(doc)
        self.assertIsInstance(result, InsertOneResult)
        self.assertIsInstance(result.inserted_id, ObjectId)
        self.assertEqual(doc["_id"], result.inserted_id)
        self.assertEqual([doc], self.server.docs("test.test"))

        cmd = self.server.received("insert")[0]
        self.assertEqualCommand(
            {"insert": "test", "ordered": True, "documents": [doc]}, cmd
        )
        self.assertEqual("test", cmd["$db"])

        result = await self.coll.insert_one({"_id": 5, "x": 2})
        self.assertEqual(5, result.inserted_id)
        with self.assertRaises(TypeError):
            await self.coll.insert_one([{"x": 3}])  # type: ignore[arg-type]

    async def test_insert_many(self):
        docs = [{"x": i} for i in range(3)]
        result = await self.coll.insert_many(docs)
        self.assertIsInstance(result, InsertManyResult)
        self.assertEqual([doc["_id"] for doc in docs], result.inserted_ids)
        self.assertEqual(3, result.inserted_count)
        self.assertEqual(3, len(self.server.docs("test.test")))
        self.assertEqual(1, len(self.server.received("insert")))

        with self.assertRaises(TypeError):
            await self.coll.insert_many([])
        with self.assertRaises(TypeError):
            await self.coll.insert_many({"x": 1})  # type: ignore[arg-type]

    async def test_insert_and_save(self):
        result = await self.coll.insert({"x": 1})
        self.assertEqual(1, len(result.inserted_ids))
        result = await self.coll.save([{"x": 2}, {"x": 3}])
        self.assertEqual(2, len(result.inserted_ids))
        self.assertEqual(3, await self.coll.count())

    async def test_duplicate_key_error(self):
        await self.coll.insert_one({"_id": 1})
        with self.assertRaises(DuplicateKeyError) as ctx:
            await self.coll.insert_one({"_id": 1})
        self.assertEqual(11000, ctx.exception.code)
        self.assertEqual(1, len(self.server.docs("test.test")))

    async def test_update_one(self):
        await self.coll.insert_many([{"x": 1}, {"x": 1}])
        result = await self.coll.update_one({"x": 1}, {"$set": {"y": 2}})
        self.assertIsInstance(result, UpdateResult)
        self.assertEqual(1, result.matched_count)
        self.assertEqual(1, result.modified_count)
        self.assertIsNone(result.upserted_id)
        self.assertEqual(1, await self.coll.count({"y": 2}))

        op = self.server.received("update")[0]["updates"][0]
        self.assertEqual(
            {"q": {"x": 1}, "u": {"$set": {"y": 2}}, "multi": False, "upsert": False}, op
        )

    async def test_update_many(self):
        await self.coll.insert_many([{"x": 1}, {"x": 1}, {"x": 2}])
        result = await self.coll.update_many({"x": 1}, {"$inc": {"x": 10}})
        self.assertEqual(2, result.matched_count)
        self.assertEqual(2, result.modified_count)
        self.assertEqual(2, await self.coll.count({"x": 11}))

    async def test_update_upsert(self):
        result = await self.coll.update_many({"x": 5}, {"$set": {"y": 1}}, upsert=True)
        self.assertIsNotNone(result.upserted_id)
        self.assertEqual(0, result.matched_count)
        doc = await self.coll.find_one({"x": 5})
        self.assertEqual({"_id": result.upserted_id, "x": 5, "y": 1}, doc)

    async def test_update_validation(self):
        with self.assertRaises(ValueError):
            await self.coll.update_one({}, {})
        with self.assertRaises(ValueError):
            await self.coll.update_one({}, {"x": 1})
        with self.assertRaises(ValueError):
            await self.coll.update_many({}, [])
        with self.assertRaises(TypeError):
            await self.coll.update_one([], {"$set": {"x": 1}})  # type: ignore[arg-type]
        self.assertEqual([], self.server.received("update"))

    async def test_delete(self):
        await self.coll.insert_many([{"x": 1}, {"x": 1}, {"x": 1}, {"x": 2}])
        result = await self.coll.delete_one({"x": 1})
        self.assertIsInstance(result, DeleteResult)
        self.assertEqual(1, result.deleted_count)
        result = await self.coll.delete_many({"x": 1})
        self.assertEqual(2, result.deleted_count)
        result = await self.coll.delete({})
        self.assertEqual(1, result.deleted_count)
        self.assertEqual([], self.server.docs("test.test"))

        limits = [cmd["deletes"][0]["limit"] for cmd in self.server.received("delete")]
        self.assertEqual([1, 0, 0], limits)

    async def test_find_one(self):
        await self.coll.insert_many([{"_id": 7, "name": "a"}, {"_id": 8, "name": "b"}])
        self.assertEqual({"_id": 7, "name": "a"}, await self.coll.find_one(7))
        self.assertEqual({"_id": 8, "name": "b"}, await self.coll.find_one({"name": "b"}))
        self.assertEqual({"_id": 7, "name": "a"}, await self.coll.find_one())
        self.assertIsNone(await self.coll.find_one({"name": "z"}))
        self.assertEqual(
            {"name": "b"}, await self.coll.find_one(8, projection={"_id": 0, "name": 1})
        )
        for cmd in self.server.received("find"):
            self.assertEqual(1, cmd["limit"])

    async def test_find_one_and_update(self):
        await self.coll.insert_one({"_id": 1, "count": 1})
        before = await self.coll.find_one_and_update({"_id": 1}, {"$inc": {"count": 1}})
        self.assertEqual({"_id": 1, "count": 1}, before)
        after = await self.coll.find_one_and_update(
            {"_id": 1}, {"$inc": {"count": 1}}, return_document=ReturnDocument.AFTER
        )
        self.assertEqual({"_id": 1, "count": 3}, after)
        self.assertIsNone(await self.coll.find_one_and_update({"_id": 2}, {"$set": {"x": 1}}))

        upserted = await self.coll.find_one_and_update(
            {"_id": 2}, {"$set": {"x": 1}}, return_document=ReturnDocument.AFTER, upsert=True
        )
        self.assertEqual({"_id": 2, "x": 1}, upserted)

        cmd = self.server.received("findAndModify")[0]
        self.assertEqualCommand(
            {
                "findAndModify": "test",
                "query": {"_id": 1},
                "update": {"$inc": {"count": 1}},
                "new": False,
                "upsert": False,
            },
            cmd,
        )
        with self.assertRaises(ValueError):
            await self.coll.find_one_and_update({}, {"$set": {"x": 1}}, return_document=1)  # type: ignore[arg-type]

    async def test_find_one_and_update_sort(self):
        await self.coll.insert_many([{"_id": 1, "x": 1}, {"_id": 2, "x": 2}])
        doc = await self.coll.find_one_and_update(
            {}, {"$set": {"y": 1}}, sort=[("x", DESCENDING)], projection={"x": 1}
        )
        self.assertEqual({"_id": 2, "x": 2}, doc)
        cmd = self.server.received("findAndModify")[0]
        self.assertEqual({"x": -1}, cmd["sort"])
        self.assertEqual({"x": 1}, cmd["fields"])

    async def test_find_and_modify_remove(self):
        await self.coll.insert_one({"_id": 1})
        self.assertEqual({"_id": 1}, await self.coll.find_and_modify({"_id": 1}, remove=True))
        self.assertEqual([], self.server.docs("test.test"))

    async def test_find_by_id(self):
        oid = (await self.coll.insert_one({"x": 1})).inserted_id
        doc = await self.coll.find_by_id(str(oid))
        self.assertEqual({"_id": oid, "x": 1}, doc)
        self.assertEqual(doc, await self.coll.find_by_id(oid))
        self.assertEqual({"x": 1}, await self.coll.find_by_id(oid, {"_id": 0}))
        self.assertIsNone(await self.coll.find_by_id(ObjectId()))
        query = self.server.received("find")[0]["filter"]
        self.assertIsInstance(query["_id"], ObjectId)
        with self.assertRaises(InvalidId):
            await self.coll.find_by_id("not an id")

    async def test_find_by_id_and_update(self):
        oid = (await self.coll.insert_one({"x": 1})).inserted_id
        doc = await self.coll.find_by_id_and_update(
            str(oid), {"$inc": {"x": 1}}, return_document=ReturnDocument.AFTER
        )
        self.assertEqual({"_id": oid, "x": 2}, doc)
        self.assertEqual(oid, self.server.received("findAndModify")[0]["query"]["_id"])
        self.assertIsNone(await self.coll.find_by_id_and_update(ObjectId(), {"$set": {"x": 0}}))

    async def test_delete_by_id(self):
        oid = (await self.coll.insert_one({"x": 1})).inserted_id
        self.assertEqual(1, (await self.coll.delete_by_id(str(oid))).deleted_count)
        self.assertEqual(0, (await self.coll.delete_by_id(oid)).deleted_count)
        self.assertEqual(1, self.server.received("delete")[0]["deletes"][0]["limit"])

    async def test_hex_string_id_in_filter(self):
        first = (await self.coll.insert_one({"x": 1})).inserted_id
        second = (await self.coll.insert_one({"x": 2})).inserted_id
        await self.coll.insert_one({"_id": "plain", "x": 3})
        query = {"_id": str(first)}
        self.assertEqual(1, (await self.coll.find_one(query))["x"])
        self.assertEqual({"_id": str(first)}, query)
        self.assertEqual(2, (await self.coll.find_one(str(second)))["x"])
        self.assertEqual(3, (await self.coll.find_one({"_id": "plain"}))["x"])
        self.assertEqual(1, await self.coll.count({"_id": str(first)}))
        self.assertEqual(
            2, await self.coll.count_documents({"_id": {"$in": [str(second), "plain"]}})
        )
        await self.coll.update_one({"_id": str(second)}, {"$set": {"y": True}})
        self.assertTrue((await self.coll.find_one(second))["y"])
        ids = [str(first), str(second)]
        await self.coll.delete_many({"_id": {"$in": ids}})
        self.assertEqual([str(first), str(second)], ids)
        self.assertEqual(["plain"], [doc["_id"] for doc in await self.coll.find().to_list()])

    async def test_distinct(self):
        await self.coll.insert_many(
            [{"a": 1, "b": "x"}, {"a": 2, "b": "x"}, {"a": 1, "b": "y"}, {"b": "z"}]
        )
        self.assertEqual([1, 2], sorted(await self.coll.distinct("a")))
        self.assertEqual(["x"], await self.coll.distinct("b", {"a": 2}))
        with self.assertRaises(TypeError):
            await self.coll.distinct(1)  # type: ignore[arg-type]

    async def test_count(self):
        self.assertEqual(0, await self.coll.count())
        await self.coll.insert_many([{"x": 1}, {"x": 1}, {"x": 2}])
        self.assertEqual(3, await self.coll.count())
        self.assertEqual(2, await self.coll.count({"x": 1}))

    async def test_count_documents(self):
        self.assertEqual(0, await self.coll.count_documents({}))
        await self.coll.insert_many([{"x": i} for i in range(10)])
        self.assertEqual(10, await self.coll.count_documents({}))
        self.assertEqual(3, await self.coll.count_documents({"x": {"$gte": 7}}))
        self.assertEqual(5, await self.coll.count_documents({}, skip=5))
        self.assertEqual(4, await self.coll.count_documents({}, skip=2, limit=4))

        pipeline = self.server.received("aggregate")[-1]["pipeline"]
        self.assertEqual(
            [
                {"$match": {}},
                {"$skip": 2},
                {"$limit": 4},
                {"$group": {"_id": 1, "n": {"$sum": 1}}},
            ],
            pipeline,
        )

    async def test_estimated_document_count(self):
        self.assertEqual(0, await self.coll.estimated_document_count())
        await self.coll.insert_many([{"x": i} for i in range(3)])
        self.assertEqual(3, await self.coll.estimated_document_count())

    async def test_aggregate(self):
        await self.coll.insert_many([{"x": i} for i in range(5)])
        cursor = await self.coll.aggregate(
            [{"$match": {"x": {"$gt": 1}}}, {"$sort": {"x": -1}}, {"$project": {"_id": 0}}]
        )
        self.assertEqual([{"x": 4}, {"x": 3}, {"x": 2}], await cursor.to_list())
        with self.assertRaises(TypeError):
            await self.coll.aggregate({"$match": {}})  # type: ignore[arg-type]

    async def test_create_and_list_indexes(self):
        self.assertEqual("name_-1", await self.coll.create_index([("name", DESCENDING)]))
        self.assertEqual("x_1", await self.coll.create_index("x"))
        names = await self.coll.create_indexes(
            [
                {"key": [("a", ASCENDING), ("b", DESCENDING)]},
                {"key": {"c": 1}, "name": "c_idx", "unique": True},
            ]
        )
        self.assertEqual(["a_1_b_-1", "c_idx"], names)

        cursor = await self.coll.list_indexes()
        indexes = await cursor.to_list()
        self.assertEqual(
            ["_id_", "name_-1", "x_1", "a_1_b_-1", "c_idx"], [ix["name"] for ix in indexes]
        )
        self.assertEqual({"a": 1, "b": -1}, indexes[3]["key"])
        self.assertTrue(indexes[4]["unique"])

        with self.assertRaises(TypeError):
            await self.coll.create_indexes({"key": "x"})  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            await self.coll.create_indexes([{"name": "no_key"}])

    async def test_list_indexes_missing_collection(self):
        cursor = await self.db.missing.list_indexes()
        self.assertEqual([], await cursor.to_list())
        self.assertFalse(cursor.alive)

    async def test_drop_index(self):
        await self.coll.create_index("x")
        await self.coll.create_index([("y", ASCENDING), ("z", ASCENDING)])
        await self.coll.drop_index("x_1")
        await self.coll.drop_index([("y", ASCENDING), ("z", ASCENDING)])
        indexes = await (await self.coll.list_indexes()).to_list()
        self.assertEqual(["_id_"], [ix["name"] for ix in indexes])

        with self.assertRaises(OperationFailure) as ctx:
            await self.coll.drop_index("nope_1")
        self.assertEqual(27, ctx.exception.code)
        with self.assertRaises(TypeError):
            await self.coll.drop_index(5)

        # Missing collections are not an error.
        await self.db.missing.drop_index("x_1")
        await self.db.missing.drop_indexes()

    async def test_drop_indexes(self):
        await self.coll.create_index("x")
        await self.coll.drop_indexes()
        indexes = await (await self.coll.list_indexes()).to_list()
        self.assertEqual(["_id_"], [ix["name"] for ix in indexes])
        self.assertEqual("*", self.server.received("dropIndexes")[-1]["index"])

    async def test_drop(self):
        await self.coll.insert_one({"x": 1})
        await self.coll.drop()
        self.assertEqual([], self.server.docs("test.test"))
        self.assertEqual(0, await self.coll.count())


class TestInsertManyBatches(AsyncMockServerTest):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.server = await MockServer(max_write_batch_size=2).start()
        self.addAsyncCleanup(self.server.stop)
        self.client, self.db = await self.connected_client()
        self.coll = self.db.test

    async def test_split_into_batches(self):
        result = await self.coll.insert_many([{"x": i} for i in range(5)])
        self.assertEqual(5, result.inserted_count)
        sizes = [len(cmd["documents"]) for cmd in self.server.received("insert")]
        self.assertEqual([2, 2, 1], sizes)

    async def test_ordered_error_index_is_offset(self):
        await self.coll.insert_one({"_id": 3})
        with self.assertRaises(BulkWriteError) as ctx:
            await self.coll.insert_many([{"_id": i} for i in range(5)])
        details = ctx.exception.details
        self.assertEqual(3, details["n"])
        self.assertEqual(1, len(details["writeErrors"]))
        self.assertEqual(3, details["writeErrors"][0]["index"])
        self.assertEqual(11000, details["writeErrors"][0]["code"])
        # The third batch is never sent.
        self.assertEqual(3, len(self.server.received("insert")))

    async def test_unordered_error_indexes_are_offset(self):
        await self.coll.insert_many([{"_id": 1}, {"_id": 3}])
        with self.assertRaises(BulkWriteError) as ctx:
            await self.coll.insert_many([{"_id": i} for i in range(5)], ordered=False)
        details = ctx.exception.details
        self.assertEqual(3, details["n"])
        self.assertEqual([1, 3], [err["index"] for err in details["writeErrors"]])
        self.assertEqual(5, len(self.server.docs("test.test")))


class TestDatabase(AsyncMockServerTest):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client, self.db = await self.connected_client()

    async def test_list_collection_names(self):
        self.assertEqual([], await self.db.list_collection_names())
        await self.db.a.insert_one({"x": 1})
        await self.db.b.insert_one({"x": 1})
        await self.client.other.c.insert_one({"x": 1})
        self.assertEqual(["a", "b"], sorted(await self.db.list_collection_names()))
        self.assertEqual(["b"], await self.db.list_collection_names(filter={"name": "b"}))
        self.assertTrue(self.server.received("listCollections")[0]["nameOnly"])

    async def test_drop_collection(self):
        await self.db.a.insert_one({"x": 1})
        await self.db.drop_collection("a")
        self.assertEqual([], await self.db.list_collection_names())
        await self.db.drop_collection(self.db.missing)
        with self.assertRaises(TypeError):
            await self.db.drop_collection(5)  # type: ignore[arg-type]

    async def test_command(self):
        self.assertEqual({"ok": 1}, await self.db.command("ping"))
        info = await self.db.command({"buildInfo": 1})
        self.assertEqual("7.0.0", info["version"])
        with self.assertRaises(OperationFailure) as ctx:
            await self.db.command("notACommand")
        self.assertEqual(59, ctx.exception.code)
        reply = await self.db.command("notACommand", check=False)
        self.assertEqual(0, reply["ok"])
        reply = await self.db.command("notACommand", allowable_errors=[59])
        self.assertEqual(59, reply["code"])

    async def test_command_kwargs(self):
        await self.db.command("count", "test", query={"x": 1})
        cmd = self.server.received("count")[0]
        self.assertEqualCommand({"count": "test", "query": {"x": 1}}, cmd)

    def test_database_equality(self):
        self.assertIs(self.db, self.client.test)
        self.assertEqual(self.db, self.client["test"])
        self.assertNotEqual(self.db, self.client.other)
        self.assertEqual("test", self.db.name)
        self.assertIs(self.client, self.db.client)


if __name__ == "__main__":
    unittest.main()
