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
"""Test the cursor module."""
from __future__ import annotations

import asyncio
import gc
import math
import sys

sys.path[0:0] = [""]

import unittest

from bson import Int64

from mongowire import DESCENDING
from mongowire.asynchronous.command_cursor import AsyncCommandCursor
from mongowire.asynchronous.cursor import AsyncCursor
from mongowire.errors import CursorNotFound, InvalidOperation, OperationFailure
from test.asynchronous import AsyncMockServerTest

_IS_SYNC = False


class TestCursor(AsyncMockServerTest):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client, self.db = await self.connected_client()
        self.coll = self.db.test

    async def _insert(self, n):
        await self.coll.insert_many([{"_id": i, "name": f"doc{i}"} for i in range(n)])

    async def _round_trips(self, n, batch_size):
        del self.server.commands[:]
        docs = await self.coll.find().batch_size(batch_size).to_list()
        self.assertEqual(list(range(n)), [doc["_id"] for doc in docs])
        self.assertEqual(1, len(self.server.received("find")))
        return len(self.server.received("find")) + len(self.server.received("getMore"))

    async def test_round_trips(self):
        await self._insert(10)
        self.assertEqual(math.ceil(10 / 3), await self._round_trips(10, 3))
        self.assertEqual(math.ceil(10 / 5), await self._round_trips(10, 5))
        self.assertEqual(1, await self._round_trips(10, 20))

    async def test_round_trips_exact_multiple(self):
        await self._insert(9)
        self.assertEqual(3, await self._round_trips(9, 3))

    async def test_default_batch_size(self):
        await self._insert(150)
        docs = await self.coll.find().to_list()
        self.assertEqual(150, len(docs))
        self.assertEqual(1, len(self.server.received("getMore")))
        self.assertNotIn("batchSize", self.server.received("find")[0])

    async def test_get_more_command(self):
        await self._insert(5)
        cursor = self.coll.find().batch_size(2)
        await cursor.next()
        cursor_id = cursor.cursor_id
        self.assertTrue(cursor_id)
        self.assertEqual(("127.0.0.1", self.server.port), cursor.address)
        await cursor.to_list()
        cmd = self.server.received("getMore")[0]
        self.assertEqual(cursor_id, cmd["getMore"])
        self.assertEqual("test", cmd["collection"])
        self.assertEqual(2, cmd["batchSize"])
        self.assertEqual("test", cmd["$db"])
        self.assertEqual(0, cursor.cursor_id)
        self.assertFalse(cursor.alive)

    async def test_sort_skip_limit(self):
        await self.coll.insert_many([{"name": "a"}, {"name": "b"}, {"name": "c"}])
        cursor = self.coll.find({}, {"_id": 0}).sort("name", DESCENDING).skip(1).limit(1)
        self.assertEqual([{"name": "b"}], await cursor.to_list())
        cmd = self.server.received("find")[0]
        self.assertEqualCommand(
            {
                "find": "test",
                "filter": {},
                "projection": {"_id": 0},
                "sort": {"name": -1},
                "skip": 1,
                "limit": 1,
            },
            cmd,
        )

    async def test_find_arguments(self):
        await self.coll.insert_many([{"x": i} for i in range(5)])
        docs = await self.coll.find(
            {"x": {"$lt": 4}}, skip=1, limit=2, sort=[("x", DESCENDING)]
        ).to_list()
        self.assertEqual([2, 1], [doc["x"] for doc in docs])

    async def test_limit_is_enforced(self):
        await self._insert(10)
        cursor = self.coll.find().limit(5).batch_size(2)
        docs = await cursor.to_list()
        self.assertEqual(5, len(docs))
        self.assertEqual(5, cursor.retrieved)
        self.assertEqual([2, 1], [cmd["batchSize"] for cmd in self.server.received("getMore")])
        self.assertEqual([], self.server.received("killCursors"))

    async def test_negative_limit_is_a_single_batch(self):
        await self._insert(10)
        docs = await self.coll.find().limit(-5).batch_size(2).to_list()
        self.assertEqual([0, 1], [doc["_id"] for doc in docs])
        cmd = self.server.received("find")[0]
        self.assertEqual(5, cmd["limit"])
        self.assertIs(True, cmd["singleBatch"])
        self.assertEqual(2, cmd["batchSize"])
        self.assertEqual([], self.server.received("getMore"))
        self.assertEqual([], self.server.received("killCursors"))

        del self.server.commands[:]
        docs = await self.coll.find().limit(-3).to_list()
        self.assertEqual([0, 1, 2], [doc["_id"] for doc in docs])
        self.assertEqual([], self.server.received("getMore"))

    async def test_negative_limit_closes_open_cursor(self):
        self.server.reply_to(
            "find",
            {"cursor": {"id": Int64(99), "ns": "admin.test", "firstBatch": [{"_id": 0}]}, "ok": 1},
        )
        cursor = self.coll.find().limit(-1)
        self.assertEqual([{"_id": 0}], await cursor.to_list())
        self.assertFalse(cursor.alive)
        self.assertEqual([], self.server.received("getMore"))
        self.assertEqual([[99]], [cmd["cursors"] for cmd in self.server.received("killCursors")])

    async def test_skip_past_end(self):
        await self._insert(3)
        self.assertEqual([], await self.coll.find().skip(5).to_list())
        self.assertEqual([], await self.coll.find().sort("_id", DESCENDING).skip(3).to_list())

    async def test_close_kills_cursor_once(self):
        await self._insert(10)
        cursor = self.coll.find().batch_size(3)
        await cursor.next()
        cursor_id = cursor.cursor_id
        self.assertIn(cursor_id, self.server.cursors)
        self.assertTrue(cursor.alive)
        await cursor.close()
        await cursor.close()
        self.assertFalse(cursor.alive)
        killed = self.server.received("killCursors")
        self.assertEqual(1, len(killed))
        self.assertEqual([cursor_id], killed[0]["cursors"])
        self.assertEqual("test", killed[0]["killCursors"])
        self.assertNotIn(cursor_id, self.server.cursors)
        with self.assertRaises(StopAsyncIteration):
            await cursor.next()

    async def test_close_exhausted_cursor(self):
        await self._insert(3)
        cursor = self.coll.find()
        self.assertEqual(3, len(await cursor.to_list()))
        await cursor.close()
        self.assertEqual([], self.server.received("killCursors"))

    async def test_close_unstarted_cursor(self):
        cursor = self.coll.find()
        await cursor.close()
        self.assertEqual([], self.server.received("find"))
        self.assertEqual([], await cursor.to_list())

    async def test_context_manager(self):
        await self._insert(10)
        async with self.coll.find().batch_size(2) as cursor:
            self.assertEqual(0, (await cursor.next())["_id"])
        self.assertEqual(1, len(self.server.received("killCursors")))

    async def test_cannot_chain_after_iteration(self):
        await self._insert(3)
        cursor = self.coll.find().sort("_id").skip(1).limit(2).batch_size(1)
        self.assertEqual(1, (await cursor.next())["_id"])
        self.assertRaises(InvalidOperation, cursor.limit, 5)
        self.assertRaises(InvalidOperation, cursor.skip, 0)
        self.assertRaises(InvalidOperation, cursor.batch_size, 10)
        self.assertRaises(InvalidOperation, cursor.sort, "name", DESCENDING)
        self.assertEqual(1, cursor._skip)
        self.assertEqual(2, cursor._limit)
        self.assertEqual(1, cursor._batch_size)
        self.assertEqual({"_id": 1}, cursor._ordering)
        # The rejected calls did not change what the cursor returns.
        self.assertEqual([2], [doc["_id"] for doc in await cursor.to_list()])

    def test_option_validation(self):
        cursor = self.coll.find()
        self.assertIsInstance(cursor, AsyncCursor)
        self.assertIs(self.coll, cursor.collection)
        self.assertRaises(TypeError, cursor.limit, "1")
        self.assertRaises(TypeError, cursor.skip, "1")
        self.assertRaises(ValueError, cursor.skip, -1)
        self.assertRaises(TypeError, cursor.batch_size, "1")
        self.assertRaises(ValueError, cursor.batch_size, -1)
        self.assertEqual(cursor, cursor.limit(-3))
        self.assertIn("test.test", repr(cursor))

    async def test_async_for(self):
        await self._insert(7)
        ids = [doc["_id"] async for doc in self.coll.find().batch_size(2)]
        self.assertEqual(list(range(7)), ids)

    async def test_try_next(self):
        await self._insert(1)
        cursor = self.coll.find()
        self.assertEqual(0, (await cursor.try_next())["_id"])
        self.assertIsNone(await cursor.try_next())

    async def test_to_list_length(self):
        await self._insert(10)
        cursor = self.coll.find().batch_size(3)
        self.assertEqual([0, 1, 2, 3], [doc["_id"] for doc in await cursor.to_list(4)])
        self.assertEqual(list(range(4, 10)), [doc["_id"] for doc in await cursor.to_list()])
        with self.assertRaises(ValueError):
            await cursor.to_list(0)

    async def test_cursor_not_found(self):
        await self._insert(5)
        cursor = self.coll.find().batch_size(2)
        await cursor.to_list(2)
        self.server.cursors.clear()
        with self.assertRaises(CursorNotFound):
            await cursor.next()
        self.assertFalse(cursor.alive)
        await cursor.close()
        self.assertEqual([], self.server.received("killCursors"))

    async def test_cancelled_get_more_is_not_lost(self):
        await self._insert(3)

        async def slow(cmd):
            await asyncio.sleep(0.2)

        self.server.reply_to("getMore", slow)
        cursor = self.coll.find().batch_size(1)
        self.assertEqual(0, (await cursor.next())["_id"])
        task = asyncio.ensure_future(cursor.next())
        await asyncio.sleep(0.05)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(1, (await cursor.next())["_id"])
        self.assertEqual(2, (await cursor.next())["_id"])
        self.assertEqual(2, len(self.server.received("getMore")))

    async def test_abandoned_failed_fetch_is_retrieved(self):
        await self._insert(3)
        loop = asyncio.get_running_loop()
        contexts = []
        self.addCleanup(loop.set_exception_handler, loop.get_exception_handler())
        loop.set_exception_handler(lambda loop, context: contexts.append(context))

        async def failing(cmd):
            await asyncio.sleep(0.1)
            return {"ok": 0, "errmsg": "getMore failed", "code": 2, "codeName": "BadValue"}

        self.server.reply_to("getMore", failing)
        cursor = self.coll.find().batch_size(1)
        await cursor.next()
        task = asyncio.ensure_future(cursor.next())
        await asyncio.sleep(0.02)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        pending = cursor._pending
        await asyncio.wait([pending])
        self.assertTrue(pending.done())
        # The cursor is dropped without another call to next().
        del cursor, task, pending
        gc.collect()
        await asyncio.sleep(0)
        self.assertEqual(
            [], [c for c in contexts if "never retrieved" in c.get("message", "")]
        )

    async def test_failed_fetch_surfaces_on_next_call(self):
        await self._insert(3)

        async def failing(cmd):
            await asyncio.sleep(0.1)
            return {"ok": 0, "errmsg": "getMore failed", "code": 2, "codeName": "BadValue"}

        self.server.reply_to("getMore", failing)
        cursor = self.coll.find().batch_size(1)
        await cursor.next()
        task = asyncio.ensure_future(cursor.next())
        await asyncio.sleep(0.02)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        await asyncio.wait([cursor._pending])
        with self.assertRaisesRegex(OperationFailure, "getMore failed"):
            await cursor.next()


class TestCommandCursor(AsyncMockServerTest):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.client, self.db = await self.connected_client()
        self.coll = self.db.test

    async def test_aggregate_batches(self):
        await self.coll.insert_many([{"x": i} for i in range(7)])
        cursor = await self.coll.aggregate([{"$match": {}}], batch_size=2)
        self.assertIsInstance(cursor, AsyncCommandCursor)
        self.assertEqual("test.test", cursor.namespace)
        self.assertEqual(7, len(await cursor.to_list()))
        self.assertEqual(math.ceil(7 / 2) - 1, len(self.server.received("getMore")))
        self.assertEqual({"batchSize": 2}, self.server.received("aggregate")[0]["cursor"])

    async def test_batch_size(self):
        await self.coll.insert_many([{"x": i} for i in range(5)])
        cursor = await self.coll.aggregate([], batch_size=1)
        cursor.batch_size(4)
        self.assertEqual(5, len(await cursor.to_list()))
        self.assertEqual([4], [cmd["batchSize"] for cmd in self.server.received("getMore")])
        self.assertRaises(TypeError, cursor.batch_size, "1")
        self.assertRaises(ValueError, cursor.batch_size, -1)

    async def test_close(self):
        await self.coll.insert_many([{"x": i} for i in range(5)])
        async with await self.coll.aggregate([], batch_size=2) as cursor:
            await cursor.next()
        self.assertEqual(1, len(self.server.received("killCursors")))
        self.assertFalse(cursor.alive)


if __name__ == "__main__":
    unittest.main()
