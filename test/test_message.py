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

"""Tests for OP_MSG framing and the command generators."""
from __future__ import annotations

import struct
import sys

sys.path[0:0] = [""]

import unittest

import bson
from bson import CodecOptions, Int64

from mongowire import message
from mongowire.errors import CursorNotFound, OperationFailure, ProtocolError
from mongowire.read_preferences import ReadPreference
from test import MongoWireTestCase

_OPTS = CodecOptions()


def _split_sections(body: bytes) -> tuple[int, dict, dict]:
    """Decode an OP_MSG body into (flags, kind 0 document, kind 1 sequences)."""
    (flags,) = struct.unpack_from("<I", body)
    pos = 4
    doc: dict = {}
    sequences: dict = {}
    while pos < len(body):
        kind = body[pos]
        pos += 1
        (size,) = struct.unpack_from("<i", body, pos)
        if kind == 0:
            doc = bson.decode(body[pos : pos + size])
            pos += size
        else:
            end = pos + size
            nul = body.index(b"\x00", pos + 4)
            identifier = body[pos + 4 : nul].decode()
            pos = nul + 1
            docs = []
            while pos < end:
                (doc_size,) = struct.unpack_from("<i", body, pos)
                docs.append(bson.decode(body[pos : pos + doc_size]))
                pos += doc_size
            sequences[identifier] = docs
    return flags, doc, sequences


class TestOpMsg(MongoWireTestCase):
    def test_header(self):
        msg, _, _ = message._op_msg(7, 0, {"ping": 1}, "admin", None, _OPTS)
        length, request_id, response_to, op_code = struct.unpack_from("<iiii", msg)
        self.assertEqual(length, len(msg))
        self.assertEqual(request_id, 7)
        self.assertEqual(response_to, 0)
        self.assertEqual(op_code, message.OP_MSG)

    def test_db_added_to_body(self):
        cmd = {"ping": 1}
        msg, _, _ = message._op_msg(1, 0, cmd, "admin", None, _OPTS)
        flags, doc, sequences = _split_sections(msg[16:])
        self.assertEqual(flags, 0)
        self.assertEqual(doc, {"ping": 1, "$db": "admin"})
        self.assertEqual(sequences, {})

    def test_insert_documents_in_sequence(self):
        docs = [{"_id": 1, "x": "a"}, {"_id": 2, "x": "b"}]
        cmd = {"insert": "coll", "ordered": True, "documents": docs}
        msg, total_size, max_doc_size = message._op_msg(1, 0, cmd, "db", None, _OPTS)
        _, doc, sequences = _split_sections(msg[16:])
        self.assertEqual(doc, {"insert": "coll", "ordered": True, "$db": "db"})
        self.assertEqual(sequences, {"documents": docs})
        self.assertEqual(max_doc_size, max(len(bson.encode(d)) for d in docs))
        self.assertGreater(total_size, max_doc_size)
        # The caller's command is left intact.
        self.assertIs(cmd["documents"], docs)

    def test_update_and_delete_sequences(self):
        for name, field in (("update", "updates"), ("delete", "deletes")):
            cmd = {name: "coll", field: [{"q": {}}]}
            msg, _, _ = message._op_msg(1, 0, cmd, "db", None, _OPTS)
            _, doc, sequences = _split_sections(msg[16:])
            self.assertNotIn(field, doc)
            self.assertEqual(sequences, {field: [{"q": {}}]})

    def test_read_preference(self):
        cmd = {"find": "coll"}
        msg, _, _ = message._op_msg(1, 0, cmd, "db", ReadPreference.PRIMARY, _OPTS)
        self.assertNotIn("$readPreference", _split_sections(msg[16:])[1])

        cmd = {"find": "coll"}
        msg, _, _ = message._op_msg(1, 0, cmd, "db", ReadPreference.SECONDARY, _OPTS)
        self.assertEqual(
            _split_sections(msg[16:])[1]["$readPreference"], {"mode": "secondary"}
        )


class TestUnpackReply(MongoWireTestCase):
    def test_op_msg(self):
        body = struct.pack("<IB", 0, 0) + bson.encode({"ok": 1, "n": 3})
        reply = message._OpMsg.unpack(body)
        self.assertEqual(reply.unpack_response(codec_options=_OPTS), [{"ok": 1, "n": 3}])

    def test_op_msg_more_to_come(self):
        body = struct.pack("<IB", 2, 0) + bson.encode({"ok": 1})
        with self.assertRaisesRegex(ProtocolError, "Unsupported OP_MSG flags: 0x2"):
            message._OpMsg.unpack(body)

    def test_op_msg_too_short(self):
        with self.assertRaises(ProtocolError):
            message._OpMsg.unpack(b"\x00\x00")

    def test_op_msg_checksum(self):
        body = struct.pack("<IB", 1, 0) + bson.encode({"ok": 1})
        with self.assertRaisesRegex(ProtocolError, "checksumPresent"):
            message._OpMsg.unpack(body)

    def test_op_msg_payload_type(self):
        body = struct.pack("<IB", 0, 1) + bson.encode({"ok": 1})
        with self.assertRaisesRegex(ProtocolError, "payload type"):
            message._OpMsg.unpack(body)

    def test_op_msg_multiple_sections(self):
        body = struct.pack("<IB", 0, 0) + bson.encode({"ok": 1}) + b"\x00" + bson.encode({})
        with self.assertRaisesRegex(ProtocolError, ">1 section"):
            message._OpMsg.unpack(body)

    def test_op_reply(self):
        docs = bson.encode({"ok": 1})
        body = struct.pack("<iqii", 0, 0, 0, 1) + docs
        reply = message._OpReply.unpack(body)
        self.assertEqual(1, reply.number_returned)
        self.assertEqual(reply.unpack_response(codec_options=_OPTS), [{"ok": 1}])

    def test_op_reply_cursor_not_found(self):
        body = struct.pack("<iqii", 1, 0, 0, 0)
        reply = message._OpReply.unpack(body)
        with self.assertRaises(CursorNotFound):
            reply.unpack_response(cursor_id=10)

    def test_op_reply_query_failure(self):
        docs = bson.encode({"$err": "bad query", "code": 2})
        body = struct.pack("<iqii", 2, 0, 0, 1) + docs
        reply = message._OpReply.unpack(body)
        with self.assertRaises(OperationFailure) as ctx:
            reply.unpack_response()
        self.assertEqual(ctx.exception.code, 2)

    def test_unpack_map(self):
        self.assertEqual(sorted(message._UNPACK_REPLY), [message.OP_REPLY, message.OP_MSG])


class TestCommandGenerators(unittest.TestCase):
    def test_find(self):
        cmd = message._gen_find_command(
            "coll", {"a": 1}, {"_id": 0}, 2, 5, 10, {"name": -1}
        )
        self.assertEqual(
            cmd,
            {
                "find": "coll",
                "filter": {"a": 1},
                "projection": {"_id": 0},
                "sort": {"name": -1},
                "skip": 2,
                "limit": 5,
                "batchSize": 10,
            },
        )
        self.assertEqual(next(iter(cmd)), "find")

    def test_find_defaults_omitted(self):
        self.assertEqual(
            message._gen_find_command("coll", {}, None, 0, 0, 0),
            {"find": "coll", "filter": {}},
        )

    def test_find_negative_limit(self):
        cmd = message._gen_find_command("coll", {}, None, 0, -3, 0)
        self.assertEqual(cmd["limit"], 3)
        self.assertTrue(cmd["singleBatch"])

    def test_get_more(self):
        cmd = message._gen_get_more_command(42, "coll", 5)
        self.assertEqual(cmd, {"getMore": 42, "collection": "coll", "batchSize": 5})
        self.assertIsInstance(cmd["getMore"], Int64)
        self.assertNotIn("batchSize", message._gen_get_more_command(42, "coll", 0))

    def test_kill_cursors(self):
        cmd = message._gen_kill_cursors_command([1, 2], "coll")
        self.assertEqual(cmd, {"killCursors": "coll", "cursors": [1, 2]})
        self.assertTrue(all(isinstance(c, Int64) for c in cmd["cursors"]))


if __name__ == "__main__":
    unittest.main()
