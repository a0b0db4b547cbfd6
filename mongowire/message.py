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

"""Tools for creating `messages
<https://www.mongodb.com/docs/manual/reference/mongodb-wire-protocol/>`_ to be sent to
MongoDB.

Requests are always framed as OP_MSG (opcode 2013): a flags word, one kind 0
section holding the command body, and optionally one kind 1 section holding
a document sequence (``documents``, ``updates`` or ``deletes``). Replies may be
OP_MSG or the legacy OP_REPLY (opcode 1).

.. note:: This module is for internal use and is generally not needed by
   application developers.
"""
from __future__ import annotations

import struct
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Mapping,
    MutableMapping,
    NoReturn,
    Optional,
    Union,
)

import bson
from bson import CodecOptions
from bson.int64 import Int64

from mongowire.common import _UNICODE_REPLACE_CODEC_OPTIONS
from mongowire.errors import CursorNotFound, DocumentTooLarge, OperationFailure, ProtocolError

if TYPE_CHECKING:
    from mongowire.read_preferences import _ServerMode

MAX_INT32 = 2147483647
MIN_INT32 = -2147483648

# Overhead allowed for encoded command documents.
_COMMAND_OVERHEAD = 16382

OP_REPLY = 1
OP_MSG = 2013

_FIELD_MAP = {"insert": "documents", "update": "updates", "delete": "deletes"}

_UNPACK_HEADER = struct.Struct("<iiii").unpack
_pack_header = struct.Struct("<iiii").pack
_pack_int = struct.Struct("<i").pack
_pack_op_msg_flags_type = struct.Struct("<IB").pack
_pack_byte = struct.Struct("<B").pack


def _convert_exception(exception: Exception) -> dict[str, Any]:
    """Convert an Exception into a failure document for logging."""
    return {"errmsg": str(exception), "errtype": exception.__class__.__name__}


def _raise_document_too_large(operation: str, doc_size: int, max_size: int) -> NoReturn:
    """Internal helper for raising DocumentTooLarge."""
    if operation == "insert":
        raise DocumentTooLarge(
            "BSON document too large (%d bytes)"
            " - the connected server supports"
            " BSON document sizes up to %d"
            " bytes." % (doc_size, max_size)
        )
    else:
        # There's nothing intelligent we can say
        # about size for update and delete
        raise DocumentTooLarge(f"{operation!r} command document too large")


def _gen_find_command(
    coll: str,
    spec: Mapping[str, Any],
    projection: Optional[Mapping[str, Any]],
    skip: int,
    limit: int,
    batch_size: Optional[int],
    sort: Optional[Mapping[str, Any]] = None,
) -> dict[str, Any]:
    """Generate a find command document."""
    cmd: dict[str, Any] = {"find": coll, "filter": spec}
    if projection:
        cmd["projection"] = projection
    if sort:
        cmd["sort"] = sort
    if skip:
        cmd["skip"] = skip
    if limit:
        cmd["limit"] = abs(limit)
        if limit < 0:
            cmd["singleBatch"] = True
    if batch_size:
        cmd["batchSize"] = batch_size
    return cmd


def _gen_get_more_command(
    cursor_id: int,
    coll: str,
    batch_size: Optional[int],
) -> dict[str, Any]:
    """Generate a getMore command document."""
    cmd: dict[str, Any] = {"getMore": Int64(cursor_id), "collection": coll}
    if batch_size:
        cmd["batchSize"] = batch_size
    return cmd


def _gen_kill_cursors_command(cursor_ids: list[int], coll: str) -> dict[str, Any]:
    """Generate a killCursors command document."""
    return {"killCursors": coll, "cursors": [Int64(cursor_id) for cursor_id in cursor_ids]}


class _OpReply:
    """A MongoDB OP_REPLY response message."""

    __slots__ = ("flags", "cursor_id", "number_returned", "documents")

    UNPACK_FROM = struct.Struct("<iqii").unpack_from
    OP_CODE = OP_REPLY

    def __init__(self, flags: int, cursor_id: int, number_returned: int, documents: bytes):
        self.flags = flags
        self.cursor_id = Int64(cursor_id)
        self.number_returned = number_returned
        self.documents = documents

    def unpack_response(
        self,
        cursor_id: Optional[int] = None,
        codec_options: CodecOptions = _UNICODE_REPLACE_CODEC_OPTIONS,
    ) -> list[dict[str, Any]]:
        """Check the response header from the database and decode the documents.

        Can raise CursorNotFound or OperationFailure.

        :param cursor_id: cursor_id we sent to get this response -
            used for raising an informative exception when we get cursor id not
            valid at server response
        :param codec_options: an instance of
            :class:`~bson.codec_options.CodecOptions`
        """
        if self.flags & 1:
            # Shouldn't get this response if we aren't doing a getMore
            if cursor_id is None:
                raise ProtocolError("No cursor id for getMore operation")

            msg = "Cursor not found, cursor id: %d" % (cursor_id,)
            errobj = {"ok": 0, "errmsg": msg, "code": 43}
            raise CursorNotFound(msg, 43, errobj)
        elif self.flags & 2:
            error_object: dict[str, Any] = bson.decode(self.documents, codec_options)
            # Fake the ok field if it doesn't exist.
            error_object.setdefault("ok", 0)
            raise OperationFailure(
                "database error: %s" % error_object.get("$err"),
                error_object.get("code"),
                error_object,
            )
        return bson.decode_all(self.documents, codec_options)

    @classmethod
    def unpack(cls, msg: bytes) -> _OpReply:
        """Construct an _OpReply from raw bytes."""
        if len(msg) < 20:
            raise ProtocolError(f"OP_REPLY body too short ({len(msg)} bytes)")
        # PYTHON-945: ignore starting_from field.
        flags, cursor_id, _, number_returned = cls.UNPACK_FROM(msg)

        documents = bytes(msg[20:])
        return cls(flags, cursor_id, number_returned, documents)


class _OpMsg:
    """A MongoDB OP_MSG response message."""

    __slots__ = ("flags", "payload_document")

    UNPACK_FROM = struct.Struct("<IBi").unpack_from
    OP_CODE = OP_MSG

    # Flag bits.
    CHECKSUM_PRESENT = 1

    def __init__(self, flags: int, payload_document: bytes):
        self.flags = flags
        self.payload_document = payload_document

    def unpack_response(
        self,
        cursor_id: Optional[int] = None,
        codec_options: CodecOptions = _UNICODE_REPLACE_CODEC_OPTIONS,
    ) -> list[dict[str, Any]]:
        """Unpack a OP_MSG command response.

        :param cursor_id: Ignored, for compatibility with _OpReply.
        :param codec_options: an instance of
            :class:`~bson.codec_options.CodecOptions`
        """
        return bson.decode_all(self.payload_document, codec_options)

    @classmethod
    def unpack(cls, msg: bytes) -> _OpMsg:
        """Construct an _OpMsg from raw bytes."""
        if len(msg) < 9:
            raise ProtocolError(f"OP_MSG body too short ({len(msg)} bytes)")
        flags, first_payload_type, first_payload_size = cls.UNPACK_FROM(msg)
        if flags != 0:
            if flags & cls.CHECKSUM_PRESENT:
                raise ProtocolError(f"Unsupported OP_MSG flag checksumPresent: 0x{flags:x}")

            # Includes moreToCome, exhaust cursors are never requested.
            raise ProtocolError(f"Unsupported OP_MSG flags: 0x{flags:x}")
        if first_payload_type != 0:
            raise ProtocolError(f"Unsupported OP_MSG payload type: 0x{first_payload_type:x}")

        if len(msg) != first_payload_size + 5:
            raise ProtocolError("Unsupported OP_MSG reply: >1 section")

        payload_document = bytes(msg[5:])
        return cls(flags, payload_document)


_UNPACK_REPLY: dict[int, Callable[[bytes], Union[_OpReply, _OpMsg]]] = {
    _OpReply.OP_CODE: _OpReply.unpack,
    _OpMsg.OP_CODE: _OpMsg.unpack,
}


def _pack_message(request_id: int, operation: int, data: bytes) -> bytes:
    """Takes message data and adds a message header based on the operation.

    Returns the resultant message string.
    """
    return _pack_header(16 + len(data), request_id, 0, operation) + data


def _op_msg_no_header(
    flags: int,
    command: Mapping[str, Any],
    identifier: str,
    docs: Optional[list[Mapping[str, Any]]],
    opts: CodecOptions,
) -> tuple[bytes, int, int]:
    """Get a OP_MSG message.

    Note: this method handles multiple documents in a type one payload but
    it does not perform batch splitting and the total message size is
    only checked *after* generating the entire message.
    """
    # Encode the command document in payload 0 without checking keys.
    encoded = bson.encode(command, False, opts)
    flags_type = _pack_op_msg_flags_type(flags, 0)
    total_size = len(encoded)
    max_doc_size = 0
    if identifier and docs is not None:
        type_one = _pack_byte(1)
        cstring = identifier.encode("utf-8") + b"\x00"
        encoded_docs = [bson.encode(doc, False, opts) for doc in docs]
        size = len(cstring) + sum(len(doc) for doc in encoded_docs) + 4
        encoded_size = _pack_int(size)
        total_size += size
        max_doc_size = max((len(doc) for doc in encoded_docs), default=0)
        data = [flags_type, encoded, type_one, encoded_size, cstring, *encoded_docs]
    else:
        data = [flags_type, encoded]
    return b"".join(data), total_size, max_doc_size


def _op_msg(
    request_id: int,
    flags: int,
    command: MutableMapping[str, Any],
    dbname: str,
    read_preference: Optional[_ServerMode],
    opts: CodecOptions,
) -> tuple[bytes, int, int]:
    """Get a OP_MSG message.

    Returns the framed message, the size of the encoded documents and the
    size of the largest document of the kind 1 section.
    """
    command["$db"] = dbname
    # getMore commands do not send $readPreference.
    if read_preference is not None and "$readPreference" not in command:
        # Only send $readPreference if it's not primary (the default).
        if read_preference.mode:
            command["$readPreference"] = read_preference.document
    name = next(iter(command))
    try:
        identifier = _FIELD_MAP[name]
        docs = command.pop(identifier)
    except KeyError:
        identifier = ""
        docs = None
    try:
        data, total_size, max_doc_size = _op_msg_no_header(flags, command, identifier, docs, opts)
        return _pack_message(request_id, OP_MSG, data), total_size, max_doc_size
    finally:
        # Add the field back to the command.
        if identifier:
            command[identifier] = docs
