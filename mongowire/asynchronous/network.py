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

"""Internal network layer helper methods."""
from __future__ import annotations

import logging
import time
from typing import (
    TYPE_CHECKING,
    Any,
    Container,
    MutableMapping,
    Optional,
    Union,
)

from mongowire import helpers, message
from mongowire.errors import (
    NotPrimaryError,
    OperationFailure,
)
from mongowire.logger import _COMMAND_LOGGER, _CommandStatusMessage, _debug_log
from mongowire.network_layer import (
    async_receive_message,
    async_sendall,
)

if TYPE_CHECKING:
    from bson import CodecOptions

    from mongowire.asynchronous.pool import AsyncConnection
    from mongowire.read_preferences import _ServerMode

_IS_SYNC = False


async def command(
    conn: AsyncConnection,
    dbname: str,
    spec: MutableMapping[str, Any],
    read_preference: Optional[_ServerMode],
    codec_options: CodecOptions,
    check: bool = True,
    allowable_errors: Optional[Container[Union[str, int]]] = None,
    max_bson_size: Optional[int] = None,
    publish: bool = True,
) -> dict[str, Any]:
    """Execute a command over the connection, or raise socket.error.

    Frames ``spec`` as an OP_MSG with a fresh request id from ``conn``,
    registers the reply slot, writes the message and waits for the reply
    that answers it.

    :param conn: an AsyncConnection instance
    :param dbname: name of the database on which to run the command
    :param spec: a command document as an ordered dict type
    :param read_preference: a read preference
    :param codec_options: a CodecOptions instance
    :param check: raise OperationFailure if there are errors
    :param allowable_errors: errors to ignore if `check` is True
    :param max_bson_size: The maximum encoded bson size for this server
    :param publish: log this command to the ``mongowire.command`` logger
    """
    name = next(iter(spec))
    start = time.monotonic()

    request_id = conn.next_request_id()
    msg, size, max_doc_size = message._op_msg(
        request_id, 0, spec, dbname, read_preference, codec_options
    )

    if max_bson_size is not None and size > max_bson_size + message._COMMAND_OVERHEAD:
        message._raise_document_too_large(name, size, max_bson_size + message._COMMAND_OVERHEAD)
    if max_bson_size is not None and max_doc_size > max_bson_size:
        message._raise_document_too_large(name, max_doc_size, max_bson_size)
    if publish and _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
        _debug_log(
            _COMMAND_LOGGER,
            message=_CommandStatusMessage.STARTED,
            clientId=conn._client_id,
            command=spec,
            commandName=name,
            databaseName=dbname,
            requestId=request_id,
            operationId=request_id,
            driverConnectionId=conn.id,
            serverHost=conn.address[0],
            serverPort=conn.address[1],
        )

    protocol = conn.conn
    try:
        protocol.expect(request_id)
        try:
            await async_sendall(protocol, msg)
            reply = await async_receive_message(conn, request_id, conn.max_message_size)
        finally:
            protocol.discard(request_id)
        unpacked_docs = reply.unpack_response(codec_options=codec_options)

        response_doc = unpacked_docs[0]
        if check:
            helpers._check_command_response(
                response_doc,
                conn.max_wire_version,
                allowable_errors,
            )
    except Exception as exc:
        duration = time.monotonic() - start
        if isinstance(exc, (NotPrimaryError, OperationFailure)):
            failure: Any = exc.details
        else:
            failure = message._convert_exception(exc)
        if publish and _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _COMMAND_LOGGER,
                message=_CommandStatusMessage.FAILED,
                clientId=conn._client_id,
                durationMS=duration,
                failure=failure,
                commandName=name,
                databaseName=dbname,
                requestId=request_id,
                operationId=request_id,
                driverConnectionId=conn.id,
                serverHost=conn.address[0],
                serverPort=conn.address[1],
                isServerSideError=isinstance(exc, OperationFailure),
            )
        raise
    duration = time.monotonic() - start
    if publish and _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
        _debug_log(
            _COMMAND_LOGGER,
            message=_CommandStatusMessage.SUCCEEDED,
            clientId=conn._client_id,
            durationMS=duration,
            reply=response_doc,
            commandName=name,
            databaseName=dbname,
            requestId=request_id,
            operationId=request_id,
            driverConnectionId=conn.id,
            serverHost=conn.address[0],
            serverPort=conn.address[1],
        )

    return response_doc
