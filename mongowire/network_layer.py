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

import asyncio
import socket
import struct
from asyncio import BaseTransport, BufferedProtocol, Future, Transport
from typing import (
    TYPE_CHECKING,
    Any,
    Optional,
    Union,
)

from mongowire.common import MAX_MESSAGE_SIZE
from mongowire.errors import ConnectionClosed, ProtocolError
from mongowire.logger import _CONNECTION_LOGGER, _ConnectionStatusMessage, _debug_log
from mongowire.message import _UNPACK_REPLY, _OpMsg, _OpReply

if TYPE_CHECKING:
    from mongowire.asynchronous.pool import AsyncConnection

_UNPACK_HEADER = struct.Struct("<iiii").unpack


class MongoProtocol(BufferedProtocol):
    """Reads framed wire protocol messages off one transport.

    Every request registers a future under its request id before it is
    written. Each complete reply is matched to the future whose id equals the
    reply's ``responseTo`` field. A reply that matches no registered request
    is a :exc:`~mongowire.errors.ProtocolError` and closes the connection.
    """

    def __init__(self, timeout: Optional[float] = None, address: Any = None):
        self.transport: Transport = None  # type: ignore[assignment]
        self.address = address
        # Each message is read in 2 parts: header and message body.
        # The message buffer is allocated after the header is read.
        self._header = memoryview(bytearray(16))
        self._header_index = 0
        self._message: Optional[memoryview] = None
        self._message_index = 0
        self._expecting_header = True
        self._message_size = 0
        self._op_code = 0
        self._response_to = 0
        self._connection_lost = False
        self._timeout = timeout
        self._max_message_size = MAX_MESSAGE_SIZE
        self._closed = asyncio.get_running_loop().create_future()
        self._pending: dict[int, Future[tuple[int, bytes]]] = {}

    @property
    def gettimeout(self) -> float | None:
        """The configured timeout for the socket that underlies our protocol pair."""
        return self._timeout

    @property
    def pending_count(self) -> int:
        """The number of requests still waiting for a reply."""
        return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._connection_lost or self.transport is None or self.transport.is_closing()

    def connection_made(self, transport: BaseTransport) -> None:
        """Called exactly once when a connection is made.
        The transport argument is the transport representing the write side of the connection.
        """
        self.transport = transport  # type: ignore[assignment]
        self.transport.set_write_buffer_limits(MAX_MESSAGE_SIZE, MAX_MESSAGE_SIZE)

    def expect(self, request_id: int) -> Future[tuple[int, bytes]]:
        """Register the reply slot for ``request_id``."""
        if request_id in self._pending:
            raise ProtocolError(f"Request id {request_id!r} is already awaiting a reply")
        fut: Future[tuple[int, bytes]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = fut
        return fut

    def discard(self, request_id: int) -> None:
        """Forget the reply slot for ``request_id`` once it has been consumed."""
        self._pending.pop(request_id, None)

    async def write(self, message: bytes) -> None:
        """Write a message to this connection's transport."""
        if self.is_closed:
            raise OSError("Connection is closed")
        self.transport.write(message)

    async def read(self, request_id: int, max_message_size: int) -> tuple[int, bytes]:
        """Wait for the reply to ``request_id``."""
        self._max_message_size = max_message_size
        fut = self._pending.get(request_id)
        if fut is None:
            raise ProtocolError(f"No request with id {request_id!r} is awaiting a reply")
        return await fut

    def get_buffer(self, sizehint: int) -> memoryview:
        """Called to allocate a new receive buffer.
        The asyncio loop calls this method expecting to receive a non-empty buffer to fill with data.
        If any data does not fit into the returned buffer, this method will be called again until
        either no data remains or an empty buffer is returned.
        """
        # Python <=3.11 may call get_buffer() even after connection_lost(); drain into
        # a temp buffer.
        if self._connection_lost:
            if not self._message:
                self._message = memoryview(bytearray(2**14))
            return self._message
        if self._expecting_header:
            return self._header[self._header_index :]
        return self._message[self._message_index :]  # type: ignore[index]

    def buffer_updated(self, nbytes: int) -> None:
        """Called when the buffer was updated with the received data"""
        # Wrote 0 bytes into a non-empty buffer, signal connection closed
        if nbytes == 0:
            self.close(ConnectionClosed("connection closed"))
            return
        if self._connection_lost:
            return
        if self._expecting_header:
            self._header_index += nbytes
            if self._header_index >= 16:
                self._expecting_header = False
                try:
                    self._message_size, self._op_code, self._response_to = self.process_header()
                except ProtocolError as exc:
                    self._protocol_error(exc)
                    return
                self._message = memoryview(bytearray(self._message_size))
            return

        self._message_index += nbytes
        if self._message_index >= self._message_size:
            message = bytes(self._message)  # type: ignore[arg-type]
            op_code, response_to = self._op_code, self._response_to
            # Reset internal state to expect a new message
            self._expecting_header = True
            self._header_index = 0
            self._message_index = 0
            self._message_size = 0
            self._message = None
            self._op_code = 0
            self._response_to = 0

            # A cancelled request was discarded, so its late reply lands here too.
            fut = self._pending.get(response_to)
            if fut is None or fut.done():
                self._protocol_error(
                    ProtocolError(f"Got response id {response_to!r} with no matching request")
                )
                return
            fut.set_result((op_code, message))

    def process_header(self) -> tuple[int, int, int]:
        """Unpack a MongoDB Wire Protocol header."""
        length, _, response_to, op_code = _UNPACK_HEADER(self._header)
        if length <= 16:
            raise ProtocolError(
                f"Message length ({length!r}) not longer than standard message header size (16)"
            )
        if length > self._max_message_size:
            raise ProtocolError(
                f"Message length ({length!r}) is larger than server max "
                f"message size ({self._max_message_size!r})"
            )
        if op_code not in _UNPACK_REPLY:
            raise ProtocolError(f"Got opcode {op_code!r} but expected {list(_UNPACK_REPLY)!r}")

        return length - 16, op_code, response_to

    def _protocol_error(self, exc: ProtocolError) -> None:
        _debug_log(
            _CONNECTION_LOGGER,
            message=_ConnectionStatusMessage.PROTOCOL_ERROR,
            serverHost=self.address[0] if self.address else None,
            serverPort=self.address[1] if self.address else None,
            error=str(exc),
        )
        self.close(exc)

    def _resolve_pending_messages(self, exc: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(exc)

    def close(self, exc: Optional[Exception] = None) -> None:
        """Abort the transport and fail every outstanding reply slot."""
        if self.transport is not None:
            self.transport.abort()
        self._connection_lost = True
        self._resolve_pending_messages(exc or ConnectionClosed("connection closed"))

    def connection_lost(self, exc: Optional[Exception] = None) -> None:
        self._connection_lost = True
        error = ConnectionClosed("connection closed")
        if exc is not None:
            error.__cause__ = exc
        self._resolve_pending_messages(error)
        if not self._closed.done():
            self._closed.set_result(None)

    async def wait_closed(self) -> None:
        await self._closed


async def async_sendall(conn: MongoProtocol, buf: bytes) -> None:
    try:
        await asyncio.wait_for(conn.write(buf), timeout=conn.gettimeout)
    except asyncio.TimeoutError as exc:
        # Convert the asyncio.wait_for timeout error to socket.timeout which pool.py understands.
        raise socket.timeout("timed out") from exc


async def async_receive_message(
    conn: AsyncConnection,
    request_id: int,
    max_message_size: int = MAX_MESSAGE_SIZE,
) -> Union[_OpReply, _OpMsg]:
    """Receive the reply to ``request_id`` or raise socket.error."""
    protocol = conn.conn
    try:
        op_code, data = await asyncio.wait_for(
            protocol.read(request_id, max_message_size), timeout=protocol.gettimeout
        )
    except asyncio.TimeoutError as exc:
        raise socket.timeout("timed out") from exc
    return _UNPACK_REPLY[op_code](data)
