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

from __future__ import annotations

import asyncio
import collections
import contextlib
import itertools
import logging
import time
import weakref
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncGenerator,
    Mapping,
    MutableMapping,
    NoReturn,
    Optional,
    Sequence,
    Union,
)

from bson import CodecOptions

from mongowire.asynchronous.network import command
from mongowire.common import (
    DEFAULT_CODEC_OPTIONS,
    MAX_BSON_SIZE,
    MAX_MESSAGE_SIZE,
    MAX_WIRE_VERSION,
    MAX_WRITE_BATCH_SIZE,
)
from mongowire.errors import (  # type:ignore[attr-defined]
    InvalidOperation,
    NotPrimaryError,
    OperationFailure,
    WaitQueueTimeoutError,
)
from mongowire.lock import (
    _async_cond_wait,
    _async_create_condition,
    _async_create_lock,
)
from mongowire.logger import (
    _CONNECTION_LOGGER,
    _ConnectionCheckOutFailedReason,
    _ConnectionClosedReason,
    _ConnectionStatusMessage,
    _debug_log,
    _verbose_connection_error_reason,
)
from mongowire.pool_shared import (
    _configured_protocol_interface,
    _get_timeout_details,
    _raise_connection_failure,
)
from mongowire.read_preferences import ReadPreference, _ServerMode
from mongowire.server_description import ServerDescription
from mongowire.ssl_support import SSLError

if TYPE_CHECKING:
    from asyncio import Transport

    from bson import ObjectId

    from mongowire.network_layer import MongoProtocol
    from mongowire.pool_options import PoolOptions
    from mongowire.typings import _Address

_IS_SYNC = False


class AsyncConnection:
    """Store a connection with some metadata.

    :param conn: the :class:`~mongowire.network_layer.MongoProtocol` reading replies
    :param transport: the asyncio transport the protocol writes to
    :param pool: a Pool instance
    :param address: the server's (host, port)
    :param id: the id of this socket in it's pool
    :param is_sdam: SDAM connections do not call hello on creation
    """

    def __init__(
        self,
        conn: MongoProtocol,
        transport: Transport,
        pool: Pool,
        address: _Address,
        id: int,
        is_sdam: bool,
    ):
        self.conn = conn
        self.transport = transport
        self.pool_ref = weakref.ref(pool)
        self.opts = pool.opts
        self.address: _Address = address
        self.id: int = id
        self.is_sdam = is_sdam
        self.closed = False
        self.ready = False
        self.active = False
        self.performed_handshake = False
        self.hello_ok: bool = False
        self.is_writable: bool = False
        self.max_wire_version = MAX_WIRE_VERSION
        self.max_bson_size: int = MAX_BSON_SIZE
        self.max_message_size: int = MAX_MESSAGE_SIZE
        self.max_write_batch_size: int = MAX_WRITE_BATCH_SIZE
        # Support for mechanism negotiation on the initial handshake.
        self.negotiated_mechs: Optional[list[str]] = None
        self.connect_rtt = 0.0
        self.creation_time = time.monotonic()
        self._client_id = pool._client_id
        # Request ids are never reused on a connection.
        self._request_ids = itertools.count(1)

    def next_request_id(self) -> int:
        return next(self._request_ids)

    def hello_cmd(self) -> dict[str, Any]:
        if self.hello_ok:
            return {"hello": 1}
        else:
            return {"isMaster": 1, "helloOk": True}

    async def hello(self) -> ServerDescription:
        cmd = self.hello_cmd()
        performing_handshake = not self.performed_handshake
        if performing_handshake:
            self.performed_handshake = True
            cmd["client"] = self.opts.metadata
            if self.opts.compressors:
                cmd["compression"] = self.opts.compressors

        creds = self.opts._credentials
        if creds and creds.mechanism == "DEFAULT" and creds.username:
            cmd["saslSupportedMechs"] = creds.source + "." + creds.username

        start = time.monotonic()
        doc = await self.command("admin", cmd, publish=False)
        rtt = time.monotonic() - start
        if performing_handshake:
            self.connect_rtt = rtt
        description = ServerDescription(self.address, doc, round_trip_time=rtt)
        self.is_writable = description.is_writable
        self.max_wire_version = description.max_wire_version
        self.max_bson_size = description.max_bson_size
        self.max_message_size = description.max_message_size
        self.max_write_batch_size = description.max_write_batch_size
        self.hello_ok = bool(doc.get("helloOk", False))
        if creds:
            self.negotiated_mechs = doc.get("saslSupportedMechs")
        return description

    async def command(
        self,
        dbname: str,
        spec: MutableMapping[str, Any],
        read_preference: _ServerMode = ReadPreference.PRIMARY,
        codec_options: CodecOptions[Mapping[str, Any]] = DEFAULT_CODEC_OPTIONS,  # type: ignore[assignment]
        check: bool = True,
        allowable_errors: Optional[Sequence[Union[str, int]]] = None,
        publish: bool = True,
    ) -> dict[str, Any]:
        """Execute a command or raise an error.

        :param dbname: name of the database on which to run the command
        :param spec: a command document as a dict, SON, or mapping object
        :param read_preference: a read preference
        :param codec_options: a CodecOptions instance
        :param check: raise OperationFailure if there are errors
        :param allowable_errors: errors to ignore if `check` is True
        :param publish: Should we log this command?
        """
        if self.closed:
            await self._raise_connection_failure(OSError("connection is closed"))
        # Ensure command name remains in first place.
        spec = dict(spec)
        try:
            return await command(
                self,
                dbname,
                spec,
                read_preference,
                codec_options,
                check,
                allowable_errors,
                self.max_bson_size,
                publish=publish,
            )
        except (OperationFailure, NotPrimaryError):
            raise
        # Catch socket.error, KeyboardInterrupt, CancelledError, etc. and close ourselves.
        except BaseException as error:
            await self._raise_connection_failure(error)

    async def authenticate(self) -> None:
        """Authenticate to the server if needed.

        Can raise ConnectionFailure or OperationFailure.
        """
        if not self.ready:
            creds = self.opts._credentials
            if creds:
                from mongowire.asynchronous import auth

                await auth.authenticate(creds, self)
            self.ready = True
            duration = time.monotonic() - self.creation_time
            if not self.is_sdam and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _CONNECTION_LOGGER,
                    message=_ConnectionStatusMessage.CONN_READY,
                    clientId=self._client_id,
                    serverHost=self.address[0],
                    serverPort=self.address[1],
                    driverConnectionId=self.id,
                    durationMS=duration,
                )

    async def close_conn(self, reason: Optional[str]) -> None:
        """Close this connection with a reason."""
        if self.closed:
            return
        self.closed = True
        self.conn.close()
        if reason and not self.is_sdam and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.CONN_CLOSED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
                driverConnectionId=self.id,
                reason=_verbose_connection_error_reason(reason),
                error=reason,
            )

    def conn_closed(self) -> bool:
        """Return True if we know socket has been closed, False otherwise."""
        return self.conn.is_closed

    async def _raise_connection_failure(self, error: BaseException) -> NoReturn:
        # Catch *all* exceptions from socket methods and close the socket.
        # The connection closed log message is emitted later in checkin.
        if self.ready:
            reason = None
        else:
            reason = _ConnectionClosedReason.ERROR
        await self.close_conn(reason)
        if isinstance(error, (IOError, OSError, SSLError)):
            details = _get_timeout_details(self.opts)
            _raise_connection_failure(self.address, error, timeout_details=details)
        else:
            raise error

    def __repr__(self) -> str:
        return "AsyncConnection({}){} at {}".format(
            repr(self.address),
            self.closed and " CLOSED" or "",
            id(self),
        )


class _PoolClosedError(InvalidOperation):
    """Internal error raised when a task tries to get a connection from a
    closed pool.
    """


class PoolState:
    READY = 1
    CLOSED = 2


class Pool:
    def __init__(
        self,
        address: _Address,
        options: PoolOptions,
        is_sdam: bool = False,
        client_id: Optional[ObjectId] = None,
    ):
        """
        :param address: a (hostname, port) tuple
        :param options: a PoolOptions instance
        :param is_sdam: whether to call hello for each new AsyncConnection
        """
        self.state = PoolState.READY
        # LIFO pool. Connections are claimed and returned from the left side.
        self.conns: collections.deque[AsyncConnection] = collections.deque()
        self.lock = _async_create_lock()
        self.active_sockets = 0
        # Monotonically increasing connection ID.
        self.next_connection_id = 1
        self.is_writable: Optional[bool] = None
        self.address = address
        self.opts = options
        self.is_sdam = is_sdam
        # Don't log in Monitor pools.
        self.enabled_for_logging = not self.is_sdam

        # Enforces: maxPoolSize
        # Also used for: clearing the wait queue
        self.size_cond = _async_create_condition(self.lock)
        self.requests = 0
        self.max_pool_size: float = self.opts.max_pool_size
        if not self.max_pool_size:
            self.max_pool_size = float("inf")
        self._client_id = client_id
        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.POOL_CREATED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
                **self.opts.non_default_options,
            )

    @property
    def closed(self) -> bool:
        return self.state == PoolState.CLOSED

    def set_credentials(self, credentials: Any) -> None:
        """Authenticate connections created from now on with ``credentials``."""
        self.opts = self.opts.with_credentials(credentials)

    async def close(self) -> None:
        async with self.size_cond:
            if self.closed:
                return
            self.state = PoolState.CLOSED
            sockets, self.conns = self.conns, collections.deque()
            # Clear the wait queue
            self.size_cond.notify_all()

        await asyncio.gather(
            *[conn.close_conn(_ConnectionClosedReason.POOL_CLOSED) for conn in sockets],  # type: ignore[func-returns-value]
            return_exceptions=True,
        )
        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.POOL_CLOSED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
            )

    async def connect(self) -> AsyncConnection:
        """Connect to Mongo and return a new AsyncConnection.

        Can raise ConnectionFailure.

        Note that the pool does not keep a reference to the socket -- you
        must call checkin() when you're done with it.
        """
        async with self.lock:
            conn_id = self.next_connection_id
            self.next_connection_id += 1

        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.CONN_CREATED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
                driverConnectionId=conn_id,
            )

        try:
            transport, protocol = await _configured_protocol_interface(self.address, self.opts)
        # Catch KeyboardInterrupt, CancelledError, etc. and cleanup.
        except BaseException as error:
            if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _CONNECTION_LOGGER,
                    message=_ConnectionStatusMessage.CONN_CLOSED,
                    clientId=self._client_id,
                    serverHost=self.address[0],
                    serverPort=self.address[1],
                    driverConnectionId=conn_id,
                    reason=_verbose_connection_error_reason(_ConnectionClosedReason.ERROR),
                    error=_ConnectionClosedReason.ERROR,
                )
            if isinstance(error, (IOError, OSError, SSLError)):
                details = _get_timeout_details(self.opts)
                _raise_connection_failure(self.address, error, timeout_details=details)

            raise

        conn = AsyncConnection(protocol, transport, self, self.address, conn_id, self.is_sdam)
        try:
            if not self.is_sdam:
                await conn.hello()
                self.is_writable = conn.is_writable

            await conn.authenticate()
        # Catch KeyboardInterrupt, CancelledError, etc. and cleanup.
        except BaseException:
            await conn.close_conn(_ConnectionClosedReason.ERROR)
            raise

        return conn

    @contextlib.asynccontextmanager
    async def checkout(self) -> AsyncGenerator[AsyncConnection, None]:
        """Get a connection from the pool. Use with an "async with" statement.

        Returns a :class:`AsyncConnection` that is exclusively owned by the
        caller until the block exits::

            async with pool.checkout() as conn:
                reply = await conn.command("admin", {"ping": 1})

        Can raise ConnectionFailure or OperationFailure.
        """
        checkout_started_time = time.monotonic()
        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.CHECKOUT_STARTED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
            )

        conn = await self._get_conn(checkout_started_time)

        duration = time.monotonic() - checkout_started_time
        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.CHECKOUT_SUCCEEDED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
                driverConnectionId=conn.id,
                durationMS=duration,
            )
        try:
            yield conn
        # Catch KeyboardInterrupt, CancelledError, etc. and cleanup.
        except BaseException:
            # Exception in caller. Ensure the connection gets returned.
            if conn.active:
                await self.checkin(conn)
            raise
        if conn.active:
            await self.checkin(conn)

    def _checkout_failed(self, checkout_started_time: float, reason: str, error: str) -> None:
        duration = time.monotonic() - checkout_started_time
        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.CHECKOUT_FAILED,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
                reason=reason,
                error=error,
                durationMS=duration,
            )

    def _raise_if_closed(self, checkout_started_time: float) -> None:
        if self.closed:
            self._checkout_failed(
                checkout_started_time,
                "Connection pool was closed",
                _ConnectionCheckOutFailedReason.POOL_CLOSED,
            )
            raise _PoolClosedError(
                "Attempted to check out a connection from closed connection pool"
            )

    async def _get_conn(self, checkout_started_time: float) -> AsyncConnection:
        """Get or create a AsyncConnection. Can raise ConnectionFailure."""
        self._raise_if_closed(checkout_started_time)

        # Get a free socket or create one.
        if self.opts.wait_queue_timeout:
            deadline: Optional[float] = time.monotonic() + self.opts.wait_queue_timeout
        else:
            deadline = None

        async with self.size_cond:
            while not (self.requests < self.max_pool_size):
                timeout = deadline - time.monotonic() if deadline else None
                if not await _async_cond_wait(self.size_cond, timeout):
                    # Timed out, notify the next task to ensure a
                    # timeout doesn't consume the condition.
                    if self.requests < self.max_pool_size:
                        self.size_cond.notify()
                    self._raise_wait_queue_timeout(checkout_started_time)
                self._raise_if_closed(checkout_started_time)
            self.requests += 1

        # We've now acquired the semaphore and must release it on error.
        conn = None
        incremented = False
        try:
            async with self.lock:
                self.active_sockets += 1
                incremented = True
            while conn is None:
                async with self.lock:
                    try:
                        conn = self.conns.popleft()
                    except IndexError:
                        pass
                if conn:  # We got a socket from the pool
                    if await self._perished(conn):
                        conn = None
                        continue
                else:  # We need to create a new connection
                    conn = await self.connect()
        # Catch KeyboardInterrupt, CancelledError, etc. and cleanup.
        except BaseException:
            if conn:
                # We checked out a socket but authentication failed.
                await conn.close_conn(_ConnectionClosedReason.ERROR)
            async with self.size_cond:
                self.requests -= 1
                if incremented:
                    self.active_sockets -= 1
                self.size_cond.notify()

            self._checkout_failed(
                checkout_started_time,
                "An error occurred while trying to establish a new connection",
                _ConnectionCheckOutFailedReason.CONN_ERROR,
            )
            raise

        conn.active = True
        return conn

    async def checkin(self, conn: AsyncConnection) -> None:
        """Return the connection to the pool, or if it's closed discard it.

        :param conn: The connection to check into the pool.
        """
        conn.active = False
        if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _CONNECTION_LOGGER,
                message=_ConnectionStatusMessage.CHECKEDIN,
                clientId=self._client_id,
                serverHost=self.address[0],
                serverPort=self.address[1],
                driverConnectionId=conn.id,
            )
        if self.closed:
            await conn.close_conn(_ConnectionClosedReason.POOL_CLOSED)
        elif conn.closed or conn.conn_closed():
            await conn.close_conn(None)
            if self.enabled_for_logging and _CONNECTION_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _CONNECTION_LOGGER,
                    message=_ConnectionStatusMessage.CONN_CLOSED,
                    clientId=self._client_id,
                    serverHost=self.address[0],
                    serverPort=self.address[1],
                    driverConnectionId=conn.id,
                    reason=_verbose_connection_error_reason(_ConnectionClosedReason.ERROR),
                    error=_ConnectionClosedReason.ERROR,
                )
        else:
            async with self.lock:
                self.conns.appendleft(conn)

        async with self.size_cond:
            self.requests -= 1
            self.active_sockets -= 1
            self.size_cond.notify()

    async def _perished(self, conn: AsyncConnection) -> bool:
        """Return True and close the connection if it is "perished".

        A connection has perished when the server or the network closed it
        while it sat idle in the pool.
        """
        if conn.conn_closed():
            await conn.close_conn(_ConnectionClosedReason.ERROR)
            return True
        return False

    def _raise_wait_queue_timeout(self, checkout_started_time: float) -> NoReturn:
        self._checkout_failed(
            checkout_started_time,
            "Wait queue timeout elapsed without a connection becoming available",
            _ConnectionCheckOutFailedReason.TIMEOUT,
        )
        timeout = self.opts.wait_queue_timeout
        raise WaitQueueTimeoutError(
            "Timed out while checking out a connection from connection pool. "
            f"maxPoolSize: {self.opts.max_pool_size}, timeout: {timeout}"
        )
