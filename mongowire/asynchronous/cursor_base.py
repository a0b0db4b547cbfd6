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

"""Shared machinery of the asynchronous cursor classes."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    Mapping,
    Optional,
    TypeVar,
)

from mongowire.common import _CURSOR_CLOSED_ERRORS, KILL_CURSORS_TIMEOUT
from mongowire.errors import (
    ConnectionFailure,
    CursorNotFound,
    MongoWireError,
    OperationFailure,
)
from mongowire.logger import _COMMAND_LOGGER, _debug_log
from mongowire.message import _convert_exception

if TYPE_CHECKING:
    from bson import CodecOptions

    from mongowire.asynchronous.wire_protocol import WireProtocol
    from mongowire.typings import _Address

_IS_SYNC = False

_DocumentType = TypeVar("_DocumentType", bound=Mapping[str, Any])


def _retrieve_exception(task: asyncio.Task[None]) -> None:
    # A fetch whose caller was cancelled may never be awaited again.
    if not task.cancelled():
        task.exception()


class _AsyncCursorBase(Generic[_DocumentType]):
    """Asynchronous cursor base class.

    Documents are buffered one batch at a time. When the buffer is drained
    and the server cursor is still open, the next batch is fetched with a
    getMore sent to the server that created the cursor.
    """

    def __init__(
        self,
        wire: WireProtocol,
        namespace: str,
        batch_size: int = 0,
        codec_options: Optional[CodecOptions[Any]] = None,
    ) -> None:
        self._wire = wire
        self._ns = namespace
        # None until the server assigned an id, 0 once the server is exhausted.
        self._id: Optional[int] = None
        self._address: Optional[_Address] = None
        self._data: deque[_DocumentType] = deque()
        self._retrieved = 0
        self._batch_size = batch_size
        self._limit = 0
        self._codec_options = codec_options
        self._killed = False
        # The request in flight. It is shielded so that a cancelled caller
        # does not tear it down; its batch goes to the next caller.
        self._pending: Optional[asyncio.Task[None]] = None

    async def _send_initial(self) -> None:
        raise NotImplementedError

    def _update(
        self, batch: list[_DocumentType], cursor_id: int, address: Optional[_Address]
    ) -> None:
        self._id = cursor_id
        if address is not None:
            self._address = address
        self._retrieved += len(batch)
        self._data.extend(batch)
        if cursor_id == 0:
            self._killed = True

    def _get_more_batch_size(self) -> int:
        if self._limit:
            remaining = abs(self._limit) - self._retrieved
            if self._batch_size:
                return min(remaining, self._batch_size)
            return remaining
        return self._batch_size

    async def _get_more(self) -> None:
        assert self._id and self._address is not None
        try:
            batch, cursor_id = await self._wire.get_more(
                self._address,
                self._ns,
                self._id,
                self._get_more_batch_size(),
                self._codec_options,
            )
        except (CursorNotFound, ConnectionFailure):
            # The server cursor is gone, or it is on a connection we can no
            # longer use. Don't send killCursors.
            self._killed = True
            raise
        except OperationFailure as exc:
            if exc.code in _CURSOR_CLOSED_ERRORS:
                self._killed = True
            raise
        self._update(batch, cursor_id, None)

    async def _run_shielded(self, fetch: Callable[[], Awaitable[None]]) -> None:
        if self._pending is None:
            self._pending = asyncio.ensure_future(fetch())
            self._pending.add_done_callback(_retrieve_exception)
        task = self._pending
        try:
            await asyncio.shield(task)
        finally:
            if task.done():
                self._pending = None

    async def _refresh(self) -> int:
        """Refreshes the cursor with more data from the server.

        Returns the length of self._data after refresh. Will exit early if
        self._data is already non-empty. Raises OperationFailure when the
        cursor cannot be refreshed due to an error on the query.
        """
        task = self._pending
        if task is not None and task.done():
            # Finished after its caller was cancelled, surface any error now.
            self._pending = None
            task.result()

        if len(self._data) or self._killed:
            return len(self._data)

        if self._limit and (
            self._retrieved >= abs(self._limit) or (self._limit < 0 and self._id is not None)
        ):
            # The limit is reached, or a single batch was requested.
            await self.close()
        elif self._id is None:
            await self._run_shielded(self._send_initial)
        elif self._id:
            await self._run_shielded(self._get_more)
        else:
            self._killed = True

        return len(self._data)

    @property
    def alive(self) -> bool:
        """Does this cursor have the potential to return more data?

        Even if :attr:`alive` is ``True``, :meth:`next` can raise
        :exc:`StopAsyncIteration`. Best to use an ``async for`` loop::

            async for doc in collection.aggregate(pipeline):
                print(doc)
        """
        return bool(len(self._data) or (not self._killed))

    @property
    def cursor_id(self) -> Optional[int]:
        """Returns the id of the cursor."""
        return self._id

    @property
    def address(self) -> Optional[_Address]:
        """The (host, port) of the server used, or None."""
        return self._address

    @property
    def retrieved(self) -> int:
        """The number of documents received from the server so far."""
        return self._retrieved

    @property
    def namespace(self) -> str:
        return self._ns

    async def next(self) -> _DocumentType:
        """Advance the cursor."""
        if len(self._data) or await self._refresh():
            return self._data.popleft()
        raise StopAsyncIteration

    async def try_next(self) -> Optional[_DocumentType]:
        """Advance the cursor, returning None at the end of the results."""
        try:
            return await self.next()
        except StopAsyncIteration:
            return None

    def __aiter__(self) -> _AsyncCursorBase[_DocumentType]:
        return self

    async def __anext__(self) -> _DocumentType:
        return await self.next()

    async def to_list(self, length: Optional[int] = None) -> list[_DocumentType]:
        """Converts the contents of this cursor to a list more efficiently than ``[doc async for doc in cursor]``.

        To use::

          >>> await cursor.to_list()

        Or, to read at most n items from the cursor::

          >>> await cursor.to_list(n)

        If the cursor is empty or has no more results, an empty list will be returned.
        """
        res: list[_DocumentType] = []
        if isinstance(length, int) and length < 1:
            raise ValueError("to_list() length must be greater than 0")
        while length is None or len(res) < length:
            if not len(self._data) and not await self._refresh():
                break
            if length is None:
                res.extend(self._data)
                self._data.clear()
            else:
                while self._data and len(res) < length:
                    res.append(self._data.popleft())
        return res

    async def close(self) -> None:
        """Explicitly close / kill this cursor.

        Sends killCursors when the server cursor is still open. Calling it
        again is a no-op.
        """
        pending, self._pending = self._pending, None
        if pending is not None:
            try:
                await pending
            except Exception as exc:
                self._log_close_failure(exc)
        self._data.clear()
        if self._killed:
            return
        self._killed = True
        cursor_id, address = self._id, self._address
        if not cursor_id or address is None:
            return
        try:
            await asyncio.wait_for(
                self._wire.kill_cursors(address, self._ns, [cursor_id]),
                timeout=KILL_CURSORS_TIMEOUT,
            )
        except (MongoWireError, OSError, asyncio.TimeoutError) as exc:
            # The server reaps abandoned cursors on its own.
            self._log_close_failure(exc)

    def _log_close_failure(self, exc: Exception) -> None:
        if _COMMAND_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _COMMAND_LOGGER,
                message="Failed to close cursor",
                cursorId=self._id,
                namespace=self._ns,
                failure=_convert_exception(exc),
            )

    async def __aenter__(self) -> _AsyncCursorBase[_DocumentType]:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
