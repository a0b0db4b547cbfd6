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

"""Cursor class to iterate over Mongo query results."""
from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    Mapping,
    Optional,
    Union,
)

from mongowire import helpers, message
from mongowire.asynchronous.cursor_base import _AsyncCursorBase, _DocumentType
from mongowire.errors import InvalidOperation

if TYPE_CHECKING:
    from mongowire.asynchronous.collection import AsyncCollection

_IS_SYNC = False


class AsyncCursor(_AsyncCursorBase[_DocumentType], Generic[_DocumentType]):
    """A lazy cursor over the results of a ``find`` command.

    Nothing is sent until the first :meth:`next` or :meth:`to_list`. Until
    then :meth:`skip`, :meth:`limit`, :meth:`sort` and :meth:`batch_size`
    change the find command that will be sent. Afterwards they raise
    :exc:`~mongowire.errors.InvalidOperation`.
    """

    def __init__(
        self,
        collection: AsyncCollection,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        skip: int = 0,
        limit: int = 0,
        sort: Optional[Any] = None,
        batch_size: int = 0,
    ) -> None:
        """Create a new cursor.

        Should not be called directly by application developers - see
        :meth:`~mongowire.asynchronous.collection.AsyncCollection.find` instead.
        """
        super().__init__(
            collection.database.wire,
            collection.full_name,
            codec_options=collection.codec_options,
        )
        self._collection = collection
        self._filter = dict(filter or {})
        self._projection = projection
        self._skip = 0
        self._ordering: Optional[dict[str, Any]] = None
        self._started = False
        self.skip(skip)
        self.limit(limit)
        self.batch_size(batch_size)
        if sort is not None:
            self.sort(sort)

    @property
    def collection(self) -> AsyncCollection:
        """The :class:`~mongowire.asynchronous.collection.AsyncCollection` that this
        :class:`AsyncCursor` is iterating.
        """
        return self._collection

    def _check_okay_to_chain(self) -> None:
        """Check if it is okay to chain more options onto this cursor."""
        if self._started or self._retrieved or self._id is not None:
            raise InvalidOperation("cannot set options after executing query")

    def _query_spec(self) -> dict[str, Any]:
        return message._gen_find_command(
            self._collection.name,
            self._filter,
            self._projection,
            self._skip,
            self._limit,
            self._batch_size,
            self._ordering,
        )

    async def _send_initial(self) -> None:
        database = self._collection.database
        cursor_info, address = await self._wire.run_cursor_command(
            database.name,
            self._query_spec(),
            self._collection.read_preference,
            self._codec_options,
        )
        self._update(list(cursor_info.get("firstBatch", [])), int(cursor_info["id"]), address)

    async def _refresh(self) -> int:
        if self._id is None:
            self._started = True
        return await super()._refresh()

    def limit(self, limit: int) -> AsyncCursor[_DocumentType]:
        """Limits the number of results to be returned by this cursor.

        Raises :exc:`TypeError` if `limit` is not an integer. Raises
        :exc:`~mongowire.errors.InvalidOperation` if this :class:`AsyncCursor`
        has already been used. The last `limit` applied to this cursor takes
        precedence. A limit of ``0`` is equivalent to no limit. A negative
        limit returns at most ``abs(limit)`` documents in a single batch and
        closes the server cursor.

        :param limit: the number of results to return
        """
        if not isinstance(limit, int):
            raise TypeError(f"limit must be an integer, not {type(limit)}")
        self._check_okay_to_chain()

        self._limit = limit
        return self

    def batch_size(self, batch_size: int) -> AsyncCursor[_DocumentType]:
        """Limits the number of documents returned in one batch. Each batch
        requires a round trip to the server. It can be adjusted to optimize
        performance and limit data transfer.

        Raises :exc:`TypeError` if `batch_size` is not an integer.
        Raises :exc:`ValueError` if `batch_size` is less than ``0``.
        Raises :exc:`~mongowire.errors.InvalidOperation` if this
        :class:`AsyncCursor` has already been used. The last `batch_size`
        applied to this cursor takes precedence.

        :param batch_size: The size of each batch of results requested.
        """
        if not isinstance(batch_size, int):
            raise TypeError(f"batch_size must be an integer, not {type(batch_size)}")
        if batch_size < 0:
            raise ValueError("batch_size must be >= 0")
        self._check_okay_to_chain()

        self._batch_size = batch_size
        return self

    def skip(self, skip: int) -> AsyncCursor[_DocumentType]:
        """Skips the first `skip` results of this cursor.

        Raises :exc:`TypeError` if `skip` is not an integer. Raises
        :exc:`ValueError` if `skip` is less than ``0``. Raises
        :exc:`~mongowire.errors.InvalidOperation` if this :class:`AsyncCursor`
        has already been used. The last `skip` applied to this cursor takes
        precedence.

        :param skip: the number of results to skip
        """
        if not isinstance(skip, int):
            raise TypeError(f"skip must be an integer, not {type(skip)}")
        if skip < 0:
            raise ValueError("skip must be >= 0")
        self._check_okay_to_chain()

        self._skip = skip
        return self

    def sort(
        self, key_or_list: Union[str, Any], direction: Optional[int] = None
    ) -> AsyncCursor[_DocumentType]:
        """Sorts this cursor's results.

        Pass a field name and a direction, either
        :data:`~mongowire.ASCENDING` or :data:`~mongowire.DESCENDING`::

            async for doc in collection.find().sort("field", mongowire.ASCENDING):
                print(doc)

        To sort by multiple fields, pass a list of (key, direction) pairs,
        or a mapping such as ``{"name": -1}``.

        Raises :exc:`~mongowire.errors.InvalidOperation` if this cursor has
        already been used. Only the last :meth:`sort` applied to this
        cursor has any effect.

        :param key_or_list: a single key or a list of (key, direction)
            pairs specifying the keys to sort on
        :param direction: only used if `key_or_list` is a single
            key, if not given :data:`~mongowire.ASCENDING` is assumed
        """
        self._check_okay_to_chain()
        keys = helpers._index_list(key_or_list, direction)
        self._ordering = helpers._index_document(keys)
        return self

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._ns} {self._filter!r}>"
