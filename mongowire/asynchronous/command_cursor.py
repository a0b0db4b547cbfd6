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

"""AsyncCommandCursor class to iterate over command results."""
from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
    Mapping,
    Optional,
)

from mongowire.asynchronous.cursor_base import _AsyncCursorBase, _DocumentType

if TYPE_CHECKING:
    from bson import CodecOptions

    from mongowire.asynchronous.wire_protocol import WireProtocol
    from mongowire.typings import _Address

_IS_SYNC = False


class AsyncCommandCursor(_AsyncCursorBase[_DocumentType], Generic[_DocumentType]):
    """An asynchronous cursor / iterator over command cursors.

    Created from the reply of a command that opened a server cursor, such as
    ``aggregate`` or ``listIndexes``. The first batch is already buffered.
    """

    def __init__(
        self,
        wire: WireProtocol,
        cursor_info: Mapping[str, Any],
        address: Optional[_Address],
        namespace: str,
        batch_size: int = 0,
        codec_options: Optional[CodecOptions[Any]] = None,
    ) -> None:
        super().__init__(
            wire, cursor_info.get("ns") or namespace, batch_size, codec_options
        )
        self._update(list(cursor_info.get("firstBatch", [])), int(cursor_info["id"]), address)

    def batch_size(self, batch_size: int) -> AsyncCommandCursor[_DocumentType]:
        """Limits the number of documents returned in one batch. Each batch
        requires a round trip to the server. It can be adjusted to optimize
        performance and limit data transfer.

        Raises :exc:`TypeError` if `batch_size` is not an integer.
        Raises :exc:`ValueError` if `batch_size` is less than ``0``.

        :param batch_size: The size of each batch of results requested.
        """
        if not isinstance(batch_size, int):
            raise TypeError(f"batch_size must be an integer, not {type(batch_size)}")
        if batch_size < 0:
            raise ValueError("batch_size must be >= 0")

        self._batch_size = batch_size
        return self
