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

"""Result class definitions."""
from __future__ import annotations

from typing import Any, Mapping, Optional


class _WriteResult:
    """Base class for write result classes."""

    __slots__ = ("__raw_result",)

    def __init__(self, raw_result: Optional[Mapping[str, Any]] = None) -> None:
        self.__raw_result = raw_result

    @property
    def raw_result(self) -> Optional[Mapping[str, Any]]:
        """The raw result document returned by the server, if any."""
        return self.__raw_result


class InsertOneResult(_WriteResult):
    """The return type for :meth:`~mongowire.asynchronous.collection.AsyncCollection.insert_one`."""

    __slots__ = ("__inserted_id",)

    def __init__(self, inserted_id: Any, raw_result: Optional[Mapping[str, Any]] = None) -> None:
        self.__inserted_id = inserted_id
        super().__init__(raw_result)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.__inserted_id!r})"

    @property
    def inserted_id(self) -> Any:
        """The inserted document's _id."""
        return self.__inserted_id


class InsertManyResult(_WriteResult):
    """The return type for :meth:`~mongowire.asynchronous.collection.AsyncCollection.insert_many`."""

    __slots__ = ("__inserted_ids",)

    def __init__(
        self, inserted_ids: list[Any], raw_result: Optional[Mapping[str, Any]] = None
    ) -> None:
        self.__inserted_ids = inserted_ids
        super().__init__(raw_result)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.__inserted_ids!r})"

    @property
    def inserted_ids(self) -> list[Any]:
        """A list of _ids of the inserted documents, in the order provided."""
        return self.__inserted_ids

    @property
    def inserted_count(self) -> int:
        """The number of documents inserted."""
        if self.raw_result is not None:
            return self.raw_result.get("n", 0)
        return len(self.__inserted_ids)


class UpdateResult(_WriteResult):
    """The return type for :meth:`~mongowire.asynchronous.collection.AsyncCollection.update_one`
    and :meth:`~mongowire.asynchronous.collection.AsyncCollection.update_many`.
    """

    __slots__ = ()

    def __init__(self, raw_result: Mapping[str, Any]) -> None:
        super().__init__(raw_result)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.raw_result!r})"

    @property
    def matched_count(self) -> int:
        """The number of documents matched for this update."""
        assert self.raw_result is not None
        if self.upserted_id is not None:
            return 0
        return self.raw_result.get("n", 0)

    @property
    def modified_count(self) -> int:
        """The number of documents modified."""
        assert self.raw_result is not None
        return self.raw_result.get("nModified", 0)

    @property
    def upserted_id(self) -> Any:
        """The _id of the inserted document if an upsert took place. Otherwise
        ``None``.
        """
        assert self.raw_result is not None
        upserted = self.raw_result.get("upserted")
        if upserted:
            return upserted[0].get("_id")
        return None


class DeleteResult(_WriteResult):
    """The return type for :meth:`~mongowire.asynchronous.collection.AsyncCollection.delete_one`
    and :meth:`~mongowire.asynchronous.collection.AsyncCollection.delete_many`.
    """

    __slots__ = ()

    def __init__(self, raw_result: Mapping[str, Any]) -> None:
        super().__init__(raw_result)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.raw_result!r})"

    @property
    def deleted_count(self) -> int:
        """The number of documents deleted."""
        assert self.raw_result is not None
        return self.raw_result.get("n", 0)
