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

"""Database level operations."""
from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Mapping,
    MutableMapping,
    NoReturn,
    Optional,
    Sequence,
    Union,
)

from mongowire.asynchronous.collection import AsyncCollection
from mongowire.asynchronous.command_cursor import AsyncCommandCursor
from mongowire.errors import InvalidName
from mongowire.read_preferences import ReadPreference, _ServerMode

if TYPE_CHECKING:
    from bson import CodecOptions

    from mongowire.asynchronous.mongo_client import AsyncMongoClient
    from mongowire.asynchronous.wire_protocol import WireProtocol

_IS_SYNC = False


def _check_name(name: str) -> None:
    """Check if a database name is valid."""
    if not name:
        raise InvalidName("database name cannot be the empty string")

    for invalid_char in [" ", ".", "$", "/", "\\", "\x00", '"']:
        if invalid_char in name:
            raise InvalidName("database names cannot contain the character %r" % invalid_char)


class AsyncDatabase:
    def __init__(
        self,
        client: AsyncMongoClient,
        name: str,
        wire: WireProtocol,
        read_preference: Optional[_ServerMode] = None,
    ) -> None:
        """Get a database by client and name.

        Raises :class:`TypeError` if `name` is not an instance of
        :class:`str`. Raises :class:`~mongowire.errors.InvalidName` if
        `name` is not a valid database name.

        :param client: A :class:`~mongowire.asynchronous.mongo_client.AsyncMongoClient` instance.
        :param name: The database name.
        :param wire: The :class:`~mongowire.asynchronous.wire_protocol.WireProtocol`
            of the topology this database lives on.
        :param read_preference: The read preference to use for reads. If
            ``None`` (the default) the topology's configured read preference is
            used.
        """
        if not isinstance(name, str):
            raise TypeError(f"name must be an instance of str, not {type(name)}")
        _check_name(name)

        self._client = client
        self._name = name
        self._wire = wire
        self._read_preference = read_preference or wire.topology.options.read_preference
        self._collections: dict[str, AsyncCollection] = {}

    @property
    def client(self) -> AsyncMongoClient:
        """The client instance for this :class:`AsyncDatabase`."""
        return self._client

    @property
    def name(self) -> str:
        """The name of this :class:`AsyncDatabase`."""
        return self._name

    @property
    def wire(self) -> WireProtocol:
        return self._wire

    @property
    def codec_options(self) -> CodecOptions[Any]:
        return self._wire.codec_options

    @property
    def read_preference(self) -> _ServerMode:
        return self._read_preference

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AsyncDatabase):
            return self._client == other.client and self._name == other.name
        return NotImplemented

    def __ne__(self, other: Any) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return hash((self._client, self._name))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._client!r}, {self._name!r})"

    def __getattr__(self, name: str) -> AsyncCollection:
        """Get a collection of this database by name.

        Raises InvalidName if an invalid collection name is used.

        :param name: the name of the collection to get
        """
        if name.startswith("_"):
            raise AttributeError(
                f"{type(self).__name__} has no attribute {name!r}. To access the {name}"
                f" collection, use database[{name!r}]."
            )
        return self.__getitem__(name)

    def __getitem__(self, name: str) -> AsyncCollection:
        """Get a collection of this database by name.

        Raises InvalidName if an invalid collection name is used.

        :param name: the name of the collection to get
        """
        return self.get_collection(name)

    def __bool__(self) -> NoReturn:
        raise NotImplementedError(
            f"{type(self).__name__} objects do not implement truth "
            "value testing or bool(). Please compare "
            "with None instead: database is not None"
        )

    def get_collection(self, name: str) -> AsyncCollection:
        """Get a :class:`~mongowire.asynchronous.collection.AsyncCollection`
        with the given name.

        The same instance is returned for every call with the same name:

          >>> db.get_collection("test") is db.test
          True

        :param name: The name of the collection - a string.
        """
        coll = self._collections.get(name)
        if coll is None:
            coll = AsyncCollection(self, name)
            self._collections[name] = coll
        return coll

    async def command(
        self,
        command: Union[str, MutableMapping[str, Any]],
        value: Any = 1,
        read_preference: _ServerMode = ReadPreference.PRIMARY,
        check: bool = True,
        allowable_errors: Optional[Sequence[Union[str, int]]] = None,
        codec_options: Optional[CodecOptions[Any]] = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Issue a MongoDB command.

        Send command `command` to the database and return the
        response. If `command` is an instance of :class:`str`
        then the command {`command`: `value`} will be sent.
        Otherwise, `command` must be an instance of
        :class:`dict` and will be sent as is.

        Any additional keyword arguments will be added to the final
        command document before it is sent.

        For example, a command like ``{buildinfo: 1}`` can be sent
        using:

        >>> await db.command("buildinfo")

        :param command: document representing the command to be issued,
            or the name of the command (for simple commands only).
        :param value: value to use for the command verb when
            `command` is passed as a string
        :param read_preference: The read preference for this
            operation.
        :param check: check the response for errors, raising
            :class:`~mongowire.errors.OperationFailure` if there are any
        :param allowable_errors: if `check` is ``True``, error messages
            or codes in this list will be ignored by error-checking
        :param codec_options: A :class:`~bson.codec_options.CodecOptions`
            instance.
        :param kwargs: additional keyword arguments will
            be added to the command document before it is sent
        """
        if isinstance(command, str):
            command = {command: value}
        command.update(kwargs)
        return await self._wire.command_single(
            self._name,
            command,
            read_preference,
            codec_options or self.codec_options,
            check=check,
            allowable_errors=allowable_errors,
        )

    async def list_collections(
        self, filter: Optional[Mapping[str, Any]] = None, **kwargs: Any
    ) -> AsyncCommandCursor[dict[str, Any]]:
        """Get a cursor over the collections of this database.

        :param filter:  A query document to filter the list of
            collections returned from the listCollections command.
        :param kwargs: Optional parameters of the
            `listCollections command
            <https://mongodb.com/docs/manual/reference/command/listCollections/>`_
            can be passed as keyword arguments to this method.

        :return: An instance of :class:`~mongowire.asynchronous.command_cursor.AsyncCommandCursor`.
        """
        cmd: dict[str, Any] = {"listCollections": 1, "cursor": {}}
        if filter is not None:
            cmd["filter"] = filter
        cmd.update(kwargs)
        return await self._wire.command_stream(
            self._name,
            cmd,
            "$cmd.listCollections",
            ReadPreference.PRIMARY,
            codec_options=self.codec_options,
        )

    async def list_collection_names(
        self, filter: Optional[Mapping[str, Any]] = None, **kwargs: Any
    ) -> list[str]:
        """Get a list of all the collection names in this database.

        For example, to list all non-system collections::

            filter = {"name": {"$regex": r"^(?!system\\.)"}}
            await db.list_collection_names(filter=filter)
        """
        kwargs["nameOnly"] = True
        cursor = await self.list_collections(filter, **kwargs)
        return [result["name"] async for result in cursor]

    async def drop_collection(self, name_or_collection: Union[str, AsyncCollection]) -> None:
        """Drop a collection.

        Dropping a collection that does not exist is not an error.

        :param name_or_collection: the name of a collection to drop or the
            collection object itself
        """
        name = name_or_collection
        if isinstance(name, AsyncCollection):
            name = name.name

        if not isinstance(name, str):
            raise TypeError(f"name_or_collection must be an instance of str, not {type(name)}")

        await self.command({"drop": name}, allowable_errors=["ns not found", 26])
