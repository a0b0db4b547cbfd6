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

"""Tools for connecting to MongoDB.

To get a :class:`~mongowire.asynchronous.database.AsyncDatabase` instance from
an :class:`AsyncMongoClient` connect and then use attribute-style or
dictionary-style access:

.. doctest::

  >>> client = AsyncMongoClient()
  >>> await client.connect("mongodb://localhost:27017/test_database")
  AsyncDatabase(AsyncMongoClient(connected_count=1), 'test_database')
  >>> client['test-database']
  AsyncDatabase(AsyncMongoClient(connected_count=1), 'test-database')
"""
from __future__ import annotations

import asyncio
import warnings
from typing import Any, Mapping, NoReturn, Optional, Union

from bson import CodecOptions

from mongowire.asynchronous.database import AsyncDatabase
from mongowire.asynchronous.topology import Topology
from mongowire.asynchronous.uri_parser import parse_connect_options
from mongowire.asynchronous.wire_protocol import WireProtocol
from mongowire.client_options import ConnectOptions, ServerAddress
from mongowire.common import DEFAULT_CODEC_OPTIONS
from mongowire.errors import InvalidOperation
from mongowire.read_preferences import ReadPreference

_IS_SYNC = False

_CacheKey = tuple[ServerAddress, ...]


class _ClientTopology:
    """A connected topology and what was learned while connecting it."""

    __slots__ = ("options", "topology", "wire", "build_info")

    def __init__(
        self,
        options: ConnectOptions,
        topology: Topology,
        wire: WireProtocol,
        build_info: dict[str, Any],
    ) -> None:
        self.options = options
        self.topology = topology
        self.wire = wire
        self.build_info = build_info


class AsyncMongoClient:
    """A client for one or more MongoDB deployments.

    Each distinct server list passed to :meth:`connect` gets its own
    :class:`~mongowire.asynchronous.topology.Topology`. Concurrent calls for
    the same server list share a single connection attempt.

    :param codec_options: The :class:`~bson.codec_options.CodecOptions` used
        to decode replies. Defaults to plain :class:`dict` documents.
    """

    def __init__(self, codec_options: CodecOptions[Any] = DEFAULT_CODEC_OPTIONS) -> None:
        self._codec_options = codec_options
        self._connections: dict[
            _CacheKey, tuple[ConnectOptions, asyncio.Task[_ClientTopology]]
        ] = {}
        self._databases: dict[tuple[_CacheKey, str], AsyncDatabase] = {}
        self._default_key: Optional[_CacheKey] = None
        self.connected_count = 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}(connected_count={self.connected_count})"

    @property
    def codec_options(self) -> CodecOptions[Any]:
        return self._codec_options

    async def connect(self, options: Union[ConnectOptions, str]) -> AsyncDatabase:
        """Connect to the deployment described by `options`.

        `options` is either a :class:`~mongowire.client_options.ConnectOptions`
        or a MongoDB connection string. Returns the
        :class:`~mongowire.asynchronous.database.AsyncDatabase` named by the
        options.

        Calls for a server list that is already connected, or still
        connecting, reuse that topology and do not increase
        :attr:`connected_count`. Only the server list is compared: options
        that differ in anything else, such as credentials, still reuse the
        cached topology, and a :class:`UserWarning` is issued when the
        credentials differ. A failed attempt is forgotten so that a later call
        may try again.

        Raises :exc:`~mongowire.errors.ConfigurationError` for an invalid
        connection string and
        :exc:`~mongowire.errors.ServerSelectionTimeoutError` when no server
        can be reached.
        """
        if isinstance(options, str):
            options = await parse_connect_options(options)
        elif not isinstance(options, ConnectOptions):
            raise TypeError(
                f"options must be a ConnectOptions instance or a connection string, not {type(options)}"
            )
        key = options.cache_key
        entry = self._connections.get(key)
        if entry is None:
            task = asyncio.ensure_future(self._connect(options))
            self._connections[key] = (options, task)
        else:
            cached_options, task = entry
            if cached_options.credentials != options.credentials:
                warnings.warn(
                    "Reusing the connection to %s made with different credentials"
                    % ", ".join(str(s) for s in key),
                    UserWarning,
                    stacklevel=2,
                )
        try:
            connected = await asyncio.shield(task)
        except BaseException:
            if task.done() and (task.cancelled() or task.exception() is not None):
                self._evict(key, task)
            raise
        if self._default_key is None:
            self._default_key = key
        return self._get_database(key, connected, options.database)

    async def _connect(self, options: ConnectOptions) -> _ClientTopology:
        topology = Topology(options)
        try:
            await topology.connect()
            topology.authenticate(options.credentials)
            await topology.update_master()
            wire = WireProtocol(topology, self._codec_options)
            build_info = await wire.command_single(
                "admin", {"buildInfo": 1}, ReadPreference.PRIMARY_PREFERRED
            )
        except BaseException:
            await topology.close()
            raise
        self.connected_count += 1
        return _ClientTopology(options, topology, wire, build_info)

    def _evict(self, key: _CacheKey, task: asyncio.Task[_ClientTopology]) -> None:
        entry = self._connections.get(key)
        if entry is not None and entry[1] is task:
            del self._connections[key]

    def _default(self) -> tuple[_CacheKey, _ClientTopology]:
        key = self._default_key
        entry = self._connections.get(key) if key is not None else None
        if entry is None or not entry[1].done() or entry[1].cancelled():
            raise InvalidOperation(
                f"{type(self).__name__} is not connected, call connect() first"
            )
        return key, entry[1].result()  # type: ignore[return-value]

    def _get_database(self, key: _CacheKey, connected: _ClientTopology, name: str) -> AsyncDatabase:
        db = self._databases.get((key, name))
        if db is None:
            db = AsyncDatabase(self, name, connected.wire)
            self._databases[(key, name)] = db
        return db

    @property
    def build_info(self) -> dict[str, Any]:
        """The ``buildInfo`` reply fetched when the default deployment was
        connected.
        """
        return self._default()[1].build_info

    @property
    def topology(self) -> Topology:
        """The :class:`~mongowire.asynchronous.topology.Topology` of the default
        deployment.
        """
        return self._default()[1].topology

    async def server_info(self) -> dict[str, Any]:
        """Get information about the MongoDB server we're connected to.

        Runs ``buildInfo`` again and refreshes :attr:`build_info`.
        """
        _, connected = self._default()
        connected.build_info = await connected.wire.command_single(
            "admin", {"buildInfo": 1}, ReadPreference.PRIMARY_PREFERRED
        )
        return connected.build_info

    async def run_command(
        self, dbname: str, command: Union[str, Mapping[str, Any]], **kwargs: Any
    ) -> dict[str, Any]:
        """Run `command` against database `dbname` of the default deployment."""
        if not isinstance(command, str):
            command = dict(command)
        return await self.get_database(dbname).command(command, **kwargs)

    async def list_databases(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        name_only: Optional[bool] = None,
        **kwargs: Any,
    ) -> list[dict[str, Any]]:
        """Get the databases of the connected server.

        :param filter: A query document to filter the databases returned.
        :param name_only: Return only the ``name`` of each database.
        :param kwargs: Optional parameters of the
            `listDatabases command
            <https://mongodb.com/docs/manual/reference/command/listDatabases/>`_
            can be passed as keyword arguments to this method.
        """
        cmd: dict[str, Any] = {"listDatabases": 1}
        if filter is not None:
            cmd["filter"] = filter
        if name_only is not None:
            cmd["nameOnly"] = name_only
        cmd.update(kwargs)
        res = await self.run_command("admin", cmd)
        return list(res["databases"])

    async def list_database_names(self) -> list[str]:
        """Get a list of the names of all databases on the connected server."""
        return [doc["name"] for doc in await self.list_databases(name_only=True)]

    def database(self, name: Optional[str] = None) -> AsyncDatabase:
        """Get a database of the default deployment.

        :param name: The name of the database. If ``None`` (the default) the
            database named when connecting is returned.
        """
        key, connected = self._default()
        if name is None:
            name = connected.options.database
        return self._get_database(key, connected, name)

    def get_database(self, name: Optional[str] = None) -> AsyncDatabase:
        """Get a :class:`~mongowire.asynchronous.database.AsyncDatabase` with
        the given name.

        The same instance is returned for every call with the same name.

          >>> client.get_database("test") is client.test
          True

        Raises :class:`~mongowire.errors.InvalidOperation` before the first
        successful :meth:`connect`.
        """
        return self.database(name)

    def __getattr__(self, name: str) -> AsyncDatabase:
        """Get a database by name.

        Raises :class:`~mongowire.errors.InvalidName` if an invalid
        database name is used.

        :param name: the name of the database to get
        """
        if name.startswith("_"):
            raise AttributeError(
                f"{type(self).__name__} has no attribute {name!r}. To access the {name}"
                f" database, use client[{name!r}]."
            )
        return self.__getitem__(name)

    def __getitem__(self, name: str) -> AsyncDatabase:
        """Get a database by name.

        Raises :class:`~mongowire.errors.InvalidName` if an invalid
        database name is used.

        :param name: the name of the database to get
        """
        return self.database(name)

    async def close(self) -> None:
        """Disconnect from every deployment.

        Close all connection pools, cancel connection attempts still in
        progress and forget all cached databases. :attr:`connected_count` is
        reset to 0. Databases and cursors obtained before closing raise
        :exc:`~mongowire.errors.InvalidOperation` when used; calling
        :meth:`connect` again opens new topologies.
        """
        connections = list(self._connections.values())
        self._connections.clear()
        self._databases.clear()
        self._default_key = None
        self.connected_count = 0
        tasks = [task for _, task in connections]
        for task in tasks:
            if not task.done():
                task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.gather(
            *[r.topology.close() for r in results if isinstance(r, _ClientTopology)]
        )

    aclose = close

    async def __aenter__(self) -> AsyncMongoClient:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    __iter__ = None

    def __next__(self) -> NoReturn:
        raise TypeError(f"'{type(self).__name__}' object is not iterable")

    next = __next__
