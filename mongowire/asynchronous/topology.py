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

"""Internal class to track a topology of one or more servers."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Optional

from bson import ObjectId

from mongowire.asynchronous.server import Server
from mongowire.client_options import ServerAddress
from mongowire.common import clean_node
from mongowire.errors import (
    InvalidOperation,
    NetworkTimeout,
    ServerSelectionTimeoutError,
)
from mongowire.lock import _async_create_lock
from mongowire.logger import _TOPOLOGY_LOGGER, _debug_log, _TopologyStatusMessage
from mongowire.read_preferences import ReadPreference, _ServerMode
from mongowire.server_type import SERVER_TYPE

if TYPE_CHECKING:
    from mongowire.auth_shared import MongoCredential
    from mongowire.client_options import ConnectOptions
    from mongowire.server_description import ServerDescription
    from mongowire.typings import _Address

_IS_SYNC = False


class TopologyState:
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    TOPOLOGY_KNOWN = "TopologyKnown"
    READY = "Ready"
    CLOSED = "Closed"


class Topology:
    """Track the servers of one deployment and which of them is primary.

    The primary pointer and each server's description are only changed by
    :meth:`connect` and :meth:`update_master`, which never run concurrently
    with each other. Command dispatch reads them without locking.
    """

    def __init__(self, options: ConnectOptions):
        self._options = options
        self._topology_id = ObjectId()
        self._credentials = options.credentials
        self._state = TopologyState.DISCONNECTED
        # Seed order is preserved, it decides between equally suitable servers.
        self._servers: dict[_Address, Server] = {}
        for address in options.servers:
            self._add_server(address)
        self._primary: Optional[Server] = None
        self._lock = _async_create_lock()

    def _add_server(self, address: _Address) -> Server:
        server = Server(address, self._options.pool_options, topology_id=self._topology_id)
        server.set_credentials(self._credentials)
        self._servers[address] = server
        return server

    def _set_state(self, state: str) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _TOPOLOGY_LOGGER,
                message=_TopologyStatusMessage.STATE_CHANGED,
                topologyId=self._topology_id,
                previousState=previous,
                newState=state,
            )

    def _check_open(self) -> None:
        if self._state == TopologyState.CLOSED:
            raise InvalidOperation("Cannot use AsyncMongoClient after close")

    @property
    def state(self) -> str:
        return self._state

    @property
    def servers(self) -> list[Server]:
        """Every known server, in seed order."""
        return list(self._servers.values())

    @property
    def primary(self) -> Optional[Server]:
        """The server currently known to accept writes, or None."""
        return self._primary

    @property
    def options(self) -> ConnectOptions:
        return self._options

    @property
    def description(self) -> list[ServerDescription]:
        return [server.description for server in self._servers.values()]

    def get_server_by_address(self, address: _Address) -> Optional[Server]:
        return self._servers.get(address)

    async def connect(self) -> None:
        """Probe every configured server concurrently.

        Unreachable servers are tolerated as long as one answers. Raises
        :exc:`~mongowire.errors.ServerSelectionTimeoutError` when none does.
        """
        self._check_open()
        self._set_state(TopologyState.CONNECTING)
        if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _TOPOLOGY_LOGGER,
                message=_TopologyStatusMessage.STARTING,
                topologyId=self._topology_id,
                servers=[str(s) for s in self._options.servers],
            )
        async with self._lock:
            descriptions = await self._probe_all()
        if not any(sd.is_server_type_known for sd in descriptions):
            self._set_state(TopologyState.DISCONNECTED)
            errors = ", ".join(f"{sd.address}: {sd.error}" for sd in descriptions)
            raise ServerSelectionTimeoutError(f"No servers reachable: {errors}")
        self._set_state(TopologyState.TOPOLOGY_KNOWN)

    async def _probe(self, servers: list[Server], deadline: float) -> list[ServerDescription]:
        """Probe `servers` concurrently until `deadline`.

        A server still probing at the deadline is marked Unknown, the others
        keep the description their probe returned.
        """
        tasks = [asyncio.ensure_future(server.probe()) for server in servers]
        try:
            if tasks:
                await asyncio.wait(tasks, timeout=max(0.0, deadline - time.monotonic()))
        finally:
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)
        descriptions = []
        for server, task in zip(servers, tasks):
            if task.cancelled():
                timeout = self._options.server_selection_timeout
                descriptions.append(
                    server.mark_unknown(
                        NetworkTimeout(f"{server.address}: no hello reply within {timeout}s")
                    )
                )
            else:
                descriptions.append(task.result())
        return descriptions

    async def _probe_all(self) -> list[ServerDescription]:
        deadline = time.monotonic() + self._options.server_selection_timeout
        descriptions = await self._probe(list(self._servers.values()), deadline)
        options = self._options
        single_seed = (
            len(options.servers) == 1
            and options.direct_connection is None
            and not options.replica_set
        )
        if options.direct_connection or single_seed:
            return descriptions
        # Add replica set members the seeds reported but were not configured.
        discovered = []
        for sd in descriptions:
            if self._options.replica_set and sd.replica_set_name not in (
                None,
                self._options.replica_set,
            ):
                continue
            for host in sd.hosts:
                address = ServerAddress(*clean_node(host))
                if address not in self._servers:
                    discovered.append(self._add_server(address))
        if discovered:
            descriptions.extend(await self._probe(discovered, deadline))
        return descriptions

    def authenticate(self, credentials: Optional[MongoCredential]) -> None:
        """Authenticate every connection the servers open from now on.

        Authentication runs per connection, when the pool creates it.
        """
        self._check_open()
        self._credentials = credentials
        for server in self._servers.values():
            server.set_credentials(credentials)

    async def update_master(self) -> Optional[Server]:
        """Re-probe every server and update the primary pointer.

        Returns the primary, or None when no server accepts writes.
        """
        self._check_open()
        async with self._lock:
            await self._probe_all()
            primary = None
            for server in self._servers.values():
                sd = server.description
                if not sd.is_writable:
                    continue
                if (
                    self._options.replica_set
                    and sd.server_type == SERVER_TYPE.RSPrimary
                    and sd.replica_set_name != self._options.replica_set
                ):
                    continue
                primary = server
                break
            if primary is not self._primary:
                if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
                    _debug_log(
                        _TOPOLOGY_LOGGER,
                        message=_TopologyStatusMessage.PRIMARY_CHANGED,
                        topologyId=self._topology_id,
                        previousPrimary=str(self._primary.address) if self._primary else None,
                        newPrimary=str(primary.address) if primary else None,
                    )
                self._primary = primary
            if self._state in (TopologyState.CONNECTING, TopologyState.TOPOLOGY_KNOWN):
                self._set_state(TopologyState.READY)
            return primary

    def select_server(self, read_preference: _ServerMode = ReadPreference.PRIMARY) -> Server:
        """Return the server an operation with ``read_preference`` should use.

        PRIMARY only ever returns the known primary. Relaxed modes may use
        any readable server.
        """
        self._check_open()
        if self._state not in (TopologyState.TOPOLOGY_KNOWN, TopologyState.READY):
            raise InvalidOperation("Topology is not connected")
        primary = self._primary
        if read_preference.mode == ReadPreference.PRIMARY.mode:
            if primary is None:
                raise ServerSelectionTimeoutError("No primary available")
            return primary
        candidates = [
            s.description
            for s in self._servers.values()
            if s is primary or not s.description.is_writable
        ]
        selected = read_preference.select(candidates)
        if not selected:
            raise ServerSelectionTimeoutError(
                f'No servers match read preference "{read_preference.mongos_mode}"'
            )
        if read_preference.mode == ReadPreference.NEAREST.mode:
            selected.sort(key=lambda sd: sd.round_trip_time or 0.0)
        return self._servers[selected[0].address]

    async def close(self) -> None:
        """Close every server's pools. The topology cannot be reused."""
        if self._state == TopologyState.CLOSED:
            return
        self._set_state(TopologyState.CLOSED)
        self._primary = None
        await asyncio.gather(
            *[server.close() for server in self._servers.values()], return_exceptions=True
        )
        if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _TOPOLOGY_LOGGER,
                message=_TopologyStatusMessage.STOPPING,
                topologyId=self._topology_id,
            )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} state={self._state} servers={self.description!r}>"
