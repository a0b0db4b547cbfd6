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

"""Communicate with one MongoDB server in a topology."""
from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    AsyncContextManager,
    Optional,
)

from mongowire.asynchronous.pool import Pool
from mongowire.errors import ConnectionFailure, OperationFailure, ProtocolError
from mongowire.logger import _TOPOLOGY_LOGGER, _debug_log, _TopologyStatusMessage
from mongowire.message import _convert_exception
from mongowire.pool_options import PoolOptions
from mongowire.server_description import ServerDescription

if TYPE_CHECKING:
    from bson import ObjectId

    from mongowire.asynchronous.pool import AsyncConnection
    from mongowire.auth_shared import MongoCredential
    from mongowire.typings import _Address

_IS_SYNC = False


def _monitor_pool_options(options: PoolOptions) -> PoolOptions:
    # Monitors use connect_timeout for both connect_timeout and socket_timeout
    # and never authenticate.
    return PoolOptions(
        connect_timeout=options.connect_timeout,
        socket_timeout=options.connect_timeout,
        ssl_context=options._ssl_context,
        tls_allow_invalid_hostnames=options.tls_allow_invalid_hostnames,
        appname=options.appname,
        compressors=options.compressors,
    )


class Server:
    def __init__(
        self,
        address: _Address,
        pool_options: PoolOptions,
        topology_id: Optional[ObjectId] = None,
    ) -> None:
        """Represent one MongoDB server.

        Application operations check connections out of ``pool``. Probes run
        on a separate monitoring pool that never authenticates.
        """
        self._description = ServerDescription(address)
        self._topology_id = topology_id
        self._pool = Pool(address, pool_options, client_id=topology_id)
        self._monitor_pool = Pool(
            address, _monitor_pool_options(pool_options), is_sdam=True, client_id=topology_id
        )

    async def probe(self) -> ServerDescription:
        """Run the hello handshake once and record the result.

        A failed probe does not raise: the server's description becomes
        Unknown with the error attached.
        """
        address = self._description.address
        try:
            async with self._monitor_pool.checkout() as conn:
                sd = await conn.hello()
        except (ConnectionFailure, OperationFailure, ProtocolError) as exc:
            return self.mark_unknown(exc)
        else:
            if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _TOPOLOGY_LOGGER,
                    message=_TopologyStatusMessage.PROBE_SUCCEEDED,
                    topologyId=self._topology_id,
                    serverHost=address[0],
                    serverPort=address[1],
                    serverType=sd.server_type_name,
                    durationMS=sd.round_trip_time,
                    reply=sd.hello,
                )
        self.description = sd
        return sd

    def mark_unknown(self, error: Exception) -> ServerDescription:
        """Record a failed probe: the description becomes Unknown with ``error``."""
        address = self._description.address
        if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
            _debug_log(
                _TOPOLOGY_LOGGER,
                message=_TopologyStatusMessage.PROBE_FAILED,
                topologyId=self._topology_id,
                serverHost=address[0],
                serverPort=address[1],
                failure=_convert_exception(error),
            )
        self.description = ServerDescription(address, error=error)
        return self.description

    def set_credentials(self, credentials: Optional[MongoCredential]) -> None:
        """Authenticate application connections opened from now on."""
        self._pool.set_credentials(credentials)

    async def close(self) -> None:
        """Close the application and monitoring pools."""
        await self._monitor_pool.close()
        await self._pool.close()

    def checkout(self) -> AsyncContextManager[AsyncConnection]:
        return self._pool.checkout()

    @property
    def address(self) -> _Address:
        return self._description.address

    @property
    def description(self) -> ServerDescription:
        return self._description

    @description.setter
    def description(self, server_description: ServerDescription) -> None:
        assert server_description.address == self._description.address
        self._description = server_description

    @property
    def pool(self) -> Pool:
        return self._pool

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._description!r}>"
