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

"""Send command documents to the servers of a topology."""
from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Any,
    Container,
    Mapping,
    MutableMapping,
    Optional,
    Union,
)

from bson import CodecOptions

from mongowire import message
from mongowire.asynchronous.command_cursor import AsyncCommandCursor
from mongowire.common import DEFAULT_CODEC_OPTIONS
from mongowire.errors import AutoReconnect, InvalidOperation, NotPrimaryError
from mongowire.logger import _TOPOLOGY_LOGGER, _debug_log, _TopologyStatusMessage
from mongowire.read_preferences import ReadPreference, _ServerMode

if TYPE_CHECKING:
    from mongowire.asynchronous.server import Server
    from mongowire.asynchronous.topology import Topology
    from mongowire.typings import _Address

_IS_SYNC = False


class WireProtocol:
    """Run commands against the server the topology selects.

    :param topology: a connected :class:`~mongowire.asynchronous.topology.Topology`
    :param codec_options: how reply documents are decoded
    """

    def __init__(
        self,
        topology: Topology,
        codec_options: CodecOptions[Mapping[str, Any]] = DEFAULT_CODEC_OPTIONS,  # type: ignore[assignment]
    ) -> None:
        self._topology = topology
        self._codec_options = codec_options
        self._retry = topology.options.retry_writes

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def codec_options(self) -> CodecOptions[Mapping[str, Any]]:
        return self._codec_options

    async def _run_on(
        self,
        server: Server,
        dbname: str,
        command: MutableMapping[str, Any],
        read_preference: _ServerMode,
        codec_options: CodecOptions[Mapping[str, Any]],
        check: bool,
        allowable_errors: Optional[Container[Union[str, int]]],
    ) -> tuple[dict[str, Any], _Address]:
        async with server.checkout() as conn:
            reply = await conn.command(
                dbname,
                command,
                read_preference,
                codec_options,
                check,
                allowable_errors,  # type: ignore[arg-type]
            )
            return reply, conn.address

    async def _run_with_retry(
        self,
        dbname: str,
        command: MutableMapping[str, Any],
        read_preference: _ServerMode,
        codec_options: Optional[CodecOptions[Mapping[str, Any]]],
        check: bool,
        allowable_errors: Optional[Container[Union[str, int]]],
    ) -> tuple[dict[str, Any], _Address]:
        opts = codec_options or self._codec_options
        server = self._topology.select_server(read_preference)
        try:
            return await self._run_on(
                server, dbname, command, read_preference, opts, check, allowable_errors
            )
        except NotPrimaryError as exc:
            if _TOPOLOGY_LOGGER.isEnabledFor(logging.DEBUG):
                _debug_log(
                    _TOPOLOGY_LOGGER,
                    message=_TopologyStatusMessage.NOT_PRIMARY_REFRESH,
                    serverHost=server.address[0],
                    serverPort=server.address[1],
                    failure=exc.details,
                )
            await self._topology.update_master()
            if not self._retry:
                raise
        # Retry exactly once against the refreshed primary.
        server = self._topology.select_server(read_preference)
        return await self._run_on(
            server, dbname, command, read_preference, opts, check, allowable_errors
        )

    async def command_single(
        self,
        dbname: str,
        command: MutableMapping[str, Any],
        read_preference: _ServerMode = ReadPreference.PRIMARY,
        codec_options: Optional[CodecOptions[Mapping[str, Any]]] = None,
        check: bool = True,
        allowable_errors: Optional[Container[Union[str, int]]] = None,
    ) -> dict[str, Any]:
        """Run ``command`` on ``dbname`` and return the reply document.

        A reply with ``ok: 0`` raises :exc:`~mongowire.errors.OperationFailure`.
        A "not primary" error refreshes the topology and, when retryWrites is
        enabled, retries the command once.
        """
        reply, _ = await self._run_with_retry(
            dbname, command, read_preference, codec_options, check, allowable_errors
        )
        return reply

    async def run_cursor_command(
        self,
        dbname: str,
        command: MutableMapping[str, Any],
        read_preference: _ServerMode = ReadPreference.PRIMARY,
        codec_options: Optional[CodecOptions[Mapping[str, Any]]] = None,
    ) -> tuple[Mapping[str, Any], _Address]:
        """Run a cursor-opening command. Returns (cursor document, address)."""
        reply, address = await self._run_with_retry(
            dbname, command, read_preference, codec_options, True, None
        )
        cursor_info = reply.get("cursor")
        if not isinstance(cursor_info, Mapping) or "id" not in cursor_info:
            raise InvalidOperation(f"{next(iter(command))!r} did not return a cursor")
        return cursor_info, address

    async def command_stream(
        self,
        dbname: str,
        command: MutableMapping[str, Any],
        collection: str,
        read_preference: _ServerMode = ReadPreference.PRIMARY,
        batch_size: int = 0,
        codec_options: Optional[CodecOptions[Mapping[str, Any]]] = None,
    ) -> AsyncCommandCursor[dict[str, Any]]:
        """Run a cursor-opening command and return a cursor over its results."""
        cursor_info, address = await self.run_cursor_command(
            dbname, command, read_preference, codec_options
        )
        return AsyncCommandCursor(
            self,
            cursor_info,
            address,
            f"{dbname}.{collection}",
            batch_size=batch_size,
            codec_options=codec_options,
        )

    def _server_for(self, address: _Address) -> Server:
        server = self._topology.get_server_by_address(address)
        if server is None:
            raise AutoReconnect(f"{address[0]}:{address[1]} is no longer part of the topology")
        return server

    async def get_more(
        self,
        address: _Address,
        namespace: str,
        cursor_id: int,
        batch_size: Optional[int] = None,
        codec_options: Optional[CodecOptions[Mapping[str, Any]]] = None,
    ) -> tuple[list[Any], int]:
        """Fetch the next batch of ``cursor_id`` from the server that created it.

        Returns (documents, next cursor id). A cursor id of 0 means the server
        has no more results.
        """
        dbname, coll = namespace.split(".", 1)
        cmd = message._gen_get_more_command(cursor_id, coll, batch_size)
        reply, _ = await self._run_on(
            self._server_for(address),
            dbname,
            cmd,
            ReadPreference.PRIMARY,
            codec_options or self._codec_options,
            True,
            None,
        )
        cursor = reply["cursor"]
        return list(cursor["nextBatch"]), int(cursor["id"])

    async def kill_cursors(self, address: _Address, namespace: str, cursor_ids: list[int]) -> None:
        """Tell the server that created them to close ``cursor_ids``."""
        dbname, coll = namespace.split(".", 1)
        cmd = message._gen_kill_cursors_command(cursor_ids, coll)
        await self._run_on(
            self._server_for(address),
            dbname,
            cmd,
            ReadPreference.PRIMARY,
            self._codec_options,
            True,
            None,
        )
