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

"""Represent one server the driver is connected to."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from mongowire import common
from mongowire.server_type import SERVER_TYPE
from mongowire.typings import _Address


def _get_server_type(doc: Mapping[str, Any]) -> int:
    """Determine the server type from a hello response."""
    if not doc.get("ok"):
        return SERVER_TYPE.Unknown

    if doc.get("serviceId"):
        return SERVER_TYPE.Mongos
    elif doc.get("isreplicaset"):
        return SERVER_TYPE.RSGhost
    elif doc.get("setName"):
        if doc.get("hidden"):
            return SERVER_TYPE.RSOther
        elif doc.get("isWritablePrimary") or doc.get("ismaster"):
            return SERVER_TYPE.RSPrimary
        elif doc.get("secondary"):
            return SERVER_TYPE.RSSecondary
        elif doc.get("arbiterOnly"):
            return SERVER_TYPE.RSArbiter
        else:
            return SERVER_TYPE.RSOther
    elif doc.get("msg") == "isdbgrid":
        return SERVER_TYPE.Mongos
    else:
        return SERVER_TYPE.Standalone


class ServerDescription:
    """Immutable representation of one server.

    :param address: A (host, port) pair
    :param hello: Optional reply to the ``hello`` command
    :param round_trip_time: Optional float
    :param error: Optional, the last error attempting to connect to the server
    """

    __slots__ = (
        "_address",
        "_server_type",
        "_hosts",
        "_set_name",
        "_primary",
        "_max_bson_size",
        "_max_message_size",
        "_max_write_batch_size",
        "_min_wire_version",
        "_max_wire_version",
        "_round_trip_time",
        "_is_writable",
        "_is_readable",
        "_error",
        "_hello",
    )

    def __init__(
        self,
        address: _Address,
        hello: Optional[Mapping[str, Any]] = None,
        round_trip_time: Optional[float] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self._address = address
        doc: Mapping[str, Any] = hello or {}
        self._hello = doc
        self._server_type = _get_server_type(doc)
        members = [*doc.get("hosts", []), *doc.get("passives", []), *doc.get("arbiters", [])]
        self._hosts = [h.lower() for h in members]
        self._set_name = doc.get("setName")
        self._primary = doc.get("primary")
        self._max_bson_size = doc.get("maxBsonObjectSize", common.MAX_BSON_SIZE)
        self._max_message_size = doc.get("maxMessageSizeBytes", 2 * self._max_bson_size)
        self._max_write_batch_size = doc.get("maxWriteBatchSize", common.MAX_WRITE_BATCH_SIZE)
        self._min_wire_version = doc.get("minWireVersion", common.MIN_WIRE_VERSION)
        self._max_wire_version = doc.get("maxWireVersion", common.MAX_WIRE_VERSION)
        self._is_writable = self._server_type in (
            SERVER_TYPE.RSPrimary,
            SERVER_TYPE.Standalone,
            SERVER_TYPE.Mongos,
        )
        self._is_readable = self._server_type == SERVER_TYPE.RSSecondary or self._is_writable
        self._round_trip_time = round_trip_time
        self._error = error

    @property
    def address(self) -> _Address:
        """The address (host, port) of this server."""
        return self._address

    @property
    def server_type(self) -> int:
        """The type of this server."""
        return self._server_type

    @property
    def server_type_name(self) -> str:
        """The server type as a human readable string."""
        return SERVER_TYPE._fields[self._server_type]

    @property
    def hosts(self) -> list[str]:
        """List of hosts, passives, and arbiters known to this server."""
        return self._hosts

    @property
    def replica_set_name(self) -> Optional[str]:
        """Replica set name or None."""
        return self._set_name

    @property
    def primary(self) -> Optional[str]:
        """This server's opinion about who the primary is, or None."""
        return self._primary

    @property
    def max_bson_size(self) -> int:
        return self._max_bson_size

    @property
    def max_message_size(self) -> int:
        return self._max_message_size

    @property
    def max_write_batch_size(self) -> int:
        return self._max_write_batch_size

    @property
    def min_wire_version(self) -> int:
        return self._min_wire_version

    @property
    def max_wire_version(self) -> int:
        return self._max_wire_version

    @property
    def round_trip_time(self) -> Optional[float]:
        """The last measured round trip time, or None."""
        return self._round_trip_time

    @property
    def error(self) -> Optional[Exception]:
        """The last error attempting to connect to the server, or None."""
        return self._error

    @property
    def is_writable(self) -> bool:
        return self._is_writable

    @property
    def is_readable(self) -> bool:
        return self._is_readable

    @property
    def is_server_type_known(self) -> bool:
        return self.server_type != SERVER_TYPE.Unknown

    @property
    def hello(self) -> Mapping[str, Any]:
        """The raw hello reply this description was built from."""
        return self._hello

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, ServerDescription):
            return (
                (self._address == other.address)
                and (self._server_type == other.server_type)
                and (self._set_name == other.replica_set_name)
                and (self._primary == other.primary)
                and (self._max_wire_version == other.max_wire_version)
                and (self._hosts == other.hosts)
                and (str(self._error) == str(other.error))
            )

        return NotImplemented

    def __ne__(self, other: Any) -> bool:
        return not self == other

    def __repr__(self) -> str:
        errmsg = ""
        if self.error:
            errmsg = f", error={self.error!r}"
        return "<{} {} server_type: {}, rtt: {}{}>".format(
            self.__class__.__name__,
            self.address,
            self.server_type_name,
            self.round_trip_time,
            errmsg,
        )
