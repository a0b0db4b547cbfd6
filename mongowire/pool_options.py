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

"""Pool options for AsyncMongoClient."""
from __future__ import annotations

import copy
import platform
import sys
from typing import TYPE_CHECKING, Any, Optional

from mongowire._version import __version__
from mongowire.common import CONNECT_TIMEOUT, MAX_POOL_SIZE

if TYPE_CHECKING:
    from ssl import SSLContext

    from mongowire.auth_shared import MongoCredential


_METADATA: dict[str, Any] = {"driver": {"name": "mongowire", "version": __version__}}

_METADATA["os"] = {
    "type": platform.system(),
    "name": platform.system(),
    "architecture": platform.machine(),
    "version": platform.release(),
}

_METADATA["platform"] = " ".join(
    (platform.python_implementation(), ".".join(map(str, sys.version_info[:3])))
)

# The server rejects a client metadata document larger than this.
_MAX_METADATA_SIZE = 512


def _truncate_metadata(metadata: dict[str, Any]) -> None:
    """Drop optional fields until the encoded metadata fits."""
    import bson

    if len(bson.encode(metadata)) <= _MAX_METADATA_SIZE:
        return
    metadata.pop("platform", None)
    if len(bson.encode(metadata)) <= _MAX_METADATA_SIZE:
        return
    metadata["os"] = {"type": metadata["os"]["type"]}


class PoolOptions:
    """Read only connection pool options for an AsyncMongoClient.

    Should not be instantiated directly by application developers. Access
    a client's pool options via
    :attr:`~mongowire.client_options.ConnectOptions.pool_options` instead::

      pool_opts = options.pool_options
      pool_opts.max_pool_size
    """

    __slots__ = (
        "__max_pool_size",
        "__connect_timeout",
        "__socket_timeout",
        "__wait_queue_timeout",
        "__ssl_context",
        "__tls_allow_invalid_hostnames",
        "__appname",
        "__metadata",
        "__compressors",
        "__credentials",
    )

    def __init__(
        self,
        max_pool_size: int = MAX_POOL_SIZE,
        connect_timeout: Optional[float] = CONNECT_TIMEOUT,
        socket_timeout: Optional[float] = None,
        wait_queue_timeout: Optional[float] = None,
        ssl_context: Optional[SSLContext] = None,
        tls_allow_invalid_hostnames: bool = False,
        appname: Optional[str] = None,
        compressors: Optional[list[str]] = None,
        credentials: Optional[MongoCredential] = None,
    ):
        self.__max_pool_size = max_pool_size
        self.__connect_timeout = connect_timeout
        self.__socket_timeout = socket_timeout
        self.__wait_queue_timeout = wait_queue_timeout
        self.__ssl_context = ssl_context
        self.__tls_allow_invalid_hostnames = tls_allow_invalid_hostnames
        self.__appname = appname
        self.__compressors = compressors or []
        self.__credentials = credentials
        self.__metadata = copy.deepcopy(_METADATA)
        if appname:
            self.__metadata["application"] = {"name": appname}
        _truncate_metadata(self.__metadata)

    def with_credentials(self, credentials: Optional[MongoCredential]) -> PoolOptions:
        """Return a copy of these options using ``credentials``."""
        return PoolOptions(
            max_pool_size=self.__max_pool_size,
            connect_timeout=self.__connect_timeout,
            socket_timeout=self.__socket_timeout,
            wait_queue_timeout=self.__wait_queue_timeout,
            ssl_context=self.__ssl_context,
            tls_allow_invalid_hostnames=self.__tls_allow_invalid_hostnames,
            appname=self.__appname,
            compressors=self.__compressors,
            credentials=credentials,
        )

    @property
    def _credentials(self) -> Optional[MongoCredential]:
        """A :class:`~mongowire.auth_shared.MongoCredential` instance or None."""
        return self.__credentials

    @property
    def non_default_options(self) -> dict[str, Any]:
        """The non-default options this pool was created with."""
        opts: dict[str, Any] = {}
        if self.__max_pool_size != MAX_POOL_SIZE:
            opts["maxPoolSize"] = self.__max_pool_size
        if self.__wait_queue_timeout is not None:
            opts["waitQueueTimeoutMS"] = self.__wait_queue_timeout * 1000
        return opts

    @property
    def max_pool_size(self) -> int:
        """The maximum allowable number of concurrent connections to each
        connected server. Requests to a server will block if there are
        `maxPoolSize` outstanding connections to the requested server.
        Defaults to 100. Cannot be 0.

        When a server's pool has reached `max_pool_size`, operations for that
        server block waiting for a connection to be returned to the pool. If
        ``waitQueueTimeoutMS`` is set, a blocked operation will raise
        :exc:`~mongowire.errors.WaitQueueTimeoutError` after a timeout.
        By default ``waitQueueTimeoutMS`` is not set.
        """
        return self.__max_pool_size

    @property
    def connect_timeout(self) -> Optional[float]:
        """How long a connection can take to be opened before timing out."""
        return self.__connect_timeout

    @property
    def socket_timeout(self) -> Optional[float]:
        """How long a send or receive on a socket can take before timing out."""
        return self.__socket_timeout

    @property
    def wait_queue_timeout(self) -> Optional[float]:
        """How long a task will wait for a connection from the pool if the pool
        has no free connections.
        """
        return self.__wait_queue_timeout

    @property
    def _ssl_context(self) -> Optional[SSLContext]:
        """An SSLContext instance or None."""
        return self.__ssl_context

    @property
    def tls_allow_invalid_hostnames(self) -> bool:
        """If True skip ssl.match_hostname."""
        return self.__tls_allow_invalid_hostnames

    @property
    def appname(self) -> Optional[str]:
        """The application name, for sending with hello in server handshake."""
        return self.__appname

    @property
    def compressors(self) -> list[str]:
        """Compressors named in the connection string. Sent with hello, never negotiated."""
        return self.__compressors

    @property
    def metadata(self) -> dict[str, Any]:
        """A dict of metadata about the application, driver, os, and platform."""
        return self.__metadata.copy()
