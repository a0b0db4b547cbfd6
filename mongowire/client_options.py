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

"""Tools to parse connection options."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Mapping, NamedTuple, Optional, Sequence, Union

from mongowire.auth_shared import MongoCredential, _build_credentials_tuple
from mongowire.common import (
    CONNECT_TIMEOUT,
    MAX_POOL_SIZE,
    RETRY_WRITES,
    SERVER_SELECTION_TIMEOUT,
    _CaseInsensitiveDictionary,
    clean_node,
    get_validated_options,
)
from mongowire.errors import ConfigurationError
from mongowire.pool_options import PoolOptions
from mongowire.read_preferences import ReadPreference, _ServerMode
from mongowire.ssl_support import get_ssl_context

if TYPE_CHECKING:
    from ssl import SSLContext


class ServerAddress(NamedTuple):
    """The address of one server, a (host, port) pair."""

    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def _parse_credentials(
    username: Optional[str],
    password: Optional[str],
    database: Optional[str],
    options: Mapping[str, Any],
) -> Optional[MongoCredential]:
    """Parse authentication credentials."""
    mechanism = options.get("authmechanism", "DEFAULT" if username else None)
    source = options.get("authsource")
    if username or mechanism:
        return _build_credentials_tuple(mechanism, source, username, password, options, database)
    return None


def _parse_ssl_options(options: Mapping[str, Any]) -> tuple[Optional[SSLContext], bool]:
    """Parse ssl options."""
    use_tls = options.get("tls")
    if use_tls is not None:
        if "ssl" in options and options["ssl"] != use_tls:
            raise ConfigurationError(
                "Can not specify conflicting values for URI options: tls and ssl."
            )
    else:
        use_tls = options.get("ssl")

    certfile = options.get("tlscertificatekeyfile")
    ca_certs = options.get("tlscafile")
    insecure = options.get("tlsinsecure", False)
    allow_invalid_certificates = options.get("tlsallowinvalidcertificates", insecure)
    allow_invalid_hostnames = options.get("tlsallowinvalidhostnames", insecure)

    tls_keys = [
        k
        for k in (
            "tlscertificatekeyfile",
            "tlscafile",
            "tlsinsecure",
            "tlsallowinvalidcertificates",
        )
        if options.get(k)
    ]
    if use_tls is False and tls_keys:
        raise ConfigurationError(
            "TLS has not been enabled but the following tls parameters have been set: "
            "{}. Please set `tls=True` or remove.".format(", ".join(tls_keys))
        )

    if tls_keys and use_tls is None:
        # tls options imply tls = True
        use_tls = True

    if use_tls is True:
        ctx = get_ssl_context(
            certfile, ca_certs, allow_invalid_certificates, allow_invalid_hostnames
        )
        return ctx, allow_invalid_hostnames
    return None, allow_invalid_hostnames


def _parse_pool_options(
    appname: Optional[str],
    options: Mapping[str, Any],
    credentials: Optional[MongoCredential],
    ssl_context: Optional[SSLContext],
    tls_allow_invalid_hostnames: bool,
) -> PoolOptions:
    """Parse connection pool options."""
    max_pool_size = options.get("maxpoolsize", MAX_POOL_SIZE)
    connect_timeout = options.get("connecttimeoutms", CONNECT_TIMEOUT)
    socket_timeout = options.get("sockettimeoutms")
    wait_queue_timeout = options.get("waitqueuetimeoutms")
    compressors = options.get("compressors")
    return PoolOptions(
        max_pool_size,
        connect_timeout,
        socket_timeout,
        wait_queue_timeout,
        ssl_context,
        tls_allow_invalid_hostnames,
        appname,
        compressors,
        credentials,
    )


class ConnectOptions:
    """Read only configuration for one logical connection attempt.

    Build one from a connection string with
    :func:`~mongowire.asynchronous.uri_parser.parse_connect_options`, or
    directly::

      ConnectOptions(servers=[("localhost", 27017)], database="test")

    :param servers: ordered list of ``(host, port)`` pairs or ``"host:port"`` strings.
    :param database: the database :meth:`~mongowire.AsyncMongoClient.connect` returns.
    :param username: optional user name; requires ``password``.
    :param password: optional password.
    :param options: connection string options, see
      :data:`~mongowire.common.URI_OPTIONS_VALIDATOR_MAP`. Keys are case
      insensitive. Unknown keys are ignored with a warning.
    :param credentials: explicit credentials, overriding username and password.
    :param validate: set to False when ``options`` were already validated.
    """

    def __init__(
        self,
        servers: Sequence[Union[str, tuple[str, int]]],
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
        credentials: Optional[MongoCredential] = None,
        validate: bool = True,
    ) -> None:
        if not servers:
            raise ConfigurationError("need to specify at least one server")
        if validate:
            opts = get_validated_options(options or {}, warn=False)
        else:
            opts = _CaseInsensitiveDictionary(options or {})
        self.__servers = tuple(_to_address(s) for s in servers)
        self.__database = database or "admin"
        if credentials is None:
            credentials = _parse_credentials(username, password, database, opts)
        self.__credentials = credentials
        self.__ssl_context, tls_allow_invalid_hostnames = _parse_ssl_options(opts)
        self.__retry_writes = opts.get("retrywrites", RETRY_WRITES)
        self.__app_name = opts.get("appname")
        self.__replica_set = opts.get("replicaset")
        self.__direct_connection = opts.get("directconnection")
        self.__read_preference = opts.get("readpreference", ReadPreference.PRIMARY)
        self.__server_selection_timeout = opts.get(
            "serverselectiontimeoutms", SERVER_SELECTION_TIMEOUT
        )
        self.__compressors = opts.get("compressors", [])
        self.__pool_options = _parse_pool_options(
            self.__app_name, opts, credentials, self.__ssl_context, tls_allow_invalid_hostnames
        )
        self.__options = opts

    @property
    def servers(self) -> list[ServerAddress]:
        """The configured servers, in seed order."""
        return list(self.__servers)

    @property
    def database(self) -> str:
        """The database name, ``"admin"`` when none was given."""
        return self.__database

    @property
    def credentials(self) -> Optional[MongoCredential]:
        """A :class:`~mongowire.auth_shared.MongoCredential` instance or None."""
        return self.__credentials

    @property
    def tls(self) -> bool:
        return self.__ssl_context is not None

    @property
    def ssl_context(self) -> Optional[SSLContext]:
        return self.__ssl_context

    @property
    def retry_writes(self) -> bool:
        """Retry once after a "not primary" error. Defaults to True."""
        return self.__retry_writes

    @property
    def app_name(self) -> Optional[str]:
        return self.__app_name

    @property
    def replica_set(self) -> Optional[str]:
        """Replica set name or None."""
        return self.__replica_set

    @property
    def direct_connection(self) -> Optional[bool]:
        return self.__direct_connection

    @property
    def read_preference(self) -> _ServerMode:
        """The default read preference."""
        return self.__read_preference

    @property
    def server_selection_timeout(self) -> float:
        """Seconds to wait for at least one server at connect time."""
        return self.__server_selection_timeout

    @property
    def compressors(self) -> list[str]:
        return self.__compressors

    @property
    def pool_options(self) -> PoolOptions:
        """A :class:`~mongowire.pool_options.PoolOptions` instance."""
        return self.__pool_options

    @property
    def options(self) -> Mapping[str, Any]:
        """The validated options this instance was built from."""
        return self.__options

    @property
    def cache_key(self) -> tuple[ServerAddress, ...]:
        """The canonical server list, used to de-duplicate connect calls."""
        return self.__servers

    def __repr__(self) -> str:
        return "{}(servers={!r}, database={!r})".format(
            self.__class__.__name__,
            [str(s) for s in self.__servers],
            self.__database,
        )


def _to_address(server: Union[str, Iterable[Any]]) -> ServerAddress:
    if isinstance(server, ServerAddress):
        return server
    if isinstance(server, str):
        host, port = clean_node(server)
        return ServerAddress(host, port)
    host, port = server  # type: ignore[misc]
    return ServerAddress(host.lower(), int(port))
