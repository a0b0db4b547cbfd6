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

"""Pool utilities and shared helper methods."""
from __future__ import annotations

import asyncio
import socket
import ssl
from typing import (
    TYPE_CHECKING,
    Any,
    NoReturn,
    Optional,
)

from mongowire.errors import (
    AutoReconnect,
    NetworkTimeout,
)
from mongowire.network_layer import MongoProtocol
from mongowire.ssl_support import SSLError

if TYPE_CHECKING:
    from asyncio import Transport

    from mongowire.pool_options import PoolOptions
    from mongowire.typings import _Address


def _raise_connection_failure(
    address: Any,
    error: Exception,
    msg_prefix: Optional[str] = None,
    timeout_details: Optional[dict[str, float]] = None,
) -> NoReturn:
    """Convert a socket.error to ConnectionFailure and raise it."""
    host, port = address
    # If connecting to a Unix socket, port will be None.
    if port is not None:
        msg = "%s:%d: %s" % (host, port, error)
    else:
        msg = f"{host}: {error}"
    if msg_prefix:
        msg = msg_prefix + msg
    if "configured timeouts" not in msg:
        msg += format_timeout_details(timeout_details)
    if isinstance(error, socket.timeout):
        raise NetworkTimeout(msg) from error
    elif isinstance(error, SSLError) and "timed out" in str(error):
        raise NetworkTimeout(msg) from error
    else:
        raise AutoReconnect(msg) from error


def _get_timeout_details(options: PoolOptions) -> dict[str, float]:
    details = {}
    socket_timeout = options.socket_timeout
    connect_timeout = options.connect_timeout
    if socket_timeout:
        details["socketTimeoutMS"] = socket_timeout * 1000
    if connect_timeout:
        details["connectTimeoutMS"] = connect_timeout * 1000
    return details


def format_timeout_details(details: Optional[dict[str, float]]) -> str:
    result = ""
    if details:
        result += " (configured timeouts:"
        for timeout in ["socketTimeoutMS", "connectTimeoutMS"]:
            if timeout in details:
                result += f" {timeout}: {details[timeout]}ms,"
        result = result[:-1]
        result += ")"
    return result


async def _configured_protocol_interface(
    address: _Address, options: PoolOptions
) -> tuple[Transport, MongoProtocol]:
    """Given (host, port) and PoolOptions, return a connected transport/protocol pair.

    Can raise socket.error, ConnectionFailure, or ssl.CertificateError.

    Sets protocol's SSL and timeout options.
    """
    host, port = address
    ssl_context = options._ssl_context
    timeout = options.socket_timeout
    loop = asyncio.get_running_loop()
    try:
        transport, protocol = await asyncio.wait_for(
            loop.create_connection(  # type: ignore[call-overload]
                lambda: MongoProtocol(timeout=timeout, address=address),
                host,
                port,
                ssl=ssl_context,
                server_hostname=host if ssl_context is not None else None,
            ),
            timeout=options.connect_timeout,
        )
    except asyncio.TimeoutError as exc:
        raise socket.timeout("timed out") from exc
    except ssl.CertificateError:
        raise
    except (OSError, SSLError) as exc:
        if ssl_context is None:
            raise
        details = _get_timeout_details(options)
        _raise_connection_failure(address, exc, "SSL handshake failed: ", timeout_details=details)
    return transport, protocol
