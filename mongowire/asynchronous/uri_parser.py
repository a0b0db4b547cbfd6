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

"""Tools to parse and validate a MongoDB URI."""
from __future__ import annotations

from typing import Any, Optional
from urllib.parse import unquote_plus

from mongowire.asynchronous.srv_resolver import _SrvResolver
from mongowire.client_options import ConnectOptions
from mongowire.common import _CaseInsensitiveDictionary
from mongowire.errors import ConfigurationError, InvalidURI
from mongowire.uri_parser_shared import (
    _ALLOWED_TXT_OPTS,
    DEFAULT_PORT,
    SCHEME,
    SCHEME_LEN,
    SRV_SCHEME_LEN,
    SRV_SERVICE_NAME,
    _check_options,
    _validate_uri,
    split_hosts,
    split_options,
)

_IS_SYNC = False


async def parse_uri(
    uri: str,
    default_port: Optional[int] = DEFAULT_PORT,
    validate: bool = True,
    warn: bool = False,
    connect_timeout: Optional[float] = None,
) -> dict[str, Any]:
    """Parse and validate a MongoDB URI.

    Returns a dict of the form::

        {
            'nodelist': <list of (host, port) tuples>,
            'username': <username> or None,
            'password': <password> or None,
            'database': <database name> or None,
            'collection': <collection name> or None,
            'options': <dict of MongoDB URI options>,
            'fqdn': <fqdn of the MongoDB+SRV URI> or None
        }

    If the URI scheme is "mongodb+srv://" DNS SRV and TXT lookups will be done
    to build nodelist and options.

    :param uri: The MongoDB URI to parse.
    :param default_port: The port number to use when one wasn't specified
          for a host in the URI.
    :param validate: If ``True`` (the default), validate all options.
    :param warn: When validating, if ``True`` then will warn
          the user then ignore any invalid values. If ``False``,
          validation will error when values are invalid. Unknown options
          are always ignored with a warning. Default: ``False``.
    :param connect_timeout: The maximum time in seconds to
          wait for a response from the DNS server.
    """
    result = _validate_uri(uri, default_port, validate, warn)
    result.update(await _parse_srv(uri, default_port, validate, warn, connect_timeout))
    return result


async def _parse_srv(
    uri: str,
    default_port: Optional[int] = DEFAULT_PORT,
    validate: bool = True,
    warn: bool = False,
    connect_timeout: Optional[float] = None,
) -> dict[str, Any]:
    if uri.startswith(SCHEME):
        is_srv = False
        scheme_free = uri[SCHEME_LEN:]
    else:
        is_srv = True
        scheme_free = uri[SRV_SCHEME_LEN:]

    options = _CaseInsensitiveDictionary()

    host_plus_db_part, _, opts = scheme_free.partition("?")
    if "/" in host_plus_db_part:
        host_part, _, _ = host_plus_db_part.partition("/")
    else:
        host_part = host_plus_db_part

    if opts:
        options.update(split_options(opts, validate, warn))
    srv_service_name = options.get("srvServiceName", SRV_SERVICE_NAME)
    if "@" in host_part:
        _, _, hosts = host_part.rpartition("@")
    else:
        hosts = host_part

    hosts = unquote_plus(hosts)
    srv_max_hosts = options.get("srvMaxHosts")
    if is_srv:
        nodes = split_hosts(hosts, default_port=None)
        fqdn, port = nodes[0]

        # Use the connection timeout. connectTimeoutMS passed as a keyword
        # argument overrides the same option passed in the connection string.
        connect_timeout = connect_timeout or options.get("connectTimeoutMS")
        dns_resolver = _SrvResolver(fqdn, connect_timeout, srv_service_name, srv_max_hosts)
        nodes = await dns_resolver.get_hosts()
        dns_options = await dns_resolver.get_options()
        if dns_options:
            parsed_dns_options = split_options(dns_options, validate, warn)
            if set(parsed_dns_options) - _ALLOWED_TXT_OPTS:
                raise ConfigurationError("Only authSource and replicaSet are supported from DNS")
            for opt, val in parsed_dns_options.items():
                if opt not in options:
                    options[opt] = val
        if options.get("replicaSet") and srv_max_hosts:
            raise InvalidURI("You cannot specify replicaSet with srvMaxHosts")
        if "tls" not in options and "ssl" not in options:
            options["tls"] = True if validate else "true"
    else:
        nodes = split_hosts(hosts, default_port=default_port)

    _check_options(nodes, options)

    return {
        "nodelist": nodes,
        "options": options,
    }


async def parse_connect_options(uri: str) -> ConnectOptions:
    """Parse ``uri`` into a :class:`~mongowire.client_options.ConnectOptions`.

    Invalid values for recognised options raise
    :exc:`~mongowire.errors.ConfigurationError`; unknown options are ignored
    with a warning.
    """
    parsed = await parse_uri(uri)
    return ConnectOptions(
        servers=parsed["nodelist"],
        database=parsed["database"],
        username=parsed["username"],
        password=parsed["password"],
        options=parsed["options"],
        validate=False,
    )
