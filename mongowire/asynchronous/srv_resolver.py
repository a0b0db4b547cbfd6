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

"""Support for resolving hosts and options from mongodb+srv:// URIs."""
from __future__ import annotations

import ipaddress
import random
from typing import Any, Optional, Union

from dns import asyncresolver, resolver

from mongowire.common import CONNECT_TIMEOUT
from mongowire.errors import ConfigurationError

_IS_SYNC = False


# dnspython can return bytes or str from various parts
# of its API depending on version. We always want str.
def maybe_decode(text: Union[str, bytes]) -> str:
    if isinstance(text, bytes):
        return text.decode()
    return text


async def _resolve(*args: Any, **kwargs: Any) -> resolver.Answer:
    return await asyncresolver.resolve(*args, **kwargs)


_INVALID_HOST_MSG = (
    "Invalid URI host: %s is not a valid hostname for 'mongodb+srv://'. "
    "Did you mean to use 'mongodb://'?"
)


class _SrvResolver:
    def __init__(
        self,
        fqdn: str,
        connect_timeout: Optional[float],
        srv_service_name: str,
        srv_max_hosts: int = 0,
    ):
        self.__fqdn = fqdn
        self.__srv = srv_service_name
        self.__connect_timeout = connect_timeout or CONNECT_TIMEOUT
        self.__srv_max_hosts = srv_max_hosts or 0
        # Validate the fully qualified domain name.
        try:
            ipaddress.ip_address(fqdn)
            raise ConfigurationError(_INVALID_HOST_MSG % ("an IP address",))
        except ValueError:
            pass
        split_fqdn = self.__fqdn.split(".")
        self.__plist = split_fqdn[1:] if len(split_fqdn) > 2 else split_fqdn
        self.__slen = len(self.__plist)
        self.nparts = len(split_fqdn)

    async def get_options(self) -> Optional[str]:
        try:
            results = await _resolve(self.__fqdn, "TXT", lifetime=self.__connect_timeout)
        except (resolver.NoAnswer, resolver.NXDOMAIN):
            # No TXT records
            return None
        except Exception as exc:
            raise ConfigurationError(str(exc)) from exc
        if len(results) > 1:
            raise ConfigurationError("Only one TXT record is supported")
        return (b"&".join([b"".join(res.strings) for res in results])).decode("utf-8")  # type: ignore[attr-defined]

    async def _resolve_uri(self) -> resolver.Answer:
        try:
            results = await _resolve(
                "_" + self.__srv + "._tcp." + self.__fqdn, "SRV", lifetime=self.__connect_timeout
            )
        except Exception as exc:
            raise ConfigurationError(str(exc)) from exc
        return results

    def _validate_hosts(self, nodes: list[tuple[str, Any]]) -> list[tuple[str, Any]]:
        for node in nodes:
            srv_host = node[0].lower()
            if self.__fqdn == srv_host and self.nparts < 3:
                raise ConfigurationError(
                    "Invalid SRV host: return address is identical to SRV hostname"
                )
            nlist = srv_host.split(".")[1:][-self.__slen :]
            if self.__plist != nlist:
                raise ConfigurationError(f"Invalid SRV host: {node[0]}")
        if self.__srv_max_hosts:
            nodes = random.sample(nodes, min(self.__srv_max_hosts, len(nodes)))
        return nodes

    async def get_hosts(self) -> list[tuple[str, Any]]:
        results = await self._resolve_uri()

        # Construct address tuples
        nodes = [
            (maybe_decode(res.target.to_text(omit_final_dot=True)), res.port)  # type: ignore[attr-defined]
            for res in results
        ]
        return self._validate_hosts(nodes)
