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

"""Authentication helpers."""
from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Mapping

from bson import Binary

from mongowire.auth_shared import (
    MongoCredential,
    _authenticate_scram_start,
    _scram_client_final,
    _verify_server_signature,
)
from mongowire.errors import AuthenticationError, OperationFailure

if TYPE_CHECKING:
    from mongowire.asynchronous.pool import AsyncConnection

_IS_SYNC = False


async def _authenticate_scram(
    credentials: MongoCredential, conn: AsyncConnection, mechanism: str
) -> None:
    """Authenticate using SCRAM."""
    source = credentials.source
    nonce, first_bare, cmd = _authenticate_scram_start(credentials, mechanism)
    res = await conn.command(source, cmd)

    server_first = res["payload"]
    client_final, server_sig = _scram_client_final(
        credentials, mechanism, nonce, first_bare, server_first
    )

    cmd = {
        "saslContinue": 1,
        "conversationId": res["conversationId"],
        "payload": Binary(client_final),
    }
    res = await conn.command(source, cmd)
    _verify_server_signature(res["payload"], server_sig)

    # A third empty challenge may be required if the server does not support
    # skipEmptyExchange: SERVER-44857.
    if not res["done"]:
        cmd = {
            "saslContinue": 1,
            "conversationId": res["conversationId"],
            "payload": Binary(b""),
        }
        res = await conn.command(source, cmd)
        if not res["done"]:
            raise AuthenticationError("SASL conversation failed to complete.")


async def _authenticate_default(credentials: MongoCredential, conn: AsyncConnection) -> None:
    if conn.max_wire_version >= 7:
        if conn.negotiated_mechs:
            mechs = conn.negotiated_mechs
        else:
            source = credentials.source
            cmd = conn.hello_cmd()
            cmd["saslSupportedMechs"] = source + "." + credentials.username
            mechs = (await conn.command(source, cmd)).get("saslSupportedMechs", [])
        if "SCRAM-SHA-256" in mechs:
            return await _authenticate_scram(credentials, conn, "SCRAM-SHA-256")
        else:
            return await _authenticate_scram(credentials, conn, "SCRAM-SHA-1")
    else:
        return await _authenticate_scram(credentials, conn, "SCRAM-SHA-1")


_AUTH_MAP: Mapping[str, Callable[..., Coroutine[Any, Any, None]]] = {
    "SCRAM-SHA-1": functools.partial(_authenticate_scram, mechanism="SCRAM-SHA-1"),
    "SCRAM-SHA-256": functools.partial(_authenticate_scram, mechanism="SCRAM-SHA-256"),
    "DEFAULT": _authenticate_default,
}


async def authenticate(credentials: MongoCredential, conn: AsyncConnection) -> None:
    """Authenticate connection.

    Any server-side failure during the conversation is raised as
    :exc:`~mongowire.errors.AuthenticationError`.
    """
    mechanism = credentials.mechanism
    auth_func = _AUTH_MAP[mechanism]
    try:
        await auth_func(credentials, conn)
    except AuthenticationError:
        raise
    except OperationFailure as exc:
        errmsg = exc.details.get("errmsg", str(exc)) if exc.details else str(exc)
        raise AuthenticationError(errmsg, exc.code, exc.details, exc._max_wire_version) from exc
