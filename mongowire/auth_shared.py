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

"""Constants, types and SCRAM computations shared by the authentication code."""
from __future__ import annotations

import hashlib
import hmac
import os
import typing
from base64 import standard_b64decode, standard_b64encode
from collections import namedtuple
from typing import Any, Callable, Dict, Mapping, Optional

from bson import Binary
from pymongo.saslprep import saslprep

from mongowire.errors import AuthenticationError, ConfigurationError

MECHANISMS = frozenset(["SCRAM-SHA-1", "SCRAM-SHA-256", "DEFAULT"])
"""The authentication mechanisms supported by mongowire."""

# Minimum iteration count a server may ask for.
_MIN_ITERATIONS = 4096


class _Cache:
    __slots__ = ("data",)

    _hash_val = hash("_Cache")

    def __init__(self) -> None:
        self.data = None

    def __eq__(self, other: object) -> bool:
        # Two instances must always compare equal.
        if isinstance(other, _Cache):
            return True
        return NotImplemented

    def __ne__(self, other: object) -> bool:
        if isinstance(other, _Cache):
            return False
        return NotImplemented

    def __hash__(self) -> int:
        return self._hash_val


MongoCredential = namedtuple(
    "MongoCredential",
    ["mechanism", "source", "username", "password", "mechanism_properties", "cache"],
)
"""A hashable namedtuple of values used for authentication."""


def _build_credentials_tuple(
    mech: str,
    source: Optional[str],
    user: Optional[str],
    passwd: Optional[str],
    extra: Mapping[str, Any],
    database: Optional[str],
) -> MongoCredential:
    """Build and return a mechanism specific credentials tuple."""
    if mech not in MECHANISMS:
        raise ConfigurationError(f"{mech} is not a supported authentication mechanism")
    if user is None:
        raise ConfigurationError(f"{mech} requires a username")
    source_database = source or database or "admin"
    if passwd is None:
        raise ConfigurationError("A password is required")
    return MongoCredential(mech, source_database, user, passwd, None, _Cache())


def _xor(fir: bytes, sec: bytes) -> bytes:
    """XOR two byte strings together."""
    return b"".join([bytes([x ^ y]) for x, y in zip(fir, sec)])


def _parse_scram_response(response: bytes) -> Dict[bytes, bytes]:
    """Split a scram response into key, value pairs."""
    return dict(
        typing.cast(typing.Tuple[bytes, bytes], item.split(b"=", 1))
        for item in response.split(b",")
    )


def _password_digest(username: str, password: str) -> str:
    """Get a password digest to use for authentication."""
    if not isinstance(password, str):
        raise TypeError("password must be an instance of str")
    if len(password) == 0:
        raise ValueError("password can't be empty")
    if not isinstance(username, str):
        raise TypeError("username must be an instance of str")

    md5hash = hashlib.md5()  # noqa: S324
    data = f"{username}:mongo:{password}"
    md5hash.update(data.encode("utf-8"))
    return md5hash.hexdigest()


def _scram_digest(
    credentials: MongoCredential, mechanism: str
) -> tuple[str, Callable[..., Any], bytes]:
    """Return the digest name, hash constructor and prepared password."""
    if mechanism == "SCRAM-SHA-256":
        return "sha256", hashlib.sha256, saslprep(credentials.password).encode("utf-8")
    return (
        "sha1",
        hashlib.sha1,
        _password_digest(credentials.username, credentials.password).encode("utf-8"),
    )


def _authenticate_scram_start(
    credentials: MongoCredential, mechanism: str, nonce: Optional[bytes] = None
) -> tuple[bytes, bytes, typing.MutableMapping[str, Any]]:
    username = credentials.username
    user = username.encode("utf-8").replace(b"=", b"=3D").replace(b",", b"=2C")
    if nonce is None:
        nonce = standard_b64encode(os.urandom(32))
    first_bare = b"n=" + user + b",r=" + nonce

    cmd = {
        "saslStart": 1,
        "mechanism": mechanism,
        "payload": Binary(b"n,," + first_bare),
        "autoAuthorize": 1,
        "options": {"skipEmptyExchange": True},
    }
    return nonce, first_bare, cmd


def _scram_client_final(
    credentials: MongoCredential,
    mechanism: str,
    nonce: bytes,
    first_bare: bytes,
    server_first: bytes,
) -> tuple[bytes, bytes]:
    """Compute the client-final message and the expected server signature.

    ``server_first`` is the payload of the server's reply to ``saslStart``.
    Raises :exc:`~mongowire.errors.AuthenticationError` if the server sent
    an iteration count below 4096 or a nonce that does not extend ours.
    """
    digest, digestmod, data = _scram_digest(credentials, mechanism)
    cache = credentials.cache

    # Make local
    _hmac = hmac.HMAC

    parsed = _parse_scram_response(server_first)
    iterations = int(parsed[b"i"])
    if iterations < _MIN_ITERATIONS:
        raise AuthenticationError("Server returned an invalid iteration count.")
    salt = parsed[b"s"]
    rnonce = parsed[b"r"]
    if not rnonce.startswith(nonce):
        raise AuthenticationError("Server returned an invalid nonce.")

    without_proof = b"c=biws,r=" + rnonce
    if cache is not None and cache.data:
        client_key, server_key, csalt, citerations = cache.data
    else:
        client_key, server_key, csalt, citerations = None, None, None, None

    # Salt and / or iterations could change for a number of different
    # reasons. Either changing invalidates the cache.
    if not client_key or salt != csalt or iterations != citerations:
        salted_pass = hashlib.pbkdf2_hmac(digest, data, standard_b64decode(salt), iterations)
        client_key = _hmac(salted_pass, b"Client Key", digestmod).digest()
        server_key = _hmac(salted_pass, b"Server Key", digestmod).digest()
        if cache is not None:
            cache.data = (client_key, server_key, salt, iterations)
    stored_key = digestmod(client_key).digest()
    auth_msg = b",".join((first_bare, server_first, without_proof))
    client_sig = _hmac(stored_key, auth_msg, digestmod).digest()
    client_proof = b"p=" + standard_b64encode(_xor(client_key, client_sig))
    client_final = b",".join((without_proof, client_proof))

    server_sig = standard_b64encode(_hmac(server_key, auth_msg, digestmod).digest())
    return client_final, server_sig


def _verify_server_signature(server_final: bytes, server_sig: bytes) -> None:
    """Check the ``v=`` field of the server-final message."""
    parsed = _parse_scram_response(server_final)
    if b"e" in parsed:
        raise AuthenticationError(
            "Server rejected the SCRAM conversation: %s" % parsed[b"e"].decode("utf-8", "replace")
        )
    if not hmac.compare_digest(parsed.get(b"v", b""), server_sig):
        raise AuthenticationError("Server returned an invalid signature.")
