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

"""Exceptions raised by mongowire."""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from bson.errors import InvalidDocument


class MongoWireError(Exception):
    """Base class for all mongowire exceptions."""

    def __init__(self, message: str = "", error_labels: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self._message = message
        self._error_labels = set(error_labels or [])

    def has_error_label(self, label: str) -> bool:
        """Return True if this error contains the given label."""
        return label in self._error_labels

    def _add_error_label(self, label: str) -> None:
        """Add the given label to this error."""
        self._error_labels.add(label)

    @property
    def timeout(self) -> bool:
        """True if this error was caused by a timeout."""
        return False


class ProtocolError(MongoWireError):
    """Raised for failures related to the wire protocol.

    A malformed frame, an unknown opcode or a reply that answers a request
    this connection never sent. Always fatal to the connection it came from.
    """


class ConnectionFailure(MongoWireError):
    """Raised when a connection to the database cannot be made or is lost."""


class WaitQueueTimeoutError(ConnectionFailure):
    """Raised when an operation times out waiting to checkout a connection from the pool.

    Subclass of :exc:`~mongowire.errors.ConnectionFailure`.
    """

    @property
    def timeout(self) -> bool:
        return True


class AutoReconnect(ConnectionFailure):
    """Raised when a connection to the database is lost.

    The operation which caused it has not necessarily succeeded. Future
    operations will attempt to open a new connection to the database.

    Subclass of :exc:`~mongowire.errors.ConnectionFailure`.
    """

    errors: Union[Mapping[str, Any], Sequence[Any]]
    details: Union[Mapping[str, Any], Sequence[Any]]

    def __init__(
        self, message: str = "", errors: Optional[Union[Mapping[str, Any], Sequence[Any]]] = None
    ) -> None:
        error_labels = None
        if errors is not None:
            if isinstance(errors, dict):
                error_labels = errors.get("errorLabels")
        super().__init__(message, error_labels)
        self.errors = self.details = errors or []


class NetworkTimeout(AutoReconnect):
    """An operation on an open connection exceeded socketTimeoutMS.

    In the case of a write operation, you cannot know whether it succeeded
    or failed.

    Subclass of :exc:`~mongowire.errors.AutoReconnect`.
    """

    @property
    def timeout(self) -> bool:
        return True


class ConnectionClosed(AutoReconnect):
    """The connection was closed while a reply was still outstanding."""


def _format_detailed_error(message: str, details: Any) -> str:
    if details is not None:
        message = f"{message}, full error: {details}"
    return message


class NotPrimaryError(AutoReconnect):
    """The server responded "not primary" or "node is recovering".

    The operation failed because the client thought it was using the primary
    but the primary has stepped down, or the client thought it was using a
    healthy secondary but the secondary is stale and trying to recover.

    Subclass of :exc:`~mongowire.errors.AutoReconnect`.
    """

    def __init__(
        self, message: str = "", errors: Optional[Union[Mapping[str, Any], List[Any]]] = None
    ) -> None:
        super().__init__(_format_detailed_error(message, errors), errors=errors)

    @property
    def code(self) -> Optional[int]:
        """The error code returned by the server, if any."""
        if isinstance(self.details, Mapping):
            return self.details.get("code")
        return None


class ServerSelectionTimeoutError(AutoReconnect):
    """Thrown when no node is available for an operation.

    Raised by the initial connect when none of the configured addresses is
    reachable, and by any primary-only operation when no primary is known.
    """

    @property
    def timeout(self) -> bool:
        return True


class ConfigurationError(MongoWireError):
    """Raised when something is incorrectly configured."""


class InvalidURI(ConfigurationError):
    """Raised when trying to parse an invalid mongodb URI."""


class OperationFailure(MongoWireError):
    """Raised when a database operation fails.

    The server replied ``ok: 0`` or reported write errors. :attr:`code` and
    :attr:`details` are the server's values, unchanged.
    """

    def __init__(
        self,
        error: str,
        code: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
        max_wire_version: Optional[int] = None,
    ) -> None:
        error_labels = None
        if details is not None:
            error_labels = details.get("errorLabels")
        super().__init__(_format_detailed_error(error, details), error_labels=error_labels)
        self.__code = code
        self.__details = details
        self.__max_wire_version = max_wire_version

    @property
    def _max_wire_version(self) -> Optional[int]:
        return self.__max_wire_version

    @property
    def code(self) -> Optional[int]:
        """The error code returned by the server, if any."""
        return self.__code

    @property
    def details(self) -> Optional[Mapping[str, Any]]:
        """The complete error document returned by the server."""
        return self.__details

    @property
    def timeout(self) -> bool:
        return self.__code in (50,)


class AuthenticationError(OperationFailure):
    """Raised when the authentication handshake fails.

    Either the server rejected the credentials or the server's final
    signature did not verify. The connection that attempted the handshake is
    closed; other nodes are unaffected.
    """


class CursorNotFound(OperationFailure):
    """Raised while iterating query results if the cursor is
    invalidated on the server.
    """


class ExecutionTimeout(OperationFailure):
    """Raised when a database operation exceeds its maxTimeMS."""

    @property
    def timeout(self) -> bool:
        return True


class WriteError(OperationFailure):
    """Base exception type for errors raised during write operations."""


class DuplicateKeyError(WriteError):
    """Raised when an insert or update fails due to a duplicate key error."""


class BulkWriteError(OperationFailure):
    """Exception class for multi-document write errors.

    :attr:`details` is the full server reply, including ``writeErrors``.
    """

    details: Mapping[str, Any]

    def __init__(self, results: Mapping[str, Any]) -> None:
        super().__init__("batch op errors occurred", 65, results)

    def __reduce__(self) -> Tuple[Any, Any]:
        return self.__class__, (self.details,)

    @property
    def timeout(self) -> bool:
        werrs = self.details.get("writeErrors", [])
        if werrs and werrs[-1].get("code") == 50:
            return True
        return False


class InvalidOperation(MongoWireError):
    """Raised when a client attempts to perform an invalid operation."""


class InvalidName(MongoWireError):
    """Raised when an invalid name is used."""


class DocumentTooLarge(InvalidDocument):
    """Raised when an encoded document is too large for the connected server."""
