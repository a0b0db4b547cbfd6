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

"""Asyncio client for MongoDB speaking the wire protocol directly."""
from __future__ import annotations

ASCENDING = 1
"""Ascending sort order."""
DESCENDING = -1
"""Descending sort order."""

from mongowire._version import __version__, get_version_string, version, version_tuple
from mongowire.asynchronous.collection import ReturnDocument
from mongowire.asynchronous.mongo_client import AsyncMongoClient
from mongowire.client_options import ConnectOptions, ServerAddress
from mongowire.errors import (
    AuthenticationError,
    AutoReconnect,
    BulkWriteError,
    ConfigurationError,
    ConnectionFailure,
    DuplicateKeyError,
    InvalidOperation,
    MongoWireError,
    NotPrimaryError,
    OperationFailure,
    ProtocolError,
    ServerSelectionTimeoutError,
    WaitQueueTimeoutError,
)
from mongowire.read_preferences import ReadPreference

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "AsyncMongoClient",
    "AuthenticationError",
    "AutoReconnect",
    "BulkWriteError",
    "ConfigurationError",
    "ConnectOptions",
    "ConnectionFailure",
    "DuplicateKeyError",
    "InvalidOperation",
    "MongoWireError",
    "NotPrimaryError",
    "OperationFailure",
    "ProtocolError",
    "ReadPreference",
    "ReturnDocument",
    "ServerAddress",
    "ServerSelectionTimeoutError",
    "WaitQueueTimeoutError",
    "__version__",
    "get_version_string",
    "version",
    "version_tuple",
]
