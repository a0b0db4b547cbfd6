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
from __future__ import annotations

import enum
import logging
import os
from typing import Any

from bson import UuidRepresentation, json_util
from bson.json_util import JSONOptions


class _CommandStatusMessage(str, enum.Enum):
    STARTED = "Command started"
    SUCCEEDED = "Command succeeded"
    FAILED = "Command failed"


class _ConnectionStatusMessage(str, enum.Enum):
    POOL_CREATED = "Connection pool created"
    POOL_CLOSED = "Connection pool closed"
    POOL_CLEARED = "Connection pool cleared"
    CONN_CREATED = "Connection created"
    CONN_READY = "Connection ready"
    CONN_CLOSED = "Connection closed"
    CHECKOUT_STARTED = "Connection checkout started"
    CHECKOUT_SUCCEEDED = "Connection checked out"
    CHECKOUT_FAILED = "Connection checkout failed"
    CHECKEDIN = "Connection checked in"
    PROTOCOL_ERROR = "Wire protocol error"


class _TopologyStatusMessage(str, enum.Enum):
    STARTING = "Starting topology monitoring"
    PROBE_SUCCEEDED = "Server probe succeeded"
    PROBE_FAILED = "Server probe failed"
    PRIMARY_CHANGED = "Primary changed"
    NOT_PRIMARY_REFRESH = "Refreshing topology after not primary error"
    STATE_CHANGED = "Topology state changed"
    STOPPING = "Stopped topology monitoring"


_DEFAULT_DOCUMENT_LENGTH = 1000
_SENSITIVE_COMMANDS = [
    "authenticate",
    "saslStart",
    "saslContinue",
    "getnonce",
    "createUser",
    "updateUser",
    "copydbgetnonce",
    "copydbsaslstart",
    "copydb",
]
_REDACTED_FAILURE_FIELDS = ["code", "codeName", "errorLabels"]
_DOCUMENT_NAMES = ["command", "reply", "failure"]
_JSON_OPTIONS = JSONOptions(uuid_representation=UuidRepresentation.STANDARD)
_COMMAND_LOGGER = logging.getLogger("mongowire.command")
_CONNECTION_LOGGER = logging.getLogger("mongowire.connection")
_TOPOLOGY_LOGGER = logging.getLogger("mongowire.topology")


class _ConnectionClosedReason(str, enum.Enum):
    STALE = "stale"
    IDLE = "idle"
    ERROR = "error"
    POOL_CLOSED = "poolClosed"


class _ConnectionCheckOutFailedReason(str, enum.Enum):
    TIMEOUT = "timeout"
    POOL_CLOSED = "poolClosed"
    CONN_ERROR = "connectionError"


def _verbose_connection_error_reason(reason: str) -> str:
    return {
        _ConnectionClosedReason.STALE: "Connection became stale because the pool was cleared",
        _ConnectionClosedReason.IDLE: "Connection has been available but unused for longer than the configured max idle time",
        _ConnectionClosedReason.ERROR: "An error occurred while using the connection",
        _ConnectionClosedReason.POOL_CLOSED: "Connection pool was closed",
    }.get(reason, reason)


def _debug_log(logger: logging.Logger, **fields: Any) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(LogMessage(**fields))


class LogMessage:
    __slots__ = ["_kwargs"]

    def __init__(self, **kwargs: Any):
        self._kwargs = kwargs

        if "durationMS" in self._kwargs:
            self._kwargs["durationMS"] = self._kwargs["durationMS"] * 1000

    def __str__(self) -> str:
        self._redact()
        return "%s" % (
            json_util.dumps(
                self._kwargs, json_options=_JSON_OPTIONS, default=lambda o: o.__repr__()
            )
        )

    def _is_sensitive(self) -> bool:
        return "commandName" in self._kwargs and self._kwargs["commandName"] in _SENSITIVE_COMMANDS

    def _redact(self) -> None:
        document_length = int(
            os.getenv("MONGOWIRE_LOG_MAX_DOCUMENT_LENGTH", _DEFAULT_DOCUMENT_LENGTH)
        )
        if document_length < 0:
            document_length = _DEFAULT_DOCUMENT_LENGTH
        is_server_side_error = self._kwargs.pop("isServerSideError", False)

        for doc_name in _DOCUMENT_NAMES:
            doc = self._kwargs.get(doc_name)
            if doc is None or isinstance(doc, str):
                continue
            if doc_name == "failure" and is_server_side_error:
                doc = {k: v for k, v in doc.items() if k in _REDACTED_FAILURE_FIELDS}
            if doc_name != "failure" and self._is_sensitive():
                doc = json_util.dumps({})
            else:
                doc = json_util.dumps(
                    doc,
                    json_options=_JSON_OPTIONS,
                    default=lambda o: o.__repr__(),
                )
            if len(doc) > document_length:
                doc = doc[:document_length] + "..."
            self._kwargs[doc_name] = doc
