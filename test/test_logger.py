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

import logging
import os
import sys

sys.path[0:0] = [""]

import unittest
from unittest.mock import patch

from bson import json_util

from mongowire.logger import (
    _COMMAND_LOGGER,
    _CONNECTION_LOGGER,
    _TOPOLOGY_LOGGER,
    LogMessage,
    _CommandStatusMessage,
    _debug_log,
)
from test import MongoWireTestCase


def _fields(msg: LogMessage) -> dict:
    return json_util.loads(str(msg))


class TestLogger(MongoWireTestCase):
    def test_logger_names(self):
        self.assertEqual("mongowire.command", _COMMAND_LOGGER.name)
        self.assertEqual("mongowire.connection", _CONNECTION_LOGGER.name)
        self.assertEqual("mongowire.topology", _TOPOLOGY_LOGGER.name)

    def test_command_is_serialized(self):
        msg = LogMessage(
            message=_CommandStatusMessage.STARTED,
            commandName="find",
            command={"find": "coll", "filter": {"x": 1}},
        )
        fields = _fields(msg)
        self.assertEqual("Command started", fields["message"])
        self.assertEqual({"find": "coll", "filter": {"x": 1}}, json_util.loads(fields["command"]))

    def test_sensitive_command_redacted(self):
        for name in ("saslStart", "saslContinue", "authenticate"):
            msg = LogMessage(
                commandName=name,
                command={name: 1, "payload": "secret"},
                reply={"ok": 1, "payload": "secret"},
            )
            fields = _fields(msg)
            self.assertEqual("{}", fields["command"])
            self.assertEqual("{}", fields["reply"])

    def test_server_side_failure_redacted(self):
        msg = LogMessage(
            commandName="insert",
            failure={"code": 11000, "codeName": "DuplicateKey", "errmsg": "key {x: 1}"},
            isServerSideError=True,
        )
        fields = _fields(msg)
        self.assertNotIn("isServerSideError", fields)
        self.assertEqual(
            {"code": 11000, "codeName": "DuplicateKey"}, json_util.loads(fields["failure"])
        )

    def test_failure_string_untouched(self):
        fields = _fields(LogMessage(commandName="ping", failure="connection reset"))
        self.assertEqual("connection reset", fields["failure"])

    def test_truncation(self):
        with patch.dict(os.environ, {"MONGOWIRE_LOG_MAX_DOCUMENT_LENGTH": "10"}):
            fields = _fields(LogMessage(commandName="insert", command={"insert": "a" * 50}))
        self.assertEqual(13, len(fields["command"]))
        self.assertTrue(fields["command"].endswith("..."))

        with patch.dict(os.environ, {"MONGOWIRE_LOG_MAX_DOCUMENT_LENGTH": "-1"}):
            fields = _fields(LogMessage(commandName="insert", command={"insert": "a" * 50}))
        self.assertFalse(fields["command"].endswith("..."))

    def test_duration_in_milliseconds(self):
        fields = _fields(LogMessage(commandName="ping", durationMS=0.25))
        self.assertEqual(250.0, fields["durationMS"])

    def test_debug_log(self):
        with self.debug_logs("mongowire.command") as records:
            _debug_log(_COMMAND_LOGGER, message=_CommandStatusMessage.SUCCEEDED, commandName="ping")
        self.assertEqual(1, len(records))
        self.assertEqual("ping", _fields(records[0].msg)["commandName"])

    def test_debug_log_disabled(self):
        logger = logging.getLogger("mongowire.command")
        with patch.object(logger, "isEnabledFor", return_value=False):
            with patch.object(logger, "debug") as debug:
                _debug_log(logger, commandName="ping")
        debug.assert_not_called()


if __name__ == "__main__":
    unittest.main()
