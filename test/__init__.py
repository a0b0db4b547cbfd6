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

"""Test suite for mongowire."""
from __future__ import annotations

import logging
import unittest
from contextlib import contextmanager
from typing import Any, Generator

from mongowire import message


def sanitize_cmd(cmd: dict[str, Any]) -> dict[str, Any]:
    cp = cmd.copy()
    cp.pop("$db", None)
    cp.pop("$readPreference", None)
    # OP_MSG encoding may move the payload type one field to the
    # end of the command. Do the same here.
    name = next(iter(cp))
    try:
        identifier = message._FIELD_MAP[name]
        docs = cp.pop(identifier)
        cp[identifier] = docs
    except KeyError:
        pass
    return cp


class MongoWireTestCase(unittest.TestCase):
    def assertEqualCommand(self, expected, actual, msg=None):
        self.assertEqual(sanitize_cmd(expected), sanitize_cmd(actual), msg)

    @contextmanager
    def debug_logs(self, name: str) -> Generator[list[logging.LogRecord], None, None]:
        """Capture the DEBUG records of logger `name`."""
        with self.assertLogs(name, level="DEBUG") as cm:
            yield cm.records
