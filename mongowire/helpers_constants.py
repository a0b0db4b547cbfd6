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

"""Constants used by the driver that don't really fit elsewhere."""

from __future__ import annotations

# The "node is shutting down" codes.
_SHUTDOWN_CODES: frozenset = frozenset(
    [
        11600,  # InterruptedAtShutdown
        91,  # ShutdownInProgress
    ]
)
# The "not primary" error codes are combined with the "node is recovering"
# error codes (of which the "node is shutting down" errors are a subset).
_NOT_PRIMARY_CODES: frozenset = (
    frozenset(
        [
            10058,  # LegacyNotPrimary <=3.2 "not primary" error code
            10107,  # NotWritablePrimary
            13435,  # NotPrimaryNoSecondaryOk
            11602,  # InterruptedDueToReplStateChange
            13436,  # NotPrimaryOrSecondary
            189,  # PrimarySteppedDown
        ]
    )
    | _SHUTDOWN_CODES
)

# Server code raised when authentication fails.
_AUTHENTICATION_FAILURE_CODE: int = 18

# Server codes raised for cursors that the server no longer knows about.
_CURSOR_NOT_FOUND_CODE: int = 43

# Server code for operations exceeding maxTimeMS.
_MAX_TIME_EXPIRED_CODE: int = 50

# Duplicate key error codes.
_DUPLICATE_KEY_CODES: frozenset = frozenset([11000, 11001, 12582])
