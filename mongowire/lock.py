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

"""Internal helpers for lock and condition coordination primitives."""

from __future__ import annotations

import asyncio
from asyncio import wait_for
from typing import Optional


def _async_create_lock() -> asyncio.Lock:
    """Represents an asyncio.Lock."""
    return asyncio.Lock()


def _async_create_condition(lock: asyncio.Lock) -> asyncio.Condition:
    """Represents an asyncio.Condition."""
    return asyncio.Condition(lock)


async def _async_cond_wait(condition: asyncio.Condition, timeout: Optional[float]) -> bool:
    try:
        return await wait_for(condition.wait(), timeout)
    except asyncio.TimeoutError:
        return False
