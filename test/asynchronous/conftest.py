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

import pytest_asyncio

from mongowire import AsyncMongoClient
from test.asynchronous.mock_server import MockServer

_IS_SYNC = False


@pytest_asyncio.fixture(loop_scope="session")
async def mock_server():
    server = await MockServer().start()
    yield server
    await server.stop()


@pytest_asyncio.fixture(loop_scope="session")
async def async_client():
    client = AsyncMongoClient()
    yield client
    await client.close()
