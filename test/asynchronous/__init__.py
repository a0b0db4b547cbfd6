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

"""Asynchronous test suite for mongowire."""
from __future__ import annotations

import asyncio
import inspect
import warnings
from typing import Any, Optional

from mongowire import AsyncMongoClient, ConnectOptions
from mongowire.asynchronous.database import AsyncDatabase
from test import MongoWireTestCase
from test.asynchronous.mock_server import MockServer

_IS_SYNC = False

LOOP: Optional[asyncio.AbstractEventLoop] = None


def get_loop() -> asyncio.AbstractEventLoop:
    """Get the test suite's global event loop."""
    global LOOP
    if LOOP is None:
        try:
            LOOP = asyncio.get_running_loop()
        except RuntimeError:
            # no running event loop, fallback to get_event_loop.
            try:
                # Ignore DeprecationWarning: There is no current event loop
                with warnings.catch_warnings():
                    warnings.simplefilter("ignore", DeprecationWarning)
                    LOOP = asyncio.get_event_loop()
            except RuntimeError:
                LOOP = asyncio.new_event_loop()
                asyncio.set_event_loop(LOOP)
    return LOOP


class AsyncMongoWireTestCase(MongoWireTestCase):
    # An async TestCase that uses a single event loop for all tests.
    # Inspired by IsolatedAsyncioTestCase.
    async def asyncSetUp(self):
        pass

    async def asyncTearDown(self):
        pass

    def addAsyncCleanup(self, func, /, *args, **kwargs):
        self.addCleanup(*(func, *args), **kwargs)

    def _callSetUp(self):
        self.setUp()
        self._callAsync(self.asyncSetUp)

    def _callTestMethod(self, method):
        self._callMaybeAsync(method)

    def _callTearDown(self):
        self._callAsync(self.asyncTearDown)
        self.tearDown()

    def _callCleanup(self, function, *args, **kwargs):
        self._callMaybeAsync(function, *args, **kwargs)

    def _callAsync(self, func, /, *args, **kwargs):
        assert inspect.iscoroutinefunction(func), f"{func!r} is not an async function"
        return get_loop().run_until_complete(func(*args, **kwargs))

    def _callMaybeAsync(self, func, /, *args, **kwargs):
        if inspect.iscoroutinefunction(func):
            return get_loop().run_until_complete(func(*args, **kwargs))
        else:
            return func(*args, **kwargs)


class AsyncMockServerTest(AsyncMongoWireTestCase):
    """Base class for tests that run against a started :class:`MockServer`."""

    server: MockServer

    async def asyncSetUp(self) -> None:
        self.server = await MockServer().start()
        self.addAsyncCleanup(self.server.stop)

    async def connected_client(
        self, uri: Optional[str] = None, **kwargs: Any
    ) -> tuple[AsyncMongoClient, AsyncDatabase]:
        """Connect a new client to ``uri`` (the mock server by default).

        Keyword arguments are passed to
        :class:`~mongowire.client_options.ConnectOptions` instead of a URI.
        """
        client = AsyncMongoClient()
        self.addAsyncCleanup(client.close)
        if kwargs:
            kwargs.setdefault("servers", [self.server.address])
            db = await client.connect(ConnectOptions(**kwargs))
        else:
            db = await client.connect(uri or self.server.uri + "/test")
        return client, db