"""Shared fixtures: an in-memory websocket stand-in and live relay servers."""

import asyncio
from typing import Any, List, Optional

import pytest
import pytest_asyncio
from websockets.exceptions import ConnectionClosedOK

from relay.auth import hash_password
from relay.registry import ClientRegistry
from relay.server import RelayServer

TEST_SECRET = "correct horse battery staple"


class FakeWebSocket:
    """Enough of a websockets connection for the server and registry code."""

    def __init__(self, frames=(), remote_address=("10.0.0.1", 5555), hang=False):
        self.remote_address = remote_address
        self._frames: List[Any] = list(frames)
        self._hang = hang
        self.sent: List[Any] = []
        self.closed_with: Optional[int] = None

    async def recv(self):
        if self._frames:
            return self._frames.pop(0)
        if self._hang:
            await asyncio.Event().wait()
        raise ConnectionClosedOK(None, None)

    async def send(self, data):
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed_with = code

    async def __aiter__(self):
        while self._frames:
            yield self._frames.pop(0)


async def wait_for_clients(registry: ClientRegistry, count: int, timeout: float = 2.0) -> None:
    async def _poll():
        while len(registry) != count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def password_hash():
    return hash_password(TEST_SECRET)


@pytest_asyncio.fixture
async def relay():
    server = RelayServer(ClientRegistry())
    await server.start("127.0.0.1", 0)
    yield server
    await server.close()


@pytest_asyncio.fixture
async def auth_relay(password_hash):
    server = RelayServer(ClientRegistry(), password_hash=password_hash)
    await server.start("127.0.0.1", 0)
    yield server
    await server.close()


def uri_for(server: RelayServer) -> str:
    return f"ws://127.0.0.1:{server.port}"


async def wait_for_sent(ws: FakeWebSocket, count: int, timeout: float = 2.0) -> None:
    async def _poll():
        while len(ws.sent) < count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


class StuckWebSocket(FakeWebSocket):
    """A peer that stopped reading: every send blocks forever."""

    async def send(self, data):
        await asyncio.Event().wait()
