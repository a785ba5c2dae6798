from typing import AsyncIterator, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from .auth import auth_message
from .protocol import AUTHENTICATED, SERVER_SENDER, Envelope, Payload, decode_frame


class AuthenticationError(Exception):
    pass


class RelayClient:
    """Async client for the relay.

    Usage::

        async with RelayClient("ws://127.0.0.1:8080", password_hash=h) as client:
            await client.send("hi")
            async for envelope in client:
                print(envelope.sender, envelope.message)
    """

    def __init__(self, uri: str, password_hash: Optional[str] = None, ssl=None):
        self.uri = uri
        self.password_hash = password_hash
        self.ssl = ssl
        self.ws = None

    async def connect(self) -> "RelayClient":
        kwargs = {}
        if self.ssl is not None:
            kwargs["ssl"] = self.ssl
        self.ws = await websockets.connect(self.uri, **kwargs)
        if self.password_hash is not None:
            try:
                await self.authenticate(self.password_hash)
            except AuthenticationError:
                await self.close()
                raise
        return self

    async def authenticate(self, password_hash: str) -> None:
        await self.ws.send(auth_message(password_hash))
        try:
            reply = await self.ws.recv()
        except ConnectionClosed as e:
            raise AuthenticationError("server closed the connection during auth") from e
        envelope = decode_frame(reply)
        if (
            envelope is None
            or envelope.sender != SERVER_SENDER
            or envelope.message != AUTHENTICATED
        ):
            raise AuthenticationError(f"unexpected auth reply: {reply!r}")

    async def send(self, payload: Payload) -> None:
        await self.ws.send(payload)

    async def recv(self) -> Envelope:
        while True:
            envelope = decode_frame(await self.ws.recv())
            if envelope is not None:
                return envelope

    async def __aiter__(self) -> AsyncIterator[Envelope]:
        async for frame in self.ws:
            envelope = decode_frame(frame)
            if envelope is not None:
                yield envelope

    async def close(self) -> None:
        if self.ws is not None:
            await self.ws.close()

    async def __aenter__(self) -> "RelayClient":
        return await self.connect()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
