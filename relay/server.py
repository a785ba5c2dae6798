import logging
from enum import Enum
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from .auth import AuthGate
from .identity import generate_client_id, peer_address
from .protocol import Payload, encode_frame
from .registry import ClientRegistry

HEARTBEAT_INTERVAL = 15
HEARTBEAT_TIMEOUT = 45
# Policy violation; sent when the password check fails.
CLOSE_REJECTED = 1008


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_PASSWORD = "awaiting_password"
    REGISTERED = "registered"
    CLOSED = "closed"


class Connection:
    def __init__(self, ws: Any, address: str):
        self.ws = ws
        self.address = address
        self.client_id: Optional[str] = None
        self.authenticated = False
        self.state = ConnectionState.CONNECTING


class BroadcastRouter:
    """Pure fanout: wraps a payload with its sender and hands it to the registry."""

    def __init__(self, registry: ClientRegistry):
        self.registry = registry

    async def route(self, sender_id: str, payload: Payload) -> int:
        return await self.registry.broadcast(sender_id, encode_frame(sender_id, payload))


class RelayServer:
    def __init__(
        self,
        registry: ClientRegistry,
        password_hash: Optional[str] = None,
        auth_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.router = BroadcastRouter(registry)
        self.auth_gate = AuthGate(password_hash, auth_timeout) if password_hash else None
        self._server = None

    @property
    def port(self) -> Optional[int]:
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self, host: str, port: int, ssl=None):
        self._server = await websockets.serve(
            self.handler,
            host,
            port,
            ssl=ssl,
            ping_interval=HEARTBEAT_INTERVAL,
            ping_timeout=HEARTBEAT_TIMEOUT,
        )
        scheme = "wss" if ssl else "ws"
        logging.info(
            "Relay listening on %s://%s:%s (auth %s)",
            scheme, host, self.port, "on" if self.auth_gate else "off",
        )
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        await self.registry.close()

    async def handler(self, ws) -> None:
        conn = Connection(ws, peer_address(getattr(ws, "remote_address", None)))
        try:
            if self.auth_gate is not None:
                conn.state = ConnectionState.AWAITING_PASSWORD
                if not await self.auth_gate.admit(ws):
                    logging.info("Rejected connection from %s", conn.address or "unknown")
                    await ws.close(code=CLOSE_REJECTED)
                    return
                conn.authenticated = True

            await self.admit(conn)
            async for message in ws:
                await self.router.route(conn.client_id, message)
        except ConnectionClosed:
            pass
        except Exception as e:
            logging.exception("Error in receive loop: %s", e)
        finally:
            await self.cleanup_connection(conn)

    async def admit(self, conn: Connection) -> None:
        conn.client_id = generate_client_id(conn.address)
        await self.registry.register(conn.client_id, conn.ws)
        conn.state = ConnectionState.REGISTERED
        logging.info(
            "Client %s joined from %s (%d connected)",
            conn.client_id, conn.address or "unknown", len(self.registry),
        )

    async def cleanup_connection(self, conn: Connection) -> None:
        # Runs on every exit path, possibly more than once for the same conn.
        was_registered = conn.state == ConnectionState.REGISTERED
        conn.state = ConnectionState.CLOSED
        await self.registry.unregister(conn.client_id)
        if was_registered:
            logging.info(
                "Client %s disconnected (%d connected)",
                conn.client_id, len(self.registry),
            )
