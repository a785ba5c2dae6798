import asyncio
import logging
from typing import Any, Dict, List, Optional

from .protocol import Payload

# Frames queued per recipient before new ones are dropped for it.
OUTBOX_SIZE = 256


class Outbox:
    """Outbound queue for one client, drained by its own writer task.

    A recipient that stops reading only fills its own queue; senders never
    wait on it.
    """

    def __init__(self, client_id: str, ws: Any, maxsize: int = OUTBOX_SIZE):
        self.client_id = client_id
        self.ws = ws
        self.queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._task = asyncio.create_task(self._writer())

    async def _writer(self) -> None:
        while True:
            data = await self.queue.get()
            try:
                await self.ws.send(data)
            except Exception as e:
                logging.debug("Failed to send to %s: %s", self.client_id, e)
            finally:
                self.queue.task_done()

    def offer(self, data: Payload) -> bool:
        try:
            self.queue.put_nowait(data)
            return True
        except asyncio.QueueFull:
            logging.debug("Outbox full for %s; dropping frame", self.client_id)
            return False

    def close(self) -> None:
        self._task.cancel()


class ClientRegistry:
    """Shared client id -> websocket map used for fanout.

    Only admitted, open connections are registered. Mutations and the
    snapshot taken for a broadcast are serialized by one lock. Broadcasts
    only enqueue; each recipient's writer task does the actual send.
    """

    def __init__(self, outbox_size: int = OUTBOX_SIZE) -> None:
        self._clients: Dict[str, Outbox] = {}
        self.outbox_size = outbox_size
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    def get(self, client_id: str) -> Optional[Any]:
        outbox = self._clients.get(client_id)
        return outbox.ws if outbox else None

    def ids(self) -> List[str]:
        return list(self._clients.keys())

    async def register(self, client_id: str, ws: Any) -> None:
        async with self.lock:
            old = self._clients.get(client_id)
            if old is not None:
                logging.warning("Client id collision on %s; replacing entry", client_id)
                old.close()
            self._clients[client_id] = Outbox(client_id, ws, self.outbox_size)

    async def unregister(self, client_id: Optional[str]) -> None:
        if client_id is None:
            return
        async with self.lock:
            outbox = self._clients.pop(client_id, None)
        if outbox is not None:
            outbox.close()

    async def broadcast(self, except_id: Optional[str], data: Payload) -> int:
        """Queue ``data`` for every client but ``except_id``.

        Returns how many recipients accepted the frame. A full or failing
        recipient only affects itself.
        """
        async with self.lock:
            targets = [ob for cid, ob in self._clients.items() if cid != except_id]
        return sum(1 for ob in targets if ob.offer(data))

    async def close(self) -> None:
        async with self.lock:
            outboxes = list(self._clients.values())
            self._clients.clear()
        for outbox in outboxes:
            outbox.close()
