import asyncio
import hashlib
import hmac
import logging
from typing import Optional

from .protocol import Payload, authenticated_envelope

# Mixed into the shared secret before hashing. Clients send the resulting
# hash, so it must match on both ends.
PASSWORD_SALT = "relay-password-salt"
AUTH_PREFIX = "password: "


def hash_password(secret: str, salt: str = PASSWORD_SALT) -> str:
    """Value to store as passwordHash, and what clients send after the prefix."""
    return hashlib.sha256((secret + salt).encode("utf-8")).hexdigest()


def auth_message(password_hash: str) -> str:
    return AUTH_PREFIX + password_hash


class AuthGate:
    """One-shot password check run on the first frame of a new connection.

    The client sends ``password: <hash>``; anything else, including a binary
    frame, rejects the connection. With ``timeout`` left as None a client
    that never speaks keeps its slot until it disconnects.
    """

    def __init__(self, password_hash: str, timeout: Optional[float] = None):
        self._expected = auth_message(password_hash).encode("utf-8")
        self.timeout = timeout

    def check(self, frame: Payload) -> bool:
        if not isinstance(frame, str):
            return False
        return hmac.compare_digest(frame.encode("utf-8"), self._expected)

    async def admit(self, ws) -> bool:
        try:
            if self.timeout is None:
                frame = await ws.recv()
            else:
                frame = await asyncio.wait_for(ws.recv(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logging.info("No password within %ss, closing", self.timeout)
            return False

        if not self.check(frame):
            return False
        await ws.send(authenticated_envelope())
        return True
