import argparse
import asyncio
import os
import ssl

from .auth import hash_password
from .client import AuthenticationError, RelayClient


async def _sender(client: RelayClient) -> None:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, input)
        if line.strip() == "/quit":
            await client.close()
            return
        await client.send(line)


async def _receiver(client: RelayClient) -> None:
    async for envelope in client:
        if envelope.is_binary:
            print(f"[{envelope.sender[:12]}] <{len(envelope.message)} bytes>")
        else:
            print(f"[{envelope.sender[:12]}] {envelope.message}")


async def run_client(uri: str, password_hash, ssl_ctx) -> None:
    async with RelayClient(uri, password_hash=password_hash, ssl=ssl_ctx) as client:
        print(f"Connected to {uri}; type /quit to exit")
        sender = asyncio.create_task(_sender(client))
        try:
            await _receiver(client)
        finally:
            sender.cancel()


def main():
    ap = argparse.ArgumentParser(description="Relay terminal client")
    ap.add_argument("--server", default=os.getenv("RELAY_URI", "ws://127.0.0.1:8080"))
    ap.add_argument("--password", help="Shared secret; hashed before sending")
    ap.add_argument("--password-hash", help="Pre-hashed secret, sent as is")
    ap.add_argument("--cafile", help="CA bundle for wss:// servers")
    args = ap.parse_args()

    password_hash = args.password_hash
    if args.password is not None:
        password_hash = hash_password(args.password)

    ssl_ctx = None
    if args.server.startswith("wss://"):
        ssl_ctx = ssl.create_default_context(cafile=args.cafile)

    try:
        asyncio.run(run_client(args.server, password_hash, ssl_ctx))
    except AuthenticationError as e:
        raise SystemExit(f"Authentication failed: {e}")
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
