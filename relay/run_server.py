import argparse
import asyncio
import logging
import os
import signal
from typing import Optional

from .auth import hash_password
from .config import ConfigError, RelayConfig, load_config
from .registry import ClientRegistry
from .server import RelayServer
from .transport import TransportError, transport_for


async def _run(config: RelayConfig, host: str, auth_timeout: Optional[float]) -> None:
    ssl_ctx = transport_for(config)
    server = RelayServer(
        ClientRegistry(),
        password_hash=config.password_hash if config.auth_enabled else None,
        auth_timeout=auth_timeout,
    )
    await server.start(host, config.port, ssl=ssl_ctx)

    stop = asyncio.Event()

    def _signal_handler():
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows may not support SIGTERM
            pass

    try:
        await stop.wait()
    finally:
        await server.close()
        logging.info("Relay shutdown complete")


def _positive_float(value: str) -> float:
    f = float(value)
    if f <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return f


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="WebSocket broadcast relay")
    parser.add_argument(
        "--config",
        default=os.getenv("RELAY_CONFIG", "config.json"),
        help="Path to JSON config {port, key, cert, passwordHash?}",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("RELAY_HOST", "0.0.0.0"),
        help="Interface to bind",
    )
    parser.add_argument(
        "--auth-timeout",
        type=_positive_float,
        default=None,
        help="Seconds to wait for the password frame (default: wait indefinitely)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument(
        "--hash-password",
        metavar="SECRET",
        help="Print the passwordHash value for SECRET and exit",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(message)s"
    )

    if args.hash_password is not None:
        print(hash_password(args.hash_password))
        return

    try:
        config = load_config(args.config)
    except ConfigError as e:
        raise SystemExit(f"Invalid configuration: {e}")

    try:
        asyncio.run(_run(config, args.host, args.auth_timeout))
    except TransportError as e:
        raise SystemExit(f"Transport setup failed: {e}")
    except OSError as e:
        raise SystemExit(f"Cannot start relay: {e}")
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
