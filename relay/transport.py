import logging
import ssl
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from cryptography import x509

from .config import RelayConfig

EXPIRY_WARNING = timedelta(days=14)


class TransportError(Exception):
    pass


def describe_certificate(cert_path: str) -> Dict[str, Any]:
    try:
        with open(cert_path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise TransportError(f"cannot read certificate {cert_path}: {e}") from e
    try:
        cert = x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise TransportError(f"certificate {cert_path} is not valid PEM: {e}") from e
    return {
        "subject": cert.subject.rfc4514_string(),
        "not_before": cert.not_valid_before_utc,
        "not_after": cert.not_valid_after_utc,
    }


def check_validity(info: Dict[str, Any], now: Optional[datetime] = None) -> None:
    now = now or datetime.now(timezone.utc)
    if now < info["not_before"]:
        raise TransportError(f"certificate for {info['subject']} not valid before {info['not_before']}")
    if now > info["not_after"]:
        raise TransportError(f"certificate for {info['subject']} expired at {info['not_after']}")
    if info["not_after"] - now < EXPIRY_WARNING:
        logging.warning("Certificate for %s expires at %s", info["subject"], info["not_after"])


def build_ssl_context(cert_path: str, key_path: str) -> ssl.SSLContext:
    info = describe_certificate(cert_path)
    check_validity(info)
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        ctx.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (OSError, ssl.SSLError) as e:
        raise TransportError(f"cannot load key pair {cert_path} / {key_path}: {e}") from e
    logging.info("Loaded TLS certificate for %s (valid until %s)", info["subject"], info["not_after"])
    return ctx


def transport_for(config: RelayConfig) -> Optional[ssl.SSLContext]:
    """TLS context when the config names key material, None for plain ws://."""
    if not config.use_tls:
        return None
    return build_ssl_context(config.cert, config.key)
