import asyncio
import ipaddress
import ssl
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from conftest import wait_for_clients
from relay.client import RelayClient
from relay.config import RelayConfig
from relay.registry import ClientRegistry
from relay.server import RelayServer
from relay.transport import (
    TransportError,
    build_ssl_context,
    check_validity,
    describe_certificate,
    transport_for,
)


def _write_key_pair(tmp_path, not_before, not_after):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))]
            ),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    cert_path = tmp_path / "server.crt"
    key_path = tmp_path / "server.key"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )
    return str(cert_path), str(key_path)


@pytest.fixture
def key_pair(tmp_path):
    now = datetime.now(timezone.utc)
    return _write_key_pair(tmp_path, now - timedelta(days=1), now + timedelta(days=90))


def test_plain_config_has_no_ssl_context():
    assert transport_for(RelayConfig(port=1, key="", cert="")) is None


def test_tls_config_builds_context(key_pair):
    cert, key = key_pair
    ctx = transport_for(RelayConfig(port=1, key=key, cert=cert))
    assert isinstance(ctx, ssl.SSLContext)


def test_describe_certificate(key_pair):
    info = describe_certificate(key_pair[0])
    assert info["subject"] == "CN=localhost"
    assert info["not_after"] > info["not_before"]


def test_missing_certificate(tmp_path):
    with pytest.raises(TransportError, match="cannot read"):
        build_ssl_context(str(tmp_path / "nope.crt"), str(tmp_path / "nope.key"))


def test_garbage_certificate(tmp_path):
    path = tmp_path / "bad.crt"
    path.write_text("not a certificate")
    with pytest.raises(TransportError, match="PEM"):
        describe_certificate(str(path))


def test_expired_certificate(tmp_path):
    now = datetime.now(timezone.utc)
    cert, key = _write_key_pair(tmp_path, now - timedelta(days=30), now - timedelta(days=1))
    with pytest.raises(TransportError, match="expired"):
        build_ssl_context(cert, key)


def test_not_yet_valid_certificate(key_pair):
    info = describe_certificate(key_pair[0])
    with pytest.raises(TransportError, match="not valid before"):
        check_validity(info, now=info["not_before"] - timedelta(seconds=1))


def test_expiring_soon_warns(key_pair, caplog):
    info = describe_certificate(key_pair[0])
    check_validity(info, now=info["not_after"] - timedelta(days=1))
    assert "expires" in caplog.text


def test_mismatched_key(tmp_path, key_pair):
    now = datetime.now(timezone.utc)
    other_dir = tmp_path / "other"
    other_dir.mkdir()
    _, other_key = _write_key_pair(other_dir, now - timedelta(days=1), now + timedelta(days=1))
    with pytest.raises(TransportError, match="key pair"):
        build_ssl_context(key_pair[0], other_key)


@pytest.mark.asyncio
async def test_relay_over_tls(key_pair):
    cert, key = key_pair
    server = RelayServer(ClientRegistry())
    await server.start("127.0.0.1", 0, ssl=build_ssl_context(cert, key))

    client_ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    client_ctx.check_hostname = False
    client_ctx.verify_mode = ssl.CERT_NONE
    uri = f"wss://127.0.0.1:{server.port}"
    try:
        a = await RelayClient(uri, ssl=client_ctx).connect()
        await wait_for_clients(server.registry, 1)
        b = await RelayClient(uri, ssl=client_ctx).connect()
        await wait_for_clients(server.registry, 2)
        try:
            await a.send("over tls")
            env = await asyncio.wait_for(b.recv(), 2)
            assert env.message == "over tls"
        finally:
            await a.close()
            await b.close()
    finally:
        await server.close()
