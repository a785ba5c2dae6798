import hashlib
import random

# Static and public. Identifiers are labels, not secrets.
ID_SALT = "relay-client-id"


def generate_client_id(address: str) -> str:
    """Hash the peer address and append a random fraction.

    The address alone is not unique (NAT, several tabs on one host), so the
    random suffix tells apart connections that share it.
    """
    digest = hashlib.sha256((address or "").encode("utf-8") + ID_SALT.encode("utf-8"))
    return digest.hexdigest() + str(random.random())


def peer_address(remote_address) -> str:
    # websockets reports (host, port) for IPv4, a 4-tuple for IPv6, or None
    if not remote_address:
        return ""
    if isinstance(remote_address, (tuple, list)):
        return str(remote_address[0])
    return str(remote_address)
