import json
import struct
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

# Sender id used for frames the relay itself originates.
SERVER_SENDER = "server"
AUTHENTICATED = "authenticated"

# Binary frames: 2-byte big-endian sender length, sender id (UTF-8), raw payload.
SENDER_LEN_STRUCT = struct.Struct(">H")

Payload = Union[str, bytes]


@dataclass(frozen=True)
class Envelope:
    sender: str
    message: Payload

    @property
    def is_binary(self) -> bool:
        return isinstance(self.message, bytes)


def make_envelope(sender: str, message: str) -> str:
    return json.dumps(
        {"sender": sender, "message": message},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def parse_envelope(raw: str) -> Dict[str, Any] | None:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def encode_binary(sender: str, payload: bytes) -> bytes:
    sender_bytes = sender.encode("utf-8")
    if len(sender_bytes) > 0xFFFF:
        raise ValueError("sender id too long for binary header")
    return SENDER_LEN_STRUCT.pack(len(sender_bytes)) + sender_bytes + bytes(payload)


def decode_binary(frame: bytes) -> Envelope:
    if len(frame) < SENDER_LEN_STRUCT.size:
        raise ValueError("binary frame shorter than its header")
    (length,) = SENDER_LEN_STRUCT.unpack_from(frame)
    start = SENDER_LEN_STRUCT.size
    if len(frame) < start + length:
        raise ValueError("binary frame truncated inside sender id")
    sender = frame[start:start + length].decode("utf-8")
    return Envelope(sender=sender, message=bytes(frame[start + length:]))


def encode_frame(sender: str, payload: Payload) -> Payload:
    """Serialize one relayed message, keeping text as text and binary as binary."""
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return encode_binary(sender, bytes(payload))
    return make_envelope(sender, payload)


def decode_frame(frame: Payload) -> Optional[Envelope]:
    """Inverse of encode_frame. Returns None for text that is not an envelope."""
    if isinstance(frame, (bytes, bytearray, memoryview)):
        return decode_binary(bytes(frame))
    obj = parse_envelope(frame)
    if not isinstance(obj, dict) or "sender" not in obj or "message" not in obj:
        return None
    return Envelope(sender=obj["sender"], message=obj["message"])


def authenticated_envelope() -> str:
    return make_envelope(SERVER_SENDER, AUTHENTICATED)
