import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

# Reference shape of the config file: key -> (type, required)
CONFIG_SHAPE = {
    "port": (int, True),
    "key": (str, True),
    "cert": (str, True),
    "passwordHash": (str, False),
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class RelayConfig:
    port: int
    key: str
    cert: str
    password_hash: Optional[str] = None

    @property
    def use_tls(self) -> bool:
        return bool(self.key and self.cert)

    @property
    def auth_enabled(self) -> bool:
        return bool(self.password_hash)


def _type_ok(value: Any, expected: type) -> bool:
    # bool is an int subclass but never a valid port
    if expected is int and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def validate_config(raw: Any) -> RelayConfig:
    if not isinstance(raw, dict):
        raise ConfigError("config must be a JSON object")

    extra = sorted(set(raw) - set(CONFIG_SHAPE))
    if extra:
        raise ConfigError(f"unknown config keys: {', '.join(extra)}")
    missing = sorted(k for k, (_, required) in CONFIG_SHAPE.items() if required and k not in raw)
    if missing:
        raise ConfigError(f"missing config keys: {', '.join(missing)}")

    for key, (expected, _) in CONFIG_SHAPE.items():
        if key in raw and not _type_ok(raw[key], expected):
            raise ConfigError(
                f"config key {key!r} must be {expected.__name__}, got {type(raw[key]).__name__}"
            )

    if not 0 <= raw["port"] <= 65535:
        raise ConfigError(f"port out of range: {raw['port']}")
    if bool(raw["key"]) != bool(raw["cert"]):
        raise ConfigError("key and cert must both be set for TLS or both be empty")
    if raw.get("passwordHash") == "":
        raise ConfigError("passwordHash must not be empty; omit it to disable auth")

    return RelayConfig(
        port=raw["port"],
        key=raw["key"],
        cert=raw["cert"],
        password_hash=raw.get("passwordHash"),
    )


def load_config(path: str) -> RelayConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw: Dict[str, Any] = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"config {path} is not valid JSON: {e}") from e
    return validate_config(raw)
