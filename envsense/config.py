"""Static device and service configuration."""

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

from envsense.interfaces.ble.constants import (
    ADDRESS_TYPES,
    BLEConfig,
    INGESTION_MODES,
    SECURITY_LEVELS,
)

ENV_PREFIX = "ENVSENSE_"

# Environment variable suffix -> (field name, converter)
_ENV_FIELDS = {
    "ADDRESS": ("address", str),
    "ADDRESS_TYPE": ("address_type", str.lower),
    "SECURITY": ("security", str.lower),
    "INGESTION": ("ingestion", str.lower),
    "POLL_INTERVAL": ("poll_interval", float),
    "RECONNECT_DELAY": ("reconnect_delay", float),
    "DISCOVERY_TIMEOUT": ("discovery_timeout", float),
    "HTTP_HOST": ("http_host", str),
    "HTTP_PORT": ("http_port", int),
}


@dataclass(frozen=True)
class DeviceConfig:
    """Identity of the peripheral plus the fixed timing inputs of the session."""

    address: str
    address_type: str = "random"
    security: str = "low"
    ingestion: str = "notify"
    poll_interval: float = BLEConfig.POLL_INTERVAL
    reconnect_delay: float = BLEConfig.RECONNECT_DELAY
    discovery_timeout: Optional[float] = BLEConfig.DISCOVERY_TIMEOUT
    http_host: str = "0.0.0.0"
    http_port: int = 8080

    def __post_init__(self):
        if not self.address or not self.address.strip():
            raise ValueError("address must not be empty")
        if self.address_type not in ADDRESS_TYPES:
            raise ValueError(
                f"address_type must be one of {ADDRESS_TYPES}, got {self.address_type!r}"
            )
        if self.security not in SECURITY_LEVELS:
            raise ValueError(
                f"security must be one of {SECURITY_LEVELS}, got {self.security!r}"
            )
        if self.ingestion not in INGESTION_MODES:
            raise ValueError(
                f"ingestion must be one of {INGESTION_MODES}, got {self.ingestion!r}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.reconnect_delay <= 0:
            raise ValueError(f"reconnect_delay must be > 0, got {self.reconnect_delay}")
        if self.discovery_timeout is not None and self.discovery_timeout <= 0:
            raise ValueError(
                f"discovery_timeout must be > 0 or None, got {self.discovery_timeout}"
            )
        if not 0 < self.http_port < 65536:
            raise ValueError(f"http_port out of range: {self.http_port}")

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any
    ) -> "DeviceConfig":
        """
        Build a config from ``ENVSENSE_*`` environment variables.

        Keyword overrides whose value is not None take precedence over the
        environment, which takes precedence over the dataclass defaults.

        Raises:
            ValueError: If a value cannot be converted or fails validation.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for suffix, (name, convert) in _ENV_FIELDS.items():
            raw = environ.get(ENV_PREFIX + suffix)
            if raw is None or raw == "":
                continue
            try:
                values[name] = convert(raw)
            except ValueError as exc:
                raise ValueError(f"Invalid {ENV_PREFIX}{suffix}: {raw!r}") from exc
        known = {f.name for f in fields(cls)}
        for name, value in overrides.items():
            if name not in known:
                raise TypeError(f"Unknown config field: {name}")
            if value is not None:
                values[name] = value
        if "address" not in values:
            raise ValueError(f"No peripheral address; set {ENV_PREFIX}ADDRESS or --address")
        return cls(**values)

    def with_changes(self, **changes: Any) -> "DeviceConfig":
        return replace(self, **changes)
