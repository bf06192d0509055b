"""BLE constants and configuration."""

import logging
from typing import Optional

from bleak.uuids import normalize_uuid_16

logger = logging.getLogger("envsense.ble")

# 16-bit assigned numbers from the Bluetooth SIG
ESS_SERVICE_UUID16 = 0x181A
TEMPERATURE_UUID16 = 0x2A6E
PRESSURE_UUID16 = 0x2A6D
HUMIDITY_UUID16 = 0x2A6F

ESS_SERVICE_UUID = normalize_uuid_16(ESS_SERVICE_UUID16)
TEMPERATURE_UUID = normalize_uuid_16(TEMPERATURE_UUID16)
PRESSURE_UUID = normalize_uuid_16(PRESSURE_UUID16)
HUMIDITY_UUID = normalize_uuid_16(HUMIDITY_UUID16)

MALFORMED_NOTIFICATION_THRESHOLD = 10

SECURITY_LEVELS = ("low", "medium", "high")
ADDRESS_TYPES = ("public", "random")
INGESTION_MODES = ("notify", "poll")


class BLEConfig:
    """Configuration constants for BLE operations."""

    POLL_INTERVAL = 2.0
    RECONNECT_DELAY = 2.0
    RECONNECT_BACKOFF = 1.0
    CONNECTION_TIMEOUT = 20.0
    GATT_IO_TIMEOUT = 10.0
    NOTIFICATION_START_TIMEOUT: Optional[float] = 10.0
    DISCONNECT_TIMEOUT = 5.0
    DISCOVERY_TIMEOUT: Optional[float] = None
    REACTOR_JOIN_TIMEOUT = 2.0


# Error message constants
ERROR_TIMEOUT = "{0} timed out after {1:.1f} seconds"
ERROR_DISCOVERY_INCOMPLETE = "GATT service discovery has not completed"
ERROR_NOT_CONNECTED = "Cannot {0}: no BLE client for this session"

__all__ = [
    "ADDRESS_TYPES",
    "BLEConfig",
    "ERROR_DISCOVERY_INCOMPLETE",
    "ERROR_NOT_CONNECTED",
    "ERROR_TIMEOUT",
    "ESS_SERVICE_UUID",
    "ESS_SERVICE_UUID16",
    "HUMIDITY_UUID",
    "HUMIDITY_UUID16",
    "INGESTION_MODES",
    "MALFORMED_NOTIFICATION_THRESHOLD",
    "PRESSURE_UUID",
    "PRESSURE_UUID16",
    "SECURITY_LEVELS",
    "TEMPERATURE_UUID",
    "TEMPERATURE_UUID16",
    "logger",
]
