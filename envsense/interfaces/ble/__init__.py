"""BLE Environmental Sensing interface package for envsense."""

from envsense.interfaces.ble.constants import (
    BLEConfig,
    ESS_SERVICE_UUID,
    HUMIDITY_UUID,
    MALFORMED_NOTIFICATION_THRESHOLD,
    PRESSURE_UUID,
    TEMPERATURE_UUID,
    logger,
)
from envsense.interfaces.ble.errors import BLEError, BLEErrorHandler, DecodeError
from envsense.interfaces.ble.store import (
    Reading,
    SensorKind,
    SensorSnapshot,
    SensorStateStore,
)
from envsense.interfaces.ble.decoding import (
    decode,
    decode_humidity,
    decode_pressure,
    decode_temperature,
)
from envsense.interfaces.ble.state import BLEStateManager, ConnectionState
from envsense.interfaces.ble.resolver import (
    HandleMap,
    ResolvedCharacteristic,
    format_services,
    resolve_characteristics,
)
from envsense.interfaces.ble.client import GattSession
from envsense.interfaces.ble.policies import ReconnectPolicy
from envsense.interfaces.ble.ingestion import (
    Ingestion,
    NotifyIngestion,
    PollIngestion,
    create_ingestion,
    format_reading,
)
from envsense.interfaces.ble.reactor import Reactor
from envsense.interfaces.ble.supervisor import SessionSupervisor
from envsense.interfaces.ble.interface import SensorInterface

__all__ = [
    # Core classes
    "BLEConfig",
    "BLEError",
    "BLEErrorHandler",
    "BLEStateManager",
    "ConnectionState",
    "DecodeError",
    "GattSession",
    "HandleMap",
    "Ingestion",
    "NotifyIngestion",
    "PollIngestion",
    "Reactor",
    "Reading",
    "ReconnectPolicy",
    "ResolvedCharacteristic",
    "SensorInterface",
    "SensorKind",
    "SensorSnapshot",
    "SensorStateStore",
    "SessionSupervisor",
    # Constants/helpers
    "ESS_SERVICE_UUID",
    "HUMIDITY_UUID",
    "MALFORMED_NOTIFICATION_THRESHOLD",
    "PRESSURE_UUID",
    "TEMPERATURE_UUID",
    "create_ingestion",
    "decode",
    "decode_humidity",
    "decode_pressure",
    "decode_temperature",
    "format_reading",
    "format_services",
    "logger",
    "resolve_characteristics",
]
