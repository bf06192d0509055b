"""
envsense - persistent BLE client for a single Environmental Sensing peripheral.

The BLE session lives in `envsense.interfaces.ble`; `SensorInterface` is the
entry point other code should use:

    from envsense.config import DeviceConfig
    from envsense.interfaces.ble import SensorInterface

    with SensorInterface(DeviceConfig(address="C0:FF:EE:00:00:01")) as iface:
        value, observed = iface.read_temperature()
"""

__version__ = "0.1.0"
