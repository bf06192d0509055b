"""Tests for characteristic payload decoding."""

import pytest

from envsense.interfaces.ble import (
    DecodeError,
    SensorKind,
    decode,
    decode_humidity,
    decode_pressure,
    decode_temperature,
)


class TestDecoders:
    """Fixed-width little-endian decoding with 0.01 scaling."""

    def test_temperature(self):
        assert decode_temperature(bytes([0xE8, 0x08])) == pytest.approx(22.80)

    def test_negative_temperature(self):
        # -1050 as int16
        assert decode_temperature(bytes([0xE6, 0xFB])) == pytest.approx(-10.50)

    def test_pressure(self):
        assert decode_pressure(bytes([0x30, 0x1B, 0x0F, 0x00])) == pytest.approx(9900.00)

    def test_pressure_upper_bytes(self):
        # 0x000F4E40 == 1003072
        assert decode_pressure(bytes([0x40, 0x4E, 0x0F, 0x00])) == pytest.approx(10030.72)

    def test_pressure_is_unsigned(self):
        assert decode_pressure(b"\xff\xff\xff\xff") == pytest.approx(42949672.95)

    def test_humidity(self):
        assert decode_humidity(bytes([0x88, 0x13])) == pytest.approx(50.00)

    def test_out_of_range_humidity_passes_through(self):
        # 0xFFFF would be 655.35 %RH; no clamping is applied
        assert decode_humidity(b"\xff\xff") == pytest.approx(655.35)

    def test_extra_bytes_are_ignored(self):
        assert decode_temperature(bytes([0xE8, 0x08, 0xAA, 0xBB])) == pytest.approx(22.80)
        assert decode_humidity(bytearray([0x88, 0x13, 0x00])) == pytest.approx(50.00)

    def test_accepts_memoryview(self):
        assert decode_temperature(memoryview(b"\xe8\x08")) == pytest.approx(22.80)

    @pytest.mark.parametrize(
        "kind,payload",
        [
            (SensorKind.TEMPERATURE, b""),
            (SensorKind.TEMPERATURE, b"\x01"),
            (SensorKind.PRESSURE, b"\x01\x02\x03"),
            (SensorKind.HUMIDITY, b"\x01"),
        ],
    )
    def test_short_payload_raises(self, kind, payload):
        with pytest.raises(DecodeError):
            decode(kind, payload)

    def test_decode_error_is_value_error(self):
        with pytest.raises(ValueError, match="needs 4 bytes, got 2"):
            decode_pressure(b"\x00\x00")

    def test_dispatch_by_kind(self):
        assert decode(SensorKind.TEMPERATURE, b"\xe8\x08") == pytest.approx(22.80)
        assert decode(SensorKind.PRESSURE, b"\x30\x1b\x0f\x00") == pytest.approx(9900.0)
        assert decode(SensorKind.HUMIDITY, b"\x88\x13") == pytest.approx(50.0)
