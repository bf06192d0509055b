"""Tests for the notification and polling ingestion paths."""

import logging
from unittest.mock import Mock

import pytest

from envsense.interfaces.ble import (
    BLEError,
    BLEStateManager,
    ConnectionState,
    HandleMap,
    MALFORMED_NOTIFICATION_THRESHOLD,
    NotifyIngestion,
    PollIngestion,
    Reading,
    SensorKind,
    create_ingestion,
    format_reading,
    resolve_characteristics,
)

from tests.fakes import (
    BATTERY_HANDLE,
    HUMIDITY_HANDLE,
    HUMIDITY_PAYLOAD,
    PRESSURE_HANDLE,
    PRESSURE_PAYLOAD,
    TEMPERATURE_HANDLE,
    TEMPERATURE_PAYLOAD,
    FakeGattSession,
    make_services,
    spin,
)


@pytest.fixture
def session():
    return FakeGattSession("C0:FF:EE:00:00:01", disconnected_callback=Mock())


@pytest.fixture
def handle_map(session):
    return resolve_characteristics(session.services)


def _notify(session, handle_map, store, state_manager, loop, **kwargs):
    return NotifyIngestion(
        session, handle_map, store, state_manager, loop=loop, **kwargs
    )


def _poll(session, handle_map, store, state_manager, loop, interval=0.01, **kwargs):
    return PollIngestion(
        session,
        handle_map,
        store,
        state_manager,
        loop=loop,
        interval=interval,
        **kwargs,
    )


def test_format_reading():
    assert format_reading(SensorKind.TEMPERATURE, 22.8) == "Temperature: 22.80 °C"
    assert format_reading(SensorKind.PRESSURE, 9900.0) == "Pressure: 9900.0 hPa"
    assert format_reading(SensorKind.HUMIDITY, 50.0) == "Humidity: 50.00 %RH"


class TestNotifyIngestion:
    """Push path: one subscription per resolved characteristic."""

    def test_arm_registers_every_resolved_handle(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _notify(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop)

        assert ingestion.armed
        assert set(session.notify_handlers) == {
            TEMPERATURE_HANDLE,
            PRESSURE_HANDLE,
            HUMIDITY_HANDLE,
        }
        assert BATTERY_HANDLE not in session.notify_handlers

    def test_notification_updates_store(
        self, loop, session, handle_map, connected_store, ready_state_manager, caplog
    ):
        caplog.set_level(logging.INFO, logger="envsense.ble")
        on_reading = Mock()
        ingestion = _notify(
            session,
            handle_map,
            connected_store,
            ready_state_manager,
            loop,
            on_reading=on_reading,
        )
        ingestion.arm()
        spin(loop)

        session.notify(TEMPERATURE_HANDLE, TEMPERATURE_PAYLOAD)
        session.notify(PRESSURE_HANDLE, PRESSURE_PAYLOAD)
        session.notify(HUMIDITY_HANDLE, HUMIDITY_PAYLOAD)

        assert connected_store.read(SensorKind.TEMPERATURE) == Reading(pytest.approx(22.8), True)
        assert connected_store.read(SensorKind.PRESSURE) == Reading(pytest.approx(9900.0), True)
        assert connected_store.read(SensorKind.HUMIDITY) == Reading(pytest.approx(50.0), True)
        on_reading.assert_any_call(SensorKind.TEMPERATURE, pytest.approx(22.8))
        assert on_reading.call_count == 3
        assert "Temperature: 22.80 °C" in caplog.text

    def test_empty_handle_map_registers_nothing(
        self, loop, connected_store, ready_state_manager
    ):
        session = FakeGattSession(
            "C0:FF:EE:00:00:01",
            disconnected_callback=Mock(),
            services=make_services(include_ess=False),
        )
        ingestion = _notify(
            session,
            resolve_characteristics(session.services),
            connected_store,
            ready_state_manager,
            loop,
        )
        ingestion.arm()
        spin(loop)

        assert session.notify_handlers == {}

    def test_stale_notification_is_ignored(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _notify(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop)
        handler = session.notify_handlers[TEMPERATURE_HANDLE]

        ready_state_manager.transition_to(ConnectionState.DISCONNECTED)
        handler(TEMPERATURE_PAYLOAD)

        assert connected_store.read(SensorKind.TEMPERATURE).observed is False

    def test_disarmed_ingestion_drops_values(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _notify(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop)
        handler = session.notify_handlers[HUMIDITY_HANDLE]

        ingestion.disarm()
        handler(HUMIDITY_PAYLOAD)

        assert not ingestion.armed
        assert len(handle_map) == 0
        assert connected_store.read(SensorKind.HUMIDITY).observed is False

    def test_unknown_handle_is_ignored(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _notify(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop)

        ingestion._on_value(0x0099, TEMPERATURE_PAYLOAD)
        ingestion._on_value(BATTERY_HANDLE, b"\x64")

        assert not any(connected_store.read(kind).observed for kind in SensorKind)

    def test_malformed_notifications_warn_at_threshold(
        self, loop, session, handle_map, connected_store, ready_state_manager, caplog
    ):
        caplog.set_level(logging.DEBUG, logger="envsense.ble")
        ingestion = _notify(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop)

        for _ in range(MALFORMED_NOTIFICATION_THRESHOLD - 1):
            session.notify(PRESSURE_HANDLE, b"\x01")
        assert "malformed sensor payloads" not in caplog.text

        session.notify(PRESSURE_HANDLE, b"\x01")
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert connected_store.read(SensorKind.PRESSURE).observed is False

    def test_registration_failure_is_logged(
        self, loop, session, handle_map, connected_store, ready_state_manager, caplog
    ):
        session.subscribe_error = BLEError("CCCD write rejected")
        ingestion = _notify(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop)

        assert session.notify_handlers == {}
        assert "Failed to register notify handler" in caplog.text


class TestPollIngestion:
    """Pull path: self-rescheduling reads gated on readiness."""

    def test_first_tick_reads_every_kind(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _poll(
            session, handle_map, connected_store, ready_state_manager, loop, interval=10
        )
        ingestion.arm()
        spin(loop)

        assert ingestion.ticks == 1
        assert sorted(session.read_calls) == [
            TEMPERATURE_HANDLE,
            PRESSURE_HANDLE,
            HUMIDITY_HANDLE,
        ]
        assert connected_store.read(SensorKind.TEMPERATURE) == Reading(pytest.approx(22.8), True)
        assert connected_store.read(SensorKind.PRESSURE) == Reading(pytest.approx(9900.0), True)
        assert connected_store.read(SensorKind.HUMIDITY) == Reading(pytest.approx(50.0), True)

    def test_ticks_reschedule(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _poll(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop, 0.1)

        assert ingestion.ticks >= 3
        assert len(session.read_calls) >= 9

    def test_tick_while_disconnected_issues_no_reads(
        self, loop, session, handle_map, connected_store
    ):
        state_manager = BLEStateManager()
        ingestion = _poll(session, handle_map, connected_store, state_manager, loop)
        ingestion.arm()
        spin(loop, 0.05)

        assert session.read_calls == []
        assert ingestion.ticks >= 2
        assert ingestion._timer is not None

    def test_empty_handle_map_issues_no_reads(
        self, loop, session, connected_store, ready_state_manager
    ):
        ingestion = _poll(session, HandleMap(), connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop, 0.05)

        assert session.read_calls == []
        assert ingestion.ticks >= 2

    def test_pending_read_is_not_reissued(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        session.reads_blocked = True
        ingestion = _poll(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop, 0.1)

        assert ingestion.ticks > 1
        assert len(session.read_calls) == 3

        session.reads_blocked = False
        spin(loop, 0.03)
        assert connected_store.read(SensorKind.HUMIDITY).observed

    def test_stale_completion_is_discarded(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        session.reads_blocked = True
        ingestion = _poll(
            session, handle_map, connected_store, ready_state_manager, loop, interval=10
        )
        ingestion.arm()
        spin(loop)
        assert len(session.read_calls) == 3

        # Connection torn down and a new one started while the reads were outstanding.
        ready_state_manager.transition_to(ConnectionState.DISCONNECTED)
        ready_state_manager.transition_to(ConnectionState.CONNECTING)
        session.reads_blocked = False
        spin(loop)

        assert not any(connected_store.read(kind).observed for kind in SensorKind)

    def test_read_failures_are_dropped(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        session.read_values[TEMPERATURE_HANDLE] = BLEError("ATT error 0x0e")
        session.read_values[PRESSURE_HANDLE] = b"\x01\x02"
        ingestion = _poll(
            session, handle_map, connected_store, ready_state_manager, loop, interval=10
        )
        ingestion.arm()
        spin(loop)

        assert connected_store.read(SensorKind.TEMPERATURE).observed is False
        assert connected_store.read(SensorKind.PRESSURE).observed is False
        assert connected_store.read(SensorKind.HUMIDITY).observed is True

    def test_disarm_stops_ticking(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        ingestion = _poll(session, handle_map, connected_store, ready_state_manager, loop)
        ingestion.arm()
        spin(loop, 0.03)
        ingestion.disarm()
        ticks = ingestion.ticks
        spin(loop, 0.05)

        assert ingestion.ticks == ticks
        assert ingestion._timer is None

    def test_rejects_non_positive_interval(
        self, loop, session, handle_map, connected_store, ready_state_manager
    ):
        with pytest.raises(ValueError):
            _poll(session, handle_map, connected_store, ready_state_manager, loop, interval=0)


class TestCreateIngestion:
    def test_selects_strategy(self, loop, session, handle_map, store, ready_state_manager):
        args = (session, handle_map, store, ready_state_manager)

        notify = create_ingestion("notify", *args, loop=loop)
        poll = create_ingestion("poll", *args, loop=loop, poll_interval=0.5)

        assert isinstance(notify, NotifyIngestion)
        assert isinstance(poll, PollIngestion)
        assert poll.interval == 0.5

    def test_unknown_mode(self, loop, session, handle_map, store, ready_state_manager):
        with pytest.raises(ValueError, match="Unknown ingestion mode"):
            create_ingestion("broadcast", session, handle_map, store, ready_state_manager, loop=loop)
