from __future__ import annotations

import asyncio

import pytest
from fakes import (
    CONTROL_UUID,
    SERVICE_UUID,
    SPEAKER,
    TRAIN,
    FakeClock,
    FakeTransport,
    control_characteristic,
    make_profile,
)

from trainctl.core.connection import ConnectionManager, resolve_endpoints
from trainctl.core.errors import (
    ConnectionStateError,
    ControlEndpointMissingError,
    DeviceNotFoundError,
    DiscoveryTimeoutError,
    TransportConnectError,
    TransportError,
)
from trainctl.core.model import ConnectionState
from trainctl.transports.base import Characteristic


def _manager(transport: FakeTransport, **link_overrides: object) -> tuple[ConnectionManager, FakeClock]:
    clock = FakeClock()
    manager = ConnectionManager(transport, make_profile(**link_overrides), clock=clock, sleep=clock.sleep)
    return manager, clock


def _record_states(manager: ConnectionManager) -> list[ConnectionState]:
    states: list[ConnectionState] = []
    original = manager._transition

    def _spy(state: ConnectionState) -> None:
        states.append(state)
        original(state)

    manager._transition = _spy  # type: ignore[method-assign]
    return states


def test_connect_walks_every_state_to_ready() -> None:
    transport = FakeTransport()
    manager, _ = _manager(transport)
    states = _record_states(manager)

    async def _run() -> None:
        link = await manager.connect()
        assert link.peripheral == TRAIN
        assert link.control.uuid == CONTROL_UUID
        assert link.notify == link.control
        assert manager.listener is not None and manager.listener.running
        await manager.close()

    asyncio.run(_run())

    assert states == [
        ConnectionState.SCANNING,
        ConnectionState.CANDIDATE_FOUND,
        ConnectionState.CONNECTING,
        ConnectionState.DISCOVERING_SERVICES,
        ConnectionState.SUBSCRIBING,
        ConnectionState.READY,
        ConnectionState.IDLE,
    ]
    assert transport.subscribed == [CONTROL_UUID]
    assert transport.connected == set()


def test_scan_is_filtered_by_service_and_waits_settle_window() -> None:
    transport = FakeTransport()
    manager, clock = _manager(transport)

    asyncio.run(manager.connect())

    assert transport.scans == [[SERVICE_UUID]]
    assert clock.sleeps[0] == 2.0
    assert transport.stopped_scans == 1


def test_scan_filter_can_be_disabled() -> None:
    transport = FakeTransport()
    manager, _ = _manager(transport, scan_filter_service=False)

    asyncio.run(manager.connect())

    assert transport.scans == [None]


def test_discovery_polls_until_device_appears() -> None:
    transport = FakeTransport(appear_after=3)
    manager, clock = _manager(transport)

    asyncio.run(manager.connect())

    assert transport.lookups == 4
    assert clock.sleeps == [2.0, 0.5, 0.5, 0.5]
    assert manager.state is ConnectionState.READY


def test_discovery_times_out_after_window_and_not_earlier() -> None:
    transport = FakeTransport(peripherals=[SPEAKER])
    manager, clock = _manager(transport, settle_s=2.0, poll_interval_s=0.5, discovery_timeout_s=30.0)

    with pytest.raises(DiscoveryTimeoutError):
        asyncio.run(manager.connect())

    assert clock.now == pytest.approx(32.0)
    assert all(s <= 0.5 for s in clock.sleeps[1:])
    assert transport.lookups == 61
    assert transport.stopped_scans == 1
    assert manager.state is ConnectionState.FAILED
    assert isinstance(manager.failure, DeviceNotFoundError)


def test_discovery_clips_last_sleep_to_deadline() -> None:
    transport = FakeTransport(peripherals=[])
    manager, clock = _manager(transport, settle_s=0.0, poll_interval_s=0.5, discovery_timeout_s=1.25)

    with pytest.raises(DiscoveryTimeoutError):
        asyncio.run(manager.connect())

    assert clock.sleeps[1:] == pytest.approx([0.5, 0.5, 0.25])
    assert clock.now == pytest.approx(1.25)


def test_stop_scan_failure_keeps_discovery_timeout() -> None:
    transport = FakeTransport(peripherals=[SPEAKER])
    transport.stop_scan_error = TransportError("scan could not be stopped")
    manager, _ = _manager(transport, discovery_timeout_s=1.0)

    with pytest.raises(DiscoveryTimeoutError):
        asyncio.run(manager.connect())

    assert transport.stopped_scans == 1
    assert isinstance(manager.failure, DiscoveryTimeoutError)


def test_stop_scan_failure_does_not_abort_connect() -> None:
    transport = FakeTransport()
    transport.stop_scan_error = TransportError("scan could not be stopped")
    manager, _ = _manager(transport)

    link = asyncio.run(manager.connect())

    assert link.peripheral == TRAIN
    assert manager.state is ConnectionState.READY


def test_missing_control_endpoint_fails_and_disconnects() -> None:
    other = Characteristic(uuid="00002a19-0000-1000-8000-00805f9b34fb", properties=("read",))
    transport = FakeTransport(characteristics=[other])
    manager, _ = _manager(transport)

    with pytest.raises(ControlEndpointMissingError):
        asyncio.run(manager.connect())

    assert manager.state is ConnectionState.FAILED
    assert transport.connected == set()
    assert manager.link is None


def test_connect_failure_is_passed_through() -> None:
    transport = FakeTransport()
    transport.connect_error = TransportConnectError("radio busy")
    manager, _ = _manager(transport)

    with pytest.raises(TransportConnectError, match="radio busy"):
        asyncio.run(manager.connect())

    assert manager.state is ConnectionState.FAILED
    assert isinstance(manager.failure, TransportConnectError)


def test_write_only_endpoint_is_not_subscribed() -> None:
    transport = FakeTransport(characteristics=[control_characteristic("write-without-response")])
    manager, _ = _manager(transport)
    states = _record_states(manager)

    link = asyncio.run(manager.connect())

    assert ConnectionState.SUBSCRIBING not in states
    assert transport.subscribed == []
    assert link.notify is None
    assert manager.listener is None


def test_separate_notify_endpoint_is_armed() -> None:
    notify_uuid = "b11b0003-bf9b-4a20-ba07-9218fec577d7"
    transport = FakeTransport(
        characteristics=[
            control_characteristic("write-without-response"),
            Characteristic(uuid=notify_uuid, properties=("notify",), service_uuid=SERVICE_UUID),
        ]
    )
    manager, _ = _manager(transport, notify_char_uuid=notify_uuid)

    async def _run() -> None:
        link = await manager.connect()
        assert link.notify is not None and link.notify.uuid == notify_uuid
        await manager.close()

    asyncio.run(_run())
    assert transport.subscribed == [notify_uuid]


def test_connect_twice_is_rejected() -> None:
    transport = FakeTransport()
    manager, _ = _manager(transport)

    async def _run() -> None:
        await manager.connect()
        with pytest.raises(ConnectionStateError):
            await manager.connect()
        await manager.close()

    asyncio.run(_run())


def test_failed_manager_can_retry() -> None:
    transport = FakeTransport(peripherals=[])
    manager, _ = _manager(transport, discovery_timeout_s=1.0)

    with pytest.raises(DiscoveryTimeoutError):
        asyncio.run(manager.connect())

    transport.peripherals = [TRAIN]
    asyncio.run(manager.connect())
    assert manager.state is ConnectionState.READY
    assert manager.failure is None


def test_resolve_endpoints_matches_uuid_case_insensitively() -> None:
    upper = Characteristic(uuid=CONTROL_UUID.upper(), properties=("write",))
    control, notify = resolve_endpoints([upper], make_profile())
    assert control is upper
    assert notify is None
