"""Connection lifecycle: discovery, connect, endpoint resolution, subscription.

States::

    IDLE -> SCANNING -> CANDIDATE_FOUND -> CONNECTING -> DISCOVERING_SERVICES
         -> SUBSCRIBING -> READY

``FAILED`` is reachable from every state before ``READY``. A failed or
closed manager can be connected again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from trainctl.core.device_match import name_matches
from trainctl.core.errors import (
    ConnectionStateError,
    ControlEndpointMissingError,
    DiscoveryTimeoutError,
    TrainctlError,
    TransportError,
)
from trainctl.core.link import LinkHandle
from trainctl.core.listener import NotificationListener
from trainctl.core.model import ConnectionState, Profile
from trainctl.transports.base import Characteristic, Transport

LOGGER = logging.getLogger(__name__)

_RESTARTABLE = (ConnectionState.IDLE, ConnectionState.FAILED)


def resolve_endpoints(
    characteristics: Sequence[Characteristic],
    profile: Profile,
) -> tuple[Characteristic, Characteristic | None]:
    """Pick the control characteristic and the notification characteristic.

    The notification endpoint is the profile's ``notify_char_uuid`` when
    configured, otherwise the control characteristic itself when it can
    notify.
    """
    control_uuid = profile.link.control_char_uuid.lower()
    control = next((c for c in characteristics if c.uuid.lower() == control_uuid), None)
    if control is None:
        raise ControlEndpointMissingError(
            f"Peripheral does not expose control characteristic {control_uuid} "
            f"required by profile '{profile.id}'"
        )

    notify: Characteristic | None = None
    if profile.link.notify_char_uuid:
        notify_uuid = profile.link.notify_char_uuid.lower()
        notify = next((c for c in characteristics if c.uuid.lower() == notify_uuid), None)
        if notify is None:
            LOGGER.warning("Notification characteristic %s not found; notifications disabled", notify_uuid)
    elif control.can_notify:
        notify = control
    return control, notify


class ConnectionManager:
    """Drives one peripheral from discovery to a ready `LinkHandle`.

    ``clock`` and ``sleep`` are injectable so discovery timing can be tested
    without waiting.
    """

    def __init__(
        self,
        transport: Transport,
        profile: Profile,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.profile = profile
        self.state = ConnectionState.IDLE
        self.failure: TrainctlError | None = None
        self.link: LinkHandle | None = None
        self.listener: NotificationListener | None = None
        self._clock = clock
        self._sleep = sleep

    def _transition(self, state: ConnectionState) -> None:
        LOGGER.info("Connection %s -> %s", self.state.value, state.value)
        self.state = state

    async def connect(self) -> LinkHandle:
        if self.state not in _RESTARTABLE:
            raise ConnectionStateError(f"Cannot connect while {self.state.value}")
        self.failure = None
        peripheral: Any | None = None
        try:
            peripheral = await self._discover()
            self._transition(ConnectionState.CONNECTING)
            await self.transport.connect(peripheral, timeout_s=self.profile.link.connect_timeout_s)

            self._transition(ConnectionState.DISCOVERING_SERVICES)
            characteristics = await self.transport.discover_characteristics(peripheral)
            control, notify = resolve_endpoints(characteristics, self.profile)

            if notify is not None and notify.can_notify:
                self._transition(ConnectionState.SUBSCRIBING)
                await self.transport.subscribe(peripheral, notify)
            else:
                notify = None
        except TrainctlError as exc:
            await self._fail(exc, peripheral)
            raise
        except asyncio.CancelledError:
            LOGGER.info("Connection attempt cancelled in state %s", self.state.value)
            await self._fail(None, peripheral)
            raise

        self.link = LinkHandle(
            transport=self.transport,
            peripheral=peripheral,
            control=control,
            notify=notify,
        )
        self._transition(ConnectionState.READY)
        if notify is not None:
            self.listener = NotificationListener(self.link)
            self.listener.start()
        return self.link

    async def _discover(self) -> Any:
        link = self.profile.link
        target = self.profile.match
        self._transition(ConnectionState.SCANNING)
        service_filter = [target.service_uuid] if link.scan_filter_service and target.service_uuid else None
        await self.transport.scan(service_filter)
        try:
            # Let advertisements accumulate before the first lookup.
            await self._sleep(link.settle_s)
            deadline = self._clock() + link.discovery_timeout_s
            attempt = 0
            while True:
                attempt += 1
                for peripheral in await self.transport.list_visible_peripherals():
                    name = self.transport.peripheral_name(peripheral)
                    if name_matches(name, target):
                        LOGGER.info(
                            "Found '%s' at %s after %d lookup(s)",
                            name,
                            self.transport.peripheral_address(peripheral),
                            attempt,
                        )
                        self._transition(ConnectionState.CANDIDATE_FOUND)
                        return peripheral
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise DiscoveryTimeoutError(
                        f"No device matching {', '.join(repr(t) for t in target.name_contains)} "
                        f"found within {link.discovery_timeout_s:g}s"
                    )
                LOGGER.debug("Lookup %d found no match; %.1fs left", attempt, remaining)
                await self._sleep(min(link.poll_interval_s, remaining))
        finally:
            try:
                await self.transport.stop_scan()
            except TransportError as stop_exc:
                LOGGER.warning("Stopping the scan failed: %s", stop_exc)

    async def _fail(self, exc: TrainctlError | None, peripheral: Any | None) -> None:
        if exc is not None:
            LOGGER.error("Connection failed in state %s: %s", self.state.value, exc)
        self.failure = exc
        self._transition(ConnectionState.FAILED)
        if peripheral is not None and self.transport.is_connected(peripheral):
            try:
                await self.transport.disconnect(peripheral)
            except TransportError as disconnect_exc:
                LOGGER.warning("Disconnect after failure also failed: %s", disconnect_exc)

    async def close(self) -> None:
        if self.listener is not None:
            await self.listener.stop()
            self.listener = None
        if self.link is not None:
            link, self.link = self.link, None
            await link.close()
        if self.state is not ConnectionState.IDLE:
            self._transition(ConnectionState.IDLE)
