"""Stable public API for building tooling on top of trainctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from trainctl.core.connection import ConnectionManager
from trainctl.core.device_match import best_profile_for_device
from trainctl.core.dispatcher import CommandDispatcher
from trainctl.core.errors import (
    BadMarkerError,
    ChecksumMismatchError,
    ConnectionStateError,
    ControlEndpointMissingError,
    DecodeError,
    DeviceNotFoundError,
    DiscoveryTimeoutError,
    FrameError,
    InvalidArgumentError,
    LengthMismatchError,
    PayloadTooLargeError,
    ProfileLoadError,
    ProfileSelectionError,
    ProfileValidationError,
    TrainctlError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportSubscribeError,
    TransportTimeoutError,
)
from trainctl.core.link import LinkHandle
from trainctl.core.listener import NotificationListener
from trainctl.core.model import (
    Color,
    ConnectionState,
    DetectedDevice,
    DiscoveryTarget,
    LinkSpec,
    Notification,
    Profile,
    SoundTheme,
)
from trainctl.core.profile_loader import load_profiles
from trainctl.transports.base import Characteristic, Transport
from trainctl.transports.ble_gatt import BLEGATTTransport

__all__ = [
    "TrainctlError",
    "BadMarkerError",
    "ChecksumMismatchError",
    "ConnectionStateError",
    "ControlEndpointMissingError",
    "DecodeError",
    "DeviceNotFoundError",
    "DiscoveryTimeoutError",
    "FrameError",
    "InvalidArgumentError",
    "LengthMismatchError",
    "PayloadTooLargeError",
    "ProfileLoadError",
    "ProfileSelectionError",
    "ProfileValidationError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportSubscribeError",
    "TransportTimeoutError",
    "Characteristic",
    "Color",
    "ConnectionState",
    "DetectedDevice",
    "DiscoveryTarget",
    "LinkHandle",
    "LinkSpec",
    "Notification",
    "NotificationListener",
    "Profile",
    "SoundTheme",
    "Transport",
    "BLEGATTTransport",
    "ScanResult",
    "TrainClient",
    "list_profiles",
    "resolve_profile",
    "scan_devices",
]

DEFAULT_PROFILE_ID = "brio_smart_tech"


@dataclass(frozen=True)
class ScanResult:
    device: DetectedDevice
    profile: Profile | None


def list_profiles() -> list[Profile]:
    return sorted(load_profiles().profiles.values(), key=lambda p: p.id)


def resolve_profile(profile_id: str | None = None) -> Profile:
    profiles = load_profiles().profiles
    wanted = profile_id or DEFAULT_PROFILE_ID
    profile = profiles.get(wanted)
    if profile is None:
        available = ", ".join(sorted(profiles))
        raise ProfileSelectionError(f"Unknown profile '{wanted}'. Available: {available}")
    return profile


async def scan_devices(
    duration_s: float = 5.0,
    *,
    transport: Transport | None = None,
    profiles: Iterable[Profile] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> list[ScanResult]:
    """List visible peripherals with the profile each one would match."""
    transport = transport or BLEGATTTransport()
    by_id = {p.id: p for p in (profiles if profiles is not None else list_profiles())}

    await transport.scan(None)
    try:
        await sleep(duration_s)
        peripherals = await transport.list_visible_peripherals()
    finally:
        await transport.stop_scan()

    results: list[ScanResult] = []
    seen: set[str] = set()
    for peripheral in peripherals:
        address = transport.peripheral_address(peripheral)
        if address in seen:
            continue
        seen.add(address)
        device = DetectedDevice(address=address, name=transport.peripheral_name(peripheral) or "<unknown-device>")
        results.append(ScanResult(device=device, profile=best_profile_for_device(device, by_id)))
    return results


class TrainClient:
    """Public client for one train.

    A `TrainClient` wraps profile resolution, the connection lifecycle, the
    command dispatcher and the notification listener::

        async with TrainClient() as train:
            await train.set_color(Color.BLUE, 15)
            await train.forward(3)
    """

    def __init__(
        self,
        *,
        profile: Profile | None = None,
        profile_id: str | None = None,
        transport: Transport | None = None,
        manager: ConnectionManager | None = None,
    ) -> None:
        if manager is None:
            manager = ConnectionManager(
                transport or BLEGATTTransport(),
                profile or resolve_profile(profile_id),
            )
        self._manager = manager
        self._dispatcher: CommandDispatcher | None = None

    @property
    def profile(self) -> Profile:
        return self._manager.profile

    @property
    def state(self) -> ConnectionState:
        return self._manager.state

    @property
    def link(self) -> LinkHandle | None:
        return self._manager.link

    @property
    def notifications(self) -> NotificationListener | None:
        return self._manager.listener

    async def connect(self) -> TrainClient:
        link = await self._manager.connect()
        self._dispatcher = CommandDispatcher(link)
        return self

    async def close(self) -> None:
        self._dispatcher = None
        await self._manager.close()

    async def __aenter__(self) -> TrainClient:
        return await self.connect()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def dispatcher(self) -> CommandDispatcher:
        if self._dispatcher is None:
            raise ConnectionStateError("Train is not connected. Call connect() first.")
        return self._dispatcher

    async def send(self, payload: Iterable[int]) -> bytes:
        return await self.dispatcher.send(payload)

    async def set_speed(self, level: int) -> bytes:
        return await self.dispatcher.set_speed(level)

    async def forward(self, speed: int) -> bytes:
        return await self.dispatcher.forward(speed)

    async def backward(self, speed: int) -> bytes:
        return await self.dispatcher.backward(speed)

    async def stop(self) -> bytes:
        return await self.dispatcher.stop()

    async def set_color(self, color: Color, intensity: int) -> bytes:
        return await self.dispatcher.set_color(color, intensity)

    async def set_sound_theme(self, theme: SoundTheme) -> bytes:
        return await self.dispatcher.set_sound_theme(theme)
