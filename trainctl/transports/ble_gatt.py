"""BLE GATT transport implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from trainctl.core.errors import (
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportSubscribeError,
    TransportTimeoutError,
)
from trainctl.transports.base import Characteristic

LOGGER = logging.getLogger(__name__)


def _bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise TransportConnectError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


class BLEGATTTransport:
    """`Transport` backed by bleak's scanner and client.

    Peripheral references are ``bleak.backends.device.BLEDevice`` objects as
    returned by the scanner. One ``BleakClient`` and one notification queue
    are kept per connected address.
    """

    def __init__(self) -> None:
        self._scanner: Any | None = None
        self._clients: dict[str, Any] = {}
        self._queues: dict[str, asyncio.Queue[bytes | None]] = {}

    async def scan(self, service_uuids: Sequence[str] | None = None) -> None:
        bleak = _bleak()
        if self._scanner is not None:
            await self.stop_scan()
        self._scanner = bleak.BleakScanner(service_uuids=list(service_uuids) if service_uuids else None)
        try:
            await self._scanner.start()
        except Exception as exc:
            self._scanner = None
            raise TransportConnectError(f"BLE scan could not start: {exc}") from exc
        LOGGER.debug("BLE scan started (service filter: %s)", service_uuids)

    async def stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except Exception as exc:
            raise TransportError(f"BLE scan could not be stopped: {exc}") from exc

    async def list_visible_peripherals(self) -> list[Any]:
        if self._scanner is None:
            return []
        return list(self._scanner.discovered_devices)

    def peripheral_name(self, peripheral: Any) -> str | None:
        return peripheral.name

    def peripheral_address(self, peripheral: Any) -> str:
        return peripheral.address

    async def connect(self, peripheral: Any, *, timeout_s: float = 10.0) -> None:
        bleak = _bleak()
        address = peripheral.address
        queue: asyncio.Queue[bytes | None] = asyncio.Queue()

        def _on_disconnect(_: Any) -> None:
            LOGGER.warning("BLE link to %s dropped", address)
            queue.put_nowait(None)

        client = bleak.BleakClient(peripheral, disconnected_callback=_on_disconnect, timeout=timeout_s)
        try:
            await client.connect()
        except asyncio.TimeoutError as exc:
            raise TransportTimeoutError(f"BLE connect timed out for {address}") from exc
        except Exception as exc:
            raise TransportConnectError(f"BLE connect failed for {address}: {exc}") from exc
        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {address}")

        self._clients[address] = client
        self._queues[address] = queue

    async def disconnect(self, peripheral: Any) -> None:
        address = peripheral.address
        client = self._clients.pop(address, None)
        queue = self._queues.pop(address, None)
        if queue is not None:
            queue.put_nowait(None)
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:
            raise TransportError(f"BLE disconnect failed for {address}: {exc}") from exc

    async def discover_characteristics(self, peripheral: Any) -> list[Characteristic]:
        client = self._client(peripheral)
        characteristics: list[Characteristic] = []
        try:
            for service in client.services:
                for char in service.characteristics:
                    characteristics.append(
                        Characteristic(
                            uuid=char.uuid.lower(),
                            properties=tuple(char.properties),
                            service_uuid=service.uuid.lower(),
                            handle=char.handle,
                        )
                    )
        except Exception as exc:
            raise TransportConnectError(f"BLE service discovery failed: {exc}") from exc
        return characteristics

    async def write(
        self,
        peripheral: Any,
        characteristic: Characteristic,
        data: bytes,
        *,
        response: bool = False,
    ) -> None:
        client = self._client(peripheral, error=TransportSendError)
        try:
            await client.write_gatt_char(_specifier(characteristic), data, response=response)
        except Exception as exc:
            raise TransportSendError(f"BLE GATT write failed: {exc}") from exc

    async def subscribe(self, peripheral: Any, characteristic: Characteristic) -> None:
        client = self._client(peripheral, error=TransportSubscribeError)
        queue = self._queues[peripheral.address]

        def _notify_handler(_: Any, data: bytearray) -> None:
            queue.put_nowait(bytes(data))

        try:
            await client.start_notify(_specifier(characteristic), _notify_handler)
        except Exception as exc:
            raise TransportSubscribeError(
                f"Could not enable notifications on {characteristic.uuid}: {exc}"
            ) from exc

    async def notification_stream(self, peripheral: Any) -> AsyncIterator[bytes]:
        queue = self._queues.get(peripheral.address)
        if queue is None:
            return
        while True:
            data = await queue.get()
            if data is None:
                return
            yield data

    def is_connected(self, peripheral: Any) -> bool:
        client = self._clients.get(peripheral.address)
        return bool(client is not None and client.is_connected)

    def _client(self, peripheral: Any, *, error: type[TransportError] = TransportConnectError) -> Any:
        client = self._clients.get(peripheral.address)
        if client is None or not client.is_connected:
            raise error(f"Not connected to {peripheral.address}")
        return client


def _specifier(characteristic: Characteristic) -> int | str:
    # Handles disambiguate characteristics that share a UUID with their service.
    return characteristic.handle if characteristic.handle is not None else characteristic.uuid
