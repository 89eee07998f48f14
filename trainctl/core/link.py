"""Live session shared by the command write path and the notification read path."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from trainctl.core.errors import TransportSendError
from trainctl.transports.base import Characteristic, Transport


class LinkHandle:
    """A connected peripheral with its resolved endpoints.

    ``write_lock`` serializes frame writes; notification reads never take it.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        peripheral: Any,
        control: Characteristic,
        notify: Characteristic | None = None,
    ) -> None:
        self.transport = transport
        self.peripheral = peripheral
        self.control = control
        self.notify = notify
        self.write_lock = asyncio.Lock()
        self._closed = False

    @property
    def address(self) -> str:
        return self.transport.peripheral_address(self.peripheral)

    @property
    def is_connected(self) -> bool:
        return not self._closed and self.transport.is_connected(self.peripheral)

    async def write(self, frame: bytes) -> None:
        """Write one complete frame. Callers must hold ``write_lock``."""
        if not self.is_connected:
            raise TransportSendError(f"Link to {self.address} is not connected")
        await self.transport.write(self.peripheral, self.control, frame, response=False)

    def notifications(self) -> AsyncIterator[bytes]:
        return self.transport.notification_stream(self.peripheral)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.transport.disconnect(self.peripheral)
