"""Transport interfaces."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

NOTIFY_PROPERTIES = frozenset({"notify", "indicate"})


@dataclass(frozen=True)
class Characteristic:
    uuid: str
    properties: tuple[str, ...] = ()
    service_uuid: str | None = None
    handle: int | None = None

    @property
    def can_notify(self) -> bool:
        return any(prop in NOTIFY_PROPERTIES for prop in self.properties)


class Transport(Protocol):
    """Low-level BLE primitives the connection manager drives.

    Peripheral references are opaque to callers; only the transport that
    produced a reference knows how to use it.
    """

    async def scan(self, service_uuids: Sequence[str] | None = None) -> None:
        """Start collecting advertisements, optionally filtered by service."""

    async def stop_scan(self) -> None:
        """Stop collecting advertisements."""

    async def list_visible_peripherals(self) -> list[Any]:
        """Return every peripheral seen since the scan started."""

    def peripheral_name(self, peripheral: Any) -> str | None:
        """Return the advertised local name, if any."""

    def peripheral_address(self, peripheral: Any) -> str:
        """Return the address (or platform identifier) of the peripheral."""

    async def connect(self, peripheral: Any, *, timeout_s: float = 10.0) -> None:
        """Open the link to the peripheral."""

    async def disconnect(self, peripheral: Any) -> None:
        """Close the link to the peripheral."""

    async def discover_characteristics(self, peripheral: Any) -> list[Characteristic]:
        """Enumerate characteristics across all services."""

    async def write(
        self,
        peripheral: Any,
        characteristic: Characteristic,
        data: bytes,
        *,
        response: bool = False,
    ) -> None:
        """Write ``data`` to ``characteristic``."""

    async def subscribe(self, peripheral: Any, characteristic: Characteristic) -> None:
        """Arm notifications/indications on ``characteristic``."""

    def notification_stream(self, peripheral: Any) -> AsyncIterator[bytes]:
        """Yield notification buffers until the link goes away."""

    def is_connected(self, peripheral: Any) -> bool:
        """Report whether the link to the peripheral is still up."""
