"""Core data models used across loader, connection, dispatcher, and CLI."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from trainctl.core.errors import InvalidArgumentError

MAX_INTENSITY = 15


class Color(IntEnum):
    OFF = 0
    YELLOW = 1
    ORANGE = 2
    RED = 3
    PINK = 4
    PURPLE = 5
    BLUE = 6
    LIGHT_BLUE = 7
    CYAN = 8
    GREEN = 9
    WHITE = 10
    RED_BACKWARD = 11

    def encode(self, intensity: int) -> int:
        """Pack the hue into the high nibble and ``intensity`` into the low one."""
        if not 0 <= intensity <= MAX_INTENSITY:
            raise InvalidArgumentError(
                f"Color intensity must be in 0..{MAX_INTENSITY}, got {intensity}"
            )
        return self.value * 16 + intensity

    def next(self) -> Color:
        members = list(type(self))
        return members[(members.index(self) + 1) % len(members)]

    @classmethod
    def parse(cls, name: str) -> Color:
        key = name.strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[key]
        except KeyError:
            allowed = ", ".join(c.name.lower() for c in cls)
            raise InvalidArgumentError(f"Unknown color '{name}'. Allowed: {allowed}") from None


class SoundTheme(IntEnum):
    HONK = 0
    WHISTLE = 1
    HORN = 2
    SPACESHIP = 3

    def encode(self) -> int:
        return 0xF0 + self.value

    @classmethod
    def parse(cls, name: str) -> SoundTheme:
        try:
            return cls[name.strip().upper()]
        except KeyError:
            allowed = ", ".join(t.name.lower() for t in cls)
            raise InvalidArgumentError(f"Unknown sound theme '{name}'. Allowed: {allowed}") from None


class ConnectionState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CANDIDATE_FOUND = "candidate_found"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    SUBSCRIBING = "subscribing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class DiscoveryTarget:
    name_contains: tuple[str, ...]
    service_uuid: str | None = None


@dataclass(frozen=True)
class LinkSpec:
    control_char_uuid: str
    notify_char_uuid: str | None = None
    scan_filter_service: bool = True
    settle_s: float = 2.0
    poll_interval_s: float = 0.5
    discovery_timeout_s: float = 30.0
    connect_timeout_s: float = 10.0


@dataclass(frozen=True)
class Profile:
    id: str
    name: str
    match: DiscoveryTarget
    link: LinkSpec


@dataclass(frozen=True)
class DetectedDevice:
    address: str
    name: str


@dataclass(frozen=True)
class Notification:
    payload: bytes
    raw: bytes
