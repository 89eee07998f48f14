"""Semantic train commands written as frames over an established link."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from trainctl.core import frame
from trainctl.core.errors import InvalidArgumentError
from trainctl.core.link import LinkHandle
from trainctl.core.model import Color, SoundTheme

LOGGER = logging.getLogger(__name__)

CMD_SPEED = 0x01
CMD_COLOR = 0x02
CMD_SOUND = (0x56, 0xAA)

MAX_SPEED_LEVEL = 0x1F
MIN_DRIVE_SPEED = 1
MAX_DRIVE_SPEED = 7
FORWARD_OFFSET = 0x01
BACKWARD_OFFSET = 0x11


def _check_drive_speed(speed: int) -> None:
    if not MIN_DRIVE_SPEED <= speed <= MAX_DRIVE_SPEED:
        raise InvalidArgumentError(
            f"Speed must be in {MIN_DRIVE_SPEED}..{MAX_DRIVE_SPEED}, got {speed}"
        )


class CommandDispatcher:
    """Encodes commands and writes them one frame at a time.

    Every method validates its arguments before touching the link and
    returns the exact frame bytes handed to the transport. Writes are
    fire-and-forget; nothing is retried.
    """

    def __init__(self, link: LinkHandle) -> None:
        self.link = link

    async def send(self, payload: Iterable[int]) -> bytes:
        async with self.link.write_lock:
            data = frame.encode(payload)
            LOGGER.debug("-> %s", data.hex(" "))
            await self.link.write(data)
        return data

    async def set_speed(self, level: int) -> bytes:
        if not 0 <= level <= MAX_SPEED_LEVEL:
            raise InvalidArgumentError(f"Speed level must be in 0..{MAX_SPEED_LEVEL}, got {level}")
        return await self.send([CMD_SPEED, level])

    async def forward(self, speed: int) -> bytes:
        _check_drive_speed(speed)
        return await self.set_speed(speed + FORWARD_OFFSET)

    async def backward(self, speed: int) -> bytes:
        _check_drive_speed(speed)
        return await self.set_speed(speed + BACKWARD_OFFSET)

    async def stop(self) -> bytes:
        return await self.set_speed(0)

    async def set_color(self, color: Color, intensity: int) -> bytes:
        try:
            color = Color(color)
        except ValueError:
            raise InvalidArgumentError(f"Unknown color value {color!r}") from None
        return await self.send([CMD_COLOR, color.encode(intensity)])

    async def set_sound_theme(self, theme: SoundTheme) -> bytes:
        try:
            theme = SoundTheme(theme)
        except ValueError:
            raise InvalidArgumentError(f"Unknown sound theme value {theme!r}") from None
        return await self.send([*CMD_SOUND, theme.encode()])
