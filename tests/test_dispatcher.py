from __future__ import annotations

import asyncio

import pytest
from fakes import TRAIN, FakeTransport, control_characteristic

from trainctl.core.dispatcher import CommandDispatcher
from trainctl.core.errors import InvalidArgumentError, TransportSendError
from trainctl.core.link import LinkHandle
from trainctl.core.model import Color, SoundTheme


def _dispatcher() -> tuple[CommandDispatcher, FakeTransport]:
    transport = FakeTransport()
    transport.connected.add(TRAIN.address)
    link = LinkHandle(transport=transport, peripheral=TRAIN, control=control_characteristic())
    return CommandDispatcher(link), transport


def test_stop_writes_speed_zero_frame() -> None:
    dispatcher, transport = _dispatcher()

    frame = asyncio.run(dispatcher.stop())

    assert frame == bytes.fromhex("aa020100fd")
    assert transport.writes == [frame]


@pytest.mark.parametrize("speed", range(1, 8))
def test_forward_maps_to_speed_plus_one(speed: int) -> None:
    dispatcher, transport = _dispatcher()

    asyncio.run(dispatcher.forward(speed))

    assert transport.writes[0][2:4] == bytes([0x01, speed + 1])


@pytest.mark.parametrize("speed", range(1, 8))
def test_backward_maps_to_speed_plus_0x11(speed: int) -> None:
    dispatcher, transport = _dispatcher()

    asyncio.run(dispatcher.backward(speed))

    assert transport.writes[0][2:4] == bytes([0x01, speed + 0x11])


@pytest.mark.parametrize("speed", [0, 8, -1])
def test_drive_rejects_out_of_range_speed_before_io(speed: int) -> None:
    dispatcher, transport = _dispatcher()

    with pytest.raises(InvalidArgumentError):
        asyncio.run(dispatcher.forward(speed))
    with pytest.raises(InvalidArgumentError):
        asyncio.run(dispatcher.backward(speed))
    assert transport.writes == []


def test_set_speed_rejects_level_above_0x1f() -> None:
    dispatcher, transport = _dispatcher()

    with pytest.raises(InvalidArgumentError):
        asyncio.run(dispatcher.set_speed(0x20))
    assert transport.writes == []


def test_set_color_frame() -> None:
    dispatcher, transport = _dispatcher()

    frame = asyncio.run(dispatcher.set_color(Color.BLUE, 15))

    assert frame == bytes([0xAA, 0x02, 0x02, 0x6F, 0x8D])


def test_set_color_rejects_intensity_16() -> None:
    dispatcher, transport = _dispatcher()

    with pytest.raises(InvalidArgumentError):
        asyncio.run(dispatcher.set_color(Color.RED, 16))
    assert transport.writes == []


def test_unknown_color_value_is_invalid_argument() -> None:
    dispatcher, transport = _dispatcher()

    with pytest.raises(InvalidArgumentError):
        asyncio.run(dispatcher.set_color(12, 15))
    assert transport.writes == []


def test_unknown_sound_theme_value_is_invalid_argument() -> None:
    dispatcher, transport = _dispatcher()

    with pytest.raises(InvalidArgumentError):
        asyncio.run(dispatcher.set_sound_theme(4))
    assert transport.writes == []


def test_set_sound_theme_frame() -> None:
    dispatcher, transport = _dispatcher()

    frame = asyncio.run(dispatcher.set_sound_theme(SoundTheme.HORN))

    assert frame[:5] == bytes([0xAA, 0x03, 0x56, 0xAA, 0xF2])
    assert sum(frame[1:]) & 0xFF == 0


def test_concurrent_commands_do_not_interleave() -> None:
    dispatcher, transport = _dispatcher()

    async def _run() -> tuple[bytes, bytes]:
        return await asyncio.gather(
            dispatcher.set_sound_theme(SoundTheme.SPACESHIP),
            dispatcher.set_color(Color.GREEN, 7),
        )

    sound, color = asyncio.run(_run())

    assert sorted(transport.writes) == sorted([sound, color])
    assert bytes(transport.wire) in (sound + color, color + sound)


def test_sequential_commands_keep_issue_order() -> None:
    dispatcher, transport = _dispatcher()

    async def _run() -> None:
        await dispatcher.forward(3)
        await dispatcher.set_color(Color.WHITE, 15)
        await dispatcher.stop()

    asyncio.run(_run())

    assert [w[2] for w in transport.writes] == [0x01, 0x02, 0x01]
    assert transport.writes[2] == bytes.fromhex("aa020100fd")


def test_write_on_disconnected_link_fails() -> None:
    dispatcher, transport = _dispatcher()
    transport.connected.clear()

    with pytest.raises(TransportSendError):
        asyncio.run(dispatcher.stop())
    assert transport.writes == []
