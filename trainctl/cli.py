"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import typer

from trainctl.api import TrainClient, scan_devices
from trainctl.core.errors import TrainctlError
from trainctl.core.model import Color, SoundTheme
from trainctl.core.profile_loader import load_profiles

app = typer.Typer(help="Drive a BLE toy train via checksummed command frames")

T = TypeVar("T")

PROFILE_OPTION = typer.Option(None, "--profile", help="Profile ID (default: brio_smart_tech)")
HOLD_OPTION = typer.Option(0.5, "--hold", min=0.0, help="Seconds to keep the link open after sending")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(coro_factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
    try:
        return asyncio.run(coro_factory())
    except TrainctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _with_train(
    profile: str | None,
    action: Callable[[TrainClient], Awaitable[Any]],
    hold: float = 0.0,
) -> Any:
    async with TrainClient(profile_id=profile) as train:
        result = await action(train)
        if hold:
            await asyncio.sleep(hold)
        return result


def _echo_frame(label: str, frame: bytes) -> None:
    typer.echo(f"Sent {label} frame={frame.hex()}")


@app.command("profiles")
def list_profiles() -> None:
    """List available device profiles."""
    try:
        loaded = load_profiles()
    except TrainctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)

    for profile in sorted(loaded.profiles.values(), key=lambda p: p.id):
        tokens = ", ".join(profile.match.name_contains)
        typer.echo(f"{profile.id}: {profile.name}")
        typer.echo(f"  name contains: {tokens}")
        typer.echo(f"  control: {profile.link.control_char_uuid}")


@app.command("scan")
def scan(duration: float = typer.Option(5.0, "--duration", min=0.0, help="Seconds to scan")) -> None:
    """List visible BLE peripherals and the profile they match."""
    results = _run(lambda: scan_devices(duration))
    if not results:
        typer.echo("No BLE devices found")
        return
    for result in results:
        matched = result.profile.id if result.profile else "<no-match>"
        typer.echo(f"{result.device.address} {result.device.name} -> {matched}")


@app.command("speed")
def set_speed(
    level: int = typer.Argument(..., help="Raw speed level 0..31"),
    profile: str | None = PROFILE_OPTION,
    hold: float = HOLD_OPTION,
) -> None:
    """Send a raw speed level."""
    frame = _run(lambda: _with_train(profile, lambda t: t.set_speed(level), hold))
    _echo_frame(f"speed={level}", frame)


@app.command("forward")
def forward(
    speed: int = typer.Argument(..., help="Speed 1..7"),
    profile: str | None = PROFILE_OPTION,
    hold: float = HOLD_OPTION,
) -> None:
    """Drive forward."""
    frame = _run(lambda: _with_train(profile, lambda t: t.forward(speed), hold))
    _echo_frame(f"forward={speed}", frame)


@app.command("backward")
def backward(
    speed: int = typer.Argument(..., help="Speed 1..7"),
    profile: str | None = PROFILE_OPTION,
    hold: float = HOLD_OPTION,
) -> None:
    """Drive backward."""
    frame = _run(lambda: _with_train(profile, lambda t: t.backward(speed), hold))
    _echo_frame(f"backward={speed}", frame)


@app.command("stop")
def stop(profile: str | None = PROFILE_OPTION, hold: float = HOLD_OPTION) -> None:
    """Stop the train."""
    frame = _run(lambda: _with_train(profile, lambda t: t.stop(), hold))
    _echo_frame("stop", frame)


@app.command("color")
def set_color(
    color: str = typer.Argument(..., help="Color name, e.g. blue or light_blue"),
    intensity: int = typer.Argument(15, help="Intensity 0..15"),
    profile: str | None = PROFILE_OPTION,
    hold: float = HOLD_OPTION,
) -> None:
    """Set the headlight color."""

    async def _set(train: TrainClient) -> bytes:
        return await train.set_color(Color.parse(color), intensity)

    frame = _run(lambda: _with_train(profile, _set, hold))
    _echo_frame(f"color={color}:{intensity}", frame)


@app.command("sound")
def set_sound_theme(
    theme: str = typer.Argument(..., help="honk, whistle, horn or spaceship"),
    profile: str | None = PROFILE_OPTION,
    hold: float = HOLD_OPTION,
) -> None:
    """Select the sound theme."""

    async def _set(train: TrainClient) -> bytes:
        return await train.set_sound_theme(SoundTheme.parse(theme))

    frame = _run(lambda: _with_train(profile, _set, hold))
    _echo_frame(f"sound={theme}", frame)


@app.command("listen")
def listen(
    duration: float = typer.Option(10.0, "--duration", min=0.0, help="Seconds to listen"),
    profile: str | None = PROFILE_OPTION,
) -> None:
    """Print decoded notifications from the train."""

    async def _listen(train: TrainClient) -> int:
        listener = train.notifications
        if listener is None:
            typer.echo("Profile has no notification endpoint", err=True)
            return 0

        async def _drain() -> None:
            async for notification in listener:
                typer.echo(f"notification payload={notification.payload.hex()}")

        try:
            await asyncio.wait_for(_drain(), timeout=duration)
        except asyncio.TimeoutError:
            pass
        return listener.decode_errors

    errors = _run(lambda: _with_train(profile, _listen))
    if errors:
        typer.echo(f"Dropped {errors} malformed notification(s)", err=True)


@app.command("demo")
def demo(
    profile: str | None = PROFILE_OPTION,
    step: float = typer.Option(0.1, "--step", min=0.0, help="Seconds between color steps"),
    run_for: float = typer.Option(10.0, "--run", min=0.0, help="Seconds to drive forward"),
) -> None:
    """Cycle every color through all intensities, then drive forward, back and stop."""

    async def _demo(train: TrainClient) -> None:
        color = Color.OFF
        for _ in range(len(Color)):
            typer.echo(f"Color {color.name.lower()}")
            for intensity in range(16):
                await train.set_color(color, intensity)
                await asyncio.sleep(step)
            color = color.next()

        await train.set_color(Color.WHITE, 15)
        await asyncio.sleep(step)
        typer.echo("Forward")
        await train.forward(7)
        await asyncio.sleep(run_for)
        typer.echo("Backward")
        await train.backward(7)
        await asyncio.sleep(step)
        typer.echo("Stop")
        await train.stop()

    _run(lambda: _with_train(profile, _demo, step))


def run() -> None:
    app()


if __name__ == "__main__":
    run()
