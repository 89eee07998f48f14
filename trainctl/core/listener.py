"""Background consumer of the inbound notification stream."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from trainctl.core import frame
from trainctl.core.errors import ConnectionStateError, DecodeError, TransportError
from trainctl.core.link import LinkHandle
from trainctl.core.model import Notification

LOGGER = logging.getLogger(__name__)


class NotificationListener:
    """Decodes notifications from ``link`` into a queue of `Notification`.

    Malformed frames are logged and counted; they never stop the listener.
    A failing stream is logged and kept in ``error``.
    The task ends when the transport stream ends, when `stop` is called, or
    when the task is cancelled. Consumers iterating the listener see the end
    of the stream in all three cases.
    """

    def __init__(self, link: LinkHandle) -> None:
        self.link = link
        self.queue: asyncio.Queue[Notification | None] = asyncio.Queue()
        self.decode_errors = 0
        self.last_error: DecodeError | None = None
        self.error: Exception | None = None
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> asyncio.Task[None]:
        if self._task is not None:
            raise ConnectionStateError("Notification listener already started")
        self._task = asyncio.create_task(self._run(), name=f"trainctl-listener-{self.link.address}")
        return self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task is None:
            return
        await asyncio.wait({self._task})

    async def _run(self) -> None:
        stream = self.link.notifications()
        stop_wait = asyncio.ensure_future(self._stop.wait())
        next_item: asyncio.Future[bytes] | None = None
        LOGGER.debug("Notification listener started for %s", self.link.address)
        try:
            while not self._stop.is_set():
                next_item = asyncio.ensure_future(anext(stream))
                await asyncio.wait({next_item, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
                if not next_item.done():
                    break
                try:
                    raw = next_item.result()
                except StopAsyncIteration:
                    LOGGER.info("Notification stream from %s ended", self.link.address)
                    break
                await self._handle(raw)
        except TransportError as exc:
            LOGGER.error("Notification stream from %s failed: %s", self.link.address, exc)
            self.error = exc
        except Exception as exc:
            LOGGER.exception("Notification listener for %s crashed", self.link.address)
            self.error = exc
        finally:
            stop_wait.cancel()
            if next_item is not None and not next_item.done():
                next_item.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await next_item
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(RuntimeError):
                    await aclose()
            self.queue.put_nowait(None)
            LOGGER.debug("Notification listener stopped for %s", self.link.address)

    async def _handle(self, raw: bytes) -> None:
        LOGGER.debug("<- %s", raw.hex(" "))
        try:
            payload = frame.decode(raw)
        except DecodeError as exc:
            self.decode_errors += 1
            self.last_error = exc
            LOGGER.warning("Dropping malformed notification %s: %s", raw.hex(" "), exc)
            return
        await self.queue.put(Notification(payload=payload, raw=bytes(raw)))

    def __aiter__(self) -> AsyncIterator[Notification]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[Notification]:
        while True:
            item = await self.queue.get()
            if item is None:
                # Leave the end marker for other consumers.
                self.queue.put_nowait(None)
                return
            yield item
