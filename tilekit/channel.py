"""In-process message channel between the host and rendering contexts."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, List, Set

LOGGER = logging.getLogger(__name__)

Message = dict[str, Any]
Listener = Callable[[Message], Awaitable[None] | None]


class MessagePort:
    """One end of a ``MessageChannel``.

    ``post`` copies the message through JSON so the receiving side never shares
    references with the sender. Inbound messages are dispatched to every
    registered listener in arrival order; coroutine listeners run as tasks.
    """

    def __init__(self, label: str) -> None:
        self.label = label
        self._peer: MessagePort | None = None
        self._inbox: asyncio.Queue[Message] = asyncio.Queue()
        self._listeners: List[Listener] = []
        self._pump: asyncio.Task[None] | None = None
        self._handlers: Set[asyncio.Task[Any]] = set()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def connect(self, peer: "MessagePort") -> None:
        self._peer = peer

    def post(self, message: Message) -> None:
        if self._peer is None:
            raise RuntimeError(f"{self.label} port is not connected")
        payload = json.loads(json.dumps(message))
        self._peer._inbox.put_nowait(payload)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def start(self) -> None:
        if self._pump is None or self._pump.done():
            self._pump = asyncio.create_task(self._run(), name=f"{self.label}-port")

    async def stop(self) -> None:
        pump = self._pump
        self._pump = None
        if pump is not None:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        handlers = list(self._handlers)
        for task in handlers:
            task.cancel()
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            message = await self._inbox.get()
            for listener in list(self._listeners):
                try:
                    result = listener(message)
                except Exception:
                    LOGGER.exception("%s listener failed on %s message", self.label, message.get("type"))
                    continue
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._handlers.add(task)
                    task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task[Any]) -> None:
        self._handlers.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("%s listener task failed: %s", self.label, exc, exc_info=exc)


class MessageChannel:
    """Pair of connected ports: ``host`` and ``renderer``."""

    def __init__(self) -> None:
        self.host = MessagePort("host")
        self.renderer = MessagePort("renderer")
        self.host.connect(self.renderer)
        self.renderer.connect(self.host)

    async def __aenter__(self) -> "MessageChannel":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    def start(self) -> None:
        self.host.start()
        self.renderer.start()

    async def close(self) -> None:
        await self.host.stop()
        await self.renderer.stop()
