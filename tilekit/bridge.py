"""Host-side request/response correlation for tile slicing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict
from uuid import uuid4

from pydantic import ValidationError

from tilekit import metrics
from tilekit.channel import Listener, Message, MessagePort
from tilekit.errors import BridgeFailure, BridgeTimeoutError, RemoteSliceError
from tilekit.models import AssetDescriptor, Tile
from tilekit.planner import SliceStrategy
from tilekit.schemas import SLICE_RESPONSE, ImagePayload, SliceRequest, SliceResponse
from tilekit.settings import get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingRequest:
    request_id: str
    image_name: str
    future: asyncio.Future[list[Tile]]
    listener: Listener | None = None
    timer: asyncio.TimerHandle | None = None
    cleanup: asyncio.TimerHandle | None = None


class CrossContextBridge:
    """Send slice requests over a host port and await the matching response.

    Each call registers one listener plus two timers: the primary timeout
    resolves the call with ``BridgeTimeoutError``; the cleanup timer removes the
    listener if it is somehow still registered afterwards. Responses are matched
    by ``requestId`` and, for peers that do not echo one, by image name.
    """

    def __init__(
        self,
        port: MessagePort,
        *,
        timeout_ms: int | None = None,
        cleanup_ms: int | None = None,
    ) -> None:
        cfg = get_settings().pipeline
        self._port = port
        self.timeout_ms = cfg.bridge_timeout_ms if timeout_ms is None else timeout_ms
        self.cleanup_ms = cfg.listener_cleanup_ms if cleanup_ms is None else cleanup_ms
        self._pending: Dict[str, _PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def request_tiles(
        self,
        asset: AssetDescriptor,
        strategy: SliceStrategy,
        timeout_ms: int | None = None,
    ) -> list[Tile]:
        """Ship ``asset`` to the rendering context and return its tiles.

        Raises ``BridgeTimeoutError`` when nothing arrives in time and
        ``RemoteSliceError`` when the renderer reports failure or no tiles.
        A plain ``BridgeFailure`` means the request could not be built; nothing
        is registered in that case.
        """

        loop = asyncio.get_running_loop()
        timeout = self.timeout_ms if timeout_ms is None else timeout_ms
        # Cleanup always trails the primary timer by the configured margin.
        cleanup = timeout + max(1, self.cleanup_ms - self.timeout_ms)
        request_id = uuid4().hex
        try:
            request = SliceRequest(
                request_id=request_id,
                image_data=ImagePayload.from_asset(asset),
                slice_width=strategy.tile_width,
                slice_height=strategy.tile_height,
                slice_strategy=strategy.to_payload(),
            )
        except ValidationError as exc:
            raise BridgeFailure(
                f"invalid slice request for '{asset.name}': {exc.error_count()} errors",
                image_name=asset.name,
            ) from exc

        pending = _PendingRequest(
            request_id=request_id,
            image_name=asset.name,
            future=loop.create_future(),
        )
        pending.listener = self._listener_for(pending)
        self._pending[request_id] = pending
        try:
            self._port.add_listener(pending.listener)
            pending.timer = loop.call_later(timeout / 1000, self._expire, request_id, timeout)
            pending.cleanup = loop.call_later(cleanup / 1000, self._cleanup, request_id, timeout)
            self._port.post(request.to_wire())
            LOGGER.info(
                "Requested %s tiles for %s (request %s)",
                strategy.total_tiles,
                asset.name,
                pending.request_id,
            )
            return await pending.future
        finally:
            self._deregister(pending.request_id)

    def _listener_for(self, pending: _PendingRequest) -> Listener:
        def _listener(message: Message) -> None:
            if message.get("type") != SLICE_RESPONSE:
                return
            request_id = message.get("requestId")
            if request_id is not None:
                if request_id != pending.request_id:
                    return
            elif message.get("imageName") != pending.image_name:
                return
            self._settle(pending, message)

        return _listener

    def _settle(self, pending: _PendingRequest, message: Message) -> None:
        if pending.future.done():
            LOGGER.debug("Ignoring duplicate slice response for %s", pending.image_name)
            return
        try:
            response = SliceResponse.model_validate(message)
        except ValidationError as exc:
            metrics.record_bridge_result("malformed")
            pending.future.set_exception(RemoteSliceError(pending.image_name, f"malformed response: {exc}"))
            self._deregister(pending.request_id)
            return

        if response.success and response.slices:
            tiles = sorted((entry.to_tile() for entry in response.slices), key=lambda tile: (tile.row, tile.col))
            metrics.record_bridge_result("success")
            pending.future.set_result(tiles)
        elif response.success:
            metrics.record_bridge_result("empty")
            pending.future.set_exception(RemoteSliceError(pending.image_name, "no slices returned"))
        else:
            metrics.record_bridge_result("failed")
            pending.future.set_exception(RemoteSliceError(pending.image_name, response.error))
        self._deregister(pending.request_id)

    def _expire(self, request_id: str, timeout_ms: int) -> None:
        pending = self._pending.get(request_id)
        if pending is None or pending.future.done():
            return
        LOGGER.warning("Slice request %s for %s timed out after %s ms", request_id, pending.image_name, timeout_ms)
        metrics.record_bridge_result("timeout")
        pending.future.set_exception(BridgeTimeoutError(pending.image_name, timeout_ms))
        self._deregister(request_id)

    def _cleanup(self, request_id: str, timeout_ms: int) -> None:
        """Safety net for a request whose primary timer never resolved it."""

        pending = self._pending.get(request_id)
        if pending is None:
            return
        LOGGER.debug("Cleanup timer removing listener for %s", pending.image_name)
        if not pending.future.done():
            pending.future.set_exception(BridgeTimeoutError(pending.image_name, timeout_ms))
        self._deregister(request_id)

    def _deregister(self, request_id: str) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        if pending.listener is not None:
            self._port.remove_listener(pending.listener)
        for handle in (pending.timer, pending.cleanup):
            if handle is not None:
                handle.cancel()

