"""Rendering-context actor answering slice requests."""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from tilekit.channel import Message, MessagePort
from tilekit.errors import WorkerDecodeError
from tilekit.planner import SliceDirection, SliceStrategy
from tilekit.schemas import SLICE_REQUEST, SlicePayload, SliceRequest, SliceResponse
from tilekit.tiler import TileRenderer

LOGGER = logging.getLogger(__name__)


def grid_from_request(request: SliceRequest) -> SliceStrategy:
    """Rebuild the grid from the requested tile size.

    The tile size is authoritative; the strategy payload only contributes its
    description.
    """

    image = request.image_data
    cols = math.ceil(image.width / request.slice_width)
    rows = math.ceil(image.height / request.slice_height)
    if cols > 1 and rows > 1:
        direction = SliceDirection.BOTH
    elif cols > 1:
        direction = SliceDirection.VERTICAL
    elif rows > 1:
        direction = SliceDirection.HORIZONTAL
    else:
        direction = SliceDirection.NONE
    return SliceStrategy(
        direction=direction,
        tile_width=request.slice_width,
        tile_height=request.slice_height,
        cols=cols,
        rows=rows,
        total_tiles=cols * rows,
        description=str(request.slice_strategy.get("description", "")),
    )


class RenderingWorker:
    """Listens on the renderer port, slices images, posts responses back."""

    def __init__(self, port: MessagePort, renderer: TileRenderer | None = None) -> None:
        self._port = port
        self._renderer = renderer or TileRenderer()

    def attach(self) -> None:
        self._port.add_listener(self.handle_message)

    def detach(self) -> None:
        self._port.remove_listener(self.handle_message)

    async def handle_message(self, message: Message) -> None:
        if message.get("type") != SLICE_REQUEST:
            return
        response = await self.handle_slice_request(message)
        self._port.post(response.to_wire())

    async def handle_slice_request(self, message: Message) -> SliceResponse:
        image_data: Any = message.get("imageData")
        image_name = image_data.get("name") if isinstance(image_data, dict) else None
        image_name = image_name or "unknown image"
        request_id = message.get("requestId")

        if not isinstance(image_data, dict) or not image_data.get("bytes"):
            return self._failure(request_id, image_name, "missing image data")
        try:
            request = SliceRequest.model_validate(message)
        except ValidationError as exc:
            LOGGER.warning("Rejecting malformed slice request for %s: %s", image_name, exc)
            return self._failure(request_id, image_name, f"invalid slice request: {exc.error_count()} errors")

        strategy = grid_from_request(request)
        image = request.image_data
        LOGGER.info("Slicing %s (%sx%s) into %s tiles", image.name, image.width, image.height, strategy.total_tiles)
        try:
            tiles = await self._renderer.render(
                image.raw_bytes(),
                image.mime_type,
                image.width,
                image.height,
                strategy,
                name=image.name,
            )
        except WorkerDecodeError as exc:
            LOGGER.error("Slicing %s failed: %s", image.name, exc.message)
            return self._failure(request_id, image.name, exc.message)

        if not tiles:
            return self._failure(request_id, image.name, "slicing produced no tiles")

        LOGGER.info("Slicing %s finished with %s/%s tiles", image.name, len(tiles), strategy.total_tiles)
        return SliceResponse(
            request_id=request_id,
            success=True,
            image_name=image.name,
            slices=[SlicePayload.from_tile(tile) for tile in tiles],
            original_width=image.width,
            original_height=image.height,
        )

    def _failure(self, request_id: str | None, image_name: str, error: str) -> SliceResponse:
        return SliceResponse(request_id=request_id, success=False, image_name=image_name, error=error)
