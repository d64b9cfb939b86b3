"""Raster decode/crop/encode backed by pyvips."""

from __future__ import annotations

import logging
from typing import Any

import pyvips

from tilekit.errors import WorkerDecodeError

LOGGER = logging.getLogger(__name__)


class VipsCodec:
    """Decode a source buffer once, then crop and PNG-encode regions of it."""

    def __init__(self, *, compression: int = 6) -> None:
        self.compression = compression

    def decode(self, data: bytes, mime_type: str) -> pyvips.Image:
        if not data:
            raise WorkerDecodeError("image buffer is empty", details={"mime_type": mime_type})
        try:
            image = pyvips.Image.new_from_buffer(data, "")
        except pyvips.Error as exc:
            raise WorkerDecodeError(
                f"unable to decode {mime_type} buffer: {exc}",
                details={"mime_type": mime_type, "size": len(data)},
            ) from exc
        LOGGER.debug("Decoded %s buffer into %sx%s raster", mime_type, image.width, image.height)
        return image

    def size(self, image: pyvips.Image) -> tuple[int, int]:
        return image.width, image.height

    def crop_encode(self, image: pyvips.Image, x: int, y: int, width: int, height: int) -> bytes:
        region = image.crop(x, y, width, height)
        return region.write_to_buffer(".png", compression=self.compression)


def read_dimensions(data: bytes) -> tuple[int, int]:
    """Return ``(width, height)`` of an encoded image without a full decode."""

    try:
        image: Any = pyvips.Image.new_from_buffer(data, "", access="sequential")
    except pyvips.Error as exc:
        raise WorkerDecodeError(f"unable to read image header: {exc}") from exc
    return image.width, image.height
