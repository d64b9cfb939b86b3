"""Tile slicing utilities for the rendering context."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, Sequence

from tilekit.errors import TileEncodeError, WorkerDecodeError
from tilekit.models import Tile
from tilekit.planner import SliceStrategy
from tilekit.settings import get_settings

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class RasterCodec(Protocol):
    def decode(self, data: bytes, mime_type: str) -> Any: ...

    def size(self, image: Any) -> tuple[int, int]: ...

    def crop_encode(self, image: Any, x: int, y: int, width: int, height: int) -> bytes: ...


@dataclass(frozen=True, slots=True)
class TileCell:
    """Rectangle of one tile in original image coordinates."""

    row: int
    col: int
    x: int
    y: int
    width: int
    height: int


def tile_grid(width: int, height: int, strategy: SliceStrategy) -> list[TileCell]:
    """Return the row-major cells for ``strategy`` over a ``width``×``height`` raster.

    Edge cells shrink to the remaining extent; cells that would be empty are
    dropped.
    """

    cells: list[TileCell] = []
    for row in range(strategy.rows):
        for col in range(strategy.cols):
            x = col * strategy.tile_width
            y = row * strategy.tile_height
            cell_width = min(strategy.tile_width, width - x)
            cell_height = min(strategy.tile_height, height - y)
            if cell_width <= 0 or cell_height <= 0:
                continue
            cells.append(TileCell(row=row, col=col, x=x, y=y, width=cell_width, height=cell_height))
    return cells


def tile_name(image_name: str, row: int, col: int) -> str:
    return f"{image_name}_r{row}_c{col}"


class TileRenderer:
    """Decode a source image and encode every grid cell as its own PNG."""

    def __init__(
        self,
        codec: RasterCodec | None = None,
        *,
        concurrency: int | None = None,
        decode_timeout_ms: int | None = None,
    ) -> None:
        cfg = get_settings().pipeline
        if codec is None:
            from tilekit.codec import VipsCodec

            codec = VipsCodec(compression=cfg.png_compression)
        self.codec = codec
        self.concurrency = max(1, cfg.encode_concurrency if concurrency is None else concurrency)
        self.decode_timeout_ms = cfg.decode_timeout_ms if decode_timeout_ms is None else decode_timeout_ms

    async def render(
        self,
        asset_bytes: bytes,
        mime_type: str,
        width: int,
        height: int,
        strategy: SliceStrategy,
        *,
        name: str = "image",
        progress: ProgressCallback | None = None,
    ) -> list[Tile]:
        """Return encoded tiles in row-major order.

        Raises ``WorkerDecodeError`` when the source cannot be decoded. Cells
        that fail to encode are logged and left out of the result.
        """

        image = await self._decode(asset_bytes, mime_type, width, height)
        cells = tile_grid(width, height, strategy)
        total = len(cells)
        semaphore = asyncio.Semaphore(self.concurrency)
        tiles: list[Tile] = []
        completed = 0

        async def _encode(cell: TileCell) -> None:
            nonlocal completed
            try:
                async with semaphore:
                    tiles.append(await self._encode_cell(image, cell, name))
            except TileEncodeError as exc:
                LOGGER.warning("Skipping tile r%s c%s of %s: %s", cell.row, cell.col, name, exc.message)
            finally:
                completed += 1
                if progress is not None:
                    progress(completed, total)

        await asyncio.gather(*(_encode(cell) for cell in cells))
        tiles.sort(key=lambda tile: (tile.row, tile.col))
        LOGGER.info("Rendered %s/%s tiles for %s (%s)", len(tiles), total, name, strategy.direction.value)
        return tiles

    async def _decode(self, data: bytes, mime_type: str, width: int, height: int) -> Any:
        timeout = self.decode_timeout_ms / 1000
        try:
            image = await asyncio.wait_for(asyncio.to_thread(self.codec.decode, data, mime_type), timeout)
        except WorkerDecodeError:
            raise
        except asyncio.TimeoutError as exc:
            raise WorkerDecodeError(f"decoding timed out after {self.decode_timeout_ms} ms") from exc
        except Exception as exc:
            raise WorkerDecodeError(f"unable to decode {mime_type} buffer: {exc}") from exc

        decoded_width, decoded_height = self.codec.size(image)
        if decoded_width < width or decoded_height < height:
            raise WorkerDecodeError(
                f"decoded raster {decoded_width}×{decoded_height} is smaller than declared {width}×{height}",
                details={"decoded": [decoded_width, decoded_height], "declared": [width, height]},
            )
        return image

    async def _encode_cell(self, image: Any, cell: TileCell, name: str) -> Tile:
        try:
            data = await asyncio.to_thread(
                self.codec.crop_encode, image, cell.x, cell.y, cell.width, cell.height
            )
        except Exception as exc:
            raise TileEncodeError(str(exc), row=cell.row, col=cell.col) from exc
        if not data:
            raise TileEncodeError("encoder returned no bytes", row=cell.row, col=cell.col)
        return Tile(
            bytes=data,
            width=cell.width,
            height=cell.height,
            x=cell.x,
            y=cell.y,
            row=cell.row,
            col=cell.col,
            name=tile_name(name, cell.row, cell.col),
        )


def validate_tiles(tiles: Sequence[Tile], width: int, height: int) -> None:
    """Raise ``ValueError`` unless ``tiles`` partition ``width``×``height`` exactly.

    Every row band must span ``[0, width)`` with contiguous, non-overlapping
    tiles of one shared height, and the bands must stack to ``[0, height)``.
    """

    if not tiles:
        raise ValueError("no tiles to validate")

    rows: dict[int, list[Tile]] = defaultdict(list)
    for tile in tiles:
        if not tile.bytes:
            raise ValueError(f"tile {tile.name} has no bytes")
        if tile.width <= 0 or tile.height <= 0:
            raise ValueError(f"tile {tile.name} has empty extent {tile.width}×{tile.height}")
        if tile.x < 0 or tile.y < 0 or tile.right > width or tile.bottom > height:
            raise ValueError(f"tile {tile.name} falls outside {width}×{height}")
        rows[tile.row].append(tile)

    expected_y = 0
    for row in sorted(rows):
        band = sorted(rows[row], key=lambda tile: tile.x)
        band_y = band[0].y
        band_height = band[0].height
        if band_y != expected_y:
            raise ValueError(f"row {row} starts at y={band_y}, expected {expected_y} (gap or overlap)")
        expected_x = 0
        for tile in band:
            if tile.y != band_y or tile.height != band_height:
                raise ValueError(f"tile {tile.name} is misaligned within row {row}")
            if tile.x != expected_x:
                raise ValueError(f"tile {tile.name} starts at x={tile.x}, expected {expected_x} (gap or overlap)")
            expected_x = tile.right
        if expected_x != width:
            raise ValueError(f"row {row} covers {expected_x}px of {width}px")
        expected_y = band_y + band_height
    if expected_y != height:
        raise ValueError(f"rows cover {expected_y}px of {height}px")


def missing_cells(
    tiles: Iterable[Tile], width: int, height: int, strategy: SliceStrategy
) -> list[TileCell]:
    """Cells of the grid that have no matching tile."""

    present = {(tile.row, tile.col) for tile in tiles}
    return [cell for cell in tile_grid(width, height, strategy) if (cell.row, cell.col) not in present]


def validate_partial_tiles(
    tiles: Sequence[Tile], width: int, height: int, strategy: SliceStrategy
) -> None:
    """Raise ``ValueError`` unless every tile sits exactly on its own grid cell.

    Used when some cells are missing, so coverage is not required; positions,
    sizes and uniqueness still are.
    """

    cells = {(cell.row, cell.col): cell for cell in tile_grid(width, height, strategy)}
    seen: set[tuple[int, int]] = set()
    for tile in tiles:
        key = (tile.row, tile.col)
        cell = cells.get(key)
        if cell is None:
            raise ValueError(f"tile {tile.name} is outside the {strategy.cols}×{strategy.rows} grid")
        if key in seen:
            raise ValueError(f"tile {tile.name} duplicates row {tile.row} col {tile.col}")
        seen.add(key)
        if not tile.bytes:
            raise ValueError(f"tile {tile.name} has no bytes")
        if (tile.x, tile.y, tile.width, tile.height) != (cell.x, cell.y, cell.width, cell.height):
            raise ValueError(
                f"tile {tile.name} covers {tile.width}×{tile.height} at ({tile.x}, {tile.y}), "
                f"expected {cell.width}×{cell.height} at ({cell.x}, {cell.y})"
            )
