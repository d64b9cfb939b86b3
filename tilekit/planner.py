"""Slice strategy planning for rasters above the host dimension limit."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from tilekit.errors import PlanningError

MAX_DIMENSION = 4096
SAFETY_MARGIN = 0.9


class SliceDirection(str, Enum):
    """Axis along which an oversized raster is cut."""

    NONE = "none"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    BOTH = "both"


@dataclass(frozen=True, slots=True)
class SliceStrategy:
    direction: SliceDirection
    tile_width: int
    tile_height: int
    cols: int
    rows: int
    total_tiles: int
    description: str

    @property
    def needs_slicing(self) -> bool:
        return self.direction is not SliceDirection.NONE

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["direction"] = self.direction.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SliceStrategy":
        data = dict(payload)
        data["direction"] = SliceDirection(data["direction"])
        return cls(**data)


def is_oversized(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> bool:
    return width > max_dimension or height > max_dimension


def safe_tile_size(max_dimension: int) -> int:
    """Nominal tile edge, kept below the hard limit for encoder overhead."""

    return max(1, math.floor(max_dimension * SAFETY_MARGIN))


def plan_slices(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> SliceStrategy:
    """Compute how to cut a ``width``×``height`` raster into legal tiles.

    Only the axes that exceed ``max_dimension`` are cut; an axis within the
    limit keeps its full extent.
    """

    for label, value in (("width", width), ("height", height), ("max_dimension", max_dimension)):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise PlanningError(
                f"{label} must be a positive integer, got {value!r}",
                details={"width": width, "height": height, "max_dimension": max_dimension},
            )

    width_exceeds = width > max_dimension
    height_exceeds = height > max_dimension

    if not width_exceeds and not height_exceeds:
        return SliceStrategy(
            direction=SliceDirection.NONE,
            tile_width=width,
            tile_height=height,
            cols=1,
            rows=1,
            total_tiles=1,
            description=f"{width}×{height} fits within {max_dimension}px, no slicing needed",
        )

    edge = safe_tile_size(max_dimension)
    if width_exceeds and not height_exceeds:
        cols = math.ceil(width / edge)
        return SliceStrategy(
            direction=SliceDirection.VERTICAL,
            tile_width=edge,
            tile_height=height,
            cols=cols,
            rows=1,
            total_tiles=cols,
            description=f"width exceeds limit, vertical cut into {cols} tiles of {edge}×{height}",
        )
    if height_exceeds and not width_exceeds:
        rows = math.ceil(height / edge)
        return SliceStrategy(
            direction=SliceDirection.HORIZONTAL,
            tile_width=width,
            tile_height=edge,
            cols=1,
            rows=rows,
            total_tiles=rows,
            description=f"height exceeds limit, horizontal cut into {rows} tiles of {width}×{edge}",
        )

    cols = math.ceil(width / edge)
    rows = math.ceil(height / edge)
    return SliceStrategy(
        direction=SliceDirection.BOTH,
        tile_width=edge,
        tile_height=edge,
        cols=cols,
        rows=rows,
        total_tiles=cols * rows,
        description=f"both axes exceed limit, grid cut into {cols}×{rows}={cols * rows} tiles",
    )
