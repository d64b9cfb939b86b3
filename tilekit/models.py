"""Value objects passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class AssetDescriptor:
    """Source image handed to the pipeline by the asset source."""

    bytes: bytes = field(repr=False)
    width: int
    height: int
    name: str
    mime_type: str = "image/png"


@dataclass(slots=True)
class Tile:
    """One encoded fragment of the source, positioned in original coordinates."""

    bytes: bytes = field(repr=False)
    width: int
    height: int
    x: int
    y: int
    row: int
    col: int
    name: str

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height
