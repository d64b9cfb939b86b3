"""Exception taxonomy for the slicing pipeline.

Everything below ``TilePipelineError`` is raised internally and converted into
a placeholder node at the ``ImagePipeline`` boundary; only ``TileEncodeError``
is absorbed earlier, by the renderer.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TilePipelineError(Exception):
    """Base exception for the slicing pipeline."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class PlanningError(TilePipelineError):
    """Raised when an asset cannot be planned (bad dimensions, no bytes)."""


class BridgeFailure(TilePipelineError):
    """Raised when the rendering context did not hand back usable tiles."""

    def __init__(self, message: str, *, image_name: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.image_name = image_name
        self.details["image_name"] = image_name


class BridgeTimeoutError(BridgeFailure):
    """Raised when no slice response arrived within the bridge timeout."""

    def __init__(self, image_name: str, timeout_ms: int) -> None:
        super().__init__(
            f"No slice response for '{image_name}' within {timeout_ms} ms",
            image_name=image_name,
        )
        self.timeout_ms = timeout_ms
        self.details["timeout_ms"] = timeout_ms


class RemoteSliceError(BridgeFailure):
    """Raised when the rendering context answered ``success=false``."""

    def __init__(self, image_name: str, error: str | None) -> None:
        super().__init__(
            f"Rendering context failed to slice '{image_name}': {error or 'unknown error'}",
            image_name=image_name,
        )
        self.remote_error = error


class WorkerDecodeError(TilePipelineError):
    """Raised in the rendering context when source bytes cannot be decoded."""


class TileEncodeError(TilePipelineError):
    """Raised for a single cell that failed to crop or encode."""

    def __init__(self, message: str, *, row: int, col: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.row = row
        self.col = col
        self.details.update({"row": row, "col": col})


class ReconstructionError(TilePipelineError):
    """Raised when the host could not build the composite node."""


class SceneError(TilePipelineError):
    """Raised by scene primitives (image creation, append, group, remove)."""
