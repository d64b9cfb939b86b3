"""Labelled placeholder used whenever an image cannot be placed."""

from __future__ import annotations

import logging
from enum import Enum

from tilekit.scene import Color, ContainerNode, Paint, RectangleNode, Scene

LOGGER = logging.getLogger(__name__)

LABEL_COLOR: Color = (0.4, 0.4, 0.4)


class FailureCategory(str, Enum):
    """Coarse reason bucket deciding the placeholder tint."""

    OVERSIZED = "oversized"
    PROCESSING = "processing"

    @property
    def color(self) -> Color:
        if self is FailureCategory.OVERSIZED:
            return (1.0, 0.9, 0.8)
        return (0.95, 0.95, 0.95)


def label_font_size(width: float) -> float:
    return min(max(12, width / 50), 20)


def _extent(value: object) -> float:
    # Declared sizes may be garbage; only the label shows them verbatim.
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 1:
        return value
    return 1


def placeholder(
    scene: Scene,
    width: int,
    height: int,
    name: str,
    reason: str,
    *,
    category: FailureCategory = FailureCategory.PROCESSING,
    parent: ContainerNode | None = None,
) -> RectangleNode:
    """Return a tinted rectangle of the requested size with a text label.

    With ``parent`` the rectangle and its label are appended there; label
    problems are logged and never fail the call.
    """

    rect_width = _extent(width)
    rect_height = _extent(height)
    rect = scene.create_rectangle(f"{name} (placeholder)", rect_width, rect_height)
    rect.fills = [Paint.solid(category.color)]
    if parent is not None:
        try:
            scene.append_child(parent, rect)
        except Exception as exc:
            LOGGER.error("Placeholder for %s could not be appended: %s", name, exc)
            parent = None

    try:
        label = scene.create_text(f"{name}\n{width}×{height}\n{reason}", font_size=label_font_size(rect_width))
        label.fills = [Paint.solid(LABEL_COLOR)]
        label.x = rect.x + (rect_width - label.width) / 2
        label.y = rect.y + (rect_height - label.height) / 2
        if parent is not None:
            scene.append_child(parent, label)
    except Exception as exc:
        LOGGER.warning("Placeholder label for %s could not be created: %s", name, exc)

    LOGGER.info("Placed %s placeholder for %s (%s)", category.value, name, reason)
    return rect
