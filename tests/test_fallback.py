from __future__ import annotations

import pytest

from tilekit.errors import SceneError
from tilekit.fallback import LABEL_COLOR, FailureCategory, label_font_size, placeholder
from tilekit.scene import InMemoryScene, RectangleNode, TextNode


def test_placeholder_matches_requested_size_and_labels_reason() -> None:
    scene = InMemoryScene()

    rect = placeholder(scene, 5000, 3000, "banner", "image slicing failed: boom", parent=scene.page)

    assert isinstance(rect, RectangleNode)
    assert rect.name == "banner (placeholder)"
    assert (rect.width, rect.height) == (5000, 3000)
    assert rect.fills[0].color == (0.95, 0.95, 0.95)
    label = scene.page.children[1]
    assert isinstance(label, TextNode)
    assert label.characters == "banner\n5000×3000\nimage slicing failed: boom"
    assert label.font_size == 20
    assert label.fills[0].color == LABEL_COLOR
    assert label.x == pytest.approx((5000 - label.width) / 2)
    assert label.y == pytest.approx((3000 - label.height) / 2)


def test_oversized_category_uses_warm_tint() -> None:
    scene = InMemoryScene()

    rect = placeholder(scene, 9000, 9000, "huge", "too large", category=FailureCategory.OVERSIZED)

    assert rect.fills[0].color == (1.0, 0.9, 0.8)
    assert rect.parent is None


@pytest.mark.parametrize(
    ("width", "expected"),
    [(100, 12), (800, 16), (5000, 20)],
)
def test_label_font_size_is_clamped(width: int, expected: float) -> None:
    assert label_font_size(width) == expected


def test_degenerate_size_is_clamped_to_one_pixel() -> None:
    scene = InMemoryScene()

    rect = placeholder(scene, 0, -5, "empty", "empty image data", parent=scene.page)

    assert (rect.width, rect.height) == (1, 1)
    assert rect.parent is scene.page


def test_label_failure_does_not_fail_placeholder() -> None:
    class NoTextScene(InMemoryScene):
        def create_text(self, characters: str, *, font_size: float) -> TextNode:
            raise SceneError("fonts unavailable")

    scene = NoTextScene()

    rect = placeholder(scene, 300, 200, "logo", "image creation failed", parent=scene.page)

    assert scene.page.children == [rect]
