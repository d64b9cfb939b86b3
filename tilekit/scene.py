"""Scene mutation primitives used by the host context.

The pipeline only touches the scene through ``Scene``: image registration,
rectangle/text creation, append, group, move, remove and user notifications.
``InMemoryScene`` is the reference implementation used by the CLI and tests;
it enforces the host raster limit on image fills.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import Iterator, Protocol, Sequence

from tilekit.errors import SceneError
from tilekit.planner import MAX_DIMENSION

LOGGER = logging.getLogger(__name__)

Color = tuple[float, float, float]


@dataclass(frozen=True, slots=True)
class ImageHandle:
    hash: str
    size: int


@dataclass(frozen=True, slots=True)
class Paint:
    type: str
    color: Color | None = None
    image_hash: str | None = None
    scale_mode: str = "FILL"

    @classmethod
    def solid(cls, color: Color) -> "Paint":
        return cls(type="SOLID", color=color)

    @classmethod
    def image(cls, handle: ImageHandle, scale_mode: str = "FILL") -> "Paint":
        return cls(type="IMAGE", image_hash=handle.hash, scale_mode=scale_mode)


@dataclass(eq=False)
class SceneNode:
    id: str
    name: str
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    parent: "ContainerNode | None" = field(default=None, repr=False)

    kind = "NODE"


@dataclass(eq=False)
class RectangleNode(SceneNode):
    fills: list[Paint] = field(default_factory=list)

    kind = "RECTANGLE"


@dataclass(eq=False)
class TextNode(SceneNode):
    characters: str = ""
    font_size: float = 12
    fills: list[Paint] = field(default_factory=list)
    align: str = "CENTER"

    kind = "TEXT"


@dataclass(eq=False)
class ContainerNode(SceneNode):
    children: list[SceneNode] = field(default_factory=list, repr=False)

    kind = "CONTAINER"


@dataclass(eq=False)
class PageNode(ContainerNode):
    kind = "PAGE"


@dataclass(eq=False)
class FrameNode(ContainerNode):
    kind = "FRAME"


@dataclass(eq=False)
class GroupNode(ContainerNode):
    kind = "GROUP"


class Scene(Protocol):
    def create_image(self, data: bytes) -> ImageHandle: ...

    def create_rectangle(self, name: str, width: float, height: float) -> RectangleNode: ...

    def create_text(self, characters: str, *, font_size: float) -> TextNode: ...

    def set_image_fill(self, node: RectangleNode, image: ImageHandle) -> None: ...

    def append_child(self, parent: ContainerNode, child: SceneNode) -> None: ...

    def group(self, nodes: Sequence[SceneNode], parent: ContainerNode) -> GroupNode: ...

    def move(self, node: SceneNode, x: float, y: float) -> None: ...

    def remove(self, node: SceneNode) -> bool: ...

    def notify(self, message: str) -> None: ...


class InMemoryScene:
    """Scene tree rooted at a single page, held entirely in memory."""

    def __init__(self, *, max_dimension: int = MAX_DIMENSION, page_name: str = "Page 1") -> None:
        self.max_dimension = max_dimension
        self._ids = count(1)
        self.page = PageNode(id=self._next_id(), name=page_name)
        self.images: dict[str, bytes] = {}
        self.notifications: list[str] = []

    def _next_id(self) -> str:
        return f"0:{next(self._ids)}"

    def create_image(self, data: bytes) -> ImageHandle:
        if not data:
            raise SceneError("image data is empty")
        digest = hashlib.sha1(data).hexdigest()
        self.images.setdefault(digest, bytes(data))
        return ImageHandle(hash=digest, size=len(data))

    def create_rectangle(self, name: str, width: float, height: float) -> RectangleNode:
        if width <= 0 or height <= 0:
            raise SceneError(f"rectangle size must be positive, got {width}×{height}")
        return RectangleNode(id=self._next_id(), name=name, width=width, height=height)

    def create_text(self, characters: str, *, font_size: float) -> TextNode:
        # Rough Inter metrics: 0.6em average advance, 1.2em line height.
        lines = characters.splitlines() or [""]
        width = max(len(line) for line in lines) * font_size * 0.6
        height = len(lines) * font_size * 1.2
        return TextNode(
            id=self._next_id(),
            name=lines[0] or "Text",
            width=width,
            height=height,
            characters=characters,
            font_size=font_size,
        )

    def set_image_fill(self, node: RectangleNode, image: ImageHandle) -> None:
        if image.hash not in self.images:
            raise SceneError(f"unknown image {image.hash}")
        if node.width > self.max_dimension or node.height > self.max_dimension:
            raise SceneError(
                f"image fill {node.width}×{node.height} exceeds the {self.max_dimension}px raster limit"
            )
        node.fills = [Paint.image(image)]

    def append_child(self, parent: ContainerNode, child: SceneNode) -> None:
        if not isinstance(parent, ContainerNode):
            raise SceneError(f"{parent.name} cannot hold children")
        if child is parent or (isinstance(child, ContainerNode) and self._contains(child, parent)):
            raise SceneError(f"cannot append {child.name} inside itself")
        if child.parent is not None:
            child.parent.children.remove(child)
        parent.children.append(child)
        child.parent = parent

    def group(self, nodes: Sequence[SceneNode], parent: ContainerNode) -> GroupNode:
        if not nodes:
            raise SceneError("cannot group an empty selection")
        strays = [node.name for node in nodes if node.parent is not parent]
        if strays:
            raise SceneError(f"nodes must share parent {parent.name}: {', '.join(strays)}")
        left = min(node.x for node in nodes)
        top = min(node.y for node in nodes)
        right = max(node.x + node.width for node in nodes)
        bottom = max(node.y + node.height for node in nodes)
        group = GroupNode(
            id=self._next_id(),
            name="Group",
            x=left,
            y=top,
            width=right - left,
            height=bottom - top,
        )
        index = min(parent.children.index(node) for node in nodes)
        for node in nodes:
            parent.children.remove(node)
            node.parent = group
            group.children.append(node)
        parent.children.insert(index, group)
        group.parent = parent
        return group

    def move(self, node: SceneNode, x: float, y: float) -> None:
        """Place ``node`` at ``(x, y)``; group children follow the group."""

        dx = x - node.x
        dy = y - node.y
        node.x = x
        node.y = y
        if isinstance(node, GroupNode):
            for child in node.children:
                self.move(child, child.x + dx, child.y + dy)

    def remove(self, node: SceneNode) -> bool:
        if node.parent is None:
            return False
        node.parent.children.remove(node)
        node.parent = None
        return True

    def notify(self, message: str) -> None:
        LOGGER.info("notify: %s", message)
        self.notifications.append(message)

    def walk(self, root: SceneNode | None = None) -> Iterator[tuple[int, SceneNode]]:
        """Yield ``(depth, node)`` pairs below ``root`` (the page by default)."""

        start = root or self.page
        stack: list[tuple[int, SceneNode]] = [
            (1, child) for child in reversed(getattr(start, "children", []))
        ]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            if isinstance(node, ContainerNode):
                stack.extend((depth + 1, child) for child in reversed(node.children))

    def node_count(self) -> int:
        return sum(1 for _ in self.walk())

    def _contains(self, root: ContainerNode, target: SceneNode) -> bool:
        return any(node is target for _, node in self.walk(root))
