"""Rebuild a composite node from encoded tiles in the host scene."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from tilekit import metrics
from tilekit.errors import ReconstructionError
from tilekit.models import Tile
from tilekit.scene import ContainerNode, GroupNode, RectangleNode, Scene

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AssemblyReport:
    """Counts from the last ``assemble`` call."""

    tiles_received: int = 0
    nodes_created: int = 0
    nodes_appended: int = 0
    skipped: list[str] = field(default_factory=list)


class Reconstructor:
    """Stage every tile node first, then group them in one step.

    Grouping is the only irreversible step. If it fails, every tile node that
    was appended is removed again before ``ReconstructionError`` propagates.
    """

    def __init__(self, scene: Scene) -> None:
        self.scene = scene
        self.last_report = AssemblyReport()

    async def assemble(
        self,
        tiles: Sequence[Tile],
        original_name: str,
        parent: ContainerNode,
        *,
        origin: tuple[float, float] = (0, 0),
        description: str | None = None,
    ) -> GroupNode:
        report = AssemblyReport(tiles_received=len(tiles))
        self.last_report = report
        label = f"{original_name} ({description})" if description else original_name
        self.scene.notify(f"Assembling image: {label}")

        nodes = self._create_tile_nodes(tiles, original_name, report)
        if not nodes:
            raise ReconstructionError(
                f"no tile nodes could be created for {original_name}",
                details={"tiles": len(tiles)},
            )

        appended = self._append_all(parent, nodes, report)
        try:
            group = self.scene.group(nodes, parent)
        except Exception as exc:
            LOGGER.error("Grouping %s tile nodes for %s failed: %s", len(nodes), original_name, exc)
            self._rollback(appended, original_name)
            raise ReconstructionError(
                f"grouping tiles for {original_name} failed: {exc}",
                details={"created": len(nodes), "appended": len(appended)},
            ) from exc

        group.name = original_name
        self.scene.move(group, *origin)
        self.scene.notify(f"Image assembled: {original_name}")
        LOGGER.info(
            "Assembled %s from %s/%s tiles",
            original_name,
            len(nodes),
            len(tiles),
        )
        return group

    def _create_tile_nodes(
        self, tiles: Sequence[Tile], original_name: str, report: AssemblyReport
    ) -> list[RectangleNode]:
        nodes: list[RectangleNode] = []
        for index, tile in enumerate(tiles, start=1):
            try:
                image = self.scene.create_image(tile.bytes)
                node = self.scene.create_rectangle(f"{original_name}_slice_{index}", tile.width, tile.height)
                node.x = tile.x
                node.y = tile.y
                self.scene.set_image_fill(node, image)
            except Exception as exc:
                LOGGER.warning("Tile %s of %s could not be created, skipping: %s", index, original_name, exc)
                report.skipped.append(tile.name)
                continue
            nodes.append(node)
        report.nodes_created = len(nodes)
        metrics.record_skipped_tiles("create", len(tiles) - len(nodes))
        return nodes

    def _append_all(
        self, parent: ContainerNode, nodes: Sequence[RectangleNode], report: AssemblyReport
    ) -> list[RectangleNode]:
        appended: list[RectangleNode] = []
        for node in nodes:
            try:
                self.scene.append_child(parent, node)
            except Exception as exc:
                LOGGER.warning("Appending %s failed: %s", node.name, exc)
                continue
            appended.append(node)
        if len(appended) != len(nodes):
            LOGGER.warning("Only %s/%s tile nodes were appended", len(appended), len(nodes))
        report.nodes_appended = len(appended)
        return appended

    def _rollback(self, appended: Sequence[RectangleNode], original_name: str) -> None:
        metrics.record_rollback()
        for node in appended:
            try:
                removed = self.scene.remove(node)
            except Exception as exc:
                LOGGER.error("Rollback could not remove %s: %s", node.name, exc)
                continue
            if not removed:
                LOGGER.warning("Rollback found %s already detached", node.name)
        LOGGER.info("Rolled back %s tile nodes for %s", len(appended), original_name)
