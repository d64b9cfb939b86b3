"""Entry point that places an image in the scene, slicing it when oversized."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator

from tilekit import metrics
from tilekit.bridge import CrossContextBridge
from tilekit.channel import MessageChannel
from tilekit.errors import BridgeFailure, BridgeTimeoutError, PlanningError, RemoteSliceError, ReconstructionError
from tilekit.event_log import append_event_log
from tilekit.fallback import FailureCategory, placeholder
from tilekit.models import AssetDescriptor
from tilekit.planner import SliceStrategy, plan_slices
from tilekit.reconstruct import Reconstructor
from tilekit.scene import ContainerNode, Scene, SceneNode
from tilekit.settings import get_settings
from tilekit.tiler import TileRenderer, missing_cells, validate_partial_tiles, validate_tiles
from tilekit.worker import RenderingWorker

LOGGER = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Stages an insertion moves through."""

    PLANNING = "PLANNING"
    DIRECT = "DIRECT"
    SLICING = "SLICING"
    ASSEMBLING = "ASSEMBLING"
    DONE = "DONE"
    DEGRADED = "DEGRADED"


@dataclass(slots=True)
class PipelineResult:
    """Either the placed node (composite or plain) or a placeholder plus reason."""

    node: SceneNode
    reason: str | None = None
    state: PipelineState = PipelineState.DONE
    strategy: SliceStrategy | None = None
    tiles_expected: int = 0
    tiles_placed: int = 0
    timings: dict[str, int] = field(default_factory=dict)
    history: list[PipelineState] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.reason is not None


@dataclass(slots=True)
class _Run:
    asset: AssetDescriptor
    parent: ContainerNode
    strategy: SliceStrategy | None = None
    timings: dict[str, int] = field(default_factory=dict)
    history: list[PipelineState] = field(default_factory=list)

    def enter(self, state: PipelineState) -> None:
        LOGGER.debug("%s -> %s", self.asset.name, state.value)
        self.history.append(state)


class ImagePipeline:
    """Place assets in a scene; never raises past ``insert_image``."""

    def __init__(
        self,
        scene: Scene,
        bridge: CrossContextBridge,
        *,
        reconstructor: Reconstructor | None = None,
        max_dimension: int | None = None,
        timeout_ms: int | None = None,
        write_event_log: bool = True,
    ) -> None:
        cfg = get_settings().pipeline
        self.scene = scene
        self.bridge = bridge
        self.reconstructor = reconstructor or Reconstructor(scene)
        self.max_dimension = cfg.max_dimension if max_dimension is None else max_dimension
        self.timeout_ms = timeout_ms
        self.write_event_log = write_event_log

    async def insert_image(self, asset: AssetDescriptor, parent: ContainerNode) -> PipelineResult:
        run = _Run(asset=asset, parent=parent)
        try:
            result = await self._insert(run)
        except Exception as exc:
            LOGGER.exception("Unexpected failure inserting %s", asset.name)
            result = self._degrade(run, f"unexpected error: {exc}")

        metrics.record_run("placeholder" if result.degraded else "placed")
        if self.write_event_log:
            try:
                append_event_log(
                    image_name=asset.name,
                    width=asset.width,
                    height=asset.height,
                    result=result,
                )
            except OSError as exc:
                LOGGER.warning("Event log write failed for %s: %s", asset.name, exc)
        return result

    async def _insert(self, run: _Run) -> PipelineResult:
        asset = run.asset
        run.enter(PipelineState.PLANNING)
        if not asset.bytes:
            return self._degrade(run, "empty image data")
        try:
            with metrics.track_stage("plan") as timing:
                run.strategy = plan_slices(asset.width, asset.height, self.max_dimension)
        except PlanningError as exc:
            return self._degrade(run, f"invalid image dimensions: {exc.message}")
        finally:
            run.timings["plan"] = timing["ms"]

        if not run.strategy.needs_slicing:
            return self._insert_direct(run)

        strategy = run.strategy
        run.enter(PipelineState.SLICING)
        self.scene.notify(f"Slicing oversized image {asset.name}: {strategy.description}")
        try:
            with metrics.track_stage("slice") as timing:
                tiles = await self.bridge.request_tiles(asset, strategy, self.timeout_ms)
        except BridgeTimeoutError:
            return self._degrade(run, "image too large (slicing timed out)", FailureCategory.OVERSIZED)
        except RemoteSliceError as exc:
            return self._degrade(run, f"image slicing failed: {exc.remote_error}")
        except BridgeFailure as exc:
            return self._degrade(run, f"image slicing failed: {exc.message}")
        finally:
            run.timings["slice"] = timing["ms"]

        gaps = missing_cells(tiles, asset.width, asset.height, strategy)
        if gaps:
            LOGGER.warning(
                "%s arrived with %s/%s tiles; composite will show gaps",
                asset.name,
                len(tiles),
                strategy.total_tiles,
            )
            metrics.record_skipped_tiles("encode", len(gaps))
        try:
            if gaps:
                validate_partial_tiles(tiles, asset.width, asset.height, strategy)
            else:
                validate_tiles(tiles, asset.width, asset.height)
        except ValueError as exc:
            return self._degrade(run, f"image slicing returned inconsistent tiles: {exc}")

        run.enter(PipelineState.ASSEMBLING)
        try:
            with metrics.track_stage("assemble") as timing:
                group = await self.reconstructor.assemble(
                    tiles,
                    asset.name,
                    run.parent,
                    description=strategy.description,
                )
        except ReconstructionError as exc:
            return self._degrade(run, f"image assembly failed: {exc.message}")
        finally:
            run.timings["assemble"] = timing["ms"]

        run.enter(PipelineState.DONE)
        return PipelineResult(
            node=group,
            state=PipelineState.DONE,
            strategy=strategy,
            tiles_expected=strategy.total_tiles,
            tiles_placed=self.reconstructor.last_report.nodes_created,
            timings=run.timings,
            history=run.history,
        )

    def _insert_direct(self, run: _Run) -> PipelineResult:
        asset = run.asset
        run.enter(PipelineState.DIRECT)
        try:
            image = self.scene.create_image(asset.bytes)
            node = self.scene.create_rectangle(asset.name, asset.width, asset.height)
            self.scene.set_image_fill(node, image)
            self.scene.append_child(run.parent, node)
        except Exception as exc:
            LOGGER.warning("Image creation failed for %s: %s", asset.name, exc)
            return self._degrade(run, "image creation failed")
        run.enter(PipelineState.DONE)
        return PipelineResult(
            node=node,
            state=PipelineState.DONE,
            strategy=run.strategy,
            timings=run.timings,
            history=run.history,
        )

    def _degrade(
        self,
        run: _Run,
        reason: str,
        category: FailureCategory = FailureCategory.PROCESSING,
    ) -> PipelineResult:
        asset = run.asset
        LOGGER.warning("Falling back to placeholder for %s: %s", asset.name, reason)
        run.enter(PipelineState.DEGRADED)
        node = placeholder(
            self.scene,
            asset.width,
            asset.height,
            asset.name,
            reason,
            category=category,
            parent=run.parent,
        )
        return PipelineResult(
            node=node,
            reason=reason,
            state=PipelineState.DEGRADED,
            strategy=run.strategy,
            tiles_expected=run.strategy.total_tiles if run.strategy and run.strategy.needs_slicing else 0,
            timings=run.timings,
            history=run.history,
        )


@asynccontextmanager
async def loopback_pipeline(
    scene: Scene,
    *,
    renderer: TileRenderer | None = None,
    timeout_ms: int | None = None,
    max_dimension: int | None = None,
    write_event_log: bool = True,
) -> AsyncIterator[ImagePipeline]:
    """Pipeline wired to an in-process rendering worker over a ``MessageChannel``."""

    async with MessageChannel() as channel:
        worker = RenderingWorker(channel.renderer, renderer)
        worker.attach()
        bridge = CrossContextBridge(channel.host, timeout_ms=timeout_ms)
        try:
            yield ImagePipeline(
                scene,
                bridge,
                max_dimension=max_dimension,
                write_event_log=write_event_log,
            )
        finally:
            worker.detach()
