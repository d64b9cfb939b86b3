#!/usr/bin/env python3
"""tilekit CLI: plan, slice and assemble oversized images locally."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tilekit import metrics
from tilekit.errors import PlanningError, WorkerDecodeError
from tilekit.event_log import read_event_log
from tilekit.models import AssetDescriptor
from tilekit.pipeline import PipelineResult, loopback_pipeline
from tilekit.planner import SliceStrategy, plan_slices
from tilekit.scene import InMemoryScene
from tilekit.settings import configure_logging, get_settings
from tilekit.tiler import TileRenderer

console = Console()
cli = typer.Typer(help="Slice oversized images into host-legal tiles and reassemble them.")

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


def _mime_type(path: Path) -> str:
    return _MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")


def _max_dimension(override: Optional[int]) -> int:
    return get_settings().pipeline.max_dimension if override is None else override


def _print_strategy(strategy: SliceStrategy, *, width: int, height: int) -> None:
    table = Table("Field", "Value", title=f"Slice plan for {width}×{height}")
    table.add_row("direction", strategy.direction.value)
    table.add_row("tile", f"{strategy.tile_width}×{strategy.tile_height}")
    table.add_row("grid", f"{strategy.cols} cols × {strategy.rows} rows")
    table.add_row("total_tiles", str(strategy.total_tiles))
    table.add_row("description", strategy.description)
    console.print(table)


def _read_dimensions(data: bytes) -> tuple[int, int]:
    from tilekit.codec import read_dimensions

    return read_dimensions(data)


def _load_asset(image: Path, name: Optional[str]) -> AssetDescriptor:
    data = image.read_bytes()
    try:
        width, height = _read_dimensions(data)
    except WorkerDecodeError as exc:
        raise typer.BadParameter(exc.message, param_hint="IMAGE") from exc
    return AssetDescriptor(
        bytes=data,
        width=width,
        height=height,
        name=name or image.stem,
        mime_type=_mime_type(image),
    )


def _print_result(scene: InMemoryScene, result: PipelineResult) -> None:
    status = "[yellow]placeholder[/]" if result.degraded else "[green]placed[/]"
    console.print(f"{status} {result.node.name} ({result.state.value})")
    if result.reason:
        console.print(f"[yellow]reason:[/] {result.reason}")
    if result.tiles_expected:
        console.print(f"tiles: {result.tiles_placed} / {result.tiles_expected}")
    if result.timings:
        console.print("timings: " + ", ".join(f"{key}={value}ms" for key, value in result.timings.items()))

    table = Table("Node", "Kind", "X", "Y", "Size", title=scene.page.name)
    for depth, node in scene.walk():
        table.add_row(
            "  " * (depth - 1) + node.name,
            node.kind,
            f"{node.x:g}",
            f"{node.y:g}",
            f"{node.width:g}×{node.height:g}",
        )
    console.print(table)


@cli.command()
def plan(
    width: int = typer.Argument(..., help="Source width in pixels"),
    height: int = typer.Argument(..., help="Source height in pixels"),
    max_dimension: Optional[int] = typer.Option(None, "--max-dimension", help="Override the host raster limit"),
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON instead of a table."),
) -> None:
    """Show how an image of WIDTH×HEIGHT would be cut."""

    try:
        strategy = plan_slices(width, height, _max_dimension(max_dimension))
    except PlanningError as exc:
        raise typer.BadParameter(exc.message) from exc
    if json_output:
        console.print_json(data=strategy.to_payload())
        return
    _print_strategy(strategy, width=width, height=height)


@cli.command("slice")
def slice_image(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source image"),
    out: Path = typer.Option(Path("tiles"), "--out", "-o", help="Directory for tile PNGs"),
    name: Optional[str] = typer.Option(None, "--name", help="Asset name (defaults to file stem)"),
    max_dimension: Optional[int] = typer.Option(None, "--max-dimension", help="Override the host raster limit"),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
) -> None:
    """Render tiles locally and write them with an index.json."""

    configure_logging(log_level)
    asset = _load_asset(image, name)
    strategy = plan_slices(asset.width, asset.height, _max_dimension(max_dimension))
    _print_strategy(strategy, width=asset.width, height=asset.height)

    renderer = TileRenderer()
    try:
        tiles = asyncio.run(
            renderer.render(asset.bytes, asset.mime_type, asset.width, asset.height, strategy, name=asset.name)
        )
    except WorkerDecodeError as exc:
        console.print(f"[red]Decode failed:[/] {exc.message}")
        raise typer.Exit(code=1) from exc

    out.mkdir(parents=True, exist_ok=True)
    index = []
    for tile in tiles:
        path = out / f"{tile.name}.png"
        path.write_bytes(tile.bytes)
        index.append(
            {
                "file": path.name,
                "row": tile.row,
                "col": tile.col,
                "x": tile.x,
                "y": tile.y,
                "width": tile.width,
                "height": tile.height,
            }
        )
    (out / "index.json").write_text(
        json.dumps({"name": asset.name, "width": asset.width, "height": asset.height, "tiles": index}, indent=2),
        encoding="utf-8",
    )
    console.print(f"[green]Wrote {len(tiles)}/{strategy.total_tiles} tiles to {out}[/]")
    if len(tiles) != strategy.total_tiles:
        raise typer.Exit(code=2)


@cli.command()
def assemble(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Source image"),
    name: Optional[str] = typer.Option(None, "--name", help="Asset name (defaults to file stem)"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Override the bridge timeout"),
    max_dimension: Optional[int] = typer.Option(None, "--max-dimension", help="Override the host raster limit"),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
) -> None:
    """Run the full pipeline against an in-memory scene and print the node tree."""

    configure_logging(log_level)
    metrics.start_exporter(get_settings().telemetry.prometheus_port)
    asset = _load_asset(image, name)
    limit = _max_dimension(max_dimension)
    scene = InMemoryScene(max_dimension=limit)

    async def _run() -> PipelineResult:
        async with loopback_pipeline(
            scene,
            renderer=TileRenderer(),
            timeout_ms=timeout_ms,
            max_dimension=limit,
        ) as pipeline:
            return await pipeline.insert_image(asset, scene.page)

    result = asyncio.run(_run())
    _print_result(scene, result)
    if result.degraded:
        raise typer.Exit(code=1)


@cli.command()
def events(
    limit: int = typer.Option(20, "--limit", "-n", help="Show the newest N records."),
    path: Optional[Path] = typer.Option(None, "--path", help="Event log path (defaults to settings)."),
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON lines."),
) -> None:
    """Show recent degraded or partial insertions."""

    records = read_event_log(path, limit=limit)
    if not records:
        console.print("[dim]No events recorded yet.[/]")
        return
    if json_output:
        for record in records:
            console.print(json.dumps(record))
        return
    table = Table("Timestamp", "Image", "Size", "Tiles", "Reason", title="Pipeline events")
    for record in records:
        expected = record.get("tiles_expected") or 0
        tiles = f"{record.get('tiles_placed', 0)}/{expected}" if expected else "-"
        table.add_row(
            str(record.get("timestamp", "—")),
            str(record.get("image_name", "—")),
            f"{record.get('width')}×{record.get('height')}",
            tiles,
            str(record.get("reason") or "partial"),
        )
    console.print(table)


if __name__ == "__main__":  # pragma: no cover
    cli()
