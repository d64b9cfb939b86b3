from __future__ import annotations

import pytest

from fakes import FlakyImageScene, GroupFailingScene, tree_nodes
from tilekit.errors import ReconstructionError
from tilekit.models import Tile
from tilekit.planner import plan_slices
from tilekit.reconstruct import Reconstructor
from tilekit.scene import GroupNode, InMemoryScene
from tilekit.tiler import tile_grid


def _tiles(width: int, height: int) -> list[Tile]:
    return [
        Tile(
            bytes=f"png-{cell.row}-{cell.col}".encode(),
            width=cell.width,
            height=cell.height,
            x=cell.x,
            y=cell.y,
            row=cell.row,
            col=cell.col,
            name=f"hero_r{cell.row}_c{cell.col}",
        )
        for cell in tile_grid(width, height, plan_slices(width, height, 4096))
    ]


@pytest.mark.asyncio
async def test_assemble_groups_tiles_at_their_offsets() -> None:
    scene = InMemoryScene()
    reconstructor = Reconstructor(scene)

    group = await reconstructor.assemble(_tiles(8200, 8200), "hero", scene.page, description="grid")

    assert isinstance(group, GroupNode)
    assert group.name == "hero"
    assert (group.x, group.y, group.width, group.height) == (0, 0, 8200, 8200)
    assert scene.page.children == [group]
    assert [child.name for child in group.children] == [f"hero_slice_{index}" for index in range(1, 10)]
    assert [(child.x, child.y) for child in group.children][:4] == [(0, 0), (3686, 0), (7372, 0), (0, 3686)]
    assert all(child.fills[0].type == "IMAGE" for child in group.children)
    assert reconstructor.last_report.nodes_created == 9
    assert scene.notifications == ["Assembling image: hero (grid)", "Image assembled: hero"]


@pytest.mark.asyncio
async def test_assemble_moves_group_to_origin() -> None:
    scene = InMemoryScene()
    tiles = [tile for tile in _tiles(8200, 8200) if tile.row == 2]

    group = await Reconstructor(scene).assemble(tiles, "strip", scene.page, origin=(10, 20))

    assert (group.x, group.y) == (10, 20)
    assert [(child.x, child.y) for child in group.children] == [(10, 20), (3696, 20), (7382, 20)]


@pytest.mark.asyncio
async def test_assemble_skips_tiles_that_cannot_be_created() -> None:
    tiles = _tiles(8200, 8200)
    scene = FlakyImageScene(bad_payloads={tiles[4].bytes})
    reconstructor = Reconstructor(scene)

    group = await reconstructor.assemble(tiles, "hero", scene.page)

    assert len(group.children) == 8
    assert reconstructor.last_report.skipped == ["hero_r1_c1"]
    assert "hero_slice_5" not in {child.name for child in group.children}


@pytest.mark.asyncio
async def test_group_failure_rolls_back_appended_nodes() -> None:
    scene = GroupFailingScene()
    before = scene.node_count()

    with pytest.raises(ReconstructionError) as excinfo:
        await Reconstructor(scene).assemble(_tiles(5000, 3000), "banner", scene.page)

    assert scene.group_calls == 1
    assert scene.node_count() == before
    assert tree_nodes(scene) == []
    assert "group refused" in excinfo.value.message
    assert excinfo.value.details == {"created": 2, "appended": 2}


@pytest.mark.asyncio
async def test_no_creatable_tiles_raises() -> None:
    tiles = _tiles(5000, 3000)
    scene = FlakyImageScene(bad_payloads={tile.bytes for tile in tiles})

    with pytest.raises(ReconstructionError):
        await Reconstructor(scene).assemble(tiles, "banner", scene.page)

    assert scene.node_count() == 0
