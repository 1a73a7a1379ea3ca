"""
Integration tests for the progressive voxelization scheduler.
"""

import sys
import asyncio
from io import BytesIO
from pathlib import Path
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mesh_voxelizer import (
    ConfigurationError, Material, Mesh, Palette, PaletteEntry, ProgressiveScheduler,
    Surface, Texture, TextureSampleCache, VoxelizationCancelled, VoxelizeConfig,
    box_surface, default_palette, voxelize, voxelize_async,
)
from mesh_voxelizer.scanners import SCAN_ORDER, Direction


FACE_COLORS = [
    ("neg_x", "#ff0000"),
    ("pos_x", "#00ff00"),
    ("neg_y", "#0000ff"),
    ("pos_y", "#ffff00"),
    ("neg_z", "#00ffff"),
    ("pos_z", "#ff00ff"),
]

FACE_PALETTE = Palette([PaletteEntry(name, hex_color, name) for name, hex_color in FACE_COLORS])


def unit_cube(material: Material = None) -> Mesh:
    material = material or Material.from_hex("stone", "#7a7a7a")
    return Mesh([box_surface((0, 0, 0), (1, 1, 1), material)])


def split_cube() -> Mesh:
    """Unit cube with one surface (and one color) per face."""
    box = box_surface((0, 0, 0), (1, 1, 1), Material("unused"))
    surfaces = []
    for f, (name, hex_color) in enumerate(FACE_COLORS):
        surfaces.append(Surface(
            box.vertices[4 * f:4 * f + 4],
            box.faces[2 * f:2 * f + 2] - 4 * f,
            Material.from_hex(name, hex_color),
            box.uvs[4 * f:4 * f + 4],
        ))
    return Mesh(surfaces)


def open_top_cube() -> Mesh:
    """Unit cube without its +Y face."""
    mesh = split_cube()
    return Mesh([s for s in mesh.surfaces if s.material.name != "pos_y"])


def cells(voxels):
    return [v.cell for v in voxels]


class TestSolidCube(unittest.TestCase):
    """Tests for the flat unit cube example."""

    def test_filled_cube(self):
        """Test that a filled cube occupies every cell."""
        voxels = voxelize(unit_cube(), default_palette(), resolution=8, solid_fill=True)
        assert len(voxels) == 512
        assert set(cells(voxels)) == {
            (x, y, z) for x in range(8) for y in range(8) for z in range(8)
        }

    def test_surface_only_shell(self):
        """Test the shell produced without fill."""
        voxels = voxelize(unit_cube(), default_palette(), resolution=8)
        assert len(voxels) == 512 - 6 ** 3
        for x, y, z in cells(voxels):
            assert 0 in (x, y, z) or 7 in (x, y, z)

    def test_positions_are_cell_corners(self):
        """Test that voxel positions are cell corners."""
        voxels = voxelize(unit_cube(), default_palette(), resolution=8)
        for voxel in voxels:
            assert np.allclose(voxel.position, np.array(voxel.cell) * 0.125)

    def test_flat_color_matches_palette(self):
        """Test palette matching of a flat material color."""
        voxels = voxelize(unit_cube(), default_palette(), resolution=4, solid_fill=True)
        assert {v.block_id for v in voxels} == {"minecraft:stone"}
        assert all(v.alpha == 1.0 for v in voxels)

    def test_fill_keeps_surface_voxels(self):
        """Test that the fill pass only appends."""
        surface = voxelize(unit_cube(), default_palette(), resolution=8)
        filled = voxelize(unit_cube(), default_palette(), resolution=8, solid_fill=True)
        assert filled[:len(surface)] == surface


class TestInvariants(unittest.TestCase):
    """Tests for run-level guarantees."""

    def test_determinism(self):
        """Test that repeated runs are identical."""
        first = voxelize(split_cube(), FACE_PALETTE, resolution=8, solid_fill=True)
        second = voxelize(split_cube(), FACE_PALETTE, resolution=8, solid_fill=True)
        assert first == second

    def test_one_voxel_per_cell(self):
        """Test that no cell holds two voxels."""
        mesh = Mesh([
            box_surface((0, 0, 0), (1, 1, 1), Material("outer")),
            box_surface((0.2, 0.3, 0.1), (0.7, 0.9, 0.6), Material("inner")),
        ])
        voxels = voxelize(mesh, default_palette(), resolution=10, solid_fill=True)
        assert len(set(cells(voxels))) == len(voxels)

    def test_first_hit_wins_direction_order(self):
        """Test that cells keep the sample of the earliest pass."""
        voxels = {v.cell: v for v in voxelize(split_cube(), FACE_PALETTE, resolution=8)}

        # Up pass reaches the bottom and top layers first
        assert voxels[(0, 0, 0)].block_id == "neg_y"
        assert voxels[(7, 7, 7)].block_id == "pos_y"
        assert voxels[(3, 7, 0)].block_id == "pos_y"
        # Front pass then claims the x walls
        assert voxels[(0, 3, 0)].block_id == "neg_x"
        assert voxels[(7, 3, 7)].block_id == "pos_x"
        # Right pass is left with the z walls
        assert voxels[(3, 3, 0)].block_id == "neg_z"
        assert voxels[(3, 3, 7)].block_id == "pos_z"

    def test_interior_uses_entry_sample(self):
        """Test that interior cells take the entry hit's sample."""
        voxels = {v.cell: v for v in voxelize(split_cube(), FACE_PALETTE, resolution=8,
                                               solid_fill=True)}
        assert voxels[(3, 3, 3)].block_id == "neg_y"

    def test_odd_hits_not_filled(self):
        """Test that an open mesh gets no interior fill."""
        surface = voxelize(open_top_cube(), FACE_PALETTE, resolution=8)
        filled = voxelize(open_top_cube(), FACE_PALETTE, resolution=8, solid_fill=True)
        assert filled == surface

    def test_multi_hit_captures_inner_layers(self):
        """Test multi-hit versus nearest-hit scanning."""
        mesh = Mesh([
            box_surface((0, 0, 0), (1, 1, 1), Material("outer")),
            box_surface((0.375, 0.375, 0.375), (0.625, 0.625, 0.625), Material("inner")),
        ])
        all_hits = voxelize(mesh, default_palette(), resolution=8)
        nearest = voxelize(mesh, default_palette(), resolution=8, all_hits=False)

        def interior(voxels):
            return [c for c in cells(voxels) if all(1 <= k <= 6 for k in c)]

        assert len(interior(all_hits)) > 0
        assert interior(nearest) == []
        assert len(nearest) == 512 - 6 ** 3


class TestSampling(unittest.TestCase):
    """Tests for texture sampling, overrides and transparency."""

    def test_override_precedence(self):
        """Test that overrides beat palette matching."""
        mesh = Mesh([
            box_surface((0, 0, 0), (1, 1, 1), Material.from_hex("stone", "#7a7a7a")),
            box_surface((2, 0, 0), (3, 1, 1), Material.from_hex("wood", "#a88a53")),
        ])
        overrides = {"stone": "minecraft:diamond_block"}
        voxels = voxelize(mesh, default_palette(), resolution=12, solid_fill=True,
                          overrides=overrides)

        stone = [v for v in voxels if v.position[0] < 1.5]
        wood = [v for v in voxels if v.position[0] > 1.5]
        assert stone and wood
        assert {v.block_id for v in stone} == {"minecraft:diamond_block"}
        assert {v.block_id for v in wood} == {"minecraft:oak_planks"}

    def test_empty_override_ignored(self):
        """Test that an empty override is ignored."""
        voxels = voxelize(unit_cube(), default_palette(), resolution=4,
                          overrides={"stone": ""})
        assert {v.block_id for v in voxels} == {"minecraft:stone"}

    def test_transparent_texture_matches_glass(self):
        """Test that transparent texels map to glass."""
        pixels = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels[:, :] = [255, 255, 255, 51]
        material = Material("window", color=(0.5, 0.5, 0.5), texture=Texture(pixels))
        voxels = voxelize(unit_cube(material), default_palette(), resolution=4, solid_fill=True)

        assert voxels
        for voxel in voxels:
            assert np.isclose(voxel.alpha, 0.2)
            assert voxel.block_id == "minecraft:glass"

    def test_transparency_partition_property(self):
        """Test that only low-alpha samples map to glass."""
        palette = default_palette()
        glass_ids = {e.block_id for e in palette.transparency_class}
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[0, 0] = [30, 30, 30, 40]
        pixels[0, 1] = [122, 122, 122, 255]
        pixels[1, 0] = [80, 120, 150, 100]
        pixels[1, 1] = [200, 60, 20, 255]
        material = Material("mixed", texture=Texture(pixels))
        voxels = voxelize(unit_cube(material), palette, resolution=8)

        low_alpha = [v for v in voxels if v.alpha < 0.5]
        assert low_alpha
        assert all(v.block_id in glass_ids for v in low_alpha)
        assert all(v.block_id not in glass_ids for v in voxels if v.alpha >= 0.5)

    def test_texture_color_sampled(self):
        """Test texture color sampling."""
        pixels = np.zeros((1, 1, 4), dtype=np.uint8)
        pixels[0, 0] = [0x59, 0x72, 0x20, 255]
        material = Material("moss", color=(1.0, 1.0, 1.0), texture=Texture(pixels))
        voxels = voxelize(unit_cube(material), default_palette(), resolution=4)
        assert {v.block_id for v in voxels} == {"minecraft:moss_block"}
        assert np.allclose(voxels[0].color, (0x59 / 255, 0x72 / 255, 0x20 / 255))

    def test_missing_texture_falls_back(self):
        """Test fallback to the material color for a missing texture."""
        material = Material.from_hex("stone", "#7a7a7a", texture=Texture("/nonexistent.png"))
        voxels = voxelize(unit_cube(material), default_palette(), resolution=4)
        assert {v.block_id for v in voxels} == {"minecraft:stone"}
        assert all(v.alpha == 1.0 for v in voxels)

    def test_truncated_texture_falls_back(self):
        """Test that a texture failing to load mid-run uses the material color."""
        gradient = np.arange(16 * 16 * 3, dtype=np.uint32).reshape(16, 16, 3) % 251
        buffer = BytesIO()
        Image.fromarray(gradient.astype(np.uint8)).save(buffer, format="PNG")
        broken = Image.open(BytesIO(buffer.getvalue()[:60]))

        material = Material.from_hex("stone", "#7a7a7a", texture=Texture(broken))
        voxels = voxelize(unit_cube(material), default_palette(), resolution=4)
        assert voxels
        assert {v.block_id for v in voxels} == {"minecraft:stone"}
        assert all(v.alpha == 1.0 for v in voxels)

    def test_non_finite_uv_falls_back(self):
        """Test that hits with non-finite UVs use the material color."""
        pixels = np.zeros((1, 1, 4), dtype=np.uint8)
        pixels[0, 0] = [0x59, 0x72, 0x20, 255]
        material = Material.from_hex("stone", "#7a7a7a", texture=Texture(pixels))
        surface = box_surface((0, 0, 0), (1, 1, 1), material)
        surface.uvs[:] = np.nan

        voxels = voxelize(Mesh([surface]), default_palette(), resolution=4)
        assert voxels
        assert {v.block_id for v in voxels} == {"minecraft:stone"}

    def test_material_alpha_option(self):
        """Test the material alpha option for untextured samples."""
        material = Material.from_hex("tinted", "#ffffff", alpha=0.3)
        plain = voxelize(unit_cube(material), default_palette(), resolution=4)
        tinted = voxelize(unit_cube(material), default_palette(), resolution=4,
                          use_material_alpha=True)
        assert {v.block_id for v in plain} == {"minecraft:white_concrete"}
        assert {v.block_id for v in tinted} == {"minecraft:glass"}

    def test_texture_cache_cleared_per_run(self):
        """Test that a run clears the texture cache."""
        cache = TextureSampleCache()
        stale = Texture(np.zeros((2, 2, 4), dtype=np.uint8), key="stale")
        cache.decode(stale)
        assert stale in cache

        voxelize(unit_cube(), default_palette(), resolution=4, texture_cache=cache)
        assert stale not in cache


class TestProgress(unittest.TestCase):
    """Tests for progress reporting and batch emission."""

    def run_collecting(self, **kwargs):
        progress, batches = [], []
        voxels = voxelize(
            split_cube(), FACE_PALETTE,
            on_progress=lambda pct, status: progress.append((pct, status)),
            on_voxels=batches.append,
            **kwargs
        )
        return voxels, progress, batches

    def test_progress_monotonic_and_complete(self):
        """Test that progress never decreases and ends at 100."""
        voxels, progress, batches = self.run_collecting(
            resolution=16, solid_fill=True, surface_cadence=7, fill_cadence=2
        )
        percents = [p for p, _ in progress]
        assert len(percents) > 10
        assert all(a <= b for a, b in zip(percents, percents[1:]))
        assert percents[-1] == 100.0

    def test_batches_concatenate_to_result(self):
        """Test that batches add up to the result."""
        voxels, progress, batches = self.run_collecting(
            resolution=16, solid_fill=True, surface_cadence=7, fill_cadence=2
        )
        assert len(batches) > 1
        assert all(batches)
        assert [v for batch in batches for v in batch] == voxels

    def test_one_event_per_pass(self):
        """Test progress percentages with one event per pass."""
        # 8 x 8 columns per pass, so a cadence of 64 reports once per pass
        voxels, progress, batches = self.run_collecting(resolution=8, surface_cadence=64)
        percents = [p for p, _ in progress]
        expected = [100.0 * k / 6 for k in range(1, 7)] + [100.0]
        assert np.allclose(percents, expected)

        statuses = [s for _, s in progress]
        assert statuses[:6] == [f"Scanning {d.label} face" for d in SCAN_ORDER]
        assert statuses[-1] == "Complete"

    def test_interior_status(self):
        """Test the interior pass status label."""
        voxels, progress, batches = self.run_collecting(
            resolution=8, solid_fill=True, fill_cadence=4
        )
        statuses = [s for _, s in progress]
        assert statuses == ["Scanning interior", "Scanning interior", "Complete"]
        assert np.allclose([p for p, _ in progress], [100 * 6.5 / 7, 100.0, 100.0])

    def test_small_run_single_final_batch(self):
        """Test that a small run reports one final batch."""
        voxels, progress, batches = self.run_collecting(resolution=4)
        assert progress == [(100.0, "Complete")]
        assert batches == [voxels]

    def test_scan_order(self):
        """Test the surface pass order."""
        assert SCAN_ORDER == (
            Direction.UP, Direction.FRONT, Direction.RIGHT,
            Direction.DOWN, Direction.BACK, Direction.LEFT,
        )
        assert [(d.axis, d.sign) for d in SCAN_ORDER] == [
            (1, 1), (0, 1), (2, 1), (1, -1), (0, -1), (2, -1)
        ]


class TestScheduler(unittest.TestCase):
    """Tests for scheduler lifecycle, cancellation and asyncio."""

    def test_events_generator(self):
        """Test driving the scheduler through events()."""
        scheduler = ProgressiveScheduler(
            unit_cube(), default_palette(), VoxelizeConfig(resolution=8, surface_cadence=16)
        )
        events = list(scheduler.events())
        assert events[-1].percent == 100.0
        assert scheduler.finished
        assert sum(len(e.batch) for e in events) == len(scheduler.index)

    def test_single_use(self):
        """Test that a scheduler cannot run twice."""
        scheduler = ProgressiveScheduler(unit_cube(), default_palette(), resolution=4)
        scheduler.run()
        with self.assertRaises(RuntimeError):
            scheduler.run()

    def test_cancel_at_yield_point(self):
        """Test cancellation at a suspension point."""
        scheduler = ProgressiveScheduler(
            unit_cube(), default_palette(), resolution=8, surface_cadence=8
        )
        seen = []

        def on_progress(percent, status):
            seen.append(percent)
            if len(seen) == 2:
                scheduler.cancel()

        with self.assertRaises(VoxelizationCancelled) as ctx:
            scheduler.run(on_progress=on_progress)

        assert len(seen) == 2
        assert not scheduler.finished
        assert ctx.exception.voxels
        assert ctx.exception.voxels == scheduler.voxels
        assert len(scheduler.index) == len(ctx.exception.voxels) < 512 - 216

    def test_async_matches_sync(self):
        """Test that the asyncio driver matches the sync one."""
        sync = voxelize(split_cube(), FACE_PALETTE, resolution=8, solid_fill=True)
        progress = []
        result = asyncio.run(voxelize_async(
            split_cube(), FACE_PALETTE, resolution=8, solid_fill=True,
            surface_cadence=10, on_progress=lambda p, s: progress.append(p)
        ))
        assert result == sync
        assert progress[-1] == 100.0

    def test_palette_as_entry_list(self):
        """Test passing a plain list of palette entries."""
        entries = [PaletteEntry("Stone", "#7a7a7a", "minecraft:stone")]
        voxels = voxelize(unit_cube(), entries, resolution=4)
        assert {v.block_id for v in voxels} == {"minecraft:stone"}


class TestConfiguration(unittest.TestCase):
    """Tests for fail-fast configuration errors."""

    def test_zero_resolution(self):
        """Test zero resolution."""
        with self.assertRaises(ConfigurationError):
            voxelize(unit_cube(), default_palette(), resolution=0)

    def test_negative_or_non_integer_resolution(self):
        """Test negative and fractional resolutions."""
        with self.assertRaises(ConfigurationError):
            voxelize(unit_cube(), default_palette(), resolution=-3)
        with self.assertRaises(ConfigurationError):
            voxelize(unit_cube(), default_palette(), resolution=4.5)

    def test_zero_volume_bounds(self):
        """Test a mesh with zero-volume bounds."""
        quad = Surface(
            np.array([[0, 0, 0], [1, 0, 0], [1, 0, 1], [0, 0, 1]]),
            np.array([[0, 1, 2], [0, 2, 3]]),
            Material("flat"),
        )
        with self.assertRaises(ConfigurationError):
            voxelize(Mesh([quad]), default_palette(), resolution=8)

    def test_empty_palette(self):
        """Test an empty palette."""
        with self.assertRaises(ConfigurationError):
            voxelize(unit_cube(), [], resolution=8)

    def test_missing_mesh(self):
        """Test missing and empty meshes."""
        with self.assertRaises(ConfigurationError):
            voxelize(None, default_palette(), resolution=8)
        with self.assertRaises(ConfigurationError):
            voxelize(Mesh([]), default_palette(), resolution=8)

    def test_bad_cadence(self):
        """Test a non-positive cadence."""
        with self.assertRaises(ConfigurationError):
            voxelize(unit_cube(), default_palette(), resolution=8, surface_cadence=0)

    def test_unknown_option(self):
        """Test an unknown keyword option."""
        with self.assertRaises(ConfigurationError):
            voxelize(unit_cube(), default_palette(), resolution=8, colour="red")

    def test_config_from_dict(self):
        """Test building a config from a mapping."""
        config = VoxelizeConfig.from_dict({"resolution": 32, "solid_fill": True})
        assert config.resolution == 32 and config.solid_fill
        assert config.to_dict()["surface_cadence"] == 150
        with self.assertRaises(ConfigurationError):
            VoxelizeConfig.from_dict({"resolution": 32, "bogus": 1})


if __name__ == "__main__":
    unittest.main(verbosity=2)
