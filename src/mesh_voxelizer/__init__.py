"""
Mesh Voxelizer
==============

Converts textured triangle meshes into sparse, palette-matched voxel sets.

Each voxel is assigned a discrete block identity from a fixed palette by
redmean nearest-color matching, or by a caller-supplied per-material
override table.

Key Features:
- Six-directional, multi-hit surface raycasting
- Optional solid interior fill via vertical ray parity
- Per-hit texture sampling with a decode-once cache
- Transparency-aware palette matching (glass-like entries for low alpha)
- First-hit-wins deduplication, one voxel per grid cell
- Incremental progress and voxel batches, sync or asyncio, cancellable

Example Usage:
    from mesh_voxelizer import Mesh, Material, box_surface, voxelize, default_palette

    mesh = Mesh([box_surface((0, 0, 0), (1, 1, 1), Material.from_hex("stone", "#7a7a7a"))])
    voxels = voxelize(mesh, default_palette(), resolution=8, solid_fill=True)
"""

__version__ = "1.0.0"
__author__ = "Mesh Voxelizer Contributors"

from .config import VoxelizeConfig
from .errors import ConfigurationError, MeshError, VoxelizationCancelled, VoxelizerError
from .mesh import BoundingBox, Material, Mesh, Surface, box_surface
from .palette import Palette, PaletteEntry, PaletteMatcher, default_palette, load_palette
from .scheduler import ProgressEvent, ProgressiveScheduler, voxelize, voxelize_async
from .texture import Texture, TextureSample, TextureSampleCache
from .voxelizer import Voxel, VoxelIndex

__all__ = [
    "VoxelizeConfig",
    "ConfigurationError",
    "MeshError",
    "VoxelizationCancelled",
    "VoxelizerError",
    "BoundingBox",
    "Material",
    "Mesh",
    "Surface",
    "box_surface",
    "Palette",
    "PaletteEntry",
    "PaletteMatcher",
    "default_palette",
    "load_palette",
    "ProgressEvent",
    "ProgressiveScheduler",
    "voxelize",
    "voxelize_async",
    "Texture",
    "TextureSample",
    "TextureSampleCache",
    "Voxel",
    "VoxelIndex",
]
