"""
Exception types raised by the voxelization engine.

Configuration problems are reported before any raycasting starts.
Per-sample problems (bad textures, empty palette subsets, rays that miss)
are handled locally and never surface as exceptions.
"""

from typing import List, Optional


class VoxelizerError(Exception):
    """Base class for all errors raised by mesh_voxelizer."""


class ConfigurationError(VoxelizerError, ValueError):
    """Invalid run configuration (resolution, palette, mesh or bounds)."""


class MeshError(VoxelizerError, ValueError):
    """Malformed surface geometry."""


class VoxelizationCancelled(VoxelizerError):
    """
    Raised when a run is cancelled at a yield point.

    Attributes:
        voxels: Voxels discovered before cancellation, in discovery order
    """

    def __init__(self, voxels: Optional[List] = None):
        self.voxels = list(voxels or [])
        super().__init__(f"Voxelization cancelled after {len(self.voxels)} voxels")
