"""
Run configuration for the voxelization engine.
"""

from dataclasses import dataclass, fields
import numbers
from typing import Any, Dict, Mapping

from .errors import ConfigurationError


@dataclass
class VoxelizeConfig:
    """
    Knobs for a single voxelization run.

    Attributes:
        resolution: Voxel count along the longest bounding-box dimension
        solid_fill: Run the interior fill pass after the six surface passes
        surface_cadence: Ray columns between yield points in surface passes
        fill_cadence: X slices between yield points in the fill pass
        ray_margin: Distance outside the box where surface rays start
        fill_margin: Distance below the box where fill rays start
        min_step: Lower bound for the voxel edge length
        all_hits: Keep every intersection along a ray (False = nearest only)
        use_material_alpha: Use Material.alpha for untextured samples
    """

    resolution: int = 128
    solid_fill: bool = False
    surface_cadence: int = 150
    fill_cadence: int = 10
    ray_margin: float = 10.0
    fill_margin: float = 5.0
    min_step: float = 1e-6
    all_hits: bool = True
    use_material_alpha: bool = False

    def validate(self) -> "VoxelizeConfig":
        """Raise ConfigurationError if any value is unusable."""
        if isinstance(self.resolution, bool) or not isinstance(self.resolution, numbers.Integral):
            raise ConfigurationError(
                f"Resolution must be an integer, got {self.resolution!r}"
            )
        if self.resolution <= 0:
            raise ConfigurationError(f"Resolution must be positive, got {self.resolution}")
        if self.surface_cadence <= 0 or self.fill_cadence <= 0:
            raise ConfigurationError("Yield cadences must be positive")
        if self.min_step <= 0:
            raise ConfigurationError("min_step must be positive")
        if self.ray_margin <= 0 or self.fill_margin <= 0:
            raise ConfigurationError("Ray margins must be positive")
        return self

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "VoxelizeConfig":
        """
        Build a config from a plain mapping.

        Unknown keys are rejected rather than ignored.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
