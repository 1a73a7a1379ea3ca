"""
Mesh Input Structures

The engine consumes meshes through these types only. Loading from asset
formats belongs to the caller; any loader that can produce vertex, face
and UV arrays plus a material per surface can feed the engine.
"""

from dataclasses import dataclass
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple
import numpy as np

from .color import RGB, hex_to_rgb
from .errors import MeshError
from .texture import Texture


class BoundingBox(NamedTuple):
    """Axis-aligned bounds as (min_xyz, max_xyz) arrays."""
    min: np.ndarray
    max: np.ndarray

    @property
    def size(self) -> np.ndarray:
        return self.max - self.min

    @property
    def max_extent(self) -> float:
        return float(np.max(self.size))

    @property
    def volume(self) -> float:
        return float(np.prod(self.size))

    @property
    def is_degenerate(self) -> bool:
        """True when any axis has zero (or non-finite) extent."""
        size = self.size
        return bool(np.any(~np.isfinite(size)) or np.any(size <= 0.0))


@dataclass(frozen=True)
class Material:
    """
    Surface material.

    Attributes:
        name: Material name, the key into override tables
        color: Base color, normalized (r, g, b)
        alpha: Material opacity
        texture: Optional color texture
    """
    name: str
    color: RGB = (1.0, 1.0, 1.0)
    alpha: float = 1.0
    texture: Optional[Texture] = None

    @classmethod
    def from_hex(cls, name: str, hex_color: str, alpha: float = 1.0,
                 texture: Optional[Texture] = None) -> "Material":
        """Create a material from a hex color string."""
        return cls(name=name, color=hex_to_rgb(hex_color), alpha=alpha, texture=texture)


class Surface:
    """
    A triangle set with one bound material.

    Args:
        vertices: Array of shape (N, 3) with vertex positions
        faces: Array of shape (M, 3) with vertex indices per triangle
        material: Material bound to every triangle
        uvs: Optional array of shape (N, 2) with per-vertex UVs
    """

    def __init__(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        material: Material,
        uvs: Optional[np.ndarray] = None
    ):
        vertices = np.asarray(vertices, dtype=np.float64)
        faces = np.asarray(faces, dtype=np.int64)

        if vertices.ndim != 2 or vertices.shape[1] != 3:
            raise MeshError(f"Vertices must have shape (N, 3), got {vertices.shape}")
        if faces.size == 0:
            faces = faces.reshape(0, 3)
        if faces.ndim != 2 or faces.shape[1] != 3:
            raise MeshError(f"Faces must have shape (M, 3), got {faces.shape}")
        if faces.size and (faces.min() < 0 or faces.max() >= len(vertices)):
            raise MeshError("Face index out of range")
        if not np.all(np.isfinite(vertices)):
            raise MeshError("Vertices must be finite")

        if uvs is not None:
            uvs = np.asarray(uvs, dtype=np.float64)
            if uvs.shape != (len(vertices), 2):
                raise MeshError(f"UVs must have shape ({len(vertices)}, 2), got {uvs.shape}")
            if not np.all(np.isfinite(uvs)):
                raise MeshError("UVs must be finite")

        self.vertices = vertices
        self.faces = faces
        self.material = material
        self.uvs = uvs

    def __repr__(self) -> str:
        return f"Surface(material={self.material.name!r}, triangles={len(self.faces)})"

    @property
    def triangle_count(self) -> int:
        return len(self.faces)

    @property
    def triangles(self) -> np.ndarray:
        """Triangle corner positions, shape (M, 3, 3)."""
        return self.vertices[self.faces]

    @property
    def triangle_uvs(self) -> Optional[np.ndarray]:
        """Triangle corner UVs, shape (M, 3, 2), or None."""
        if self.uvs is None:
            return None
        return self.uvs[self.faces]


class Mesh:
    """Ordered collection of surfaces voxelized together."""

    def __init__(self, surfaces: Sequence[Surface]):
        self.surfaces: List[Surface] = list(surfaces)

    def __iter__(self) -> Iterator[Surface]:
        return iter(self.surfaces)

    def __len__(self) -> int:
        return len(self.surfaces)

    @property
    def triangle_count(self) -> int:
        return sum(s.triangle_count for s in self.surfaces)

    def bounding_box(self) -> BoundingBox:
        """
        Bounds over every vertex referenced by a triangle.

        Raises:
            MeshError: If the mesh has no triangles
        """
        used = [s.vertices[np.unique(s.faces)] for s in self.surfaces if s.triangle_count]
        if not used:
            raise MeshError("Mesh has no triangles")
        points = np.concatenate(used, axis=0)
        return BoundingBox(points.min(axis=0), points.max(axis=0))


# Corner indices for each box face as (a, b, c, d), counter-clockwise from outside
_BOX_FACES = [
    (0, 2, 3, 1),  # -X
    (4, 5, 7, 6),  # +X
    (0, 1, 5, 4),  # -Y
    (2, 6, 7, 3),  # +Y
    (0, 4, 6, 2),  # -Z
    (1, 3, 7, 5),  # +Z
]


def box_surface(
    min_corner: Sequence[float],
    max_corner: Sequence[float],
    material: Material,
    with_uvs: bool = True
) -> Surface:
    """
    Build an axis-aligned box as 12 triangles.

    Every face gets its own four vertices so each face maps the full
    [0, 1] UV square.

    Args:
        min_corner: (x, y, z) of the minimum corner
        max_corner: (x, y, z) of the maximum corner
        material: Material for all faces
        with_uvs: Attach per-face UVs

    Returns:
        Surface with 24 vertices and 12 triangles
    """
    lo = np.asarray(min_corner, dtype=np.float64)
    hi = np.asarray(max_corner, dtype=np.float64)

    corners = np.array([
        [hi[0] if (i >> 2) & 1 else lo[0],
         hi[1] if (i >> 1) & 1 else lo[1],
         hi[2] if i & 1 else lo[2]]
        for i in range(8)
    ])

    vertices: List[np.ndarray] = []
    faces: List[Tuple[int, int, int]] = []
    uvs: List[Tuple[float, float]] = []
    quad_uvs = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]

    for a, b, c, d in _BOX_FACES:
        base = len(vertices)
        vertices.extend(corners[[a, b, c, d]])
        uvs.extend(quad_uvs)
        faces.append((base, base + 1, base + 2))
        faces.append((base, base + 2, base + 3))

    return Surface(
        np.array(vertices),
        np.array(faces),
        material,
        np.array(uvs) if with_uvs else None,
    )
