"""
Surface and Interior Scanners

SurfaceRaycaster sweeps the mesh with parallel rays along one of six axis
directions; InteriorFillScanner fires vertical rays and fills the spans
between entry/exit hit pairs. Both write through a shared VoxelIndex and
report every newly stored voxel to an emit callback.

Scanners are generators: they yield a pass-completion fraction after each
unit of work (a ray column, or an x slice for the fill pass) and leave
pacing, progress reporting and batching to the scheduler.
"""

from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterator, Mapping, Optional, Sequence, Tuple
import math

from .color import RGB
from .mesh import Mesh, Surface
from .palette import Palette, PaletteMatcher
from .raycast import Hit, MeshRayCaster
from .texture import TextureSampleCache
from .voxelizer import Voxel, VoxelIndex


class Direction(Enum):
    """Surface pass directions, in scan order."""
    UP = (1, 1, "up")
    FRONT = (0, 1, "front")
    RIGHT = (2, 1, "right")
    DOWN = (1, -1, "down")
    BACK = (0, -1, "back")
    LEFT = (2, -1, "left")

    @property
    def axis(self) -> int:
        return self.value[0]

    @property
    def sign(self) -> int:
        return self.value[1]

    @property
    def label(self) -> str:
        return self.value[2]


SCAN_ORDER: Tuple[Direction, ...] = tuple(Direction)


class SampleResolver:
    """
    Turns a ray hit into a color, alpha and block id.

    Color comes from the material texture at the hit UV when both exist,
    otherwise from the flat material color. The block id comes from the
    override table when the material name is listed there, otherwise from
    nearest-color palette matching.

    Args:
        mesh: Mesh the hits refer to
        palette: Block palette
        overrides: Material name -> forced block id
        texture_cache: Cache used for texture lookups
        use_material_alpha: Use Material.alpha for untextured samples
            instead of 1.0
    """

    def __init__(
        self,
        mesh: Mesh,
        palette: Palette,
        overrides: Optional[Mapping[str, str]] = None,
        texture_cache: Optional[TextureSampleCache] = None,
        use_material_alpha: bool = False
    ):
        self.mesh = mesh
        self.matcher = PaletteMatcher(palette)
        self.overrides = MappingProxyType(dict(overrides or {}))
        self.texture_cache = texture_cache if texture_cache is not None else TextureSampleCache()
        self.use_material_alpha = use_material_alpha

    def sample(self, surface: Surface, uv: Optional[Tuple[float, float]]) -> Tuple[RGB, float]:
        """Color and alpha of a surface at a UV coordinate."""
        material = surface.material
        # Interpolation of extreme UVs can still overflow; treat as no UV
        if uv is not None and not (math.isfinite(uv[0]) and math.isfinite(uv[1])):
            uv = None
        if material.texture is not None and uv is not None:
            sampled = self.texture_cache.sample_uv(material.texture, uv[0], uv[1])
            if sampled is not None:
                return sampled

        alpha = float(material.alpha) if self.use_material_alpha else 1.0
        r, g, b = material.color
        return (float(r), float(g), float(b)), alpha

    def block_for(self, material_name: str, color: RGB, alpha: float) -> str:
        """Override block for the material, or the nearest palette block."""
        assigned = self.overrides.get(material_name)
        if assigned:
            return assigned
        return self.matcher.best_match(color, alpha).block_id

    def resolve(self, hit: Hit) -> Tuple[RGB, float, str]:
        surface = self.mesh.surfaces[hit.surface_index]
        color, alpha = self.sample(surface, hit.uv)
        return color, alpha, self.block_for(surface.material.name, color, alpha)


class _Scanner:
    """Shared insertion logic for both scanners."""

    def __init__(
        self,
        caster: MeshRayCaster,
        index: VoxelIndex,
        resolver: SampleResolver,
        emit: Callable[[Voxel], None],
        margin: float
    ):
        self.caster = caster
        self.index = index
        self.resolver = resolver
        self.emit = emit
        self.margin = margin

    def _insert(self, point: Sequence[float], hit: Hit) -> bool:
        """Store a voxel for the cell containing point, sampled from hit."""
        cell = self.index.cell_of(point)
        if cell in self.index:
            return False

        color, alpha, block_id = self.resolver.resolve(hit)
        voxel = Voxel(
            position=self.index.position_of(cell),
            color=color,
            block_id=block_id,
            alpha=alpha,
            cell=cell,
        )
        if self.index.insert_if_absent(cell, voxel):
            self.emit(voxel)
            return True
        return False


class SurfaceRaycaster(_Scanner):
    """
    Captures the mesh shell with one directional sweep at a time.

    Every intersection along a ray is kept by default, so multi-layer
    geometry yields voxels for inner layers too. Set all_hits=False to
    keep only the nearest hit per ray.
    """

    def __init__(
        self,
        caster: MeshRayCaster,
        index: VoxelIndex,
        resolver: SampleResolver,
        emit: Callable[[Voxel], None],
        margin: float = 10.0,
        all_hits: bool = True
    ):
        super().__init__(caster, index, resolver, emit, margin)
        self.all_hits = all_hits

    def columns(self, direction: Direction) -> int:
        """Number of rays fired by one pass."""
        return self.caster.grid(direction.axis).total

    def scan(self, direction: Direction) -> Iterator[float]:
        """
        Run one directional pass.

        Yields:
            Fraction of the pass completed, after each ray column
        """
        grid = self.caster.grid(direction.axis)
        nu, nv = grid.counts
        total = grid.total
        done = 0

        for i in range(nu):
            for j in range(nv):
                hits = self.caster.cast(direction.axis, direction.sign, i, j, self.margin)
                if not self.all_hits:
                    hits = hits[:1]
                for hit in hits:
                    self._insert(hit.point, hit)
                done += 1
                yield done / total


class InteriorFillScanner(_Scanner):
    """
    Approximates solid interiors with vertical ray parity.

    Hits along each upward ray are paired (0, 1), (2, 3), ... as
    entry/exit through material; cells between a pair are filled from the
    entry height upward using the entry hit's sample. A trailing unpaired
    hit is ignored. Cells already set by the surface passes are kept.
    """

    UP_AXIS = 1

    def __init__(
        self,
        caster: MeshRayCaster,
        index: VoxelIndex,
        resolver: SampleResolver,
        emit: Callable[[Voxel], None],
        margin: float = 5.0
    ):
        super().__init__(caster, index, resolver, emit, margin)

    def slices(self) -> int:
        """Number of x slices in the footprint."""
        return self.caster.grid(self.UP_AXIS).counts[1]

    def fill(self) -> Iterator[float]:
        """
        Run the fill pass, x slices outer, z columns inner, y upward.

        Yields:
            Fraction of the pass completed, after each x slice
        """
        # The up-axis lattice spans u = z, v = x
        grid = self.caster.grid(self.UP_AXIS)
        nz, nx = grid.counts
        step = self.index.step

        for ix in range(nx):
            for iz in range(nz):
                hits = self.caster.cast(self.UP_AXIS, 1, iz, ix, self.margin)
                for k in range(0, len(hits) - 1, 2):
                    self._fill_span(hits[k], hits[k + 1], step)
            yield (ix + 1) / nx

    def _fill_span(self, entry: Hit, exit_hit: Hit, step: float):
        y0 = entry.point[1]
        y1 = exit_hit.point[1]
        if y1 <= y0:
            return
        samples = int(math.ceil((y1 - y0) / step - 1e-9))
        x, _, z = entry.point
        for s in range(samples):
            self._insert((x, y0 + s * step, z), entry)
