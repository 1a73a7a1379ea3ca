"""
Progressive Voxelization Scheduler

This is the primary interface for the voxelization engine.
It orchestrates:
1. Configuration validation (before any raycasting)
2. Six surface passes: up, front, right, down, back, left
3. The optional interior fill pass
4. Progress reporting and incremental voxel batches

Execution is single-threaded and cooperative. The scan loops suspend at
a fixed cadence; at each suspension point the scheduler reports progress,
hands over the voxels discovered since the previous one, and checks for
cancellation.

Example Usage:
    from mesh_voxelizer import voxelize, default_palette

    voxels = voxelize(
        mesh, default_palette(), resolution=64, solid_fill=True,
        on_progress=lambda pct, status: print(f"{pct:5.1f}% {status}"),
    )
"""

import asyncio
import dataclasses
import logging
from typing import Callable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Union

from .config import VoxelizeConfig
from .errors import ConfigurationError, MeshError, VoxelizationCancelled
from .mesh import BoundingBox, Mesh
from .palette import Palette, PaletteEntry
from .raycast import MeshRayCaster
from .scanners import SCAN_ORDER, InteriorFillScanner, SampleResolver, SurfaceRaycaster
from .texture import TextureSampleCache
from .voxelizer import Voxel, VoxelIndex

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]
VoxelsCallback = Callable[[List[Voxel]], None]

INTERIOR_STATUS = "Scanning interior"
COMPLETE_STATUS = "Complete"


class ProgressEvent(NamedTuple):
    """State reported at a suspension point."""
    percent: float          # overall completion, 0-100
    status: str             # current phase
    batch: List[Voxel]      # voxels discovered since the previous event


class ProgressiveScheduler:
    """
    Drives one voxelization run to completion.

    A scheduler is single-use: it owns the VoxelIndex and clears the
    texture cache when its run starts.

    Attributes:
        index: The VoxelIndex populated by the run
        bounds: Mesh bounding box
        step: Voxel edge length
    """

    def __init__(
        self,
        mesh: Mesh,
        palette: Union[Palette, Sequence[PaletteEntry]],
        config: Optional[VoxelizeConfig] = None,
        overrides: Optional[Mapping[str, str]] = None,
        texture_cache: Optional[TextureSampleCache] = None,
        **options
    ):
        """
        Validate the run and prepare its state.

        Args:
            mesh: Mesh to voxelize
            palette: Palette, or a sequence of PaletteEntry
            config: Run configuration; keyword options override its fields
            overrides: Material name -> forced block id
            texture_cache: Cache to reuse; cleared when the run starts
            **options: VoxelizeConfig fields

        Raises:
            ConfigurationError: If the configuration cannot be run
        """
        config = config if config is not None else VoxelizeConfig()
        if options:
            try:
                config = dataclasses.replace(config, **options)
            except TypeError as exc:
                raise ConfigurationError(f"Invalid voxelization option: {exc}") from exc
        self.config = config.validate()

        if mesh is None or not isinstance(mesh, Mesh):
            raise ConfigurationError("A Mesh is required")
        if palette is None:
            raise ConfigurationError("A palette is required")
        if not isinstance(palette, Palette):
            palette = Palette(list(palette))
        if mesh.triangle_count == 0:
            raise ConfigurationError("Mesh has no triangles")

        try:
            bounds = mesh.bounding_box()
        except MeshError as exc:
            raise ConfigurationError(str(exc)) from exc
        if bounds.is_degenerate:
            raise ConfigurationError(
                f"Mesh bounding box has zero volume (size {bounds.size.tolist()})"
            )

        self.mesh = mesh
        self.palette = palette
        self.bounds: BoundingBox = bounds
        self.step = max(bounds.max_extent / config.resolution, config.min_step)
        self.texture_cache = texture_cache if texture_cache is not None else TextureSampleCache()
        self.index = VoxelIndex(self.step, bounds)

        self._resolver = SampleResolver(
            mesh, palette, overrides, self.texture_cache, config.use_material_alpha
        )
        self._caster = MeshRayCaster(mesh, bounds, self.step)
        self._surface = SurfaceRaycaster(
            self._caster, self.index, self._resolver, self._pending_append,
            margin=config.ray_margin, all_hits=config.all_hits
        )
        self._fill = InteriorFillScanner(
            self._caster, self.index, self._resolver, self._pending_append,
            margin=config.fill_margin
        )

        self._pending: List[Voxel] = []
        self._started = False
        self._cancel_requested = False
        self._finished = False

    @property
    def total_passes(self) -> int:
        return len(SCAN_ORDER) + (1 if self.config.solid_fill else 0)

    @property
    def voxels(self) -> List[Voxel]:
        """Voxels discovered so far, in discovery order."""
        return self.index.voxels()

    @property
    def finished(self) -> bool:
        return self._finished

    def cancel(self):
        """Request cancellation; takes effect at the next suspension point."""
        self._cancel_requested = True

    def _pending_append(self, voxel: Voxel):
        self._pending.append(voxel)

    def _event(self, percent: float, status: str) -> ProgressEvent:
        batch, self._pending = self._pending, []
        return ProgressEvent(min(100.0, percent), status, batch)

    def _check_cancelled(self):
        if self._cancel_requested:
            logger.warning("Voxelization cancelled with %d voxels", len(self.index))
            raise VoxelizationCancelled(self.voxels)

    def _drive(
        self,
        work: Iterator[float],
        completed: int,
        status: str,
        cadence: int
    ) -> Iterator[ProgressEvent]:
        total = self.total_passes
        for tick, fraction in enumerate(work, 1):
            if tick % cadence == 0:
                yield self._event((completed + fraction) / total * 100.0, status)
                self._check_cancelled()

    def events(self) -> Iterator[ProgressEvent]:
        """
        Run the passes, suspending at each reporting point.

        Yields:
            ProgressEvent per suspension point; the last one is at 100%
            and carries any voxels not yet reported

        Raises:
            VoxelizationCancelled: If cancel() was called
            RuntimeError: If the scheduler has already run
        """
        if self._started:
            raise RuntimeError("Scheduler already started; create a new one for another run")
        self._started = True

        # Decoded pixels from a previous mesh must not leak into this run
        self.texture_cache.clear()
        self._check_cancelled()

        logger.info(
            "Voxelizing %d triangles at resolution %d (step %.6g, %d passes)",
            self._caster.triangle_count, self.config.resolution, self.step, self.total_passes
        )

        completed = 0
        for direction in SCAN_ORDER:
            status = f"Scanning {direction.label} face"
            yield from self._drive(
                self._surface.scan(direction), completed, status, self.config.surface_cadence
            )
            completed += 1
            logger.debug("Pass %s done, %d voxels", direction.label, len(self.index))

        if self.config.solid_fill:
            yield from self._drive(
                self._fill.fill(), completed, INTERIOR_STATUS, self.config.fill_cadence
            )
            completed += 1
            logger.debug("Interior pass done, %d voxels", len(self.index))

        self._check_cancelled()
        self._finished = True
        logger.info("Voxelization complete: %d voxels", len(self.index))
        yield self._event(100.0, COMPLETE_STATUS)

    @staticmethod
    def _dispatch(
        event: ProgressEvent,
        on_progress: Optional[ProgressCallback],
        on_voxels: Optional[VoxelsCallback]
    ):
        if on_progress is not None:
            on_progress(event.percent, event.status)
        if on_voxels is not None and event.batch:
            on_voxels(event.batch)

    def run(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_voxels: Optional[VoxelsCallback] = None
    ) -> List[Voxel]:
        """
        Run to completion synchronously.

        Args:
            on_progress: Called with (percent, status) at each suspension point
            on_voxels: Called with each non-empty batch of new voxels

        Returns:
            Every voxel in discovery order (the concatenation of all batches)
        """
        for event in self.events():
            self._dispatch(event, on_progress, on_voxels)
        return self.voxels

    async def run_async(
        self,
        on_progress: Optional[ProgressCallback] = None,
        on_voxels: Optional[VoxelsCallback] = None
    ) -> List[Voxel]:
        """
        Run to completion inside an asyncio event loop.

        Control returns to the loop at every suspension point, so the host
        stays responsive and task cancellation is honored there.
        """
        events = self.events()
        try:
            for event in events:
                self._dispatch(event, on_progress, on_voxels)
                await asyncio.sleep(0)
        finally:
            events.close()
        return self.voxels


def voxelize(
    mesh: Mesh,
    palette: Union[Palette, Sequence[PaletteEntry]],
    resolution: int,
    solid_fill: bool = False,
    overrides: Optional[Mapping[str, str]] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_voxels: Optional[VoxelsCallback] = None,
    texture_cache: Optional[TextureSampleCache] = None,
    **options
) -> List[Voxel]:
    """
    Convert a mesh into palette-matched voxels.

    Args:
        mesh: Mesh to voxelize
        palette: Block palette
        resolution: Voxel count along the longest bounding-box dimension
        solid_fill: Fill interiors after the surface passes
        overrides: Material name -> forced block id
        on_progress: Called with (percent, status)
        on_voxels: Called with each non-empty batch of new voxels
        texture_cache: Optional cache to reuse across runs
        **options: Further VoxelizeConfig fields

    Returns:
        All voxels in discovery order
    """
    scheduler = ProgressiveScheduler(
        mesh, palette,
        VoxelizeConfig(resolution=resolution, solid_fill=solid_fill),
        overrides=overrides,
        texture_cache=texture_cache,
        **options
    )
    return scheduler.run(on_progress, on_voxels)


async def voxelize_async(
    mesh: Mesh,
    palette: Union[Palette, Sequence[PaletteEntry]],
    resolution: int,
    solid_fill: bool = False,
    overrides: Optional[Mapping[str, str]] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_voxels: Optional[VoxelsCallback] = None,
    texture_cache: Optional[TextureSampleCache] = None,
    **options
) -> List[Voxel]:
    """Asyncio counterpart of voxelize()."""
    scheduler = ProgressiveScheduler(
        mesh, palette,
        VoxelizeConfig(resolution=resolution, solid_fill=solid_fill),
        overrides=overrides,
        texture_cache=texture_cache,
        **options
    )
    return await scheduler.run_async(on_progress, on_voxels)
