"""
Axis-Aligned Raycasting

Every ray the engine fires is parallel to a coordinate axis and passes
through the center of a cell column, so intersection reduces to a 2D
point-in-triangle test in the plane orthogonal to the ray followed by
barycentric interpolation of depth and UV.

Acceleration: for each cast axis the triangles are bucketed once by the
ray columns their 2D footprint covers. A ray only tests the triangles in
its own bucket, vectorized with numpy.
"""

import logging
import math
from typing import Dict, List, NamedTuple, Optional, Tuple
import numpy as np

from .mesh import BoundingBox, Mesh

logger = logging.getLogger(__name__)

AXIS_NAMES = ("x", "y", "z")

# Barycentric slack so rays through shared edges still hit
_BARY_EPS = 1e-9


class Hit(NamedTuple):
    """One ray/triangle intersection."""
    distance: float                       # along the ray, from its origin
    point: Tuple[float, float, float]     # world position
    surface_index: int                    # index into Mesh.surfaces
    uv: Optional[Tuple[float, float]]     # interpolated UV, None without UVs


class ColumnGrid(NamedTuple):
    """
    The 2D lattice of ray columns orthogonal to a cast axis.

    For cast axis a the lattice spans u = (a + 1) % 3 and v = (a + 2) % 3.
    Column (i, j) passes through the cell centers
    (origin_u + (i + 0.5) * step, origin_v + (j + 0.5) * step).
    """
    axis: int
    u_axis: int
    v_axis: int
    origin: Tuple[float, float]
    counts: Tuple[int, int]
    step: float

    @property
    def total(self) -> int:
        return self.counts[0] * self.counts[1]

    def center(self, i: int, j: int) -> Tuple[float, float]:
        return (
            self.origin[0] + (i + 0.5) * self.step,
            self.origin[1] + (j + 0.5) * self.step,
        )


def column_count(extent: float, step: float) -> int:
    """Number of step-wide columns needed to cover an extent."""
    return max(1, int(math.ceil(extent / step - 1e-9)))


def column_grid(bounds: BoundingBox, step: float, axis: int) -> ColumnGrid:
    """Build the ray column lattice for a cast axis."""
    u_axis = (axis + 1) % 3
    v_axis = (axis + 2) % 3
    size = bounds.size
    return ColumnGrid(
        axis=axis,
        u_axis=u_axis,
        v_axis=v_axis,
        origin=(float(bounds.min[u_axis]), float(bounds.min[v_axis])),
        counts=(column_count(size[u_axis], step), column_count(size[v_axis], step)),
        step=step,
    )


class MeshRayCaster:
    """
    Multi-hit, double-sided raycaster for axis-aligned rays.

    Args:
        mesh: Mesh to intersect
        bounds: Bounding box of the mesh
        step: Column spacing (voxel edge length)
    """

    def __init__(self, mesh: Mesh, bounds: BoundingBox, step: float):
        self.bounds = bounds
        self.step = step

        tris, uvs, has_uv, owner = [], [], [], []
        for index, surface in enumerate(mesh.surfaces):
            if surface.triangle_count == 0:
                continue
            tris.append(surface.triangles)
            tri_uvs = surface.triangle_uvs
            if tri_uvs is None:
                uvs.append(np.zeros((surface.triangle_count, 3, 2)))
                has_uv.append(np.zeros(surface.triangle_count, dtype=bool))
            else:
                uvs.append(tri_uvs)
                has_uv.append(np.ones(surface.triangle_count, dtype=bool))
            owner.append(np.full(surface.triangle_count, index, dtype=np.int64))

        self._tris = np.concatenate(tris, axis=0)
        self._uvs = np.concatenate(uvs, axis=0)
        self._has_uv = np.concatenate(has_uv)
        self._owner = np.concatenate(owner)

        scale = max(bounds.max_extent, step)
        self._tol = 1e-9 * scale
        self._area_tol = 1e-12 * scale * scale
        self._dist_tol = 1e-7 * scale

        self._grids: Dict[int, ColumnGrid] = {}
        self._buckets: Dict[int, Dict[Tuple[int, int], np.ndarray]] = {}

    @property
    def triangle_count(self) -> int:
        return len(self._tris)

    def grid(self, axis: int) -> ColumnGrid:
        """Ray column lattice for a cast axis."""
        if axis not in self._grids:
            self._grids[axis] = column_grid(self.bounds, self.step, axis)
        return self._grids[axis]

    def _bucket_index(self, axis: int) -> Dict[Tuple[int, int], np.ndarray]:
        """Column -> candidate triangle indices for one cast axis."""
        if axis in self._buckets:
            return self._buckets[axis]

        grid = self.grid(axis)
        u, v = grid.u_axis, grid.v_axis
        tri_u = self._tris[:, :, u]
        tri_v = self._tris[:, :, v]

        # Triangles seen edge-on never intersect a ray along this axis
        area = ((tri_u[:, 1] - tri_u[:, 0]) * (tri_v[:, 2] - tri_v[:, 0])
                - (tri_u[:, 2] - tri_u[:, 0]) * (tri_v[:, 1] - tri_v[:, 0]))
        facing = np.abs(area) > self._area_tol

        step = self.step
        i0 = np.ceil((tri_u.min(axis=1) - self._tol - grid.origin[0]) / step - 0.5).astype(np.int64)
        i1 = np.floor((tri_u.max(axis=1) + self._tol - grid.origin[0]) / step - 0.5).astype(np.int64)
        j0 = np.ceil((tri_v.min(axis=1) - self._tol - grid.origin[1]) / step - 0.5).astype(np.int64)
        j1 = np.floor((tri_v.max(axis=1) + self._tol - grid.origin[1]) / step - 0.5).astype(np.int64)
        nu, nv = grid.counts
        i0 = np.clip(i0, 0, nu - 1)
        i1 = np.clip(i1, -1, nu - 1)
        j0 = np.clip(j0, 0, nv - 1)
        j1 = np.clip(j1, -1, nv - 1)

        lists: Dict[Tuple[int, int], List[int]] = {}
        for t in np.flatnonzero(facing):
            for i in range(int(i0[t]), int(i1[t]) + 1):
                for j in range(int(j0[t]), int(j1[t]) + 1):
                    lists.setdefault((i, j), []).append(int(t))

        buckets = {key: np.array(items, dtype=np.int64) for key, items in lists.items()}
        self._buckets[axis] = buckets
        logger.debug(
            "Built %s-axis ray index: %d columns, %d non-empty",
            AXIS_NAMES[axis], grid.total, len(buckets)
        )
        return buckets

    def cast(self, axis: int, sign: int, i: int, j: int, margin: float) -> List[Hit]:
        """
        Fire the ray through column (i, j) along +axis or -axis.

        Args:
            axis: Cast axis (0=x, 1=y, 2=z)
            sign: +1 to travel toward +axis, -1 toward -axis
            i, j: Column indices in the axis' ColumnGrid
            margin: Distance outside the box where the ray starts

        Returns:
            Every intersection, nearest first. Hits on one surface at the
            same distance (shared edges and vertices) are reported once.
        """
        candidates = self._bucket_index(axis).get((i, j))
        if candidates is None:
            return []

        grid = self.grid(axis)
        u, v = grid.u_axis, grid.v_axis
        pu, pv = grid.center(i, j)

        tris = self._tris[candidates]
        p0, p1, p2 = tris[:, 0], tris[:, 1], tris[:, 2]

        e1u = p1[:, u] - p0[:, u]
        e1v = p1[:, v] - p0[:, v]
        e2u = p2[:, u] - p0[:, u]
        e2v = p2[:, v] - p0[:, v]
        du = pu - p0[:, u]
        dv = pv - p0[:, v]

        det = e1u * e2v - e2u * e1v
        w1 = (du * e2v - e2u * dv) / det
        w2 = (e1u * dv - du * e1v) / det
        w0 = 1.0 - w1 - w2

        inside = (w0 >= -_BARY_EPS) & (w1 >= -_BARY_EPS) & (w2 >= -_BARY_EPS)
        if not np.any(inside):
            return []

        sel = np.flatnonzero(inside)
        w = np.stack([w0[sel], w1[sel], w2[sel]], axis=1)
        tri_idx = candidates[sel]

        depth = np.einsum("nk,nk->n", w, tris[sel, :, axis])
        if sign > 0:
            origin = float(self.bounds.min[axis]) - margin
        else:
            origin = float(self.bounds.max[axis]) + margin
        distance = (depth - origin) * sign

        hits: List[Hit] = []
        last_by_surface: Dict[int, float] = {}
        for k in np.argsort(distance, kind="stable"):
            t = int(tri_idx[k])
            surface_index = int(self._owner[t])
            dist = float(distance[k])

            previous = last_by_surface.get(surface_index)
            if previous is not None and dist - previous <= self._dist_tol:
                continue
            last_by_surface[surface_index] = dist

            point = [0.0, 0.0, 0.0]
            point[axis] = float(depth[k])
            point[u] = pu
            point[v] = pv

            uv = None
            if self._has_uv[t]:
                interp = w[k] @ self._uvs[t]
                uv = (float(interp[0]), float(interp[1]))

            hits.append(Hit(dist, (point[0], point[1], point[2]), surface_index, uv))

        return hits
