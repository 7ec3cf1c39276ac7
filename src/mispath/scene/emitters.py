"""Emitter table: area-weighted sampling of emissive triangles.

The table is built on the host from the scene's triangle arrays, once per
scene load. Each emissive triangle with positive area becomes one entry;
entries are stable-sorted by area and carry

    pdf = area / total_area
    cdf = sum of pdf over the preceding entries (so cdf[0] == 0)

A sentinel entry with cdf = 1.0 follows the last emitter. ``sample_emitter``
returns the first entry k < N whose successor's cdf exceeds xi, so every
xi in [0, 1) selects a real emitter even when the running sum falls short of
1 through rounding.

A point on the chosen triangle is drawn uniformly by area,

    r1 = sqrt(xi1),   weights = (1 - r1, r1 * (1 - xi2), r1 * xi2)

and the area density is converted to solid angle at the shading point:

    pdf_dir = pdf * distance^2 / (area * cos_light)

Emitters are one-sided and radiate along cross(v1 - v0, v2 - v0).

Example:
    >>> table = EmitterTable.build(vertices, indices, material_ids, emissive_by_material)
    >>> table.upload()
    >>> # Use sample_emitter / sample_point_on_emitter within a Taichi kernel
"""

import logging
from dataclasses import dataclass

import numpy as np
import taichi as ti
import taichi.math as tm

from mispath.geometry.meshes import mesh_triangle_areas
from mispath.geometry.triangle import triangle_normal
from mispath.scene.intersection import MAX_TRIANGLES

logger = logging.getLogger(__name__)

# Type alias for 3D vectors
vec3 = tm.vec3

MAX_EMITTERS = MAX_TRIANGLES


@ti.dataclass
class EmitterTriangle:
    """An emitter table entry as seen by kernels.

    Attributes:
        v0: First vertex.
        v1: Second vertex.
        v2: Third vertex.
        area: Triangle area.
        emissive: Emitted radiance.
        pdf: Selection probability, area / total emitter area.
        cdf: Sum of the pdf of all preceding entries.
        global_index: Index of the triangle in the scene triangle array.
    """

    v0: vec3
    v1: vec3
    v2: vec3
    area: ti.f32
    emissive: vec3
    pdf: ti.f32
    cdf: ti.f32
    global_index: ti.i32


# =============================================================================
# Emitter Field Storage
# =============================================================================

emitter_v0 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_EMITTERS)
emitter_v1 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_EMITTERS)
emitter_v2 = ti.Vector.field(3, dtype=ti.f32, shape=MAX_EMITTERS)
emitter_area = ti.field(dtype=ti.f32, shape=MAX_EMITTERS)
emitter_emissive = ti.Vector.field(3, dtype=ti.f32, shape=MAX_EMITTERS)
emitter_pdf = ti.field(dtype=ti.f32, shape=MAX_EMITTERS)
# One extra slot for the sentinel
emitter_cdf = ti.field(dtype=ti.f32, shape=MAX_EMITTERS + 1)
emitter_global_index = ti.field(dtype=ti.i32, shape=MAX_EMITTERS)
num_emitters = ti.field(dtype=ti.i32, shape=())
emitter_total_area = ti.field(dtype=ti.f32, shape=())


def clear_emitters() -> None:
    """Empty the device-side table; light sampling is disabled until the next upload."""
    num_emitters[None] = 0
    emitter_total_area[None] = 0.0
    emitter_cdf[0] = 1.0


def get_emitter_count() -> int:
    return int(num_emitters[None])


@ti.kernel
def _upload_emitters(
    v0: ti.types.ndarray(),
    v1: ti.types.ndarray(),
    v2: ti.types.ndarray(),
    area: ti.types.ndarray(),
    emissive: ti.types.ndarray(),
    pdf: ti.types.ndarray(),
    cdf: ti.types.ndarray(),
    global_index: ti.types.ndarray(),
    count: ti.i32,
):
    for k in range(count):
        emitter_v0[k] = vec3(v0[k, 0], v0[k, 1], v0[k, 2])
        emitter_v1[k] = vec3(v1[k, 0], v1[k, 1], v1[k, 2])
        emitter_v2[k] = vec3(v2[k, 0], v2[k, 1], v2[k, 2])
        emitter_area[k] = area[k]
        emitter_emissive[k] = vec3(emissive[k, 0], emissive[k, 1], emissive[k, 2])
        emitter_pdf[k] = pdf[k]
        emitter_global_index[k] = global_index[k]
    for k in range(count + 1):
        emitter_cdf[k] = cdf[k]


# =============================================================================
# Host-side Table
# =============================================================================


@dataclass
class EmitterInfo:
    """Host-side view of one table entry (the sentinel has global_index -1)."""

    v0: tuple[float, float, float]
    v1: tuple[float, float, float]
    v2: tuple[float, float, float]
    area: float
    emissive: tuple[float, float, float]
    pdf: float
    cdf: float
    global_index: int

    @property
    def is_sentinel(self) -> bool:
        return self.global_index < 0


class EmitterTable:
    """Area CDF over the emissive triangles of a scene.

    Attributes:
        v0, v1, v2: (N, 3) vertex copies per entry.
        area: (N,) triangle areas.
        emissive: (N, 3) emitted radiance.
        pdf: (N,) selection probabilities.
        cdf: (N + 1,) exclusive prefix sums of pdf, with cdf[N] == 1.0.
        global_index: (N,) scene triangle index per entry.
        total_area: Sum of all entry areas.
    """

    def __init__(
        self,
        v0: np.ndarray,
        v1: np.ndarray,
        v2: np.ndarray,
        area: np.ndarray,
        emissive: np.ndarray,
        global_index: np.ndarray,
    ) -> None:
        self.v0 = np.asarray(v0, dtype=np.float32).reshape(-1, 3)
        self.v1 = np.asarray(v1, dtype=np.float32).reshape(-1, 3)
        self.v2 = np.asarray(v2, dtype=np.float32).reshape(-1, 3)
        self.area = np.asarray(area, dtype=np.float64).reshape(-1)
        self.emissive = np.asarray(emissive, dtype=np.float32).reshape(-1, 3)
        self.global_index = np.asarray(global_index, dtype=np.int32).reshape(-1)

        self.total_area = float(self.area.sum())
        n = self.area.shape[0]
        if n > 0:
            self.pdf = self.area / self.total_area
            self.cdf = np.empty(n + 1, dtype=np.float64)
            self.cdf[0] = 0.0
            np.cumsum(self.pdf[:-1], out=self.cdf[1:n])
        else:
            self.pdf = np.zeros(0, dtype=np.float64)
            self.cdf = np.empty(1, dtype=np.float64)
        self.cdf[n] = 1.0

    @classmethod
    def build(
        cls,
        vertices: np.ndarray,
        indices: np.ndarray,
        material_ids: np.ndarray,
        emissive_by_material: np.ndarray,
    ) -> "EmitterTable":
        """Collect the emissive triangles of a scene into a table.

        Args:
            vertices: (V, 3) scene vertex positions.
            indices: (T, 3) triangle vertex indices.
            material_ids: (T,) material id per triangle.
            emissive_by_material: (M, 3) emitted radiance per material id.

        Returns:
            The table; empty when the scene has no emitters.
        """
        verts = np.asarray(vertices, dtype=np.float32).reshape(-1, 3)
        tris = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
        mats = np.asarray(material_ids, dtype=np.int64).reshape(-1)
        emission = np.asarray(emissive_by_material, dtype=np.float32).reshape(-1, 3)

        triangle_emission = emission[mats] if mats.size else np.zeros((0, 3), np.float32)
        emissive_mask = np.any(triangle_emission > 0.0, axis=1)
        candidates = np.nonzero(emissive_mask)[0]

        areas = mesh_triangle_areas(verts, tris[candidates]) if candidates.size else np.zeros(0)
        degenerate = areas <= 0.0
        if np.any(degenerate):
            logger.warning(
                "Skipping %d zero-area emissive triangle(s): %s",
                int(degenerate.sum()),
                candidates[degenerate].tolist(),
            )
            candidates = candidates[~degenerate]
            areas = areas[~degenerate]

        order = np.argsort(areas, kind="stable")
        candidates = candidates[order]
        areas = areas[order]

        table = cls(
            v0=verts[tris[candidates, 0]],
            v1=verts[tris[candidates, 1]],
            v2=verts[tris[candidates, 2]],
            area=areas,
            emissive=triangle_emission[candidates],
            global_index=candidates,
        )
        if len(table) == 0:
            logger.warning("Scene has no emitters; light sampling is disabled")
        else:
            logger.info(
                "Built emitter table: %d triangle(s), total area %.4g",
                len(table),
                table.total_area,
            )
        return table

    def __len__(self) -> int:
        return int(self.area.shape[0])

    def sample_index(self, xi):
        """Index of the entry selected by xi (scalar or array) in [0, 1).

        Raises:
            RuntimeError: If the table is empty.
        """
        n = len(self)
        if n == 0:
            raise RuntimeError("Cannot sample an empty emitter table")
        k = np.searchsorted(self.cdf[1:], xi, side="right")
        return np.minimum(k, n - 1)

    def entry(self, k: int) -> EmitterInfo:
        """Entry k; k == len(self) returns the sentinel."""
        n = len(self)
        if k == n:
            zero = (0.0, 0.0, 0.0)
            return EmitterInfo(zero, zero, zero, 0.0, zero, 0.0, 1.0, -1)
        if not 0 <= k < n:
            raise IndexError(f"Emitter index {k} out of range [0, {n}]")
        return EmitterInfo(
            v0=tuple(float(c) for c in self.v0[k]),
            v1=tuple(float(c) for c in self.v1[k]),
            v2=tuple(float(c) for c in self.v2[k]),
            area=float(self.area[k]),
            emissive=tuple(float(c) for c in self.emissive[k]),
            pdf=float(self.pdf[k]),
            cdf=float(self.cdf[k]),
            global_index=int(self.global_index[k]),
        )

    def sample(self, xi: float) -> EmitterInfo:
        """Select an entry for a uniform variate xi in [0, 1)."""
        return self.entry(int(self.sample_index(xi)))

    def upload(self) -> None:
        """Copy the table into the device fields used by kernels.

        Raises:
            RuntimeError: If the table exceeds the device capacity.
        """
        n = len(self)
        if n > MAX_EMITTERS:
            raise RuntimeError(f"Maximum number of emitters ({MAX_EMITTERS}) exceeded")
        clear_emitters()
        if n > 0:
            _upload_emitters(
                np.ascontiguousarray(self.v0),
                np.ascontiguousarray(self.v1),
                np.ascontiguousarray(self.v2),
                self.area.astype(np.float32),
                np.ascontiguousarray(self.emissive),
                self.pdf.astype(np.float32),
                self.cdf.astype(np.float32),
                self.global_index,
                n,
            )
            emitter_total_area[None] = self.total_area
            num_emitters[None] = n


# =============================================================================
# Kernel-side Sampling
# =============================================================================


@ti.func
def get_emitter(k: ti.i32) -> EmitterTriangle:
    return EmitterTriangle(
        v0=emitter_v0[k],
        v1=emitter_v1[k],
        v2=emitter_v2[k],
        area=emitter_area[k],
        emissive=emitter_emissive[k],
        pdf=emitter_pdf[k],
        cdf=emitter_cdf[k],
        global_index=emitter_global_index[k],
    )


@ti.func
def sample_emitter_index(xi: ti.f32) -> ti.i32:
    """Binary search for the first k < N with cdf[k + 1] > xi.

    Only meaningful when the table is non-empty.
    """
    lo = 0
    hi = num_emitters[None] - 1
    while lo < hi:
        mid = (lo + hi) // 2
        if emitter_cdf[mid + 1] > xi:
            hi = mid
        else:
            lo = mid + 1
    return lo


@ti.func
def sample_emitter(xi: ti.f32) -> EmitterTriangle:
    return get_emitter(sample_emitter_index(xi))


@ti.func
def sample_point_on_emitter(emitter: EmitterTriangle, xi1: ti.f32, xi2: ti.f32) -> vec3:
    """Uniform-area point on the emitter triangle."""
    r1 = ti.sqrt(xi1)
    return (1.0 - r1) * emitter.v0 + r1 * (1.0 - xi2) * emitter.v1 + r1 * xi2 * emitter.v2


@ti.func
def emitter_normal(emitter: EmitterTriangle) -> vec3:
    return triangle_normal(emitter.v0, emitter.v1, emitter.v2)


@ti.func
def emitter_solid_angle_pdf(emitter: EmitterTriangle, shading_point: vec3, light_point: vec3) -> ti.f32:
    """Solid-angle density of reaching light_point from shading_point by light sampling.

    Returns 0 when the emitter faces away from the shading point.
    """
    to_light = light_point - shading_point
    dist2 = tm.dot(to_light, to_light)
    pdf = 0.0
    if dist2 > 0.0 and emitter.area > 0.0:
        direction = to_light / ti.sqrt(dist2)
        cos_light = -tm.dot(emitter_normal(emitter), direction)
        if cos_light > 0.0:
            pdf = emitter.pdf * dist2 / (emitter.area * cos_light)
    return pdf


@ti.func
def light_pdf_at_hit(origin: vec3, hit_point: vec3, light_normal: vec3) -> ti.f32:
    """Light-sampling density of a point found by a BSDF-sampled ray.

    For an emitter of area A selected with probability A / total_area this
    reduces to distance^2 / (total_area * cos_light).
    """
    to_light = hit_point - origin
    dist2 = tm.dot(to_light, to_light)
    total_area = emitter_total_area[None]
    pdf = 0.0
    if dist2 > 0.0 and total_area > 0.0:
        cos_light = -tm.dot(light_normal, to_light / ti.sqrt(dist2))
        if cos_light > 0.0:
            pdf = dist2 / (total_area * cos_light)
    return pdf
