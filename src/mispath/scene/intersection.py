"""Scene-level ray queries over the triangle storage.

The scene is a flat indexed triangle list held in Taichi fields:

    vertex_positions / vertex_normals   per-vertex data
    triangle_indices                    three vertex indices per triangle
    triangle_material_ids               material id per triangle
    triangle_smooth                     1 if the triangle interpolates vertex normals

``intersect_scene`` finds the nearest hit by testing every triangle. The
same nearest-hit query serves shadow rays: a light sample is visible when the
first triangle hit is the sampled emitter.

Geometry is uploaded once per scene load with ``upload_geometry`` and is
read-only while rendering.

Example:
    >>> import numpy as np
    >>> from mispath.scene.intersection import clear_scene, upload_geometry
    >>> clear_scene()
    >>> upload_geometry(
    ...     np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float32),
    ...     np.array([[0, 1, 2]], dtype=np.int32),
    ...     np.array([0], dtype=np.int32),
    ... )
    >>> # Use intersect_scene within a Taichi kernel
"""

import numpy as np
import taichi as ti
import taichi.math as tm

from mispath.geometry.triangle import (
    barycentric_interpolate,
    hit_triangle,
    triangle_normal,
)

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Smallest ray parameter accepted as a hit
T_MIN = 1e-5
# Ray parameter used as "infinitely far"
T_MAX = 1e30


@ti.dataclass
class SceneHitRecord:
    """Record of a ray-scene intersection.

    Attributes:
        hit: 1 if the ray intersected any triangle, 0 on a miss.
        t: Ray parameter of the nearest hit.
        primitive_id: Index of the hit triangle, -1 on a miss.
        bary_u: Barycentric weight of the triangle's second vertex.
        bary_v: Barycentric weight of the triangle's third vertex.
        point: World-space hit point.
        normal: Shading normal (interpolated for smooth triangles), in the
            triangle's own orientation; not flipped toward the ray.
        geometric_normal: Unit face normal cross(v1 - v0, v2 - v0).
        front_face: 1 if the ray arrived against the geometric normal.
        material_id: Material of the hit triangle, -1 on a miss.
    """

    hit: ti.i32
    t: ti.f32
    primitive_id: ti.i32
    bary_u: ti.f32
    bary_v: ti.f32
    point: vec3
    normal: vec3
    geometric_normal: vec3
    front_face: ti.i32
    material_id: ti.i32


# Maximum scene size
MAX_VERTICES = 65536
MAX_TRIANGLES = 65536

# Vertex storage: Structure of Arrays layout
vertex_positions = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
vertex_normals = ti.Vector.field(3, dtype=ti.f32, shape=MAX_VERTICES)
num_vertices = ti.field(dtype=ti.i32, shape=())

# Triangle storage
triangle_indices = ti.Vector.field(3, dtype=ti.i32, shape=MAX_TRIANGLES)
triangle_material_ids = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
triangle_smooth = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
num_triangles = ti.field(dtype=ti.i32, shape=())


def clear_scene() -> None:
    """Clear all geometry.

    Resets the vertex and triangle counts to zero; stale field contents are
    overwritten by the next upload.
    """
    num_vertices[None] = 0
    num_triangles[None] = 0


@ti.kernel
def _upload_vertices(
    positions: ti.types.ndarray(), normals: ti.types.ndarray(), offset: ti.i32, count: ti.i32
):
    for i in range(count):
        vertex_positions[offset + i] = vec3(positions[i, 0], positions[i, 1], positions[i, 2])
        vertex_normals[offset + i] = vec3(normals[i, 0], normals[i, 1], normals[i, 2])


@ti.kernel
def _upload_triangles(
    indices: ti.types.ndarray(),
    material_ids: ti.types.ndarray(),
    smooth: ti.types.ndarray(),
    vertex_offset: ti.i32,
    offset: ti.i32,
    count: ti.i32,
):
    for i in range(count):
        triangle_indices[offset + i] = ti.Vector(
            [
                vertex_offset + indices[i, 0],
                vertex_offset + indices[i, 1],
                vertex_offset + indices[i, 2],
            ]
        )
        triangle_material_ids[offset + i] = material_ids[i]
        triangle_smooth[offset + i] = smooth[i]


def upload_geometry(
    vertices: np.ndarray,
    indices: np.ndarray,
    material_ids: np.ndarray,
    normals: np.ndarray | None = None,
    smooth: np.ndarray | None = None,
) -> tuple[int, int]:
    """Append an indexed triangle list to the scene storage.

    Args:
        vertices: (V, 3) vertex positions.
        indices: (T, 3) vertex indices local to ``vertices``.
        material_ids: (T,) material id per triangle.
        normals: Optional (V, 3) per-vertex normals.
        smooth: Optional (T,) flags; defaults to 1 where normals are given.

    Returns:
        A tuple (first_vertex, first_triangle) giving where the data landed.

    Raises:
        RuntimeError: If the vertex or triangle capacity is exceeded.
        ValueError: If array shapes disagree or indices are out of range.
    """
    positions = np.ascontiguousarray(vertices, dtype=np.float32).reshape(-1, 3)
    tris = np.ascontiguousarray(indices, dtype=np.int32).reshape(-1, 3)
    mats = np.ascontiguousarray(material_ids, dtype=np.int32).reshape(-1)
    if mats.shape[0] != tris.shape[0]:
        raise ValueError(
            f"Got {mats.shape[0]} material ids for {tris.shape[0]} triangles"
        )
    if tris.size and (tris.min() < 0 or tris.max() >= positions.shape[0]):
        raise ValueError("Triangle indices reference vertices outside the given array")

    if normals is None:
        vertex_normal_data = np.zeros_like(positions)
        flags = np.zeros(tris.shape[0], dtype=np.int32)
    else:
        vertex_normal_data = np.ascontiguousarray(normals, dtype=np.float32).reshape(-1, 3)
        if vertex_normal_data.shape != positions.shape:
            raise ValueError("Normals must have the same shape as vertices")
        flags = np.ones(tris.shape[0], dtype=np.int32)
    if smooth is not None:
        flags = np.ascontiguousarray(smooth, dtype=np.int32).reshape(-1)

    first_vertex = num_vertices[None]
    first_triangle = num_triangles[None]
    if first_vertex + positions.shape[0] > MAX_VERTICES:
        raise RuntimeError(f"Maximum number of vertices ({MAX_VERTICES}) exceeded")
    if first_triangle + tris.shape[0] > MAX_TRIANGLES:
        raise RuntimeError(f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded")

    if positions.shape[0] > 0:
        _upload_vertices(positions, vertex_normal_data, first_vertex, positions.shape[0])
    if tris.shape[0] > 0:
        _upload_triangles(tris, mats, flags, first_vertex, first_triangle, tris.shape[0])

    num_vertices[None] = first_vertex + positions.shape[0]
    num_triangles[None] = first_triangle + tris.shape[0]
    return first_vertex, first_triangle


def get_vertex_count() -> int:
    return int(num_vertices[None])


def get_triangle_count() -> int:
    return int(num_triangles[None])


@ti.func
def get_triangle_vertices(prim_id: ti.i32):
    """Return the three vertex positions of a triangle."""
    idx = triangle_indices[prim_id]
    return vertex_positions[idx[0]], vertex_positions[idx[1]], vertex_positions[idx[2]]


@ti.func
def _make_miss_record() -> SceneHitRecord:
    """Create a SceneHitRecord indicating no intersection."""
    return SceneHitRecord(
        hit=0,
        t=0.0,
        primitive_id=-1,
        bary_u=0.0,
        bary_v=0.0,
        point=vec3(0.0, 0.0, 0.0),
        normal=vec3(0.0, 0.0, 0.0),
        geometric_normal=vec3(0.0, 0.0, 0.0),
        front_face=0,
        material_id=-1,
    )


@ti.func
def _make_hit_record(
    ray_origin: vec3,
    ray_direction: vec3,
    prim_id: ti.i32,
    t: ti.f32,
    u: ti.f32,
    v: ti.f32,
) -> SceneHitRecord:
    """Fill in the surface data for a confirmed triangle hit."""
    idx = triangle_indices[prim_id]
    v0 = vertex_positions[idx[0]]
    v1 = vertex_positions[idx[1]]
    v2 = vertex_positions[idx[2]]
    geometric_normal = triangle_normal(v0, v1, v2)

    shading_normal = geometric_normal
    if triangle_smooth[prim_id] == 1:
        interpolated = barycentric_interpolate(
            vertex_normals[idx[0]], vertex_normals[idx[1]], vertex_normals[idx[2]], u, v
        )
        if tm.dot(interpolated, interpolated) > 1e-12:
            shading_normal = tm.normalize(interpolated)

    front_face = 0
    if tm.dot(ray_direction, geometric_normal) < 0.0:
        front_face = 1

    return SceneHitRecord(
        hit=1,
        t=t,
        primitive_id=prim_id,
        bary_u=u,
        bary_v=v,
        point=ray_origin + t * ray_direction,
        normal=shading_normal,
        geometric_normal=geometric_normal,
        front_face=front_face,
        material_id=triangle_material_ids[prim_id],
    )


@ti.func
def intersect_scene(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> SceneHitRecord:
    """Test ray against every triangle and return the nearest hit.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A SceneHitRecord for the closest intersection, or a miss record.
    """
    closest_t = t_max
    closest_id = -1
    closest_u = 0.0
    closest_v = 0.0

    for i in range(num_triangles[None]):
        v0, v1, v2 = get_triangle_vertices(i)
        rec = hit_triangle(ray_origin, ray_direction, v0, v1, v2, t_min, closest_t)
        if rec.hit == 1:
            closest_t = rec.t
            closest_id = i
            closest_u = rec.u
            closest_v = rec.v

    result = _make_miss_record()
    if closest_id >= 0:
        result = _make_hit_record(
            ray_origin, ray_direction, closest_id, closest_t, closest_u, closest_v
        )
    return result
