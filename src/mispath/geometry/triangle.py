"""Triangle primitive with ray-triangle intersection.

Triangles are the only primitive the scene stores. A triangle is given by its
three vertices v0, v1, v2; its geometric normal follows the right-hand rule,

    normal = normalize(cross(v1 - v0, v2 - v0))

and it is the side emitters radiate toward.

Intersection uses the Moller-Trumbore test, which solves

    origin + t * direction = (1 - u - v) * v0 + u * v1 + v * v2

for the ray parameter t and the barycentric coordinates (u, v) directly,
without first computing the plane.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from mispath.geometry.triangle import hit_triangle
    >>> # Use hit_triangle within a Taichi kernel
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Determinant magnitude below which a ray is treated as parallel to the triangle
PARALLEL_EPSILON = 1e-9


@ti.dataclass
class TriangleHit:
    """Result of a single ray-triangle test.

    Attributes:
        hit: 1 if the ray hits the triangle within (t_min, t_max), 0 otherwise.
        t: Ray parameter of the hit.
        u: Barycentric weight of v1.
        v: Barycentric weight of v2.
    """

    hit: ti.i32
    t: ti.f32
    u: ti.f32
    v: ti.f32


@ti.func
def hit_triangle(
    ray_origin: vec3,
    ray_direction: vec3,
    v0: vec3,
    v1: vec3,
    v2: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> TriangleHit:
    """Test for ray-triangle intersection (two-sided).

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray (need not be normalized).
        v0: First vertex.
        v1: Second vertex.
        v2: Third vertex.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A TriangleHit; check the hit field to determine if intersection occurred.
    """
    result = TriangleHit(hit=0, t=0.0, u=0.0, v=0.0)

    edge1 = v1 - v0
    edge2 = v2 - v0
    p = tm.cross(ray_direction, edge2)
    det = tm.dot(edge1, p)

    if ti.abs(det) > PARALLEL_EPSILON:
        inv_det = 1.0 / det
        s = ray_origin - v0
        u = tm.dot(s, p) * inv_det
        if u >= 0.0 and u <= 1.0:
            q = tm.cross(s, edge1)
            v = tm.dot(ray_direction, q) * inv_det
            if v >= 0.0 and u + v <= 1.0:
                t = tm.dot(edge2, q) * inv_det
                if t > t_min and t < t_max:
                    result = TriangleHit(hit=1, t=t, u=u, v=v)

    return result


@ti.func
def triangle_normal(v0: vec3, v1: vec3, v2: vec3) -> vec3:
    """Unit geometric normal by the right-hand rule; zero for degenerate triangles."""
    n = tm.cross(v1 - v0, v2 - v0)
    result = vec3(0.0, 0.0, 0.0)
    if tm.dot(n, n) > 0.0:
        result = tm.normalize(n)
    return result


@ti.func
def triangle_area(v0: vec3, v1: vec3, v2: vec3) -> ti.f32:
    return 0.5 * tm.length(tm.cross(v1 - v0, v2 - v0))


@ti.func
def barycentric_interpolate(a: vec3, b: vec3, c: vec3, u: ti.f32, v: ti.f32) -> vec3:
    """Blend three per-vertex values with barycentric weights (1 - u - v, u, v)."""
    return (1.0 - u - v) * a + u * b + v * c
