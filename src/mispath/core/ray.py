"""Ray data structure and vector utilities for the path tracer.

This module provides the Ray dataclass and the vector helpers shared by the
materials, the scene query and the integrator. All operations are Taichi
functions meant to be called from within kernels.

Sampling helpers here never draw their own random numbers: every stochastic
decision consumes variates supplied by the caller, so kernels stay
deterministic for a given noise buffer.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> origin = ti.math.vec3(0.0, 0.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> ray = Ray(origin=origin, direction=direction)
    >>> point = ray_at(ray, 5.0)  # Point 5 units along the ray
"""

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Distance a new ray origin is pushed off the surface to avoid self-intersection
RAY_EPSILON = 1e-4


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3), unit length.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t."""
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create a ray from origin and direction."""
    return Ray(origin=origin, direction=direction)


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def max_component(v: vec3) -> ti.f32:
    """Return the largest of the three components of v."""
    return ti.max(v.x, ti.max(v.y, v.z))


@ti.func
def reflect(incident: vec3, normal: vec3) -> vec3:
    """Reflect an incident vector about a normal.

    Args:
        incident: The incoming direction vector (pointing toward the surface).
        normal: The reflection axis (unit length).

    Returns:
        The reflected direction vector.
    """
    return incident - 2.0 * tm.dot(incident, normal) * normal


@ti.func
def refract(incident: vec3, normal: vec3, eta: ti.f32) -> vec3:
    """Refract an incident vector through a surface.

    Computes the refracted direction using Snell's law. If total internal
    reflection occurs, returns a zero vector.

    Args:
        incident: The incoming direction (unit length, pointing toward the surface).
        normal: The surface or microfacet normal on the incident side.
        eta: The ratio of refractive indices (n_incident / n_transmitted).

    Returns:
        The refracted direction vector, or zero vector if total internal
        reflection occurs.
    """
    cos_i = -tm.dot(incident, normal)
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    result = vec3(0.0, 0.0, 0.0)
    if sin2_t <= 1.0:
        cos_t = ti.sqrt(1.0 - sin2_t)
        result = eta * incident + (eta * cos_i - cos_t) * normal
    return result


# =============================================================================
# Local Frames and Hemisphere Sampling
# =============================================================================


@ti.func
def build_onb_from_normal(normal: vec3):
    """Build an orthonormal basis from a normal vector.

    Creates a local coordinate frame where the normal is the z-axis.

    Args:
        normal: The surface normal (should be normalized).

    Returns:
        A tuple (tangent, bitangent, normal) forming an orthonormal basis.
    """
    a = vec3(1.0, 0.0, 0.0)
    if ti.abs(normal.x) > 0.9:
        a = vec3(0.0, 1.0, 0.0)
    tangent = tm.normalize(tm.cross(a, normal))
    bitangent = tm.cross(normal, tangent)
    return tangent, bitangent, normal


@ti.func
def local_to_world(local_dir: vec3, tangent: vec3, bitangent: vec3, normal: vec3) -> vec3:
    """Transform a direction from local (z-up) to world coordinates."""
    return local_dir.x * tangent + local_dir.y * bitangent + local_dir.z * normal


@ti.func
def cosine_direction(u1: ti.f32, u2: ti.f32) -> vec3:
    """Map two uniform variates to a cosine-weighted direction (z-up).

    The distribution has PDF = cos(theta) / pi.

    Args:
        u1: Uniform variate in [0, 1) selecting the azimuth.
        u2: Uniform variate in [0, 1) selecting the elevation.

    Returns:
        A unit direction in the local frame with non-negative z.
    """
    phi = 2.0 * tm.pi * u1
    sqrt_u2 = ti.sqrt(u2)
    x = ti.cos(phi) * sqrt_u2
    y = ti.sin(phi) * sqrt_u2
    z = ti.sqrt(ti.max(0.0, 1.0 - u2))
    return vec3(x, y, z)


@ti.func
def sample_cosine_hemisphere(normal: vec3, u1: ti.f32, u2: ti.f32) -> vec3:
    """Cosine-weighted hemisphere sample around a normal in world space."""
    tangent, bitangent, n = build_onb_from_normal(normal)
    return tm.normalize(local_to_world(cosine_direction(u1, u2), tangent, bitangent, n))


@ti.func
def offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Offset ray origin to avoid self-intersection.

    Pushes the point slightly along the geometric normal on the side the new
    ray travels toward (above the surface for reflection, below for
    transmission).

    Args:
        point: The intersection point.
        normal: The geometric surface normal.
        direction: The direction of the new ray.

    Returns:
        The offset origin point.
    """
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + RAY_EPSILON * offset_dir
