"""Diffuse (Lambertian) material implementation.

The Lambertian BRDF scatters light uniformly, weighted by the cosine of the
angle from the surface normal:

    f(wI, wO) = diffuse / pi
    bsdf      = diffuse * cos(theta_o) / pi
    pdf       = cos(theta_o) / pi        (cosine-weighted hemisphere sampling)

The sample weight bsdf / pdf therefore reduces to the diffuse color; it is
computed as that ratio, not assigned.

Example:
    >>> # Within a Taichi kernel:
    >>> # s = sample_diffuse(diffuse, n, wi, u1, u2)
    >>> # throughput *= s.weight
"""

import taichi as ti
import taichi.math as tm

from mispath.core.ray import sample_cosine_hemisphere
from mispath.materials.material import SampledMaterial, invalid_sample, make_sample

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def pdf_diffuse(n: vec3, wo: vec3) -> ti.f32:
    """Cosine-weighted sampling density; zero below the surface."""
    cos_theta = tm.dot(n, wo)
    pdf = 0.0
    if cos_theta > 0.0:
        pdf = cos_theta / tm.pi
    return pdf


@ti.func
def evaluate_diffuse(diffuse: vec3, n: vec3, wi: vec3, wo: vec3) -> SampledMaterial:
    """Evaluate the diffuse BSDF for a given outgoing direction.

    Args:
        diffuse: The diffuse reflectance color.
        n: Shading normal, already facing wi.
        wi: Direction toward the previous vertex.
        wo: Outgoing direction to evaluate.

    Returns:
        The evaluated sample; invalid if wo lies below the surface.
    """
    result = invalid_sample(wo)
    cos_o = tm.dot(n, wo)
    if cos_o > 0.0 and tm.dot(n, wi) > 0.0:
        result = make_sample(wo, diffuse * cos_o / tm.pi, pdf_diffuse(n, wo), 1.0, 0)
    return result


@ti.func
def sample_diffuse(
    diffuse: vec3, n: vec3, wi: vec3, u1: ti.f32, u2: ti.f32
) -> SampledMaterial:
    """Sample a cosine-weighted direction and evaluate it."""
    wo = sample_cosine_hemisphere(n, u1, u2)
    return evaluate_diffuse(diffuse, n, wi, wo)
