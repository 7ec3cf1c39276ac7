"""GGX microfacet distribution, Smith masking and Fresnel terms.

The rough materials (conductor, plastic, dielectric) share these helpers.
Roughness is remapped to the GGX width as ``alpha = roughness ** 2``.

    D(m)    = alpha^2 / (pi * ((n.m)^2 (alpha^2 - 1) + 1)^2)
    G1(v,m) = 2 / (1 + sqrt(1 + alpha^2 tan^2(theta_v)))   if (v.m)/(v.n) > 0
    G       = G1(wI, m) * G1(wO, m)

Microfacet normals are sampled proportionally to D(m) * (n.m), so the density
of a sampled normal is ``D(m) * |n.m|``.

Fresnel terms are always evaluated at the microfacet normal by the callers.
"""

import taichi as ti
import taichi.math as tm

from mispath.core.ray import build_onb_from_normal, local_to_world

# Type alias for 3D vectors
vec3 = tm.vec3

# Smallest GGX width, the square of the smooth-surface roughness threshold
MIN_ALPHA = 1e-6


@ti.func
def roughness_to_alpha(roughness: ti.f32) -> ti.f32:
    return ti.max(roughness * roughness, MIN_ALPHA)


@ti.func
def ggx_distribution(n_dot_m: ti.f32, alpha: ti.f32) -> ti.f32:
    """GGX normal distribution D(m); zero for back-facing microfacets."""
    result = 0.0
    if n_dot_m > 0.0:
        a2 = alpha * alpha
        c2 = n_dot_m * n_dot_m
        # c2 * (a2 - 1) + 1, without cancelling a2 against 1 in float32
        d = c2 * a2 + ti.max(0.0, 1.0 - c2)
        result = a2 / (tm.pi * d * d)
    return result


@ti.func
def smith_g1(v: vec3, m: vec3, n: vec3, alpha: ti.f32) -> ti.f32:
    """Smith masking term for one direction."""
    v_dot_n = tm.dot(v, n)
    v_dot_m = tm.dot(v, m)
    result = 0.0
    if v_dot_m * v_dot_n > 0.0:
        c2 = v_dot_n * v_dot_n
        tan2 = ti.max(0.0, 1.0 - c2) / c2
        result = 2.0 / (1.0 + ti.sqrt(1.0 + alpha * alpha * tan2))
    return result


@ti.func
def smith_g(wi: vec3, wo: vec3, m: vec3, n: vec3, alpha: ti.f32) -> ti.f32:
    """Separable Smith shadowing-masking G = G1(wI) * G1(wO)."""
    return smith_g1(wi, m, n, alpha) * smith_g1(wo, m, n, alpha)


@ti.func
def sample_ggx_normal(n: vec3, alpha: ti.f32, u1: ti.f32, u2: ti.f32) -> vec3:
    """Sample a microfacet normal with density D(m) * (n.m).

    Args:
        n: The macro surface normal.
        alpha: The GGX width.
        u1: Uniform variate selecting the polar angle.
        u2: Uniform variate selecting the azimuth.

    Returns:
        A unit microfacet normal in the hemisphere of n.
    """
    tan2 = alpha * alpha * u1 / ti.max(1.0 - u1, 1e-7)
    cos_theta = 1.0 / ti.sqrt(1.0 + tan2)
    sin_theta = ti.sqrt(ti.max(0.0, 1.0 - cos_theta * cos_theta))
    phi = 2.0 * tm.pi * u2
    local = vec3(sin_theta * ti.cos(phi), sin_theta * ti.sin(phi), cos_theta)
    tangent, bitangent, normal = build_onb_from_normal(n)
    return tm.normalize(local_to_world(local, tangent, bitangent, normal))


@ti.func
def fresnel_dielectric(cos_i: ti.f32, eta_i: ti.f32, eta_t: ti.f32) -> ti.f32:
    """Unpolarized Fresnel reflectance of a dielectric interface.

    Args:
        cos_i: Cosine between the incident direction and the (micro)normal.
        eta_i: Index of refraction on the incident side.
        eta_t: Index of refraction on the transmitted side.

    Returns:
        Reflectance in [0, 1]; 1 under total internal reflection.
    """
    c = ti.abs(cos_i)
    rel = eta_t / eta_i
    g2 = rel * rel - 1.0 + c * c
    result = 1.0
    if g2 > 0.0:
        g = ti.sqrt(g2)
        a = (g - c) / (g + c)
        b = (c * (g + c) - 1.0) / (c * (g - c) + 1.0)
        result = ti.min(1.0, 0.5 * a * a * (1.0 + b * b))
    return result


@ti.func
def fresnel_schlick(cos_i: ti.f32, f0: vec3) -> vec3:
    """Schlick's approximation of conductor reflectance with tint f0."""
    t = ti.max(0.0, 1.0 - ti.abs(cos_i))
    t5 = t * t * t * t * t
    return f0 + (vec3(1.0, 1.0, 1.0) - f0) * t5
