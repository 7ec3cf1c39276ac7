"""Conductor materials: perfect mirror and GGX rough conductor.

Mirror:
    The outgoing direction is the exact reflection of wI about n. The BSDF is
    a delta distribution, so ``evaluate`` only reports a match when wO lies
    within an angular epsilon of the reflected direction, and explicit light
    sampling never contributes through a mirror.

Rough conductor:
    A microfacet normal m is drawn from the GGX distribution and wI is
    reflected about it.

        bsdf = F * D * G / (4 * (n.wI))
        pdf  = D * (n.m) / (4 * (m.wO))

    with F = Schlick(wO.m, specular) evaluated at the microfacet normal.
    A rough conductor with roughness below SMOOTH_ROUGHNESS degenerates to a
    Fresnel-weighted mirror.
"""

import taichi as ti
import taichi.math as tm

from mispath.core.ray import reflect
from mispath.materials.material import (
    SMOOTH_ROUGHNESS,
    SampledMaterial,
    invalid_sample,
    make_sample,
)
from mispath.materials.microfacet import (
    fresnel_schlick,
    ggx_distribution,
    roughness_to_alpha,
    sample_ggx_normal,
    smith_g,
)

# Type alias for 3D vectors
vec3 = tm.vec3

# Cosine tolerance for matching a direction against a mirror reflection
MIRROR_COS_EPSILON = 1e-4


# =============================================================================
# Mirror
# =============================================================================


@ti.func
def sample_mirror(specular: vec3, n: vec3, wi: vec3) -> SampledMaterial:
    """Reflect wi about n; the weight is the specular color."""
    wo = reflect(-wi, n)
    result = invalid_sample(wo)
    if tm.dot(n, wo) > 0.0 and tm.dot(n, wi) > 0.0:
        result = make_sample(wo, specular, 1.0, 1.0, 1)
    return result


@ti.func
def evaluate_mirror(specular: vec3, n: vec3, wi: vec3, wo: vec3) -> SampledMaterial:
    """Evaluate the mirror delta distribution for a given direction.

    Returns a valid sample only when wo matches the reflection of wi within
    MIRROR_COS_EPSILON; any other direction has zero bsdf and pdf.
    """
    result = invalid_sample(wo)
    reflected = reflect(-wi, n)
    if tm.dot(reflected, wo) >= 1.0 - MIRROR_COS_EPSILON and tm.dot(n, wo) > 0.0:
        result = make_sample(wo, specular, 1.0, 1.0, 1)
    return result


# =============================================================================
# Rough Conductor
# =============================================================================


@ti.func
def evaluate_rough_conductor(
    specular: vec3, roughness: ti.f32, n: vec3, wi: vec3, wo: vec3
) -> SampledMaterial:
    """Evaluate the GGX conductor for a given outgoing direction.

    The microfacet normal is re-derived as the half vector of wi and wo.
    Smooth conductors have no finite density and always evaluate to zero.
    """
    result = invalid_sample(wo)
    n_dot_i = tm.dot(n, wi)
    n_dot_o = tm.dot(n, wo)
    if roughness >= SMOOTH_ROUGHNESS and n_dot_i > 0.0 and n_dot_o > 0.0:
        alpha = roughness_to_alpha(roughness)
        h = tm.normalize(wi + wo)
        n_dot_h = tm.dot(n, h)
        h_dot_o = tm.dot(h, wo)
        if h_dot_o > 0.0:
            d = ggx_distribution(n_dot_h, alpha)
            g = smith_g(wi, wo, h, n, alpha)
            f = fresnel_schlick(h_dot_o, specular)
            bsdf = f * (d * g / (4.0 * n_dot_i))
            pdf = d * n_dot_h / (4.0 * h_dot_o)
            result = make_sample(wo, bsdf, pdf, 1.0, 0)
    return result


@ti.func
def sample_rough_conductor(
    specular: vec3, roughness: ti.f32, n: vec3, wi: vec3, u1: ti.f32, u2: ti.f32
) -> SampledMaterial:
    """Sample a GGX microfacet, reflect wi about it and evaluate the result."""
    result = invalid_sample(n)
    if roughness < SMOOTH_ROUGHNESS:
        wo = reflect(-wi, n)
        if tm.dot(n, wo) > 0.0 and tm.dot(n, wi) > 0.0:
            result = make_sample(wo, fresnel_schlick(tm.dot(n, wi), specular), 1.0, 1.0, 1)
    else:
        m = sample_ggx_normal(n, roughness_to_alpha(roughness), u1, u2)
        wo = reflect(-wi, m)
        result = evaluate_rough_conductor(specular, roughness, n, wi, wo)
    return result
