"""Plastic material: a diffuse base under a dielectric GGX coating.

The coating reflects a Fresnel-weighted share of the light specularly and
passes the rest to the diffuse base:

    bsdf = diffuse / pi * (n.wO) * (1 - F)  +  specular * F * D * G / (4 * (n.wI))
    pdf  = (1 - Fs) * (n.wO) / pi          +  Fs * D * (n.m) / (4 * (m.wO))

F is the dielectric Fresnel term at the half vector m. Fs is the Fresnel term
at the shading normal; it is the probability with which ``sample`` picks the
specular lobe, so the reported pdf is the exact density of the sampler.

A smooth coating (roughness below SMOOTH_ROUGHNESS) turns the specular lobe
into a delta reflection about n, sampled with probability Fs. ``evaluate``
then reports the diffuse lobe alone, which keeps light sampling usable on
smooth plastic.
"""

import taichi as ti
import taichi.math as tm

from mispath.core.ray import reflect, sample_cosine_hemisphere
from mispath.materials.material import (
    SMOOTH_ROUGHNESS,
    SampledMaterial,
    invalid_sample,
    make_sample,
)
from mispath.materials.microfacet import (
    fresnel_dielectric,
    ggx_distribution,
    roughness_to_alpha,
    sample_ggx_normal,
    smith_g,
)

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def evaluate_plastic(
    diffuse: vec3,
    specular: vec3,
    roughness: ti.f32,
    ext_ior: ti.f32,
    int_ior: ti.f32,
    n: vec3,
    wi: vec3,
    wo: vec3,
) -> SampledMaterial:
    """Evaluate both plastic lobes for a given outgoing direction.

    Args:
        diffuse: Base color.
        specular: Coating tint.
        roughness: Coating roughness.
        ext_ior: Index of refraction outside the coating.
        int_ior: Index of refraction of the coating.
        n: Shading normal, already facing wi.
        wi: Direction toward the previous vertex.
        wo: Outgoing direction to evaluate.

    Returns:
        The combined sample; for a smooth coating only the diffuse lobe.
    """
    result = invalid_sample(wo)
    n_dot_i = tm.dot(n, wi)
    n_dot_o = tm.dot(n, wo)
    if n_dot_i > 0.0 and n_dot_o > 0.0:
        f_select = fresnel_dielectric(n_dot_i, ext_ior, int_ior)
        bsdf = vec3(0.0, 0.0, 0.0)
        pdf = 0.0
        if roughness < SMOOTH_ROUGHNESS:
            bsdf = diffuse * (n_dot_o / tm.pi * (1.0 - f_select))
            pdf = (1.0 - f_select) * n_dot_o / tm.pi
        else:
            alpha = roughness_to_alpha(roughness)
            h = tm.normalize(wi + wo)
            n_dot_h = tm.dot(n, h)
            h_dot_o = tm.dot(h, wo)
            f = fresnel_dielectric(h_dot_o, ext_ior, int_ior)
            bsdf = diffuse * (n_dot_o / tm.pi * (1.0 - f))
            pdf = (1.0 - f_select) * n_dot_o / tm.pi
            if h_dot_o > 0.0:
                d = ggx_distribution(n_dot_h, alpha)
                g = smith_g(wi, wo, h, n, alpha)
                bsdf += specular * (f * d * g / (4.0 * n_dot_i))
                pdf += f_select * d * n_dot_h / (4.0 * h_dot_o)
        result = make_sample(wo, bsdf, pdf, 1.0, 0)
    return result


@ti.func
def sample_plastic(
    diffuse: vec3,
    specular: vec3,
    roughness: ti.f32,
    ext_ior: ti.f32,
    int_ior: ti.f32,
    n: vec3,
    wi: vec3,
    u1: ti.f32,
    u2: ti.f32,
    u_lobe: ti.f32,
) -> SampledMaterial:
    """Pick the specular lobe with probability Fs, otherwise the diffuse one."""
    result = invalid_sample(n)
    n_dot_i = tm.dot(n, wi)
    if n_dot_i > 0.0:
        f_select = fresnel_dielectric(n_dot_i, ext_ior, int_ior)
        if u_lobe < f_select:
            if roughness < SMOOTH_ROUGHNESS:
                wo = reflect(-wi, n)
                result = make_sample(wo, specular * f_select, f_select, 1.0, 1)
            else:
                m = sample_ggx_normal(n, roughness_to_alpha(roughness), u1, u2)
                wo = reflect(-wi, m)
                result = evaluate_plastic(
                    diffuse, specular, roughness, ext_ior, int_ior, n, wi, wo
                )
        else:
            wo = sample_cosine_hemisphere(n, u1, u2)
            result = evaluate_plastic(diffuse, specular, roughness, ext_ior, int_ior, n, wi, wo)
    return result
