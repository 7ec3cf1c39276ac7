"""Dielectric (glass/water) material with GGX rough refraction.

The side of the interface is decided from the sign of n.wI: when it is
negative the ray travels inside the medium, so the normal is flipped and the
indices of refraction swap. A microfacet normal m is sampled from GGX and the
dielectric Fresnel term F at m chooses between reflection (probability F) and
refraction through m (probability 1 - F).

With eta = eta_i / eta_t:

    reflection:   bsdf = specular * D * G * F / (4 * (n.wI))
                  pdf  = F * D * (n.m) / (4 * |m.wO|)
    transmission: bsdf = transmittance * (1 - F) * D * G * |m.wI * m.wO|
                         / ((n.wI) * (eta * m.wI + m.wO)^2)
                  pdf  = (1 - F) * D * (n.m) * |m.wO| / (eta * m.wI + m.wO)^2

``evaluate`` re-derives the branch from the hemisphere of wO alone and the
microfacet normal from the generalized half vector, so it agrees with
``sample`` without knowing which branch was chosen. Directions that end up on
the wrong side of the microfacet are reported invalid.

Dielectrics with roughness below SMOOTH_ROUGHNESS use the macro normal as the
only microfacet; both branches are then delta lobes.
"""

import taichi as ti
import taichi.math as tm

from mispath.core.ray import reflect, refract
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
def _orient_interface(n: vec3, wi: vec3, ext_ior: ti.f32, int_ior: ti.f32):
    """Flip the normal toward wi and order the indices of refraction.

    Returns:
        A tuple (normal, eta_i, eta_t) where normal faces wi, eta_i is the
        index on the wi side and eta_t the index on the other side.
    """
    nn = n
    eta_i = ext_ior
    eta_t = int_ior
    if tm.dot(n, wi) < 0.0:
        nn = -n
        eta_i = int_ior
        eta_t = ext_ior
    return nn, eta_i, eta_t


@ti.func
def evaluate_dielectric(
    specular: vec3,
    transmittance: vec3,
    roughness: ti.f32,
    ext_ior: ti.f32,
    int_ior: ti.f32,
    n: vec3,
    wi: vec3,
    wo: vec3,
) -> SampledMaterial:
    """Evaluate the rough dielectric for a given outgoing direction."""
    result = invalid_sample(wo)
    nn, eta_i, eta_t = _orient_interface(n, wi, ext_ior, int_ior)
    eta = eta_i / eta_t
    n_dot_i = tm.dot(nn, wi)
    n_dot_o = tm.dot(nn, wo)

    if roughness >= SMOOTH_ROUGHNESS and n_dot_i > 0.0 and n_dot_o != 0.0:
        alpha = roughness_to_alpha(roughness)
        is_reflection = n_dot_o > 0.0

        # Generalized half vector, oriented toward the incident side
        h = tm.normalize(wi + wo)
        if not is_reflection:
            h = -tm.normalize(eta * wi + wo)
        if tm.dot(h, nn) < 0.0:
            h = -h

        i_dot_h = tm.dot(wi, h)
        o_dot_h = tm.dot(wo, h)
        n_dot_h = tm.dot(nn, h)
        d = ggx_distribution(n_dot_h, alpha)
        g = smith_g(wi, wo, h, nn, alpha)
        f = fresnel_dielectric(i_dot_h, eta_i, eta_t)

        if is_reflection:
            if i_dot_h > 0.0 and o_dot_h > 0.0:
                bsdf = specular * (d * g * f / (4.0 * n_dot_i))
                pdf = f * d * n_dot_h / (4.0 * o_dot_h)
                result = make_sample(wo, bsdf, pdf, 1.0, 0)
        else:
            denom = eta * i_dot_h + o_dot_h
            denom2 = denom * denom
            if i_dot_h > 0.0 and o_dot_h < 0.0 and f < 1.0 and denom2 > 1e-12:
                bsdf = transmittance * (
                    (1.0 - f) * d * g * ti.abs(i_dot_h * o_dot_h) / (n_dot_i * denom2)
                )
                pdf = (1.0 - f) * d * n_dot_h * ti.abs(o_dot_h) / denom2
                result = make_sample(wo, bsdf, pdf, eta, 0)
    return result


@ti.func
def sample_dielectric(
    specular: vec3,
    transmittance: vec3,
    roughness: ti.f32,
    ext_ior: ti.f32,
    int_ior: ti.f32,
    n: vec3,
    wi: vec3,
    u1: ti.f32,
    u2: ti.f32,
    u_lobe: ti.f32,
) -> SampledMaterial:
    """Sample reflection or refraction through a GGX microfacet.

    Args:
        specular: Reflection tint.
        transmittance: Transmission tint.
        roughness: Surface roughness.
        ext_ior: Index of refraction on the side n points to.
        int_ior: Index of refraction on the other side.
        n: Shading normal in its original orientation.
        wi: Direction toward the previous vertex.
        u1: Microfacet polar variate.
        u2: Microfacet azimuth variate.
        u_lobe: Variate choosing reflection (< F) or refraction.

    Returns:
        The sampled direction with its bsdf, pdf and weight.
    """
    result = invalid_sample(n)
    nn, eta_i, eta_t = _orient_interface(n, wi, ext_ior, int_ior)
    eta = eta_i / eta_t

    if roughness < SMOOTH_ROUGHNESS:
        cos_i = tm.dot(nn, wi)
        f = fresnel_dielectric(cos_i, eta_i, eta_t)
        if u_lobe < f:
            wo = reflect(-wi, nn)
            result = make_sample(wo, specular * f, f, 1.0, 1)
        else:
            wo = refract(-wi, nn, eta)
            if tm.dot(nn, wo) < 0.0:
                result = make_sample(tm.normalize(wo), transmittance * (1.0 - f), 1.0 - f, eta, 1)
    else:
        m = sample_ggx_normal(nn, roughness_to_alpha(roughness), u1, u2)
        f = fresnel_dielectric(tm.dot(wi, m), eta_i, eta_t)
        wo = reflect(-wi, m)
        if u_lobe >= f:
            wo = refract(-wi, m, eta)
        if tm.dot(wo, wo) > 0.0:
            result = evaluate_dielectric(
                specular, transmittance, roughness, ext_ior, int_ior, n, wi, tm.normalize(wo)
            )
    return result
