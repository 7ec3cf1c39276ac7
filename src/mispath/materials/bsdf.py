"""Material dispatch for the integrator.

``sample_material`` and ``evaluate_material`` branch once on the material
tag and call the matching per-type function. Every material except the
dielectric is two-sided: the shading normal is flipped to face wI before the
per-type code runs. Dielectrics need the original orientation to tell
entering from exiting rays.

The variate vector passed to ``sample_material`` holds two direction
variates followed by the lobe selection variate.
"""

import taichi as ti
import taichi.math as tm

from mispath.materials.conductor import (
    evaluate_mirror,
    evaluate_rough_conductor,
    sample_mirror,
    sample_rough_conductor,
)
from mispath.materials.dielectric import evaluate_dielectric, sample_dielectric
from mispath.materials.diffuse import evaluate_diffuse, sample_diffuse
from mispath.materials.material import (
    SMOOTH_ROUGHNESS,
    Material,
    MaterialType,
    SampledMaterial,
    invalid_sample,
)
from mispath.materials.plastic import evaluate_plastic, sample_plastic

# Type alias for 3D vectors
vec3 = tm.vec3


@ti.func
def face_forward(n: vec3, wi: vec3) -> vec3:
    """Return n flipped, if needed, so that it lies in the hemisphere of wi."""
    result = n
    if tm.dot(n, wi) < 0.0:
        result = -n
    return result


@ti.func
def is_delta_material(mat: Material) -> ti.i32:
    """1 if every lobe of the material is a delta distribution.

    Light sampling cannot contribute at such a vertex and is skipped.
    """
    result = 0
    if mat.mat_type == int(MaterialType.MIRROR):
        result = 1
    elif mat.mat_type == int(MaterialType.ROUGH_CONDUCTOR) or mat.mat_type == int(
        MaterialType.DIELECTRIC
    ):
        if mat.roughness < SMOOTH_ROUGHNESS:
            result = 1
    return result


@ti.func
def sample_material(mat: Material, n: vec3, wi: vec3, u: vec3) -> SampledMaterial:
    """Sample an outgoing direction for the material at a surface point.

    Args:
        mat: The material record.
        n: The shading normal (any orientation).
        wi: Unit direction toward the previous path vertex.
        u: Variates (direction u1, direction u2, lobe selection).

    Returns:
        The sampled direction with its bsdf, pdf and weight.
    """
    result = invalid_sample(n)
    ns = face_forward(n, wi)
    if mat.mat_type == int(MaterialType.DIFFUSE):
        result = sample_diffuse(mat.diffuse, ns, wi, u.x, u.y)
    elif mat.mat_type == int(MaterialType.MIRROR):
        result = sample_mirror(mat.specular, ns, wi)
    elif mat.mat_type == int(MaterialType.ROUGH_CONDUCTOR):
        result = sample_rough_conductor(mat.specular, mat.roughness, ns, wi, u.x, u.y)
    elif mat.mat_type == int(MaterialType.PLASTIC):
        result = sample_plastic(
            mat.diffuse, mat.specular, mat.roughness, mat.ext_ior, mat.int_ior, ns, wi, u.x, u.y, u.z
        )
    elif mat.mat_type == int(MaterialType.DIELECTRIC):
        result = sample_dielectric(
            mat.specular,
            mat.transmittance,
            mat.roughness,
            mat.ext_ior,
            mat.int_ior,
            n,
            wi,
            u.x,
            u.y,
            u.z,
        )
    return result


@ti.func
def evaluate_material(mat: Material, n: vec3, wi: vec3, wo: vec3) -> SampledMaterial:
    """Evaluate the material for a direction chosen elsewhere (light sampling)."""
    result = invalid_sample(wo)
    ns = face_forward(n, wi)
    if mat.mat_type == int(MaterialType.DIFFUSE):
        result = evaluate_diffuse(mat.diffuse, ns, wi, wo)
    elif mat.mat_type == int(MaterialType.MIRROR):
        result = evaluate_mirror(mat.specular, ns, wi, wo)
    elif mat.mat_type == int(MaterialType.ROUGH_CONDUCTOR):
        result = evaluate_rough_conductor(mat.specular, mat.roughness, ns, wi, wo)
    elif mat.mat_type == int(MaterialType.PLASTIC):
        result = evaluate_plastic(
            mat.diffuse, mat.specular, mat.roughness, mat.ext_ior, mat.int_ior, ns, wi, wo
        )
    elif mat.mat_type == int(MaterialType.DIELECTRIC):
        result = evaluate_dielectric(
            mat.specular, mat.transmittance, mat.roughness, mat.ext_ior, mat.int_ior, n, wi, wo
        )
    return result
