"""Materials module for BSDF models.

Components:
    material: Tagged material record, registry and SampledMaterial result
    microfacet: GGX distribution, Smith masking, Fresnel terms
    diffuse: Lambertian reflection
    conductor: Perfect mirror and GGX rough conductor
    plastic: Diffuse base under a dielectric coating
    dielectric: Rough and smooth glass with refraction
    bsdf: Dispatch of sample/evaluate on the material tag

Each material type provides:
    - sample(): Propose an outgoing direction and evaluate it
    - evaluate(): Evaluate a direction chosen elsewhere (light sampling)

All BSDF computations are implemented as Taichi functions.
"""

from .bsdf import evaluate_material, face_forward, is_delta_material, sample_material
from .conductor import (
    evaluate_mirror,
    evaluate_rough_conductor,
    sample_mirror,
    sample_rough_conductor,
)
from .dielectric import evaluate_dielectric, sample_dielectric
from .diffuse import evaluate_diffuse, pdf_diffuse, sample_diffuse
from .material import (
    MAX_MATERIALS,
    SMOOTH_ROUGHNESS,
    Material,
    MaterialParams,
    MaterialType,
    SampledMaterial,
    add_material,
    clear_materials,
    get_material,
    get_material_count,
    has_emission,
    invalid_sample,
    make_sample,
)
from .microfacet import (
    fresnel_dielectric,
    fresnel_schlick,
    ggx_distribution,
    roughness_to_alpha,
    sample_ggx_normal,
    smith_g,
    smith_g1,
)
from .plastic import evaluate_plastic, sample_plastic

__all__ = [
    # Records and registry
    "Material",
    "MaterialParams",
    "MaterialType",
    "SampledMaterial",
    "MAX_MATERIALS",
    "SMOOTH_ROUGHNESS",
    "add_material",
    "clear_materials",
    "get_material",
    "get_material_count",
    "has_emission",
    "invalid_sample",
    "make_sample",
    # Microfacet helpers
    "fresnel_dielectric",
    "fresnel_schlick",
    "ggx_distribution",
    "roughness_to_alpha",
    "sample_ggx_normal",
    "smith_g",
    "smith_g1",
    # Per-type models
    "evaluate_diffuse",
    "pdf_diffuse",
    "sample_diffuse",
    "evaluate_mirror",
    "sample_mirror",
    "evaluate_rough_conductor",
    "sample_rough_conductor",
    "evaluate_plastic",
    "sample_plastic",
    "evaluate_dielectric",
    "sample_dielectric",
    # Dispatch
    "evaluate_material",
    "face_forward",
    "is_delta_material",
    "sample_material",
]
