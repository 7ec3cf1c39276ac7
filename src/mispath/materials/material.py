"""Material records, the material registry and BSDF sample results.

Materials form a closed tagged variant: every material is one ``Material``
record whose ``mat_type`` selects the scattering model. The registry stores
materials in structure-of-arrays Taichi fields indexed by material id, and
``get_material`` reassembles a record inside kernels.

Every ``sample``/``evaluate`` operation returns a ``SampledMaterial``:

    direction: the outgoing direction wO
    bsdf:      f(wI, wO) * |n . wO|, the cosine-weighted scattering value (RGB)
    pdf:       solid-angle density of wO under the material's sampler
               (for delta lobes: the discrete lobe selection probability)
    weight:    bsdf / pdf, the factor multiplied into path throughput
    eta:       relative index of refraction crossed (1 for reflection)
    valid:     0 for degenerate samples, which carry zero bsdf and pdf
    delta:     1 if the direction came from a delta lobe

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from mispath.materials.material import MaterialParams, MaterialType, add_material
    >>> red = add_material(MaterialParams(MaterialType.DIFFUSE, diffuse=(0.8, 0.1, 0.1)))
"""

from dataclasses import dataclass
from enum import IntEnum

import taichi as ti
import taichi.math as tm

# Type alias for 3D vectors
vec3 = tm.vec3

# Roughness below which conductors, plastics and dielectrics use delta lobes
SMOOTH_ROUGHNESS = 1e-3


class MaterialType(IntEnum):
    """Enumeration of supported material types.

    Used for material dispatch in the integrator to determine which
    sample/evaluate pair to call.
    """

    DIFFUSE = 0
    MIRROR = 1
    ROUGH_CONDUCTOR = 2
    PLASTIC = 3
    DIELECTRIC = 4


@ti.dataclass
class Material:
    """A material record as seen by kernels.

    Attributes:
        mat_type: The MaterialType tag.
        diffuse: Diffuse reflectance (diffuse, plastic).
        specular: Specular reflectance (mirror, conductor, plastic, dielectric).
        transmittance: Transmission tint (dielectric).
        emissive: Emitted radiance; zero for non-emitters.
        roughness: Surface roughness in [0, 1]; GGX alpha is roughness squared.
        ext_ior: Index of refraction on the side the normal points to.
        int_ior: Index of refraction on the other side.
    """

    mat_type: ti.i32
    diffuse: vec3
    specular: vec3
    transmittance: vec3
    emissive: vec3
    roughness: ti.f32
    ext_ior: ti.f32
    int_ior: ti.f32


@ti.dataclass
class SampledMaterial:
    """Result of sampling or evaluating a material (see module docstring)."""

    direction: vec3
    bsdf: vec3
    pdf: ti.f32
    weight: vec3
    eta: ti.f32
    valid: ti.i32
    delta: ti.i32


@ti.func
def invalid_sample(direction: vec3) -> SampledMaterial:
    """A degenerate sample: no contribution, not an error."""
    return SampledMaterial(
        direction=direction,
        bsdf=vec3(0.0, 0.0, 0.0),
        pdf=0.0,
        weight=vec3(0.0, 0.0, 0.0),
        eta=1.0,
        valid=0,
        delta=0,
    )


@ti.func
def make_sample(
    direction: vec3, bsdf: vec3, pdf: ti.f32, eta: ti.f32, delta: ti.i32
) -> SampledMaterial:
    """Build a sample, deriving weight = bsdf / pdf.

    Samples with a non-positive pdf are reported as invalid.
    """
    result = invalid_sample(direction)
    if pdf > 0.0:
        result = SampledMaterial(
            direction=direction,
            bsdf=bsdf,
            pdf=pdf,
            weight=bsdf / pdf,
            eta=eta,
            valid=1,
            delta=delta,
        )
    return result


# =============================================================================
# Host-side Material Description
# =============================================================================


@dataclass
class MaterialParams:
    """Host-side description of a material.

    Attributes:
        material_type: The scattering model.
        diffuse: Diffuse reflectance, each component in [0, 1].
        specular: Specular reflectance, each component in [0, 1].
        transmittance: Transmission tint, each component in [0, 1].
        emissive: Emitted radiance, each component non-negative.
        roughness: Roughness in [0, 1].
        ext_ior: Exterior index of refraction (plastic, dielectric).
        int_ior: Interior index of refraction (plastic, dielectric).
    """

    material_type: MaterialType = MaterialType.DIFFUSE
    diffuse: tuple[float, float, float] = (0.0, 0.0, 0.0)
    specular: tuple[float, float, float] = (0.0, 0.0, 0.0)
    transmittance: tuple[float, float, float] = (0.0, 0.0, 0.0)
    emissive: tuple[float, float, float] = (0.0, 0.0, 0.0)
    roughness: float = 0.0
    ext_ior: float = 1.0
    int_ior: float = 1.5

    @property
    def is_emissive(self) -> bool:
        """Whether this material emits light."""
        return any(c > 0.0 for c in self.emissive)

    def validate(self) -> None:
        """Check parameter ranges.

        Raises:
            ValueError: If any parameter is out of range.
        """
        for name in ("diffuse", "specular", "transmittance"):
            color = getattr(self, name)
            for i, component in enumerate(color):
                if component < 0.0 or component > 1.0:
                    raise ValueError(
                        f"{name.capitalize()} component {i} = {component} is outside [0, 1]. "
                        "This would violate energy conservation."
                    )
        for i, component in enumerate(self.emissive):
            if component < 0.0:
                raise ValueError(f"Emissive component {i} = {component} is negative")
        if self.roughness < 0.0 or self.roughness > 1.0:
            raise ValueError(
                f"Roughness = {self.roughness} is outside [0, 1]. "
                "Roughness must be between 0 (smooth) and 1 (maximally rough)."
            )
        if self.ext_ior <= 0.0 or self.int_ior <= 0.0:
            raise ValueError(
                f"Indices of refraction must be positive (ext={self.ext_ior}, int={self.int_ior})"
            )

    def to_dict(self) -> dict:
        return {
            "type": self.material_type.name.lower(),
            "diffuse": list(self.diffuse),
            "specular": list(self.specular),
            "transmittance": list(self.transmittance),
            "emissive": list(self.emissive),
            "roughness": self.roughness,
            "ext_ior": self.ext_ior,
            "int_ior": self.int_ior,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MaterialParams":
        """Create parameters from a dictionary produced by ``to_dict``.

        Raises:
            ValueError: If the material type name is unknown.
        """
        type_name = str(data.get("type", "diffuse")).upper()
        if type_name not in MaterialType.__members__:
            raise ValueError(f"Unknown material type: {data.get('type')}")
        return cls(
            material_type=MaterialType[type_name],
            diffuse=tuple(data.get("diffuse", (0.0, 0.0, 0.0))),
            specular=tuple(data.get("specular", (0.0, 0.0, 0.0))),
            transmittance=tuple(data.get("transmittance", (0.0, 0.0, 0.0))),
            emissive=tuple(data.get("emissive", (0.0, 0.0, 0.0))),
            roughness=float(data.get("roughness", 0.0)),
            ext_ior=float(data.get("ext_ior", 1.0)),
            int_ior=float(data.get("int_ior", 1.5)),
        )


# =============================================================================
# Material Field Storage (for scene-level material management)
# =============================================================================

# Maximum number of materials in the scene
MAX_MATERIALS = 256

material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_diffuse = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_specular = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_transmittance = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_emissive = ti.Vector.field(3, dtype=ti.f32, shape=MAX_MATERIALS)
material_roughness = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_ext_ior = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
material_int_ior = ti.field(dtype=ti.f32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def clear_materials() -> None:
    """Clear all materials.

    Resets the material count to zero. Existing data in the fields will be
    overwritten when new materials are added.
    """
    num_materials[None] = 0


def add_material(params: MaterialParams) -> int:
    """Add a material to the registry.

    Args:
        params: The material description.

    Returns:
        The material id.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If any parameter is out of range.
    """
    params.validate()

    idx = num_materials[None]
    if idx >= MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")

    material_types[idx] = int(params.material_type)
    material_diffuse[idx] = vec3(*params.diffuse)
    material_specular[idx] = vec3(*params.specular)
    material_transmittance[idx] = vec3(*params.transmittance)
    material_emissive[idx] = vec3(*params.emissive)
    material_roughness[idx] = params.roughness
    material_ext_ior[idx] = params.ext_ior
    material_int_ior[idx] = params.int_ior
    num_materials[None] = idx + 1
    return idx


def get_material_count() -> int:
    """Get the number of materials in the registry."""
    return int(num_materials[None])


@ti.func
def get_material(material_id: ti.i32) -> Material:
    """Assemble the material record for a material id."""
    return Material(
        mat_type=material_types[material_id],
        diffuse=material_diffuse[material_id],
        specular=material_specular[material_id],
        transmittance=material_transmittance[material_id],
        emissive=material_emissive[material_id],
        roughness=material_roughness[material_id],
        ext_ior=material_ext_ior[material_id],
        int_ior=material_int_ior[material_id],
    )


@ti.func
def has_emission(material: Material) -> ti.i32:
    """1 if the material emits light in any channel."""
    e = material.emissive
    return e.x > 0.0 or e.y > 0.0 or e.z > 0.0
