"""Path tracing integrator: one bounce per pixel per tick.

Every pixel owns a persistent PathState. A tick advances each path by
exactly one bounce:

1. Intersect the current ray. A miss gathers the environment and completes
   the path.
2. An emitter hit from its front side adds its radiance, weighted by the
   power heuristic against the density with which light sampling would have
   produced the same point (weight 1 for camera rays and after delta bounces).
3. Next-event estimation samples one emitter triangle by area, a point on it
   and casts a shadow ray; the contribution is MIS-weighted the other way.
   It is skipped for materials made only of delta lobes and for scenes
   without emitters.
4. The material is sampled for the next direction; throughput is multiplied
   by bsdf / pdf and the pdf is remembered for step 2 of the next bounce.
5. From ``min_bounces_before_rr`` bounces on, Russian roulette keeps the path
   with probability q = min(max_rr_probability, max(throughput)) and divides
   the survivor's throughput by q.

Completed paths are merged into the frame accumulator on the tick they
complete and restart from the camera on the next tick, so path length is
unbounded without an unrolled bounce loop.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from mispath.config import IntegratorConfig
    >>> from mispath.core.accumulator import setup_render_target
    >>> from mispath.core.integrator import configure_integrator, reset_paths, tick
    >>> from mispath.core.sampler import RandomSampleSource
    >>>
    >>> setup_render_target(64, 48)
    >>> sampler = RandomSampleSource(64, 48, seed=1)
    >>> configure_integrator(IntegratorConfig(strategy="mis"))
    >>> reset_paths(64, 48)
    >>> sampler.advance()
    >>> tick(64, 48)
"""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

from mispath.camera.pinhole import get_ray_jittered
from mispath.config import IntegratorConfig
from mispath.core.accumulator import MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH, submit
from mispath.core.ray import max_component, offset_ray_origin
from mispath.core.sampler import (
    DIM_BSDF_U1,
    DIM_BSDF_U2,
    DIM_EMITTER,
    DIM_JITTER_U,
    DIM_JITTER_V,
    DIM_LOBE,
    DIM_POINT_U,
    DIM_POINT_V,
    DIM_ROULETTE,
    get_variate,
)
from mispath.materials.bsdf import evaluate_material, is_delta_material, sample_material
from mispath.materials.material import Material, get_material, has_emission
from mispath.scene.emitters import (
    emitter_solid_angle_pdf,
    light_pdf_at_hit,
    num_emitters,
    sample_emitter,
    sample_point_on_emitter,
)
from mispath.scene.intersection import T_MAX, T_MIN, intersect_scene

# Type alias for 3D vectors
vec3 = tm.vec3


class SamplingStrategy(IntEnum):
    """How emitter contributions are estimated.

    MIS combines light and BSDF sampling with the power heuristic.
    BSDF_ONLY disables light sampling; emitters are found by chance.
    LIGHT_ONLY counts BSDF-sampled emitter hits only where light sampling
    cannot reach them (camera rays and delta bounces).
    """

    MIS = 0
    BSDF_ONLY = 1
    LIGHT_ONLY = 2

    @classmethod
    def from_name(cls, name: str) -> "SamplingStrategy":
        """Map a config strategy name ("mis", "bsdf", "light") to the enum."""
        names = {"mis": cls.MIS, "bsdf": cls.BSDF_ONLY, "light": cls.LIGHT_ONLY}
        key = name.lower()
        if key not in names:
            raise ValueError(f"Unknown sampling strategy {name!r}; expected one of {list(names)}")
        return names[key]


@ti.dataclass
class PathState:
    """Persistent per-pixel path state.

    Attributes:
        origin: Origin of the ray to trace next.
        direction: Unit direction of the ray to trace next.
        throughput: Product of the bsdf / pdf weights so far.
        radiance: Radiance gathered by this path so far.
        bounce_count: Number of completed bounces.
        material_pdf: Solid-angle pdf of the last BSDF sample.
        specular_bounce: 1 if the last BSDF sample came from a delta lobe.
        completed: 1 once the path terminated and its radiance was harvested.
    """

    origin: vec3
    direction: vec3
    throughput: vec3
    radiance: vec3
    bounce_count: ti.i32
    material_pdf: ti.f32
    specular_bounce: ti.i32
    completed: ti.i32


path_states = PathState.field(shape=(MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT))

# Integrator settings (see configure_integrator)
_strategy = ti.field(dtype=ti.i32, shape=())
_min_bounces_before_rr = ti.field(dtype=ti.i32, shape=())
_max_rr_probability = ti.field(dtype=ti.f32, shape=())
_environment = ti.Vector.field(3, dtype=ti.f32, shape=())


def configure_integrator(config: IntegratorConfig) -> None:
    """Copy integrator settings into the fields read by kernels."""
    _strategy[None] = int(SamplingStrategy.from_name(config.strategy))
    _min_bounces_before_rr[None] = config.min_bounces_before_rr
    _max_rr_probability[None] = config.max_rr_probability
    _environment[None] = list(config.environment)


def get_strategy() -> SamplingStrategy:
    return SamplingStrategy(int(_strategy[None]))


# =============================================================================
# MIS and Russian Roulette
# =============================================================================


@ti.func
def power_heuristic(pdf_a: ti.f32, pdf_b: ti.f32) -> ti.f32:
    """Power heuristic weight a^2 / (a^2 + b^2) of strategy a, clamped to [0, 1].

    The larger term is derived as the complement of the smaller one, so the
    weights of the two strategies sum to exactly 1.
    """
    a2 = pdf_a * pdf_a
    b2 = pdf_b * pdf_b
    total = a2 + b2
    weight = 0.0
    if total > 0.0:
        if a2 <= b2:
            weight = a2 / total
        else:
            weight = 1.0 - b2 / total
    return ti.min(1.0, ti.max(0.0, weight))


@ti.func
def russian_roulette(throughput: vec3, xi: ti.f32, max_probability: ti.f32):
    """Randomly terminate a path, compensating survivors.

    Returns:
        A tuple (throughput, survived); the throughput is divided by the
        survival probability q when the path survives and zero otherwise.
    """
    q = ti.min(max_probability, max_component(throughput))
    survived = 0
    result = vec3(0.0, 0.0, 0.0)
    if q > 0.0 and xi < q:
        survived = 1
        result = throughput / q
    return result, survived


@ti.func
def emission_mis_weight(
    bounce_count: ti.i32,
    specular_bounce: ti.i32,
    material_pdf: ti.f32,
    light_pdf: ti.f32,
    strategy: ti.i32,
) -> ti.f32:
    """Weight of an emitter found by BSDF sampling."""
    weight = 1.0
    if bounce_count > 0 and specular_bounce == 0:
        if strategy == int(SamplingStrategy.LIGHT_ONLY):
            weight = 0.0
        elif strategy == int(SamplingStrategy.MIS):
            weight = power_heuristic(material_pdf, light_pdf)
    return weight


# =============================================================================
# Next-Event Estimation
# =============================================================================


@ti.func
def sample_direct_light(
    point: vec3,
    geometric_normal: vec3,
    shading_normal: vec3,
    wi: vec3,
    mat: Material,
    xi_emitter: ti.f32,
    xi_u: ti.f32,
    xi_v: ti.f32,
    strategy: ti.i32,
) -> vec3:
    """Radiance reaching ``point`` from one sampled emitter point.

    The result is already multiplied by bsdf, divided by the light pdf and
    MIS-weighted; the caller multiplies in the path throughput. Requires a
    non-empty emitter table.
    """
    contribution = vec3(0.0, 0.0, 0.0)
    emitter = sample_emitter(xi_emitter)
    light_point = sample_point_on_emitter(emitter, xi_u, xi_v)
    light_pdf = emitter_solid_angle_pdf(emitter, point, light_point)

    if light_pdf > 0.0:
        to_light = light_point - point
        direction = tm.normalize(to_light)
        s = evaluate_material(mat, shading_normal, wi, direction)
        if s.valid == 1:
            weight = 1.0
            if strategy == int(SamplingStrategy.MIS):
                weight = power_heuristic(light_pdf, s.pdf)

            shadow_origin = offset_ray_origin(point, geometric_normal, direction)
            shadow = intersect_scene(shadow_origin, direction, T_MIN, T_MAX)
            if shadow.hit == 1 and shadow.primitive_id == emitter.global_index:
                contribution = emitter.emissive * s.bsdf * (weight / light_pdf)
    return contribution


# =============================================================================
# Bounce State Machine
# =============================================================================


@ti.func
def new_camera_path(
    pixel_i: ti.i32,
    pixel_j: ti.i32,
    width: ti.i32,
    height: ti.i32,
    jitter_u: ti.f32,
    jitter_v: ti.f32,
) -> PathState:
    ray = get_ray_jittered(pixel_i, pixel_j, width, height, jitter_u, jitter_v)
    return PathState(
        origin=ray.origin,
        direction=ray.direction,
        throughput=vec3(1.0, 1.0, 1.0),
        radiance=vec3(0.0, 0.0, 0.0),
        bounce_count=0,
        material_pdf=0.0,
        specular_bounce=0,
        completed=0,
    )


@ti.func
def trace_bounce(state: PathState, pixel_i: ti.i32, pixel_j: ti.i32) -> PathState:
    """Advance an active path by one bounce using pixel (i, j)'s variates.

    Args:
        state: The active path state.
        pixel_i: Pixel column, selecting the variates.
        pixel_j: Pixel row, selecting the variates.

    Returns:
        The updated path state.
    """
    result = PathState(
        origin=state.origin,
        direction=state.direction,
        throughput=state.throughput,
        radiance=state.radiance,
        bounce_count=state.bounce_count,
        material_pdf=state.material_pdf,
        specular_bounce=state.specular_bounce,
        completed=state.completed,
    )
    strategy = _strategy[None]
    rec = intersect_scene(state.origin, state.direction, T_MIN, T_MAX)

    if rec.hit == 0:
        result.radiance += state.throughput * _environment[None]
        result.completed = 1
    else:
        mat = get_material(rec.material_id)
        wi = -state.direction

        # Emitter found by BSDF sampling (or by the camera ray)
        if has_emission(mat) and rec.front_face == 1:
            light_pdf = light_pdf_at_hit(state.origin, rec.point, rec.geometric_normal)
            weight = emission_mis_weight(
                state.bounce_count, state.specular_bounce, state.material_pdf, light_pdf, strategy
            )
            result.radiance += state.throughput * mat.emissive * weight

        # Emitter found by light sampling
        if (
            num_emitters[None] > 0
            and strategy != int(SamplingStrategy.BSDF_ONLY)
            and is_delta_material(mat) == 0
        ):
            direct = sample_direct_light(
                rec.point,
                rec.geometric_normal,
                rec.normal,
                wi,
                mat,
                get_variate(pixel_i, pixel_j, DIM_EMITTER),
                get_variate(pixel_i, pixel_j, DIM_POINT_U),
                get_variate(pixel_i, pixel_j, DIM_POINT_V),
                strategy,
            )
            result.radiance += state.throughput * direct

        # Next direction
        u = vec3(
            get_variate(pixel_i, pixel_j, DIM_BSDF_U1),
            get_variate(pixel_i, pixel_j, DIM_BSDF_U2),
            get_variate(pixel_i, pixel_j, DIM_LOBE),
        )
        s = sample_material(mat, rec.normal, wi, u)
        if s.valid == 0:
            result.throughput = vec3(0.0, 0.0, 0.0)
            result.completed = 1
        else:
            result.throughput = state.throughput * s.weight
            result.material_pdf = s.pdf
            result.specular_bounce = s.delta
            result.origin = offset_ray_origin(rec.point, rec.geometric_normal, s.direction)
            result.direction = s.direction
            result.bounce_count = state.bounce_count + 1

            if result.bounce_count >= _min_bounces_before_rr[None]:
                throughput, survived = russian_roulette(
                    result.throughput,
                    get_variate(pixel_i, pixel_j, DIM_ROULETTE),
                    _max_rr_probability[None],
                )
                result.throughput = throughput
                if survived == 0:
                    result.completed = 1
    return result


# =============================================================================
# Kernels
# =============================================================================


@ti.kernel
def _reset_paths_kernel(width: ti.i32, height: ti.i32):
    for i, j in ti.ndrange(width, height):
        path_states[i, j] = PathState(
            origin=vec3(0.0, 0.0, 0.0),
            direction=vec3(0.0, 0.0, 1.0),
            throughput=vec3(0.0, 0.0, 0.0),
            radiance=vec3(0.0, 0.0, 0.0),
            bounce_count=0,
            material_pdf=0.0,
            specular_bounce=0,
            completed=1,
        )


def reset_paths(width: int, height: int) -> None:
    """Mark every path completed so the next tick starts fresh camera paths."""
    _reset_paths_kernel(width, height)


@ti.kernel
def _tick_kernel(width: ti.i32, height: ti.i32):
    for i, j in ti.ndrange(width, height):
        state = path_states[i, j]
        if state.completed == 1:
            state = new_camera_path(
                i,
                j,
                width,
                height,
                get_variate(i, j, DIM_JITTER_U),
                get_variate(i, j, DIM_JITTER_V),
            )
        state = trace_bounce(state, i, j)
        if state.completed == 1:
            submit(i, j, state.radiance)
        path_states[i, j] = state


def tick(width: int, height: int) -> None:
    """Advance every pixel's path by one bounce.

    The sample source must have been advanced for this tick beforehand.
    """
    _tick_kernel(width, height)


@ti.kernel
def _step_path_kernel(i: ti.i32, j: ti.i32):
    # Single-iteration outer loop so the triangle loops inside stay serial
    for _ in range(1):
        path_states[i, j] = trace_bounce(path_states[i, j], i, j)


def _check_pixel(i: int, j: int) -> None:
    if not (0 <= i < MAX_IMAGE_WIDTH and 0 <= j < MAX_IMAGE_HEIGHT):
        raise ValueError(
            f"Pixel ({i}, {j}) outside path state {MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT}"
        )


def step_path(i: int, j: int) -> None:
    """Advance a single active path by one bounce, without accumulating it.

    Raises:
        ValueError: If the pixel lies outside the path state.
    """
    _check_pixel(i, j)
    _step_path_kernel(i, j)


# =============================================================================
# Host Access
# =============================================================================


def _read_vec3(fld, i: int, j: int) -> tuple[float, float, float]:
    value = fld[i, j]
    return (float(value[0]), float(value[1]), float(value[2]))


def get_path_state(i: int, j: int) -> dict:
    """Read pixel (i, j)'s path state into a plain dictionary."""
    _check_pixel(i, j)
    return {
        "origin": _read_vec3(path_states.origin, i, j),
        "direction": _read_vec3(path_states.direction, i, j),
        "throughput": _read_vec3(path_states.throughput, i, j),
        "radiance": _read_vec3(path_states.radiance, i, j),
        "bounce_count": int(path_states.bounce_count[i, j]),
        "material_pdf": float(path_states.material_pdf[i, j]),
        "specular_bounce": int(path_states.specular_bounce[i, j]),
        "completed": int(path_states.completed[i, j]),
    }


def set_path_state(
    i: int,
    j: int,
    origin: tuple[float, float, float],
    direction: tuple[float, float, float],
    throughput: tuple[float, float, float] = (1.0, 1.0, 1.0),
    radiance: tuple[float, float, float] = (0.0, 0.0, 0.0),
    bounce_count: int = 0,
    material_pdf: float = 0.0,
    specular_bounce: int = 0,
    completed: int = 0,
) -> None:
    """Overwrite pixel (i, j)'s path state; the direction is normalized.

    Raises:
        ValueError: If the pixel lies outside the path state or the direction is zero.
    """
    _check_pixel(i, j)
    d = [float(c) for c in direction]
    norm = sum(c * c for c in d) ** 0.5
    if norm == 0.0:
        raise ValueError("Path direction must be non-zero")
    path_states.origin[i, j] = [float(c) for c in origin]
    path_states.direction[i, j] = [c / norm for c in d]
    path_states.throughput[i, j] = [float(c) for c in throughput]
    path_states.radiance[i, j] = [float(c) for c in radiance]
    path_states.bounce_count[i, j] = bounce_count
    path_states.material_pdf[i, j] = material_pdf
    path_states.specular_bounce[i, j] = specular_bounce
    path_states.completed[i, j] = completed
