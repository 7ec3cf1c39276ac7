"""Cornell box scene configuration.

The classic Cornell box, built entirely from triangles:
- 5 walls forming an open box (left red, right green, white back/floor/ceiling)
- A rectangular area light just below the ceiling, facing down
- 3 spheres showing the non-diffuse materials: plastic, rough conductor, glass

The box spans [0, box_size] on every axis; the camera sits outside the open
front (negative z) looking toward +z.

Example:
    >>> from mispath.scene.cornell_box import create_cornell_box_scene
    >>> from mispath.camera.pinhole import setup_camera
    >>> scene, camera, light_mat = create_cornell_box_scene()
    >>> scene.build()
    >>> setup_camera(camera)
"""

from dataclasses import dataclass

from mispath.camera.pinhole import PinholeCamera
from mispath.scene.manager import SceneManager

# =============================================================================
# Cornell Box Parameters
# =============================================================================


@dataclass
class CornellBoxParams:
    """Parameters for customizing the Cornell box.

    Attributes:
        light_intensity: Scale applied to light_color for the emitted radiance.
        light_color: RGB color of the light.
        left_wall_color: Albedo of the wall on the viewer's left.
        right_wall_color: Albedo of the wall on the viewer's right.
        back_wall_color: Albedo of the back wall, floor and ceiling.
        sphere_rings: Latitude bands of each sphere's tessellation.
        sphere_segments: Longitude slices of each sphere's tessellation.

    Example:
        >>> CornellBoxParams(light_intensity=20.0, light_color=(1.0, 0.9, 0.8))
    """

    light_intensity: float = 15.0
    light_color: tuple[float, float, float] = (1.0, 1.0, 1.0)
    left_wall_color: tuple[float, float, float] = (0.65, 0.05, 0.05)
    right_wall_color: tuple[float, float, float] = (0.12, 0.45, 0.15)
    back_wall_color: tuple[float, float, float] = (0.73, 0.73, 0.73)
    sphere_rings: int = 16
    sphere_segments: int = 32


# =============================================================================
# Cornell Box Constants
# =============================================================================

BOX_SIZE = 5.55

LIGHT_WIDTH = 1.30
LIGHT_DEPTH = 1.05
# Gap between the light and the ceiling
LIGHT_INSET = 0.01

SPHERE_RADIUS = 0.8

PLASTIC_SPHERE_DIFFUSE = (0.1, 0.25, 0.7)
PLASTIC_SPHERE_ROUGHNESS = 0.1

METAL_SPHERE_SPECULAR = (0.95, 0.93, 0.88)
METAL_SPHERE_ROUGHNESS = 0.3

GLASS_SPHERE_IOR = 1.5


# =============================================================================
# Cornell Box Factory
# =============================================================================


def create_cornell_box_scene(
    box_size: float = BOX_SIZE,
    params: CornellBoxParams | None = None,
) -> tuple[SceneManager, PinholeCamera, int]:
    """Create the Cornell box scene.

    The scene is populated but not built; call ``scene.build()`` before
    rendering.

    Args:
        box_size: Edge length of the box.
        params: Optional CornellBoxParams; defaults are used when None.

    Returns:
        A tuple (SceneManager, PinholeCamera, light_material_id).
    """
    if params is None:
        params = CornellBoxParams()

    scene = SceneManager()
    s = box_size

    # Materials
    left_mat = scene.add_diffuse_material(params.left_wall_color)
    right_mat = scene.add_diffuse_material(params.right_wall_color)
    white_mat = scene.add_diffuse_material(params.back_wall_color)
    light_emission = tuple(c * params.light_intensity for c in params.light_color)
    light_mat = scene.add_light_material(light_emission)
    plastic_mat = scene.add_plastic_material(
        diffuse=PLASTIC_SPHERE_DIFFUSE, roughness=PLASTIC_SPHERE_ROUGHNESS
    )
    metal_mat = scene.add_rough_conductor_material(
        specular=METAL_SPHERE_SPECULAR, roughness=METAL_SPHERE_ROUGHNESS
    )
    glass_mat = scene.add_dielectric_material(int_ior=GLASS_SPHERE_IOR)

    # Walls, each facing into the box
    scene.add_quad((0.0, 0.0, 0.0), (0.0, s, 0.0), (0.0, 0.0, s), left_mat)
    scene.add_quad((s, 0.0, 0.0), (0.0, 0.0, s), (0.0, s, 0.0), right_mat)
    scene.add_quad((0.0, 0.0, s), (0.0, s, 0.0), (s, 0.0, 0.0), white_mat)
    scene.add_quad((0.0, 0.0, 0.0), (0.0, 0.0, s), (s, 0.0, 0.0), white_mat)
    scene.add_quad((0.0, s, 0.0), (s, 0.0, 0.0), (0.0, 0.0, s), white_mat)

    # Area light, facing down
    light = get_light_quad_info(box_size)
    scene.add_quad(light["corner"], light["edge_u"], light["edge_v"], light_mat)

    # Spheres resting on the floor
    r = SPHERE_RADIUS * box_size / BOX_SIZE
    rings = params.sphere_rings
    segments = params.sphere_segments
    scene.add_sphere((s * 0.27, r, s * 0.35), r, plastic_mat, rings, segments)
    scene.add_sphere((s * 0.73, r, s * 0.35), r, metal_mat, rings, segments)
    scene.add_sphere((s * 0.5, r, s * 0.65), r, glass_mat, rings, segments)

    camera_distance = 8.0 * box_size / BOX_SIZE
    camera = PinholeCamera(
        lookfrom=(s / 2.0, s / 2.0, -camera_distance),
        lookat=(s / 2.0, s / 2.0, s / 2.0),
        vup=(0.0, 1.0, 0.0),
        vfov=40.0,
        aspect_ratio=1.0,
    )
    return scene, camera, light_mat


def get_light_quad_info(box_size: float = BOX_SIZE) -> dict[str, tuple[float, float, float]]:
    """Geometry of the ceiling light.

    Returns:
        A dictionary with 'corner', 'edge_u', 'edge_v' (cross(edge_u, edge_v)
        points down) and 'center'.
    """
    scale = box_size / BOX_SIZE
    width = LIGHT_WIDTH * scale
    depth = LIGHT_DEPTH * scale
    x0 = (box_size - width) / 2.0
    z0 = (box_size - depth) / 2.0
    y = box_size - LIGHT_INSET * scale
    return {
        "corner": (x0, y, z0),
        "edge_u": (width, 0.0, 0.0),
        "edge_v": (0.0, 0.0, depth),
        "center": (x0 + width / 2.0, y, z0 + depth / 2.0),
    }


def get_cornell_box_bounds(box_size: float = BOX_SIZE) -> dict[str, tuple[float, float, float]]:
    """Bounding box of the scene as 'min', 'max' and 'center' corners."""
    half = box_size / 2.0
    return {
        "min": (0.0, 0.0, 0.0),
        "max": (box_size, box_size, box_size),
        "center": (half, half, half),
    }
