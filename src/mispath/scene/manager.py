"""Scene manager coordinating materials, triangle geometry and emitters.

Materials go straight into the material registry when they are added.
Geometry is collected on the host as indexed triangle lists and uploaded by
``build()``, which is the scene-load step: it fills the triangle storage used
by ``intersect_scene`` and derives the EmitterTable from every triangle whose
material emits. Nothing is mutated on the device while rendering.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from mispath.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> white = scene.add_diffuse_material((0.73, 0.73, 0.73))
    >>> light = scene.add_light_material((15.0, 15.0, 15.0))
    >>> scene.add_sphere((0.0, 1.0, 0.0), 1.0, white)
    >>> scene.add_quad((-0.5, 3.0, -0.5), (0.0, 0.0, 1.0), (1.0, 0.0, 0.0), light)
    >>> scene.build()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from mispath.geometry.meshes import make_box_mesh, make_quad_mesh, make_uv_sphere_mesh
from mispath.materials.material import (
    MAX_MATERIALS,
    MaterialParams,
    MaterialType,
    add_material,
    clear_materials,
)
from mispath.scene.emitters import EmitterTable, clear_emitters
from mispath.scene.intersection import (
    MAX_TRIANGLES,
    MAX_VERTICES,
    clear_scene,
    upload_geometry,
)

logger = logging.getLogger(__name__)


@dataclass
class ShapeInfo:
    """A shape added to the scene, kept for serialization.

    Attributes:
        kind: One of "triangle", "mesh", "quad", "box", "sphere".
        params: The arguments the shape was created with.
        material_id: Material of every triangle of the shape.
        first_triangle: Index of the shape's first triangle in the scene.
        triangle_count: Number of triangles the shape contributed.
    """

    kind: str
    params: dict[str, Any]
    material_id: int
    first_triangle: int
    triangle_count: int


@dataclass
class SceneConfig:
    """Configuration for scene serialization.

    Attributes:
        materials: List of material dictionaries (``MaterialParams.to_dict``).
        shapes: List of shape dictionaries.
    """

    materials: list[dict[str, Any]] = field(default_factory=list)
    shapes: list[dict[str, Any]] = field(default_factory=list)


def _vec3(value) -> tuple[float, float, float]:
    x, y, z = value
    return (float(x), float(y), float(z))


class SceneManager:
    """High-level scene builder.

    Attributes:
        materials: MaterialParams of every registered material, by id.
        shapes: ShapeInfo of every shape, in insertion order.
        emitter_table: The EmitterTable produced by the last ``build()``.

    Example:
        >>> scene = SceneManager()
        >>> gold = scene.add_rough_conductor_material((1.0, 0.78, 0.34), roughness=0.3)
        >>> glass = scene.add_dielectric_material(roughness=0.0)
        >>> scene.add_sphere((0.0, 0.0, -1.0), 0.5, gold)
        >>> scene.build()
    """

    def __init__(self) -> None:
        self.materials: list[MaterialParams] = []
        self.shapes: list[ShapeInfo] = []
        self.emitter_table: EmitterTable | None = None
        self._vertices: list[np.ndarray] = []
        self._normals: list[np.ndarray] = []
        self._indices: list[np.ndarray] = []
        self._material_ids: list[np.ndarray] = []
        self._smooth: list[np.ndarray] = []
        self._vertex_count = 0
        self._triangle_count = 0
        self._built = False
        self._clear_all()

    def _clear_all(self) -> None:
        clear_scene()
        clear_materials()
        clear_emitters()
        self.materials.clear()
        self.shapes.clear()
        self.emitter_table = None
        self._vertices.clear()
        self._normals.clear()
        self._indices.clear()
        self._material_ids.clear()
        self._smooth.clear()
        self._vertex_count = 0
        self._triangle_count = 0
        self._built = False

    def clear(self) -> None:
        """Clear the entire scene (geometry, materials and emitters)."""
        self._clear_all()

    # =========================================================================
    # Material Management
    # =========================================================================

    def add_material(self, params: MaterialParams) -> int:
        """Register a material.

        Returns:
            The material id.

        Raises:
            RuntimeError: If the maximum number of materials is exceeded.
            ValueError: If any parameter is out of range.
        """
        material_id = add_material(params)
        self.materials.append(params)
        return material_id

    def add_diffuse_material(
        self,
        diffuse: tuple[float, float, float],
        emissive: tuple[float, float, float] = (0.0, 0.0, 0.0),
    ) -> int:
        return self.add_material(
            MaterialParams(MaterialType.DIFFUSE, diffuse=_vec3(diffuse), emissive=_vec3(emissive))
        )

    def add_light_material(
        self,
        emissive: tuple[float, float, float],
        diffuse: tuple[float, float, float] = (0.0, 0.0, 0.0),
    ) -> int:
        """Add a diffuse emitter; triangles using it become light sources."""
        if not any(c > 0.0 for c in emissive):
            raise ValueError(f"Light material needs positive emission, got {emissive}")
        return self.add_diffuse_material(diffuse, emissive)

    def add_mirror_material(self, specular: tuple[float, float, float] = (1.0, 1.0, 1.0)) -> int:
        return self.add_material(MaterialParams(MaterialType.MIRROR, specular=_vec3(specular)))

    def add_rough_conductor_material(
        self,
        specular: tuple[float, float, float],
        roughness: float,
    ) -> int:
        """Add a GGX conductor; ``specular`` is the normal-incidence reflectance."""
        return self.add_material(
            MaterialParams(
                MaterialType.ROUGH_CONDUCTOR, specular=_vec3(specular), roughness=float(roughness)
            )
        )

    def add_plastic_material(
        self,
        diffuse: tuple[float, float, float],
        specular: tuple[float, float, float] = (1.0, 1.0, 1.0),
        roughness: float = 0.1,
        ext_ior: float = 1.0,
        int_ior: float = 1.5,
    ) -> int:
        return self.add_material(
            MaterialParams(
                MaterialType.PLASTIC,
                diffuse=_vec3(diffuse),
                specular=_vec3(specular),
                roughness=float(roughness),
                ext_ior=float(ext_ior),
                int_ior=float(int_ior),
            )
        )

    def add_dielectric_material(
        self,
        specular: tuple[float, float, float] = (1.0, 1.0, 1.0),
        transmittance: tuple[float, float, float] = (1.0, 1.0, 1.0),
        roughness: float = 0.0,
        ext_ior: float = 1.0,
        int_ior: float = 1.5,
    ) -> int:
        """Add a glass-like material; the normal points toward the ``ext_ior`` side."""
        return self.add_material(
            MaterialParams(
                MaterialType.DIELECTRIC,
                specular=_vec3(specular),
                transmittance=_vec3(transmittance),
                roughness=float(roughness),
                ext_ior=float(ext_ior),
                int_ior=float(int_ior),
            )
        )

    def get_material_count(self) -> int:
        return len(self.materials)

    def get_material_params(self, material_id: int) -> MaterialParams | None:
        """Get the parameters of a material, or None for an unknown id."""
        if 0 <= material_id < len(self.materials):
            return self.materials[material_id]
        return None

    # =========================================================================
    # Geometry
    # =========================================================================

    def _check_material_id(self, material_id: int) -> None:
        if not 0 <= material_id < len(self.materials):
            raise ValueError(
                f"Unknown material id {material_id}; {len(self.materials)} material(s) registered"
            )

    def _append_geometry(
        self,
        kind: str,
        params: dict[str, Any],
        material_id: int,
        vertices: np.ndarray,
        indices: np.ndarray,
        normals: np.ndarray | None = None,
    ) -> int:
        self._check_material_id(material_id)
        vertices = np.asarray(vertices, dtype=np.float32).reshape(-1, 3)
        indices = np.asarray(indices, dtype=np.int32).reshape(-1, 3)
        if indices.size and (indices.min() < 0 or indices.max() >= vertices.shape[0]):
            raise ValueError("Triangle indices reference vertices outside the given array")
        if self._vertex_count + vertices.shape[0] > MAX_VERTICES:
            raise RuntimeError(f"Maximum number of vertices ({MAX_VERTICES}) exceeded")
        if self._triangle_count + indices.shape[0] > MAX_TRIANGLES:
            raise RuntimeError(f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded")

        smooth = normals is not None
        if normals is None:
            normals = np.zeros_like(vertices)
        else:
            normals = np.asarray(normals, dtype=np.float32).reshape(-1, 3)
            if normals.shape != vertices.shape:
                raise ValueError("Normals must have the same shape as vertices")

        first_triangle = self._triangle_count
        self._vertices.append(vertices)
        self._normals.append(normals)
        self._indices.append(indices + self._vertex_count)
        self._material_ids.append(np.full(indices.shape[0], material_id, dtype=np.int32))
        self._smooth.append(np.full(indices.shape[0], int(smooth), dtype=np.int32))
        self._vertex_count += vertices.shape[0]
        self._triangle_count += indices.shape[0]
        self._built = False

        self.shapes.append(
            ShapeInfo(
                kind=kind,
                params=params,
                material_id=material_id,
                first_triangle=first_triangle,
                triangle_count=indices.shape[0],
            )
        )
        return first_triangle

    def add_triangle(self, v0, v1, v2, material_id: int) -> int:
        """Add a single flat triangle; returns its triangle index."""
        vertices = np.array([_vec3(v0), _vec3(v1), _vec3(v2)], dtype=np.float32)
        params = {"v0": list(_vec3(v0)), "v1": list(_vec3(v1)), "v2": list(_vec3(v2))}
        return self._append_geometry("triangle", params, material_id, vertices, [[0, 1, 2]])

    def add_mesh(
        self,
        vertices: np.ndarray,
        indices: np.ndarray,
        material_id: int,
        normals: np.ndarray | None = None,
    ) -> int:
        """Add an indexed triangle mesh.

        Args:
            vertices: (V, 3) positions.
            indices: (T, 3) vertex indices, counter-clockwise seen from the front.
            material_id: Material of every triangle.
            normals: Optional (V, 3) vertex normals enabling smooth shading.

        Returns:
            Index of the mesh's first triangle.

        Raises:
            ValueError: For an unknown material or inconsistent arrays.
            RuntimeError: If the scene capacity is exceeded.
        """
        params: dict[str, Any] = {
            "vertices": np.asarray(vertices, dtype=float).reshape(-1, 3).tolist(),
            "indices": np.asarray(indices, dtype=int).reshape(-1, 3).tolist(),
        }
        if normals is not None:
            params["normals"] = np.asarray(normals, dtype=float).reshape(-1, 3).tolist()
        return self._append_geometry("mesh", params, material_id, vertices, indices, normals)

    def add_quad(self, corner, edge_u, edge_v, material_id: int) -> int:
        """Add a parallelogram facing along cross(edge_u, edge_v)."""
        vertices, indices = make_quad_mesh(corner, edge_u, edge_v)
        params = {
            "corner": list(_vec3(corner)),
            "edge_u": list(_vec3(edge_u)),
            "edge_v": list(_vec3(edge_v)),
        }
        return self._append_geometry("quad", params, material_id, vertices, indices)

    def add_box(self, box_min, box_max, material_id: int) -> int:
        """Add an axis-aligned box with outward-facing triangles."""
        vertices, indices = make_box_mesh(box_min, box_max)
        params = {"box_min": list(_vec3(box_min)), "box_max": list(_vec3(box_max))}
        return self._append_geometry("box", params, material_id, vertices, indices)

    def add_sphere(
        self,
        center,
        radius: float,
        material_id: int,
        rings: int = 24,
        segments: int = 48,
    ) -> int:
        """Add a UV-tessellated sphere with smooth vertex normals."""
        vertices, indices, normals = make_uv_sphere_mesh(center, radius, rings, segments)
        params = {
            "center": list(_vec3(center)),
            "radius": float(radius),
            "rings": int(rings),
            "segments": int(segments),
        }
        return self._append_geometry("sphere", params, material_id, vertices, indices, normals)

    # =========================================================================
    # Scene Load
    # =========================================================================

    def build(self) -> EmitterTable:
        """Upload geometry and derive the emitter table.

        Returns:
            The EmitterTable of the scene (possibly empty).
        """
        clear_scene()
        if self._triangle_count > 0:
            vertices = np.concatenate(self._vertices)
            normals = np.concatenate(self._normals)
            indices = np.concatenate(self._indices)
            material_ids = np.concatenate(self._material_ids)
            smooth = np.concatenate(self._smooth)
            upload_geometry(vertices, indices, material_ids, normals=normals, smooth=smooth)
        else:
            vertices = np.zeros((0, 3), dtype=np.float32)
            indices = np.zeros((0, 3), dtype=np.int32)
            material_ids = np.zeros(0, dtype=np.int32)

        emissive = np.array(
            [m.emissive for m in self.materials] or [(0.0, 0.0, 0.0)], dtype=np.float32
        )
        table = EmitterTable.build(vertices, indices, material_ids, emissive)
        table.upload()
        self.emitter_table = table
        self._built = True

        logger.info(
            "Scene built: %d triangle(s), %d vertices, %d material(s), %d emitter(s)",
            self._triangle_count,
            self._vertex_count,
            len(self.materials),
            len(table),
        )
        return table

    @property
    def is_built(self) -> bool:
        """Whether the device data matches the shapes added so far."""
        return self._built

    def get_triangle_count(self) -> int:
        return self._triangle_count

    def get_vertex_count(self) -> int:
        return self._vertex_count

    def get_shape_count(self) -> int:
        return len(self.shapes)

    def get_emitter_count(self) -> int:
        """Number of emitter table entries; 0 before ``build()``."""
        return 0 if self.emitter_table is None else len(self.emitter_table)

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        config = SceneConfig()
        for params in self.materials:
            config.materials.append(params.to_dict())
        for shape in self.shapes:
            config.shapes.append(
                {"type": shape.kind, "material_id": shape.material_id, **shape.params}
            )
        return config

    def from_config(self, config: SceneConfig) -> None:
        """Load a scene from a configuration object.

        Clears the current scene first. The scene still needs ``build()``.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()

        for material in config.materials:
            self.add_material(MaterialParams.from_dict(material))

        for shape in config.shapes:
            kind = str(shape.get("type", "")).lower()
            material_id = int(shape.get("material_id", 0))
            if kind == "triangle":
                self.add_triangle(shape["v0"], shape["v1"], shape["v2"], material_id)
            elif kind == "mesh":
                self.add_mesh(
                    np.asarray(shape["vertices"], dtype=np.float32),
                    np.asarray(shape["indices"], dtype=np.int32),
                    material_id,
                    normals=shape.get("normals"),
                )
            elif kind == "quad":
                self.add_quad(shape["corner"], shape["edge_u"], shape["edge_v"], material_id)
            elif kind == "box":
                self.add_box(shape["box_min"], shape["box_max"], material_id)
            elif kind == "sphere":
                self.add_sphere(
                    shape["center"],
                    shape["radius"],
                    material_id,
                    rings=int(shape.get("rings", 24)),
                    segments=int(shape.get("segments", 48)),
                )
            else:
                raise ValueError(f"Unknown shape type: {kind}")

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {"materials": config.materials, "shapes": config.shapes}

    def from_dict(self, data: dict[str, Any]) -> None:
        """Load a scene from a dictionary with 'materials' and 'shapes' keys."""
        self.from_config(
            SceneConfig(materials=data.get("materials", []), shapes=data.get("shapes", []))
        )

    # =========================================================================
    # Capacity Information
    # =========================================================================

    @staticmethod
    def get_max_triangles() -> int:
        return MAX_TRIANGLES

    @staticmethod
    def get_max_vertices() -> int:
        return MAX_VERTICES

    @staticmethod
    def get_max_materials() -> int:
        return MAX_MATERIALS
