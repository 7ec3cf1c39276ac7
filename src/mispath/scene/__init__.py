"""Scene module: triangle storage, emitters and scene construction.

Components:
    intersection: Triangle storage and the nearest-hit scene query
    emitters: EmitterTable over emissive triangles (area CDF sampling)
    manager: SceneManager for materials, shapes and the scene-load step
    cornell_box: Factory for the Cornell box test scene
"""

from .cornell_box import (
    CornellBoxParams,
    create_cornell_box_scene,
    get_cornell_box_bounds,
    get_light_quad_info,
)
from .emitters import (
    EmitterInfo,
    EmitterTable,
    EmitterTriangle,
    clear_emitters,
    emitter_solid_angle_pdf,
    get_emitter,
    get_emitter_count,
    light_pdf_at_hit,
    sample_emitter,
    sample_emitter_index,
    sample_point_on_emitter,
)
from .intersection import (
    MAX_TRIANGLES,
    MAX_VERTICES,
    SceneHitRecord,
    clear_scene,
    get_triangle_count,
    get_vertex_count,
    intersect_scene,
    upload_geometry,
)
from .manager import SceneConfig, SceneManager, ShapeInfo

__all__ = [
    # Intersection
    "MAX_TRIANGLES",
    "MAX_VERTICES",
    "SceneHitRecord",
    "clear_scene",
    "get_triangle_count",
    "get_vertex_count",
    "intersect_scene",
    "upload_geometry",
    # Emitters
    "EmitterInfo",
    "EmitterTable",
    "EmitterTriangle",
    "clear_emitters",
    "emitter_solid_angle_pdf",
    "get_emitter",
    "get_emitter_count",
    "light_pdf_at_hit",
    "sample_emitter",
    "sample_emitter_index",
    "sample_point_on_emitter",
    # Manager
    "SceneConfig",
    "SceneManager",
    "ShapeInfo",
    # Cornell box
    "CornellBoxParams",
    "create_cornell_box_scene",
    "get_cornell_box_bounds",
    "get_light_quad_info",
]
