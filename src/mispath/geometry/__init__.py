"""Geometry module: the triangle primitive and mesh builders.

Components:
    triangle: Ray-triangle intersection (Moller-Trumbore) and triangle helpers
    meshes: NumPy builders for quads, boxes and UV spheres

Intersection routines are Taichi functions (@ti.func); mesh builders run on
the host and feed ``SceneManager.add_mesh``.
"""

from .meshes import make_box_mesh, make_quad_mesh, make_uv_sphere_mesh, mesh_triangle_areas
from .triangle import (
    TriangleHit,
    barycentric_interpolate,
    hit_triangle,
    triangle_area,
    triangle_normal,
)

__all__ = [
    "TriangleHit",
    "barycentric_interpolate",
    "hit_triangle",
    "triangle_area",
    "triangle_normal",
    "make_box_mesh",
    "make_quad_mesh",
    "make_uv_sphere_mesh",
    "mesh_triangle_areas",
]
