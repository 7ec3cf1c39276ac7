"""Host-side triangle mesh builders.

Every builder returns NumPy arrays ready for ``SceneManager.add_mesh``:

    vertices: (V, 3) float32 positions
    indices:  (T, 3) int32 vertex indices, counter-clockwise seen from outside
    normals:  (V, 3) float32 per-vertex normals, or None for flat shading

Winding follows the right-hand rule, so ``cross(v1 - v0, v2 - v0)`` points
out of closed shapes and along ``cross(u, v)`` for quads. Emitters built from
these meshes radiate on that side.
"""

from __future__ import annotations

import numpy as np


def _as_vec3(value, name: str) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float32)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have 3 components, got shape {arr.shape}")
    return arr


def make_quad_mesh(
    corner: tuple[float, float, float],
    u: tuple[float, float, float],
    v: tuple[float, float, float],
) -> tuple[np.ndarray, np.ndarray]:
    """Build the two triangles of the parallelogram corner, corner+u, corner+u+v, corner+v.

    The face normal is normalize(cross(u, v)).

    Raises:
        ValueError: If u and v are parallel or either is zero.
    """
    q = _as_vec3(corner, "corner")
    eu = _as_vec3(u, "u")
    ev = _as_vec3(v, "v")
    if np.linalg.norm(np.cross(eu, ev)) <= 1e-12:
        raise ValueError("Quad edges u and v must be non-zero and not parallel")

    vertices = np.stack([q, q + eu, q + eu + ev, q + ev]).astype(np.float32)
    indices = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int32)
    return vertices, indices


def make_box_mesh(
    box_min: tuple[float, float, float],
    box_max: tuple[float, float, float],
) -> tuple[np.ndarray, np.ndarray]:
    """Build an axis-aligned box with outward-facing triangles (24 vertices, 12 triangles).

    Raises:
        ValueError: If the box has zero or negative extent along any axis.
    """
    lo = _as_vec3(box_min, "box_min")
    hi = _as_vec3(box_max, "box_max")
    if np.any(hi <= lo):
        raise ValueError(f"Box extent must be positive (min={lo.tolist()}, max={hi.tolist()})")

    dx = np.array([hi[0] - lo[0], 0.0, 0.0], dtype=np.float32)
    dy = np.array([0.0, hi[1] - lo[1], 0.0], dtype=np.float32)
    dz = np.array([0.0, 0.0, hi[2] - lo[2]], dtype=np.float32)

    # (corner, u, v) per face with cross(u, v) pointing outward
    faces = [
        (np.array([hi[0], lo[1], lo[2]]), dy, dz),  # +x
        (lo, dz, dy),  # -x
        (np.array([lo[0], hi[1], lo[2]]), dz, dx),  # +y
        (lo, dx, dz),  # -y
        (np.array([lo[0], lo[1], hi[2]]), dx, dy),  # +z
        (lo, dy, dx),  # -z
    ]

    vertices = []
    indices = []
    for face, (corner, u, v) in enumerate(faces):
        face_vertices, face_indices = make_quad_mesh(corner, u, v)
        vertices.append(face_vertices)
        indices.append(face_indices + 4 * face)
    return np.concatenate(vertices), np.concatenate(indices).astype(np.int32)


def make_uv_sphere_mesh(
    center: tuple[float, float, float],
    radius: float,
    rings: int = 24,
    segments: int = 48,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Tessellate a sphere into latitude rings and longitude segments.

    Args:
        center: Sphere center.
        radius: Sphere radius (positive).
        rings: Number of latitude bands (at least 2).
        segments: Number of longitude slices (at least 3).

    Returns:
        A tuple (vertices, indices, normals); normals are the exact sphere
        normals, used for smooth shading.

    Raises:
        ValueError: If the radius or the tessellation is invalid.
    """
    if radius <= 0.0:
        raise ValueError(f"Sphere radius must be positive, got {radius}")
    if rings < 2 or segments < 3:
        raise ValueError(f"Sphere needs rings >= 2 and segments >= 3, got {rings}, {segments}")
    c = _as_vec3(center, "center")

    theta = np.linspace(0.0, np.pi, rings + 1)
    phi = np.linspace(0.0, 2.0 * np.pi, segments + 1)
    theta_grid, phi_grid = np.meshgrid(theta, phi, indexing="ij")
    normals = np.stack(
        [
            np.sin(theta_grid) * np.cos(phi_grid),
            np.cos(theta_grid),
            np.sin(theta_grid) * np.sin(phi_grid),
        ],
        axis=-1,
    ).reshape(-1, 3)
    vertices = c + radius * normals

    stride = segments + 1
    indices = []
    for i in range(rings):
        for j in range(segments):
            a = i * stride + j
            b = (i + 1) * stride + j
            cc = i * stride + j + 1
            d = (i + 1) * stride + j + 1
            # Both triangles collapse at the poles
            if i != 0:
                indices.append((a, cc, b))
            if i != rings - 1:
                indices.append((cc, d, b))

    return (
        vertices.astype(np.float32),
        np.array(indices, dtype=np.int32),
        normals.astype(np.float32),
    )


def mesh_triangle_areas(vertices: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Area of every triangle of an indexed mesh."""
    v = np.asarray(vertices, dtype=np.float64)
    idx = np.asarray(indices, dtype=np.int64)
    e1 = v[idx[:, 1]] - v[idx[:, 0]]
    e2 = v[idx[:, 2]] - v[idx[:, 0]]
    return 0.5 * np.linalg.norm(np.cross(e1, e2), axis=1)
