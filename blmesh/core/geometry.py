"""
Mesh Geometry Helpers

Face normals, face centroids and element volumes computed from node
positions with numpy.
"""

import numpy as np

from blmesh.core.prism_mesh import Elem3D, Face2D, PrismMesh

# Below this length a face normal is treated as undefined
NORMAL_EPSILON = 1e-14

# Prism split into three positively oriented tetrahedra
PRISM_TETRAHEDRA = ((0, 1, 2, 3), (1, 5, 2, 3), (1, 4, 5, 3))


def newell_normal(points: np.ndarray) -> np.ndarray:
    """
    Area-weighted polygon normal (Newell's method).

    Args:
        points: (K, 3) polygon vertices in winding order

    Returns:
        Un-normalized normal following the right-hand rule
    """
    nxt = np.roll(points, -1, axis=0)
    return np.array([
        np.sum((points[:, 1] - nxt[:, 1]) * (points[:, 2] + nxt[:, 2])),
        np.sum((points[:, 2] - nxt[:, 2]) * (points[:, 0] + nxt[:, 0])),
        np.sum((points[:, 0] - nxt[:, 0]) * (points[:, 1] + nxt[:, 1])),
    ])


def elem2d_center(mesh: PrismMesh, face: Face2D) -> np.ndarray:
    """Centroid (vertex average) of a 2D face."""
    return mesh.node_positions(face.node_keys).mean(axis=0)


def elem3d_center(mesh: PrismMesh, elem: Elem3D) -> np.ndarray:
    """Centroid (vertex average) of a volume element."""
    return mesh.node_positions(elem.node_keys).mean(axis=0)


def exterior_elem2d_normal(mesh: PrismMesh, face: Face2D) -> np.ndarray:
    """
    Unit normal of a face pointing away from its adjacent volume element.

    Faces without an adjacent element keep the normal given by their
    winding. Degenerate faces return the zero vector.
    """
    points = mesh.node_positions(face.node_keys)
    normal = newell_normal(points)
    length = np.linalg.norm(normal)
    if length < NORMAL_EPSILON:
        return np.zeros(3)
    normal = normal / length

    elements = mesh.find_elem3d_from_elem2d(face)
    if elements:
        outward = points.mean(axis=0) - elem3d_center(mesh, elements[0])
        if np.dot(normal, outward) < 0:
            normal = -normal
    return normal


def tetra_volume(a: np.ndarray, b: np.ndarray, c: np.ndarray, d: np.ndarray) -> float:
    """Signed tetrahedron volume (positive when d lies on the normal side of abc)."""
    return float(np.dot(b - a, np.cross(c - a, d - a)) / 6.0)


def prism_volume(mesh: PrismMesh, elem: Elem3D) -> float:
    """
    Signed prism volume.

    Positive when the base triangle (nodes 0-2) winds counter-clockwise seen
    from the top triangle (nodes 3-5).
    """
    points = mesh.node_positions(elem.node_keys)
    return sum(tetra_volume(*points[list(tet)]) for tet in PRISM_TETRAHEDRA)
