"""
Prism Mesh Analysis

Diagnostics for boundary-layer meshes, used before and after a pass to
check that it kept the mesh sound.

Analyzes:
- Node, edge, face, element and facegroup counts
- Total prism volume and inverted (negative volume) prisms
- Coincident nodes (a subdivision must never duplicate shared points)
- Area and closure of the facegroup surface
- Bounding box dimensions
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import trimesh
from scipy.spatial import cKDTree

from blmesh.core.geometry import prism_volume
from blmesh.core.prism_mesh import PrismMesh

logger = logging.getLogger(__name__)

DEFAULT_COINCIDENT_TOLERANCE = 1e-9


@dataclass
class BoundingBox:
    """3D bounding box representation."""
    min_point: np.ndarray  # [x, y, z]
    max_point: np.ndarray  # [x, y, z]

    @property
    def size(self) -> np.ndarray:
        return self.max_point - self.min_point

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.size))

    def __str__(self) -> str:
        size = self.size
        return f"Size: {size[0]:.4g} x {size[1]:.4g} x {size[2]:.4g}"


@dataclass
class PrismMeshDiagnostics:
    """Mesh diagnostics for boundary-layer processing."""
    node_count: int
    edge_count: int
    face_count: int
    element_count: int
    prism_count: int
    facegroup_count: int
    boundary_layer_facegroup_count: int
    prism_volume: float
    inverted_prism_count: int
    coincident_node_pairs: int
    surface_area: float
    surface_is_watertight: bool
    bounding_box: Optional[BoundingBox]
    issues: List[str] = field(default_factory=list)

    def format(self) -> str:
        """Format diagnostics for display."""
        lines = [
            f"Nodes: {self.node_count:,}",
            f"Edges: {self.edge_count:,}",
            f"Faces: {self.face_count:,}",
            f"Elements: {self.element_count:,} ({self.prism_count:,} prisms)",
            f"Facegroups: {self.facegroup_count} ({self.boundary_layer_facegroup_count} boundary layer)",
            "",
            f"Prism Volume: {self.prism_volume:,.6g}",
            f"Surface Area: {self.surface_area:,.6g}",
            f"Surface Closed: {'✓ Yes' if self.surface_is_watertight else '✗ No'}",
        ]
        if self.bounding_box is not None:
            lines.append(f"Bounding Box: {self.bounding_box}")

        if self.issues:
            lines.append("")
            lines.append("Issues:")
            for issue in self.issues:
                lines.append(f"  • {issue}")

        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            'node_count': self.node_count,
            'edge_count': self.edge_count,
            'face_count': self.face_count,
            'element_count': self.element_count,
            'prism_count': self.prism_count,
            'facegroup_count': self.facegroup_count,
            'boundary_layer_facegroup_count': self.boundary_layer_facegroup_count,
            'prism_volume': self.prism_volume,
            'inverted_prism_count': self.inverted_prism_count,
            'coincident_node_pairs': self.coincident_node_pairs,
            'surface_area': self.surface_area,
            'surface_is_watertight': self.surface_is_watertight,
            'bounding_box': None if self.bounding_box is None else {
                'min': self.bounding_box.min_point.tolist(),
                'max': self.bounding_box.max_point.tolist(),
                'size': self.bounding_box.size.tolist(),
            },
            'issues': self.issues,
        }


class PrismMeshAnalyzer:
    """Computes PrismMeshDiagnostics for a PrismMesh."""

    def __init__(self, mesh: PrismMesh, coincident_tolerance: float = DEFAULT_COINCIDENT_TOLERANCE):
        """
        Args:
            mesh: The mesh to analyze
            coincident_tolerance: Distance below which two nodes count as coincident,
                relative to the bounding box diagonal
        """
        self.mesh = mesh
        self.coincident_tolerance = coincident_tolerance
        self._diagnostics: Optional[PrismMeshDiagnostics] = None

    @property
    def diagnostics(self) -> Optional[PrismMeshDiagnostics]:
        """Get cached diagnostics (call analyze() first)."""
        return self._diagnostics

    def analyze(self) -> PrismMeshDiagnostics:
        mesh = self.mesh
        issues: List[str] = []

        nodes = mesh.all_nodes()
        points = np.array([node.position for node in nodes], dtype=np.float64).reshape(-1, 3)

        bounding_box = None
        if len(points):
            bounding_box = BoundingBox(min_point=points.min(axis=0), max_point=points.max(axis=0))

        # Prism volumes
        volumes = np.array([prism_volume(mesh, e) for e in mesh.all_elem3d() if e.is_prism])
        inverted = int(np.sum(volumes < 0)) if volumes.size else 0
        if inverted:
            issues.append(f"Found {inverted} inverted prisms")

        # Coincident nodes
        coincident = 0
        if len(points) > 1:
            scale = max(bounding_box.diagonal, 1.0)
            pairs = cKDTree(points).query_pairs(r=self.coincident_tolerance * scale)
            coincident = len(pairs)
            if coincident:
                issues.append(f"Found {coincident} coincident node pairs")

        surface_area, is_watertight = self._analyze_surface(nodes)

        bl_count = sum(
            1 for fg in mesh.all_facegroups()
            if mesh.get_boundary_layer_spec(fg).is_boundary_layer
        )
        if mesh.num_facegroups and not bl_count:
            issues.append("No facegroup has a boundary layer")

        self._diagnostics = PrismMeshDiagnostics(
            node_count=mesh.num_nodes,
            edge_count=mesh.num_edges,
            face_count=mesh.num_faces,
            element_count=mesh.num_elements,
            prism_count=int(volumes.size),
            facegroup_count=mesh.num_facegroups,
            boundary_layer_facegroup_count=bl_count,
            prism_volume=float(volumes.sum()) if volumes.size else 0.0,
            inverted_prism_count=inverted,
            coincident_node_pairs=coincident,
            surface_area=surface_area,
            surface_is_watertight=is_watertight,
            bounding_box=bounding_box,
            issues=issues,
        )
        return self._diagnostics

    def _analyze_surface(self, nodes) -> tuple:
        """Area and closure of the surface formed by all facegroup faces."""
        faces = [
            face for fg in self.mesh.all_facegroups()
            for face in self.mesh.facegroup_faces(fg)
        ]
        if not faces:
            return 0.0, False

        index = {node.key: i for i, node in enumerate(nodes)}
        triangles = []
        for face in faces:
            keys = [index[k] for k in face.node_keys]
            triangles.append(keys[:3])
            if len(keys) == 4:
                triangles.append([keys[0], keys[2], keys[3]])

        vertices = np.array([node.position for node in nodes], dtype=np.float64)
        surface = trimesh.Trimesh(vertices=vertices, faces=np.array(triangles), process=False)
        return float(surface.area), bool(surface.is_watertight)


def analyze_mesh(mesh: PrismMesh, coincident_tolerance: float = DEFAULT_COINCIDENT_TOLERANCE) -> PrismMeshDiagnostics:
    """
    Convenience function to analyze a mesh.

    Returns:
        PrismMeshDiagnostics containing all analysis results
    """
    analyzer = PrismMeshAnalyzer(mesh, coincident_tolerance)
    return analyzer.analyze()
