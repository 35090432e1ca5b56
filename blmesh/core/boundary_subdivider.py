"""
Boundary Layer Subdivision

Splits every prism standing on a boundary-layer face into N stacked
sub-prisms along its through-thickness edges.

Algorithm:
1. Snapshot the boundary-layer facegroups, their faces and the elements
   adjacent to each face before anything is mutated
2. For each prism, resolve its three through-thickness edges:
   - orient each edge from the face side (base) to the far side (top)
   - reuse the edge's subdivision nodes if an earlier prism created them,
     otherwise interpolate N-1 nodes at j/N and memoize them under the edge key
3. Build N prisms from consecutive node slices, then delete the original

Subdivision nodes are memoized in the edge's own endpoint order, so two
prisms sharing an edge get the same nodes even when they walk it in
opposite directions. The memo table lives for one run only.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from blmesh.core.errors import ConfigurationError, MissingInputError
from blmesh.core.hashtable import ABSENT, HandleKeyedMap
from blmesh.core.prism_mesh import (
    PRISM_THICKNESS_EDGES,
    Edge,
    Elem3D,
    Face2D,
    FaceGroup,
    Node,
    PrismMesh,
)

logger = logging.getLogger(__name__)

DEFAULT_NUM_DIVISIONS = 3


@dataclass
class SubdivisionResult:
    """Result of a boundary-layer subdivision run."""
    num_divisions: int
    facegroups_processed: int = 0
    prisms_replaced: int = 0
    prisms_created: int = 0
    nodes_created: int = 0
    # Through-thickness edges whose nodes came from the memo table
    edges_reused: int = 0
    # Non-prism elements, or prisms not standing on the face with a triangle
    skipped_elements: int = 0
    elapsed_ms: float = 0.0


def validate_num_divisions(num_divisions) -> int:
    """Check a division count; raises ConfigurationError unless it is an int >= 2."""
    if isinstance(num_divisions, bool) or not isinstance(num_divisions, (int, np.integer)):
        raise ConfigurationError(f"Division count must be an integer, got {num_divisions!r}")
    if num_divisions < 2:
        raise ConfigurationError(f"Division count must be at least 2, got {num_divisions}")
    return int(num_divisions)


def orient_thickness_edge(mesh: PrismMesh, face: Face2D, edge: Edge) -> Tuple[Node, Node]:
    """
    Return (base, top) endpoints of a through-thickness edge.

    The base is the endpoint used by the face the prism stands on.
    """
    node0, node1 = mesh.edge_nodes(edge)
    if mesh.is_elem2d_using_node(face, node0):
        return node0, node1
    return node1, node0


class EdgeSubdivisionEngine:
    """
    Subdivides boundary-layer prisms in place.

    Usage:
        engine = EdgeSubdivisionEngine(mesh, num_divisions=3)
        result = engine.subdivide()
    """

    def __init__(self, mesh: Optional[PrismMesh], num_divisions: int = DEFAULT_NUM_DIVISIONS):
        """
        Args:
            mesh: Mesh to modify
            num_divisions: Number of sub-prisms per original prism (>= 2)

        Raises:
            MissingInputError: If no mesh is given
            ConfigurationError: If num_divisions is not an integer >= 2
        """
        if mesh is None:
            raise MissingInputError("No mesh loaded")
        self.mesh = mesh
        self.num_divisions = validate_num_divisions(num_divisions)
        self._edge_nodes: HandleKeyedMap[np.ndarray] = HandleKeyedMap()
        self._result = SubdivisionResult(num_divisions=self.num_divisions)

    def subdivide(self) -> SubdivisionResult:
        """
        Subdivide every prism adjacent to a boundary-layer face.

        Returns:
            SubdivisionResult with counts of what was replaced and created
        """
        start_time = time.perf_counter()
        self._edge_nodes = HandleKeyedMap()
        self._result = SubdivisionResult(num_divisions=self.num_divisions)

        work = self._snapshot_boundary_layers()

        for facegroup, face_elements in work:
            logger.debug(
                f"Subdividing facegroup '{facegroup.name}' "
                f"({len(face_elements)} faces, nLayer={facegroup.bl_spec.n_layer})"
            )
            for face, elements in face_elements:
                for elem in elements:
                    self._subdivide_element(face, elem)
            self._result.facegroups_processed += 1

        self._result.elapsed_ms = (time.perf_counter() - start_time) * 1000
        self._edge_nodes.clean_up()

        logger.info(
            f"Subdivided {self._result.prisms_replaced} prisms into "
            f"{self._result.prisms_created} ({self.num_divisions} divisions), "
            f"{self._result.nodes_created} new nodes, "
            f"{self._result.edges_reused} shared edges reused "
            f"in {self._result.elapsed_ms:.1f} ms"
        )
        return self._result

    def _snapshot_boundary_layers(self) -> List[Tuple[FaceGroup, List[Tuple[Face2D, List[Elem3D]]]]]:
        mesh = self.mesh
        work = []
        for facegroup in mesh.all_facegroups():
            if not mesh.get_boundary_layer_spec(facegroup).is_boundary_layer:
                continue
            face_elements = [
                (face, mesh.find_elem3d_from_elem2d(face))
                for face in mesh.facegroup_faces(facegroup)
            ]
            work.append((facegroup, face_elements))
        return work

    def _subdivide_element(self, face: Face2D, elem: Elem3D) -> None:
        mesh = self.mesh

        # Already replaced through another boundary-layer face
        if mesh.find_elem3d(elem.key) is not elem:
            return

        if not elem.is_prism:
            logger.debug(f"Skipping {elem.cell_type} element {elem.key} on face {face.key}")
            self._result.skipped_elements += 1
            return

        flipped = self._standing_side(face, elem)
        if flipped is None:
            logger.warning(
                f"Prism {elem.key} does not stand on face {face.key} with a triangle, skipping"
            )
            self._result.skipped_elements += 1
            return

        slices = self._build_node_slices(face, elem)
        n = self.num_divisions
        for i in range(n):
            lower = slices[:, i]
            upper = slices[:, i + 1]
            if flipped:
                # Walking from the original top: keep nodes 0-2 on the original base side
                lower, upper = upper, lower
            mesh.add_prism([int(k) for k in lower] + [int(k) for k in upper])

        mesh.delete_elem3d(elem)
        self._result.prisms_replaced += 1
        self._result.prisms_created += n

    def _standing_side(self, face: Face2D, elem: Elem3D) -> Optional[bool]:
        """
        False if the face holds the prism's base triangle, True if it holds
        the top triangle, None if it holds neither (e.g. a side quad).
        """
        keys = elem.node_keys
        uses = [self.mesh.is_elem2d_using_node(face, k) for k in keys]
        if all(uses[:3]) and not any(uses[3:]):
            return False
        if all(uses[3:]) and not any(uses[:3]):
            return True
        return None

    def _build_node_slices(self, face: Face2D, elem: Elem3D) -> np.ndarray:
        """
        (3, N+1) table of node keys; row r walks through-thickness edge 3+r
        from the face side to the far side.
        """
        slices = np.empty((3, self.num_divisions + 1), dtype=np.int64)
        for row, local_index in enumerate(PRISM_THICKNESS_EDGES):
            edge = self.mesh.elem3d_edge(elem, local_index)
            base, _ = orient_thickness_edge(self.mesh, face, edge)
            edge_nodes = self.edge_subdivision_nodes(edge)
            if edge_nodes[0] != base.key:
                edge_nodes = edge_nodes[::-1]
            slices[row] = edge_nodes
        return slices

    def edge_subdivision_nodes(self, edge: Edge) -> np.ndarray:
        """
        Node keys [endpoint0, p1, ..., p(N-1), endpoint1] along an edge.

        Creates the interior nodes on first request and returns the memoized
        array afterwards.
        """
        nodes = self._edge_nodes.content(edge.key)
        if nodes is not ABSENT:
            self._result.edges_reused += 1
            return nodes

        n = self.num_divisions
        node0, node1 = self.mesh.edge_nodes(edge)
        pos0 = self.mesh.get_node_pos(node0)
        pos1 = self.mesh.get_node_pos(node1)

        nodes = np.empty(n + 1, dtype=np.int64)
        nodes[0] = node0.key
        nodes[n] = node1.key
        for j in range(1, n):
            new_node = self.mesh.add_node(pos0 + (pos1 - pos0) * j / n)
            nodes[j] = new_node.key
        nodes.setflags(write=False)

        self._edge_nodes.update(edge.key, nodes)
        self._result.nodes_created += n - 1
        return nodes


def subdivide_boundary_layers(
    mesh: Optional[PrismMesh],
    num_divisions: int = DEFAULT_NUM_DIVISIONS,
) -> SubdivisionResult:
    """
    Convenience function to subdivide all boundary-layer prisms of a mesh.

    Args:
        mesh: Mesh to modify in place
        num_divisions: Number of sub-prisms per original prism (>= 2)

    Returns:
        SubdivisionResult
    """
    engine = EdgeSubdivisionEngine(mesh, num_divisions)
    return engine.subdivide()
