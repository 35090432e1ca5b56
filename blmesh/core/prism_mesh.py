"""
Prism Mesh

In-memory volume mesh with stable, key-based navigation between nodes,
edges, 2D faces, facegroups and 3D elements.

Every entity carries an integer search key allocated from a per-type
counter. Keys are never reused, so a key taken before a mutation can always
be resolved afterwards (to None if the entity was deleted).

Edges are not created explicitly: they are registered when a face or
element using them is added and dropped once nothing uses them anymore.
An edge keeps the endpoint order it was first registered with.

All enumeration methods return fresh lists, so callers can add or delete
elements while walking a list they obtained earlier.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)


# ============================================================================
# CELL TOPOLOGY TABLES
# ============================================================================

CELL_NODE_COUNTS = {
    'tetra': 4,
    'pyramid': 5,
    'wedge': 6,
    'hexahedron': 8,
}

FACE_NODE_COUNTS = {
    'triangle': 3,
    'quad': 4,
}

# Local edges as pairs of local node indices.
# Prism (wedge): 0-2 base triangle, 3-5 through-thickness, 6-8 top triangle.
CELL_EDGES = {
    'tetra': ((0, 1), (1, 2), (2, 0), (0, 3), (1, 3), (2, 3)),
    'pyramid': ((0, 1), (1, 2), (2, 3), (3, 0), (0, 4), (1, 4), (2, 4), (3, 4)),
    'wedge': ((0, 1), (1, 2), (2, 0), (0, 3), (1, 4), (2, 5), (3, 4), (4, 5), (5, 3)),
    'hexahedron': (
        (0, 1), (1, 2), (2, 3), (3, 0),
        (0, 4), (1, 5), (2, 6), (3, 7),
        (4, 5), (5, 6), (6, 7), (7, 4),
    ),
}

PRISM_THICKNESS_EDGES = (3, 4, 5)


# ============================================================================
# ENTITIES
# ============================================================================

@dataclass
class BoundaryLayerSpec:
    """Boundary-layer settings of a facegroup."""
    n_layer: int = 0

    @property
    def is_boundary_layer(self) -> bool:
        return self.n_layer > 0


@dataclass(eq=False)
class Node:
    key: int
    position: np.ndarray


@dataclass(eq=False)
class Edge:
    key: int
    # Endpoint order as first registered
    node_keys: Tuple[int, int]


@dataclass(eq=False)
class Face2D:
    key: int
    node_keys: Tuple[int, ...]
    # None for faces that belong to no facegroup (internal faces)
    facegroup_key: Optional[int] = None


@dataclass(eq=False)
class FaceGroup:
    key: int
    name: str
    face_keys: List[int] = field(default_factory=list)
    bl_spec: BoundaryLayerSpec = field(default_factory=BoundaryLayerSpec)
    # Physical tag read from / written to mesh files
    tag: Optional[int] = None


@dataclass(eq=False)
class Elem3D:
    key: int
    cell_type: str
    node_keys: Tuple[int, ...]

    @property
    def is_prism(self) -> bool:
        return self.cell_type == 'wedge'


NodeRef = Union[Node, int]


def _node_key(node: NodeRef) -> int:
    return node.key if isinstance(node, Node) else int(node)


def _edge_id(a: int, b: int) -> Tuple[int, int]:
    return (a, b) if a < b else (b, a)


# ============================================================================
# MESH
# ============================================================================

class PrismMesh:
    """
    Volume mesh store for boundary-layer processing.

    Holds nodes, implicitly registered edges, 2D faces grouped into
    facegroups and 3D elements, plus the node->face and node->element
    adjacency needed to navigate between them.
    """

    def __init__(self):
        self._nodes: Dict[int, Node] = {}
        self._edges: Dict[int, Edge] = {}
        self._edge_lookup: Dict[Tuple[int, int], int] = {}
        self._edge_users: Dict[int, int] = {}
        self._faces: Dict[int, Face2D] = {}
        self._facegroups: Dict[int, FaceGroup] = {}
        self._elements: Dict[int, Elem3D] = {}

        self._node_faces: Dict[int, Set[int]] = {}
        self._node_elements: Dict[int, Set[int]] = {}

        self._next_node_key = 0
        self._next_edge_key = 0
        self._next_face_key = 0
        self._next_facegroup_key = 0
        self._next_element_key = 0

    def __repr__(self) -> str:
        return (
            f"PrismMesh(nodes={self.num_nodes}, edges={self.num_edges}, "
            f"faces={self.num_faces}, facegroups={self.num_facegroups}, "
            f"elements={self.num_elements})"
        )

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    @property
    def num_nodes(self) -> int:
        return len(self._nodes)

    @property
    def num_edges(self) -> int:
        return len(self._edges)

    @property
    def num_faces(self) -> int:
        return len(self._faces)

    @property
    def num_facegroups(self) -> int:
        return len(self._facegroups)

    @property
    def num_elements(self) -> int:
        return len(self._elements)

    @property
    def num_prisms(self) -> int:
        return sum(1 for elem in self._elements.values() if elem.is_prism)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(self, position: Sequence[float]) -> Node:
        """
        Add a node at the given position.

        Args:
            position: 3D coordinates (2D input is padded with z=0)

        Returns:
            The new node
        """
        pos = np.zeros(3, dtype=np.float64)
        coords = np.asarray(position, dtype=np.float64).ravel()
        if coords.size not in (2, 3):
            raise ValueError(f"Node position must have 2 or 3 coordinates, got {coords.size}")
        pos[:coords.size] = coords

        node = Node(key=self._next_node_key, position=pos)
        self._next_node_key += 1
        self._nodes[node.key] = node
        self._node_faces[node.key] = set()
        self._node_elements[node.key] = set()
        return node

    def find_node(self, key: int) -> Optional[Node]:
        return self._nodes.get(key)

    def all_nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def get_node_pos(self, node: NodeRef) -> np.ndarray:
        return self._require_node(_node_key(node)).position

    def node_positions(self, keys: Iterable[int]) -> np.ndarray:
        """(K, 3) array of positions for the given node keys."""
        return np.array([self._nodes[k].position for k in keys], dtype=np.float64).reshape(-1, 3)

    def _require_node(self, key: int) -> Node:
        node = self._nodes.get(key)
        if node is None:
            raise KeyError(f"Node {key} does not exist")
        return node

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def _register_edge(self, a: int, b: int) -> None:
        edge_id = _edge_id(a, b)
        key = self._edge_lookup.get(edge_id)
        if key is None:
            key = self._next_edge_key
            self._next_edge_key += 1
            self._edges[key] = Edge(key=key, node_keys=(a, b))
            self._edge_lookup[edge_id] = key
            self._edge_users[key] = 0
        self._edge_users[key] += 1

    def _release_edge(self, a: int, b: int) -> None:
        edge_id = _edge_id(a, b)
        key = self._edge_lookup[edge_id]
        self._edge_users[key] -= 1
        if self._edge_users[key] == 0:
            del self._edge_users[key]
            del self._edge_lookup[edge_id]
            del self._edges[key]

    def find_edge(self, key: int) -> Optional[Edge]:
        return self._edges.get(key)

    def find_edge_between(self, node_a: NodeRef, node_b: NodeRef) -> Optional[Edge]:
        key = self._edge_lookup.get(_edge_id(_node_key(node_a), _node_key(node_b)))
        return None if key is None else self._edges[key]

    def all_edges(self) -> List[Edge]:
        return list(self._edges.values())

    def edge_nodes(self, edge: Edge) -> Tuple[Node, Node]:
        """Endpoints of an edge, in the edge's stored order."""
        return self._nodes[edge.node_keys[0]], self._nodes[edge.node_keys[1]]

    # ------------------------------------------------------------------
    # Facegroups and 2D faces
    # ------------------------------------------------------------------

    def add_facegroup(self, name: str, n_layer: int = 0, tag: Optional[int] = None) -> FaceGroup:
        facegroup = FaceGroup(
            key=self._next_facegroup_key,
            name=name,
            bl_spec=BoundaryLayerSpec(n_layer=n_layer),
            tag=tag,
        )
        self._next_facegroup_key += 1
        self._facegroups[facegroup.key] = facegroup
        return facegroup

    def all_facegroups(self) -> List[FaceGroup]:
        return list(self._facegroups.values())

    def find_facegroup(self, key: int) -> Optional[FaceGroup]:
        return self._facegroups.get(key)

    def find_facegroup_by_name(self, name: str) -> Optional[FaceGroup]:
        for facegroup in self._facegroups.values():
            if facegroup.name == name:
                return facegroup
        return None

    def get_boundary_layer_spec(self, facegroup: FaceGroup) -> BoundaryLayerSpec:
        return facegroup.bl_spec

    def set_boundary_layer_spec(self, facegroup: FaceGroup, n_layer: int) -> None:
        if n_layer < 0:
            raise ValueError(f"Layer count must be >= 0, got {n_layer}")
        facegroup.bl_spec = BoundaryLayerSpec(n_layer=n_layer)

    def facegroup_faces(self, facegroup: FaceGroup) -> List[Face2D]:
        return [self._faces[k] for k in facegroup.face_keys]

    def add_elem2d(self, nodes: Sequence[NodeRef], facegroup: Optional[FaceGroup] = None) -> Face2D:
        """
        Add a triangle or quad face.

        Args:
            nodes: Face nodes in winding order
            facegroup: Owning facegroup, or None for an internal face

        Returns:
            The new face
        """
        node_keys = tuple(_node_key(n) for n in nodes)
        if len(node_keys) not in FACE_NODE_COUNTS.values():
            raise ValueError(f"2D faces need 3 or 4 nodes, got {len(node_keys)}")
        for k in node_keys:
            self._require_node(k)

        face = Face2D(
            key=self._next_face_key,
            node_keys=node_keys,
            facegroup_key=None if facegroup is None else facegroup.key,
        )
        self._next_face_key += 1
        self._faces[face.key] = face

        for k in node_keys:
            self._node_faces[k].add(face.key)
        for a, b in self._face_edge_pairs(face):
            self._register_edge(a, b)
        if facegroup is not None:
            facegroup.face_keys.append(face.key)
        return face

    def find_elem2d(self, key: int) -> Optional[Face2D]:
        return self._faces.get(key)

    def all_elem2d(self) -> List[Face2D]:
        return list(self._faces.values())

    def _face_edge_pairs(self, face: Face2D) -> List[Tuple[int, int]]:
        keys = face.node_keys
        return [(keys[i], keys[(i + 1) % len(keys)]) for i in range(len(keys))]

    def elem2d_edges(self, face: Face2D) -> List[Edge]:
        return [self._edges[self._edge_lookup[_edge_id(a, b)]] for a, b in self._face_edge_pairs(face)]

    def is_elem2d_using_node(self, face: Face2D, node: NodeRef) -> bool:
        return _node_key(node) in face.node_keys

    def find_elem2d_from_node(self, node: NodeRef) -> List[Face2D]:
        """Faces using a node, ordered by key."""
        return [self._faces[k] for k in sorted(self._node_faces.get(_node_key(node), ()))]

    def find_facegroup_from_elem2d(self, face: Face2D) -> Optional[FaceGroup]:
        if face.facegroup_key is None:
            return None
        return self._facegroups.get(face.facegroup_key)

    # ------------------------------------------------------------------
    # 3D elements
    # ------------------------------------------------------------------

    def add_elem3d(self, cell_type: str, nodes: Sequence[NodeRef]) -> Elem3D:
        """
        Add a volume element.

        Args:
            cell_type: One of 'tetra', 'pyramid', 'wedge', 'hexahedron'
            nodes: Element nodes in the cell type's local order

        Returns:
            The new element
        """
        if cell_type not in CELL_NODE_COUNTS:
            raise ValueError(f"Unsupported 3D cell type: {cell_type}")
        node_keys = tuple(_node_key(n) for n in nodes)
        if len(node_keys) != CELL_NODE_COUNTS[cell_type]:
            raise ValueError(
                f"{cell_type} needs {CELL_NODE_COUNTS[cell_type]} nodes, got {len(node_keys)}"
            )
        for k in node_keys:
            self._require_node(k)

        elem = Elem3D(key=self._next_element_key, cell_type=cell_type, node_keys=node_keys)
        self._next_element_key += 1
        self._elements[elem.key] = elem

        for k in node_keys:
            self._node_elements[k].add(elem.key)
        for i, j in CELL_EDGES[cell_type]:
            self._register_edge(node_keys[i], node_keys[j])
        return elem

    def add_prism(self, nodes: Sequence[NodeRef]) -> Elem3D:
        """Add a 6-node prism (nodes 0-2 one triangle, 3-5 the opposite one)."""
        return self.add_elem3d('wedge', nodes)

    def delete_elem3d(self, elem: Elem3D) -> None:
        """Delete a volume element. Edges used by nothing else are dropped."""
        if self._elements.get(elem.key) is not elem:
            raise KeyError(f"Element {elem.key} does not exist")

        for i, j in CELL_EDGES[elem.cell_type]:
            self._release_edge(elem.node_keys[i], elem.node_keys[j])
        for k in elem.node_keys:
            self._node_elements[k].discard(elem.key)
        del self._elements[elem.key]

    def find_elem3d(self, key: int) -> Optional[Elem3D]:
        return self._elements.get(key)

    def all_elem3d(self) -> List[Elem3D]:
        return list(self._elements.values())

    def elem3d_edge(self, elem: Elem3D, local_index: int) -> Edge:
        """Edge of an element by local edge index."""
        i, j = CELL_EDGES[elem.cell_type][local_index]
        edge_id = _edge_id(elem.node_keys[i], elem.node_keys[j])
        return self._edges[self._edge_lookup[edge_id]]

    def elem3d_nodes(self, elem: Elem3D) -> List[Node]:
        return [self._nodes[k] for k in elem.node_keys]

    def find_elem3d_from_node(self, node: NodeRef) -> List[Elem3D]:
        """Volume elements using a node, ordered by key."""
        return [self._elements[k] for k in sorted(self._node_elements.get(_node_key(node), ()))]

    def find_elem3d_from_elem2d(self, face: Face2D) -> List[Elem3D]:
        """Volume elements containing every node of the face, ordered by key."""
        candidates: Optional[Set[int]] = None
        for k in face.node_keys:
            users = self._node_elements.get(k, set())
            candidates = set(users) if candidates is None else candidates & users
            if not candidates:
                return []
        return [self._elements[k] for k in sorted(candidates)]
