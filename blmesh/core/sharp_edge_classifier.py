"""
Sharp Boundary Edge Classification

Finds convex edges where two boundary-layer facegroups meet at roughly 90
degrees and colors the prisms on either side, as preparation for replacing
them with hex elements.

Algorithm (per boundary-layer facegroup G):
1. For every face f of G, compute its exterior unit normal and centroid
2. For every edge e of f, visit the other faces g sharing e:
   - g without a facegroup is an internal face: stop looking along e
   - the pair must be convex: with c the midpoint of both centroids,
     normal(f).(c - centroid(f)) <= 0 and normal(g).(c - centroid(g)) <= 0,
     otherwise stop looking along e
   - if g belongs to another boundary-layer facegroup and
     |normal(f).normal(g)| < threshold, e is a sharp edge
3. For a sharp edge, elements on f are tagged red, elements on g green, and
   the edge plus the (red, green) element pair are recorded
4. G is registered only if it produced at least one sharp edge

Color convention:
- Red: elements on the facegroup being classified
- Green: elements on the neighboring facegroup
An element touched by several sharp edges keeps its last color.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

import numpy as np

from blmesh.core.display import ColorTagger, ElementColor, ElementColorCodes, NullRenderer, Renderer
from blmesh.core.errors import ConfigurationError, MissingInputError
from blmesh.core.geometry import elem2d_center, exterior_elem2d_normal
from blmesh.core.prism_mesh import Edge, Face2D, FaceGroup, PrismMesh

logger = logging.getLogger(__name__)

# |cos| below this means the normals are within ~(60, 120) degrees of each other
DEFAULT_COS_THRESHOLD = 0.5


# ============================================================================
# REGISTRIES
# ============================================================================

@dataclass
class Ring:
    """
    Ordered sharp edges bounding one facegroup's colored region.

    Entries are not deduplicated: an edge reached from several faces is
    recorded once per visit, keeping it index-aligned with the PrismPairList
    filled alongside it.
    """
    edge_keys: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.edge_keys)

    def __iter__(self) -> Iterator[int]:
        return iter(self.edge_keys)

    def __getitem__(self, index: int) -> int:
        return self.edge_keys[index]

    @property
    def num_edges(self) -> int:
        return len(self.edge_keys)

    def add_edge(self, key: int) -> None:
        self.edge_keys.append(key)

    def unique_edge_keys(self) -> List[int]:
        """Edge keys with repeats removed, first-visit order kept."""
        return list(dict.fromkeys(self.edge_keys))


class PrismPair(NamedTuple):
    """Volume elements on the two sides of a sharp edge."""
    red_key: Optional[int]
    green_key: Optional[int]


@dataclass
class PrismPairList:
    """Ordered (red, green) element pairs, index-aligned with a Ring."""
    pairs: List[PrismPair] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.pairs)

    def __iter__(self) -> Iterator[PrismPair]:
        return iter(self.pairs)

    def __getitem__(self, index: int) -> PrismPair:
        return self.pairs[index]

    @property
    def num_prisms(self) -> int:
        return len(self.pairs)

    def add_prism(self, red_key: Optional[int], green_key: Optional[int]) -> None:
        self.pairs.append(PrismPair(red_key, green_key))


@dataclass
class BoundaryLayerEntry:
    """Sharp-edge ring and element pairs of one facegroup."""
    facegroup_key: int
    facegroup_name: str
    ring: Ring
    prism_pairs: PrismPairList

    def to_dict(self) -> dict:
        return {
            'facegroup_key': self.facegroup_key,
            'facegroup_name': self.facegroup_name,
            'edges': list(self.ring.edge_keys),
            'prism_pairs': [[p.red_key, p.green_key] for p in self.prism_pairs],
        }


class BoundaryLayerRegistry:
    """Committed BoundaryLayerEntry objects, one per facegroup, in commit order."""

    def __init__(self):
        self._entries: Dict[int, BoundaryLayerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BoundaryLayerEntry]:
        return iter(self._entries.values())

    def __contains__(self, facegroup_key: int) -> bool:
        return facegroup_key in self._entries

    def __getitem__(self, facegroup_key: int) -> BoundaryLayerEntry:
        return self._entries[facegroup_key]

    @property
    def entries(self) -> List[BoundaryLayerEntry]:
        return list(self._entries.values())

    @property
    def num_bl(self) -> int:
        return len(self._entries)

    @property
    def total_edges(self) -> int:
        return sum(len(entry.ring) for entry in self._entries.values())

    def add_bl(self, entry: BoundaryLayerEntry) -> None:
        if entry.facegroup_key in self._entries:
            raise ValueError(f"Facegroup {entry.facegroup_key} already registered")
        self._entries[entry.facegroup_key] = entry

    def to_dict(self) -> dict:
        return {
            'num_bl': self.num_bl,
            'total_edges': self.total_edges,
            'entries': [entry.to_dict() for entry in self._entries.values()],
        }


# ============================================================================
# GEOMETRIC TESTS
# ============================================================================

def is_convex_pair(
    normal1: np.ndarray,
    centre1: np.ndarray,
    normal2: np.ndarray,
    centre2: np.ndarray,
) -> bool:
    """
    True if two faces form a convex (or coplanar) pair.

    Both exterior normals must point away from the midpoint of the two
    face centroids.
    """
    centre_avg = (centre1 + centre2) / 2
    return (
        float(np.dot(normal1, centre_avg - centre1)) <= 0
        and float(np.dot(normal2, centre_avg - centre2)) <= 0
    )


# ============================================================================
# CLASSIFIER
# ============================================================================

class BoundaryEdgeClassifier:
    """
    Detects sharp convex edges between boundary-layer facegroups.

    Only element color tags are changed; mesh topology is left alone.

    Usage:
        classifier = BoundaryEdgeClassifier(mesh, color_tagger=colors)
        registry = classifier.classify()
    """

    def __init__(
        self,
        mesh: Optional[PrismMesh],
        color_tagger: Optional[ColorTagger] = None,
        renderer: Optional[Renderer] = None,
        cos_threshold: float = DEFAULT_COS_THRESHOLD,
    ):
        """
        Args:
            mesh: Mesh to classify
            color_tagger: Receives element colors (defaults to a new ElementColorCodes)
            renderer: Told to redraw once the pass is done
            cos_threshold: Sharp edges need |cos| of the normal angle below this

        Raises:
            MissingInputError: If no mesh is given
            ConfigurationError: If cos_threshold is outside (0, 1]
        """
        if mesh is None:
            raise MissingInputError("No mesh loaded")
        if not 0.0 < cos_threshold <= 1.0:
            raise ConfigurationError(f"Sharp-edge cosine threshold must be in (0, 1], got {cos_threshold}")

        self.mesh = mesh
        self.color_tagger = color_tagger if color_tagger is not None else ElementColorCodes()
        self.renderer = renderer if renderer is not None else NullRenderer()
        self.cos_threshold = cos_threshold
        self._face_geometry: Dict[int, Tuple[np.ndarray, np.ndarray]] = {}

    def classify(self) -> BoundaryLayerRegistry:
        """
        Classify all boundary-layer facegroups.

        Returns:
            Registry with one entry per facegroup that has sharp edges
        """
        start_time = time.perf_counter()
        self._face_geometry = {}
        registry = BoundaryLayerRegistry()

        for facegroup in self.mesh.all_facegroups():
            if not self.mesh.get_boundary_layer_spec(facegroup).is_boundary_layer:
                continue
            entry = self._classify_facegroup(facegroup)
            if entry is not None:
                registry.add_bl(entry)

        self.renderer.mark_dirty()

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Found {registry.total_edges} sharp boundary-layer edges in "
            f"{registry.num_bl} facegroups in {elapsed_ms:.1f} ms"
        )
        return registry

    def _classify_facegroup(self, facegroup: FaceGroup) -> Optional[BoundaryLayerEntry]:
        mesh = self.mesh
        ring = Ring()
        prism_pairs = PrismPairList()
        any_sharp_edge = False

        for face in mesh.facegroup_faces(facegroup):
            normal1, centre1 = self._geometry(face)

            for edge in mesh.elem2d_edges(face):
                for neighbor in self.edge_neighbors(face, edge):
                    neighbor_fg = mesh.find_facegroup_from_elem2d(neighbor)
                    if neighbor_fg is None:
                        # Internal face: boundary of the geometry along this edge
                        break

                    normal2, centre2 = self._geometry(neighbor)
                    cos_theta = abs(float(np.dot(normal1, normal2)))

                    if not is_convex_pair(normal1, centre1, normal2, centre2):
                        break

                    if (
                        neighbor_fg.key != facegroup.key
                        and mesh.get_boundary_layer_spec(neighbor_fg).is_boundary_layer
                        and cos_theta < self.cos_threshold
                    ):
                        red_key = self._tag_elements(face, ElementColor.RED)
                        green_key = self._tag_elements(neighbor, ElementColor.GREEN)
                        ring.add_edge(edge.key)
                        prism_pairs.add_prism(red_key, green_key)
                        any_sharp_edge = True

        if not any_sharp_edge:
            logger.debug(f"Facegroup '{facegroup.name}' has no sharp boundary-layer edges")
            return None

        logger.debug(f"Facegroup '{facegroup.name}': {len(ring)} sharp edges")
        return BoundaryLayerEntry(
            facegroup_key=facegroup.key,
            facegroup_name=facegroup.name,
            ring=ring,
            prism_pairs=prism_pairs,
        )

    def edge_neighbors(self, face: Face2D, edge: Edge) -> List[Face2D]:
        """Other faces using both endpoints of an edge, found through its first node."""
        node0, node1 = self.mesh.edge_nodes(edge)
        # Faces touching the edge at a single vertex are not edge neighbors
        return [
            other for other in self.mesh.find_elem2d_from_node(node0)
            if other is not face and self.mesh.is_elem2d_using_node(other, node1)
        ]

    def _geometry(self, face: Face2D) -> Tuple[np.ndarray, np.ndarray]:
        geometry = self._face_geometry.get(face.key)
        if geometry is None:
            geometry = (exterior_elem2d_normal(self.mesh, face), elem2d_center(self.mesh, face))
            self._face_geometry[face.key] = geometry
        return geometry

    def _tag_elements(self, face: Face2D, color: ElementColor) -> Optional[int]:
        """Tag every element on a face; returns the last tagged key."""
        last_key = None
        for elem in self.mesh.find_elem3d_from_elem2d(face):
            self.color_tagger.tag(elem.key, color)
            last_key = elem.key
        return last_key


def classify_sharp_edges(
    mesh: Optional[PrismMesh],
    color_tagger: Optional[ColorTagger] = None,
    renderer: Optional[Renderer] = None,
    cos_threshold: float = DEFAULT_COS_THRESHOLD,
) -> BoundaryLayerRegistry:
    """
    Convenience function to classify sharp boundary-layer edges.

    Args:
        mesh: Mesh to classify
        color_tagger: Receives element colors
        renderer: Told to redraw when done
        cos_threshold: Sharp-edge cosine threshold

    Returns:
        BoundaryLayerRegistry
    """
    classifier = BoundaryEdgeClassifier(mesh, color_tagger, renderer, cos_threshold)
    return classifier.classify()
