# Core module for boundary-layer mesh operations
from blmesh.core.errors import BoundaryLayerError, ConfigurationError, MissingInputError
from blmesh.core.hashtable import HandleKeyedMap, ABSENT
from blmesh.core.prism_mesh import (
    PrismMesh,
    Node,
    Edge,
    Face2D,
    FaceGroup,
    Elem3D,
    BoundaryLayerSpec,
    PRISM_THICKNESS_EDGES,
)
from blmesh.core.geometry import (
    elem2d_center,
    exterior_elem2d_normal,
    prism_volume,
)
from blmesh.core.display import (
    ElementColor,
    BoundaryLayerColors,
    ColorTagger,
    Renderer,
    NullRenderer,
    ElementColorCodes,
)
from blmesh.core.boundary_subdivider import (
    EdgeSubdivisionEngine,
    subdivide_boundary_layers,
    orient_thickness_edge,
    SubdivisionResult,
    DEFAULT_NUM_DIVISIONS,
)
from blmesh.core.sharp_edge_classifier import (
    BoundaryEdgeClassifier,
    classify_sharp_edges,
    is_convex_pair,
    Ring,
    PrismPair,
    PrismPairList,
    BoundaryLayerEntry,
    BoundaryLayerRegistry,
    DEFAULT_COS_THRESHOLD,
)
from blmesh.core.mesh_io import (
    MeshLoader,
    LoadResult,
    load_mesh_file,
    mesh_from_meshio,
    mesh_to_meshio,
    write_prism_mesh,
)
from blmesh.core.mesh_analysis import PrismMeshAnalyzer, PrismMeshDiagnostics, analyze_mesh

__all__ = [
    'BoundaryLayerError',
    'ConfigurationError',
    'MissingInputError',
    'HandleKeyedMap',
    'ABSENT',
    # Mesh container
    'PrismMesh',
    'Node',
    'Edge',
    'Face2D',
    'FaceGroup',
    'Elem3D',
    'BoundaryLayerSpec',
    'PRISM_THICKNESS_EDGES',
    # Geometry
    'elem2d_center',
    'exterior_elem2d_normal',
    'prism_volume',
    # Display
    'ElementColor',
    'BoundaryLayerColors',
    'ColorTagger',
    'Renderer',
    'NullRenderer',
    'ElementColorCodes',
    # Subdivision
    'EdgeSubdivisionEngine',
    'subdivide_boundary_layers',
    'orient_thickness_edge',
    'SubdivisionResult',
    'DEFAULT_NUM_DIVISIONS',
    # Sharp edge classification
    'BoundaryEdgeClassifier',
    'classify_sharp_edges',
    'is_convex_pair',
    'Ring',
    'PrismPair',
    'PrismPairList',
    'BoundaryLayerEntry',
    'BoundaryLayerRegistry',
    'DEFAULT_COS_THRESHOLD',
    # IO
    'MeshLoader',
    'LoadResult',
    'load_mesh_file',
    'mesh_from_meshio',
    'mesh_to_meshio',
    'write_prism_mesh',
    # Analysis
    'PrismMeshAnalyzer',
    'PrismMeshDiagnostics',
    'analyze_mesh',
]
