# Viewer module for boundary-layer mesh visualization
from blmesh.viewer.mesh_viewer import PrismMeshViewer, PYVISTA_AVAILABLE

__all__ = ['PrismMeshViewer', 'PYVISTA_AVAILABLE']
