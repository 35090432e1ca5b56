"""
Prism Mesh Viewer

PyVista visualization of volume meshes with boundary-layer element colors.

The viewer doubles as the ColorTagger and Renderer of a classification
pass: colors tagged during the pass are collected, and mark_dirty() makes
the next render rebuild the per-cell color array.
"""

import logging
from typing import Optional

import numpy as np

try:
    import pyvista as pv
    PYVISTA_AVAILABLE = True
except ImportError:
    PYVISTA_AVAILABLE = False

from blmesh.core.display import ElementColor, ElementColorCodes
from blmesh.core.prism_mesh import PrismMesh

logger = logging.getLogger(__name__)

# VTK cell type ids
VTK_CELL_TYPES = {
    'tetra': 10,
    'hexahedron': 12,
    'wedge': 13,
    'pyramid': 14,
}


class PrismMeshViewer:
    """
    3D viewer for a PrismMesh using PyVista.

    Elements without a color tag are drawn in MESH_COLOR; tagged elements in
    the boundary-layer red/green.
    """

    MESH_COLOR = "#00aaff"        # Light blue - mesh color
    BACKGROUND_COLOR = "#f0f0f0"  # Light gray background
    EDGE_COLOR = "#000000"

    def __init__(self, mesh: PrismMesh, color_codes: Optional[ElementColorCodes] = None):
        self._mesh = mesh
        self._colors = color_codes if color_codes is not None else ElementColorCodes()
        self._grid = None
        self._element_keys = []
        self._dirty = True

    @property
    def color_codes(self) -> ElementColorCodes:
        return self._colors

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def tag(self, element_key: int, color: ElementColor) -> None:
        """Record an element color (shown after the next refresh)."""
        self._colors.tag(element_key, color)

    def mark_dirty(self) -> None:
        """Request a rebuild of the grid and colors before the next render."""
        self._dirty = True

    def build_grid(self) -> 'pv.UnstructuredGrid':
        """
        Convert the mesh volume elements to a PyVista UnstructuredGrid.

        Cell data 'colors' holds RGB per element and 'bl_color' the integer
        color code (0 none, 1 red, 2 green).
        """
        if not PYVISTA_AVAILABLE:
            raise RuntimeError("PyVista not installed. Install with: pip install pyvista")

        nodes = sorted(self._mesh.all_nodes(), key=lambda n: n.key)
        index = {node.key: i for i, node in enumerate(nodes)}
        points = np.array([node.position for node in nodes], dtype=np.float64).reshape(-1, 3)

        elements = sorted(self._mesh.all_elem3d(), key=lambda e: e.key)
        cells = []
        cell_types = []
        for elem in elements:
            cells.append(len(elem.node_keys))
            cells.extend(index[k] for k in elem.node_keys)
            cell_types.append(VTK_CELL_TYPES[elem.cell_type])

        grid = pv.UnstructuredGrid(
            np.array(cells, dtype=np.int64),
            np.array(cell_types, dtype=np.uint8),
            points,
        )
        self._element_keys = [elem.key for elem in elements]
        grid.cell_data['colors'] = self._colors.rgba_colors(self._element_keys)[:, :3]
        grid.cell_data['bl_color'] = self._colors.color_codes(self._element_keys)
        return grid

    def refresh(self) -> 'pv.UnstructuredGrid':
        """Rebuild the grid if marked dirty and return it."""
        if self._grid is None or self._dirty:
            self._grid = self.build_grid()
            self._dirty = False
            logger.debug(f"Rebuilt viewer grid with {self._grid.n_cells} cells")
        return self._grid

    def show(self, off_screen: bool = False, screenshot: Optional[str] = None) -> None:
        """
        Open an interactive window (or render off screen).

        Args:
            off_screen: Render without a window
            screenshot: Optional image path to save the rendering to
        """
        grid = self.refresh()

        plotter = pv.Plotter(off_screen=off_screen)
        plotter.set_background(self.BACKGROUND_COLOR)
        if grid.n_cells:
            plotter.add_mesh(
                grid,
                scalars='colors',
                rgb=True,
                show_edges=True,
                edge_color=self.EDGE_COLOR,
            )
        plotter.add_axes(line_width=2, color='#333333', xlabel='X', ylabel='Y', zlabel='Z')
        plotter.show(screenshot=screenshot)
