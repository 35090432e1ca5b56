"""
Volume Mesh File IO

Loads and writes boundary-layer meshes through meshio, so any volume format
meshio understands (Gmsh .msh, VTK .vtu/.vtk, Abaqus .inp, ...) can be used.

Facegroups come from an integer cell-data array on the 2D cells (by default
the Gmsh physical tag). Boundary-layer layer counts are not stored in the
files and are supplied by name (or tag) from the run configuration.
"""

import logging
import time
from collections import Counter, defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import meshio
import numpy as np

from blmesh.core.display import ElementColorCodes
from blmesh.core.errors import MissingInputError
from blmesh.core.prism_mesh import CELL_NODE_COUNTS, FACE_NODE_COUNTS, FaceGroup, PrismMesh

logger = logging.getLogger(__name__)

DEFAULT_FACEGROUP_TAG = 'gmsh:physical'
COLOR_DATA_NAME = 'bl_color'

# Lower-dimensional cells meshio reports for Gmsh files; dropped silently
IGNORED_CELL_TYPES = {'vertex', 'line', 'line3'}


@dataclass
class LoadResult:
    """Result of a mesh file loading operation."""
    mesh: Optional[PrismMesh]
    file_path: str
    file_name: str
    file_size_bytes: int
    success: bool
    error_message: Optional[str] = None
    load_time_ms: float = 0.0

    def require_mesh(self) -> PrismMesh:
        """Return the mesh, raising MissingInputError if loading failed."""
        if not self.success or self.mesh is None:
            raise MissingInputError(
                f"Could not load mesh from {self.file_path}: {self.error_message or 'no mesh'}"
            )
        return self.mesh


def mesh_from_meshio(
    source: meshio.Mesh,
    facegroup_tag: str = DEFAULT_FACEGROUP_TAG,
    boundary_layers: Optional[Mapping[str, int]] = None,
) -> PrismMesh:
    """
    Build a PrismMesh from a meshio mesh.

    Args:
        source: meshio mesh
        facegroup_tag: Name of the integer cell-data array grouping 2D cells
        boundary_layers: Facegroup name (or tag as string) -> layer count

    Returns:
        PrismMesh with node keys equal to meshio point indices
    """
    boundary_layers = dict(boundary_layers or {})
    mesh = PrismMesh()

    node_keys = [mesh.add_node(point).key for point in np.asarray(source.points, dtype=np.float64)]

    # Physical names of tagged groups, if the format carries them
    tag_names: Dict[int, str] = {}
    for name, data in (source.field_data or {}).items():
        values = np.atleast_1d(np.asarray(data))
        if values.size:
            tag_names[int(values[0])] = name

    block_tags = source.cell_data.get(facegroup_tag)
    facegroups: Dict[int, FaceGroup] = {}
    skipped = Counter()

    for block_index, block in enumerate(source.cells):
        cell_type = block.type
        data = np.asarray(block.data)

        if cell_type in CELL_NODE_COUNTS:
            for row in data:
                mesh.add_elem3d(cell_type, [node_keys[i] for i in row])

        elif cell_type in FACE_NODE_COUNTS:
            tags = None if block_tags is None else np.asarray(block_tags[block_index]).ravel()
            for row_index, row in enumerate(data):
                facegroup = None
                if tags is not None:
                    tag = int(tags[row_index])
                    facegroup = facegroups.get(tag)
                    if facegroup is None:
                        name = tag_names.get(tag, str(tag))
                        n_layer = boundary_layers.get(name, boundary_layers.get(str(tag), 0))
                        facegroup = mesh.add_facegroup(name, n_layer=n_layer, tag=tag)
                        facegroups[tag] = facegroup
                mesh.add_elem2d([node_keys[i] for i in row], facegroup)

        elif cell_type not in IGNORED_CELL_TYPES:
            skipped[cell_type] += len(data)

    for cell_type, count in skipped.items():
        logger.warning(f"Skipped {count} unsupported '{cell_type}' cells")

    if block_tags is None and mesh.num_faces:
        logger.warning(f"No '{facegroup_tag}' cell data: {mesh.num_faces} faces have no facegroup")

    known = {fg.name for fg in facegroups.values()} | {str(tag) for tag in facegroups}
    for name in boundary_layers:
        if name not in known:
            logger.warning(f"Boundary layer given for unknown facegroup '{name}'")

    logger.debug(f"Built {mesh!r}")
    return mesh


class MeshLoader:
    """
    Volume mesh loader built on meshio.

    Load failures are reported through LoadResult rather than raised.
    """

    SUPPORTED_EXTENSIONS = {'.msh', '.vtu', '.vtk', '.inp', '.mesh', '.xdmf', '.med'}

    def __init__(
        self,
        facegroup_tag: str = DEFAULT_FACEGROUP_TAG,
        boundary_layers: Optional[Mapping[str, int]] = None,
    ):
        self.facegroup_tag = facegroup_tag
        self.boundary_layers = dict(boundary_layers or {})
        self._last_result: Optional[LoadResult] = None

    @property
    def last_result(self) -> Optional[LoadResult]:
        """Get the result of the last load operation."""
        return self._last_result

    def is_valid_mesh_file(self, file_path: str) -> Tuple[bool, str]:
        """
        Check if a file looks like a loadable mesh file.

        Returns:
            Tuple of (is_valid, error_message)
        """
        path = Path(file_path)

        if not path.exists():
            return False, f"File does not exist: {file_path}"

        if not path.is_file():
            return False, f"Path is not a file: {file_path}"

        if path.suffix.lower() not in self.SUPPORTED_EXTENSIONS:
            expected = ', '.join(sorted(self.SUPPORTED_EXTENSIONS))
            return False, f"Unsupported file extension: {path.suffix}. Expected one of {expected}"

        if path.stat().st_size == 0:
            return False, "File is empty"

        return True, ""

    def load(self, file_path: str) -> LoadResult:
        """
        Load a volume mesh file.

        Args:
            file_path: Path to the mesh file

        Returns:
            LoadResult containing the mesh or error information
        """
        start_time = time.perf_counter()
        path = Path(file_path)

        is_valid, error_msg = self.is_valid_mesh_file(file_path)
        if not is_valid:
            self._last_result = LoadResult(
                mesh=None,
                file_path=str(path.absolute()),
                file_name=path.name,
                file_size_bytes=0,
                success=False,
                error_message=error_msg,
            )
            return self._last_result

        file_size = path.stat().st_size

        try:
            source = meshio.read(file_path)
            mesh = mesh_from_meshio(source, self.facegroup_tag, self.boundary_layers)
            self._last_result = LoadResult(
                mesh=mesh,
                file_path=str(path.absolute()),
                file_name=path.name,
                file_size_bytes=file_size,
                success=True,
                load_time_ms=(time.perf_counter() - start_time) * 1000,
            )
            logger.info(f"Loaded {path.name}: {mesh!r}")

        except (Exception, SystemExit) as e:
            # meshio exits through SystemExit on some unparseable files
            if isinstance(e, SystemExit):
                message = f"Unreadable mesh file (reader exited with status {e.code})"
            else:
                message = str(e)
            logger.error(f"Failed to read {path.name}: {message}")
            self._last_result = LoadResult(
                mesh=None,
                file_path=str(path.absolute()),
                file_name=path.name,
                file_size_bytes=file_size,
                success=False,
                error_message=message,
                load_time_ms=(time.perf_counter() - start_time) * 1000,
            )

        return self._last_result


def load_mesh_file(
    file_path: str,
    facegroup_tag: str = DEFAULT_FACEGROUP_TAG,
    boundary_layers: Optional[Mapping[str, int]] = None,
) -> LoadResult:
    """
    Convenience function to load a volume mesh file.

    Returns:
        LoadResult containing the mesh or error information
    """
    loader = MeshLoader(facegroup_tag, boundary_layers)
    return loader.load(file_path)


def mesh_to_meshio(
    mesh: PrismMesh,
    facegroup_tag: str = DEFAULT_FACEGROUP_TAG,
    color_codes: Optional[ElementColorCodes] = None,
) -> meshio.Mesh:
    """
    Convert a PrismMesh to a meshio mesh.

    Node keys are compacted to consecutive point indices. 3D cells get tag 0;
    2D faces get their facegroup's tag (0 for faces without a facegroup).
    With color_codes, a 'bl_color' array (0 none, 1 red, 2 green) is added.
    """
    nodes = sorted(mesh.all_nodes(), key=lambda n: n.key)
    index = {node.key: i for i, node in enumerate(nodes)}
    points = np.array([node.position for node in nodes], dtype=np.float64).reshape(-1, 3)

    facegroup_tags: Dict[int, int] = {}
    field_data: Dict[str, np.ndarray] = {}
    for facegroup in mesh.all_facegroups():
        tag = facegroup.tag if facegroup.tag is not None else facegroup.key + 1
        facegroup_tags[facegroup.key] = tag
        field_data[facegroup.name] = np.array([tag, 2], dtype=np.int32)

    cells: List[Tuple[str, np.ndarray]] = []
    tag_data: List[np.ndarray] = []
    color_data: List[np.ndarray] = []

    elements_by_type = defaultdict(list)
    for elem in sorted(mesh.all_elem3d(), key=lambda e: e.key):
        elements_by_type[elem.cell_type].append(elem)
    for cell_type in CELL_NODE_COUNTS:
        elements = elements_by_type.get(cell_type)
        if not elements:
            continue
        cells.append((cell_type, np.array([[index[k] for k in e.node_keys] for e in elements], dtype=np.int64)))
        tag_data.append(np.zeros(len(elements), dtype=np.int32))
        if color_codes is not None:
            color_data.append(color_codes.color_codes(e.key for e in elements))

    faces_by_type = defaultdict(list)
    for face in sorted(mesh.all_elem2d(), key=lambda f: f.key):
        face_type = 'triangle' if len(face.node_keys) == 3 else 'quad'
        faces_by_type[face_type].append(face)
    for face_type in FACE_NODE_COUNTS:
        faces = faces_by_type.get(face_type)
        if not faces:
            continue
        cells.append((face_type, np.array([[index[k] for k in f.node_keys] for f in faces], dtype=np.int64)))
        tag_data.append(np.array(
            [0 if f.facegroup_key is None else facegroup_tags[f.facegroup_key] for f in faces],
            dtype=np.int32,
        ))
        if color_codes is not None:
            color_data.append(np.zeros(len(faces), dtype=np.int32))

    cell_data = {facegroup_tag: tag_data}
    if facegroup_tag == 'gmsh:physical':
        cell_data['gmsh:geometrical'] = [t.copy() for t in tag_data]
    if color_codes is not None:
        cell_data[COLOR_DATA_NAME] = color_data

    return meshio.Mesh(points, cells, cell_data=cell_data, field_data=field_data)


def write_prism_mesh(
    mesh: PrismMesh,
    file_path: str,
    facegroup_tag: str = DEFAULT_FACEGROUP_TAG,
    color_codes: Optional[ElementColorCodes] = None,
) -> None:
    """
    Write a PrismMesh to any format meshio supports (chosen by extension).

    Gmsh files are written as ASCII format 2.2.
    """
    output = mesh_to_meshio(mesh, facegroup_tag, color_codes)
    path = Path(file_path)
    if path.suffix.lower() == '.msh':
        meshio.write(str(path), output, file_format='gmsh22', binary=False)
    else:
        meshio.write(str(path), output)
    logger.info(
        f"Wrote {path.name}: {mesh.num_nodes} nodes, {mesh.num_elements} elements, {mesh.num_faces} faces"
    )
