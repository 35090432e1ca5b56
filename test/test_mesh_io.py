import logging

import meshio
import numpy as np
import pytest

from blmesh.core.display import ElementColor, ElementColorCodes
from blmesh.core.errors import MissingInputError
from blmesh.core.mesh_io import (
    COLOR_DATA_NAME,
    MeshLoader,
    load_mesh_file,
    mesh_from_meshio,
    mesh_to_meshio,
    write_prism_mesh,
)


@pytest.fixture
def meshio_prism():
    """One wedge with its bottom triangle in 'wall' and top triangle in 'top'."""
    points = np.array([
        [0, 0, 0], [1, 0, 0], [0, 1, 0],
        [0, 0, 1], [1, 0, 1], [0, 1, 1],
    ], dtype=float)
    cells = [
        ("wedge", np.array([[0, 1, 2, 3, 4, 5]])),
        ("triangle", np.array([[0, 1, 2], [3, 4, 5]])),
        ("line", np.array([[0, 1]])),
    ]
    cell_data = {"gmsh:physical": [np.array([0]), np.array([1, 2]), np.array([0])]}
    field_data = {"wall": np.array([1, 2]), "top": np.array([2, 2])}
    return meshio.Mesh(points, cells, cell_data=cell_data, field_data=field_data)


class TestFromMeshio:
    def test_builds_facegroups(self, meshio_prism):
        mesh = mesh_from_meshio(meshio_prism, boundary_layers={'wall': 2})

        assert mesh.num_nodes == 6
        assert mesh.num_prisms == 1
        assert mesh.num_faces == 2

        wall = mesh.find_facegroup_by_name('wall')
        top = mesh.find_facegroup_by_name('top')
        assert wall.tag == 1
        assert mesh.get_boundary_layer_spec(wall).n_layer == 2
        assert not mesh.get_boundary_layer_spec(top).is_boundary_layer

        face = mesh.facegroup_faces(wall)[0]
        assert face.node_keys == (0, 1, 2)
        assert len(mesh.find_elem3d_from_elem2d(face)) == 1

    def test_layers_by_tag(self, meshio_prism):
        mesh = mesh_from_meshio(meshio_prism, boundary_layers={'2': 1})
        assert mesh.get_boundary_layer_spec(mesh.find_facegroup_by_name('top')).n_layer == 1

    def test_unknown_layer_name_warns(self, meshio_prism, caplog):
        with caplog.at_level(logging.WARNING):
            mesh_from_meshio(meshio_prism, boundary_layers={'inlet': 1})
        assert "unknown facegroup 'inlet'" in caplog.text

    def test_missing_tag_data(self, meshio_prism, caplog):
        with caplog.at_level(logging.WARNING):
            mesh = mesh_from_meshio(meshio_prism, facegroup_tag='medit:ref')
        assert mesh.num_facegroups == 0
        assert all(mesh.find_facegroup_from_elem2d(f) is None for f in mesh.all_elem2d())
        assert "medit:ref" in caplog.text

    def test_unsupported_cells_skipped(self, caplog):
        source = meshio.Mesh(
            np.zeros((3, 3)),
            [("triangle6", np.array([[0, 1, 2, 0, 1, 2]]))],
        )
        with caplog.at_level(logging.WARNING):
            mesh = mesh_from_meshio(source)
        assert mesh.num_faces == 0
        assert "triangle6" in caplog.text


class TestToMeshio:
    def test_cells_and_tags(self, meshio_prism):
        mesh = mesh_from_meshio(meshio_prism)
        out = mesh_to_meshio(mesh)

        assert out.points.shape == (6, 3)
        cells = {block.type: block.data for block in out.cells}
        np.testing.assert_array_equal(cells['wedge'], [[0, 1, 2, 3, 4, 5]])
        tags = dict(zip([b.type for b in out.cells], out.cell_data['gmsh:physical']))
        np.testing.assert_array_equal(tags['triangle'], [1, 2])
        assert 'gmsh:geometrical' in out.cell_data
        assert set(out.field_data) == {'wall', 'top'}

    def test_color_codes(self, meshio_prism):
        mesh = mesh_from_meshio(meshio_prism)
        colors = ElementColorCodes()
        colors.tag(mesh.all_elem3d()[0].key, ElementColor.RED)

        out = mesh_to_meshio(mesh, color_codes=colors)
        codes = dict(zip([b.type for b in out.cells], out.cell_data[COLOR_DATA_NAME]))
        np.testing.assert_array_equal(codes['wedge'], [1])
        np.testing.assert_array_equal(codes['triangle'], [0, 0])

    def test_untagged_facegroup_gets_key_based_tag(self, single_prism):
        mesh, _ = single_prism
        out = mesh_to_meshio(mesh)
        tags = dict(zip([b.type for b in out.cells], out.cell_data['gmsh:physical']))
        np.testing.assert_array_equal(tags['triangle'], [1])
        np.testing.assert_array_equal(out.field_data['wall'], [1, 2])

    def test_faces_written_without_elements(self, single_prism):
        mesh, handles = single_prism
        mesh.delete_elem3d(handles['prism'])
        out = mesh_to_meshio(mesh)
        assert out.points.shape == (6, 3)
        assert 'wedge' not in {block.type for block in out.cells}


class TestFiles:
    @pytest.mark.parametrize("suffix", [".vtu", ".msh"])
    def test_write_then_load(self, single_prism, tmp_path, suffix):
        mesh, _ = single_prism
        path = tmp_path / f"prism{suffix}"
        write_prism_mesh(mesh, str(path))

        result = load_mesh_file(str(path), boundary_layers={'1': 1, 'wall': 1})
        assert result.success, result.error_message
        loaded = result.require_mesh()
        assert loaded.num_prisms == 1
        assert loaded.num_faces == 1
        assert loaded.num_facegroups == 1
        assert loaded.get_boundary_layer_spec(loaded.all_facegroups()[0]).is_boundary_layer
        assert result.file_size_bytes > 0

    def test_colors_written(self, single_prism, tmp_path):
        mesh, handles = single_prism
        colors = ElementColorCodes()
        colors.tag(handles['prism'].key, ElementColor.GREEN)
        path = tmp_path / "colored.vtu"
        write_prism_mesh(mesh, str(path), color_codes=colors)

        out = meshio.read(str(path))
        codes = dict(zip([b.type for b in out.cells], out.cell_data[COLOR_DATA_NAME]))
        np.testing.assert_array_equal(codes['wedge'], [2])

    def test_missing_file(self, tmp_path):
        result = load_mesh_file(str(tmp_path / "absent.msh"))
        assert not result.success
        assert "does not exist" in result.error_message
        with pytest.raises(MissingInputError):
            result.require_mesh()

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "model.stl"
        path.write_text("solid x\nendsolid x\n")
        valid, message = MeshLoader().is_valid_mesh_file(str(path))
        assert not valid
        assert "Unsupported file extension" in message

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.msh"
        path.touch()
        result = MeshLoader().load(str(path))
        assert not result.success
        assert result.error_message == "File is empty"

    def test_corrupt_file_reported(self, tmp_path):
        path = tmp_path / "broken.vtu"
        path.write_text("not a mesh")
        loader = MeshLoader()
        result = loader.load(str(path))
        assert not result.success
        assert result.error_message
        assert loader.last_result is result

    def test_reader_exit_reported(self, tmp_path, monkeypatch):
        """A reader that exits instead of raising still yields a failed LoadResult."""
        path = tmp_path / "garbled.msh"
        path.write_text("$MeshFormat\ngarbage\n")

        def exit_reader(*args, **kwargs):
            raise SystemExit(1)

        monkeypatch.setattr(meshio, "read", exit_reader)
        result = load_mesh_file(str(path))
        assert not result.success
        assert "exited with status 1" in result.error_message
        with pytest.raises(MissingInputError):
            result.require_mesh()
