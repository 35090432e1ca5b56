import numpy as np
import pytest

from blmesh.core.display import ElementColor, ElementColorCodes
from blmesh.core.errors import ConfigurationError, MissingInputError
from blmesh.core.sharp_edge_classifier import (
    BoundaryEdgeClassifier,
    BoundaryLayerEntry,
    BoundaryLayerRegistry,
    PrismPairList,
    Ring,
    classify_sharp_edges,
    is_convex_pair,
)

from conftest import build_corner


class TestRegistries:
    def test_ring_keeps_repeats(self):
        ring = Ring()
        for key in (4, 7, 4):
            ring.add_edge(key)
        assert ring.num_edges == 3
        assert list(ring) == [4, 7, 4]
        assert ring.unique_edge_keys() == [4, 7]

    def test_prism_pair_list(self):
        pairs = PrismPairList()
        pairs.add_prism(1, 2)
        pairs.add_prism(None, 5)
        assert pairs.num_prisms == 2
        assert pairs[1].red_key is None
        assert pairs[1].green_key == 5

    def test_registry_rejects_duplicate_facegroup(self):
        registry = BoundaryLayerRegistry()
        entry = BoundaryLayerEntry(3, 'wall', Ring([1]), PrismPairList())
        registry.add_bl(entry)
        assert 3 in registry
        assert registry.num_bl == 1
        with pytest.raises(ValueError):
            registry.add_bl(BoundaryLayerEntry(3, 'wall', Ring(), PrismPairList()))

    def test_registry_to_dict(self):
        registry = BoundaryLayerRegistry()
        pairs = PrismPairList()
        pairs.add_prism(10, 11)
        registry.add_bl(BoundaryLayerEntry(0, 'floor', Ring([5]), pairs))
        data = registry.to_dict()
        assert data['num_bl'] == 1
        assert data['total_edges'] == 1
        assert data['entries'][0] == {
            'facegroup_key': 0,
            'facegroup_name': 'floor',
            'edges': [5],
            'prism_pairs': [[10, 11]],
        }


class TestConvexity:
    def test_right_angle_corner_is_convex(self):
        assert is_convex_pair(
            np.array([0.0, 0.0, -1.0]), np.array([0.5, 0.0, 0.0]),
            np.array([-1.0, 0.0, 0.0]), np.array([0.0, 0.0, 0.5]),
        )

    def test_reflex_corner_is_not_convex(self):
        assert not is_convex_pair(
            np.array([0.0, 0.0, 1.0]), np.array([0.5, 0.0, 0.0]),
            np.array([1.0, 0.0, 0.0]), np.array([0.0, 0.0, 0.5]),
        )


class TestClassifier:
    def test_right_angle_corner(self, corner, recording_tagger, recording_renderer):
        """Two boundary-layer facegroups meeting at 90 degrees share one sharp edge."""
        mesh, h = corner
        registry = BoundaryEdgeClassifier(mesh, recording_tagger, recording_renderer).classify()

        assert registry.num_bl == 2
        floor_entry = registry[h['floor_group'].key]
        wall_entry = registry[h['wall_group'].key]

        assert list(floor_entry.ring) == [h['shared_edge'].key]
        assert list(wall_entry.ring) == [h['shared_edge'].key]
        assert list(floor_entry.prism_pairs) == [(h['floor_prism'].key, h['wall_prism'].key)]
        assert list(wall_entry.prism_pairs) == [(h['wall_prism'].key, h['floor_prism'].key)]

        assert recording_tagger.calls == [
            (h['floor_prism'].key, ElementColor.RED),
            (h['wall_prism'].key, ElementColor.GREEN),
            (h['wall_prism'].key, ElementColor.RED),
            (h['floor_prism'].key, ElementColor.GREEN),
        ]
        assert recording_renderer.dirty_count == 1

    def test_final_colors_follow_last_tag(self, corner):
        mesh, h = corner
        colors = ElementColorCodes()
        classify_sharp_edges(mesh, colors)
        assert colors.color_of(h['floor_prism'].key) is ElementColor.GREEN
        assert colors.color_of(h['wall_prism'].key) is ElementColor.RED
        assert len(colors) == 2

    def test_flat_corner_has_no_sharp_edges(self, recording_tagger, recording_renderer):
        mesh, _ = build_corner(angle_deg=170.0)
        registry = BoundaryEdgeClassifier(mesh, recording_tagger, recording_renderer).classify()
        assert registry.num_bl == 0
        assert recording_tagger.calls == []
        assert recording_renderer.dirty_count == 1

    def test_reflex_corner_is_skipped(self, recording_tagger):
        mesh, _ = build_corner(angle_deg=270.0)
        registry = classify_sharp_edges(mesh, recording_tagger)
        assert registry.num_bl == 0
        assert recording_tagger.calls == []

    def test_neighbor_without_boundary_layer(self, recording_tagger):
        mesh, h = build_corner(wall_layers=0)
        registry = classify_sharp_edges(mesh, recording_tagger)
        assert registry.num_bl == 0
        assert recording_tagger.calls == []

    def test_same_facegroup_is_not_sharp(self):
        mesh, _ = build_corner(same_group=True)
        assert classify_sharp_edges(mesh).num_bl == 0

    def test_internal_face_stops_edge_search(self):
        """An internal face reached first along an edge ends the search on that edge."""
        mesh, h = build_corner(internal_face=True)
        colors = ElementColorCodes()
        registry = classify_sharp_edges(mesh, colors)

        # The floor meets the internal face first; the wall meets the floor first
        assert h['floor_group'].key not in registry
        assert list(registry) == [registry[h['wall_group'].key]]
        assert colors.color_of(h['wall_prism'].key) is ElementColor.RED
        assert colors.color_of(h['floor_prism'].key) is ElementColor.GREEN

    @pytest.mark.parametrize("angle_deg, threshold, expected", [
        (75.0, 0.5, 2),
        (45.0, 0.5, 0),
        (75.0, 0.2, 0),
        (45.0, 0.9, 2),
    ])
    def test_cos_threshold(self, angle_deg, threshold, expected):
        mesh, _ = build_corner(angle_deg=angle_deg)
        registry = classify_sharp_edges(mesh, cos_threshold=threshold)
        assert registry.num_bl == expected

    def test_ring_and_pairs_aligned(self, corner):
        mesh, _ = corner
        for entry in classify_sharp_edges(mesh):
            assert len(entry.ring) == len(entry.prism_pairs)

    def test_topology_untouched(self, corner):
        mesh, _ = corner
        before = (mesh.num_nodes, mesh.num_edges, mesh.num_faces, mesh.num_elements)
        classify_sharp_edges(mesh)
        assert (mesh.num_nodes, mesh.num_edges, mesh.num_faces, mesh.num_elements) == before

    def test_missing_mesh(self):
        with pytest.raises(MissingInputError):
            BoundaryEdgeClassifier(None)

    @pytest.mark.parametrize("threshold", [0.0, -0.5, 1.5])
    def test_bad_threshold(self, corner, threshold):
        mesh, _ = corner
        with pytest.raises(ConfigurationError):
            BoundaryEdgeClassifier(mesh, cos_threshold=threshold)

    def test_edge_neighbors(self, corner):
        mesh, h = corner
        classifier = BoundaryEdgeClassifier(mesh)
        neighbors = classifier.edge_neighbors(h['floor_face'], h['shared_edge'])
        assert neighbors == [h['wall_face']]

    def test_vertex_only_face_is_not_a_neighbor(self, corner):
        """A face meeting the edge at one endpoint is ignored, even in a boundary-layer group."""
        mesh, h = corner
        node0, _ = mesh.edge_nodes(h['shared_edge'])
        e = mesh.add_node((0.0, -1.0, 0.5))
        f = mesh.add_node((0.0, -1.0, 1.0))
        fan_face = mesh.add_elem2d([node0, e, f], h['wall_group'])
        assert fan_face in mesh.find_elem2d_from_node(node0)

        classifier = BoundaryEdgeClassifier(mesh)
        assert classifier.edge_neighbors(h['floor_face'], h['shared_edge']) == [h['wall_face']]

        registry = classifier.classify()
        assert list(registry[h['floor_group'].key].ring) == [h['shared_edge'].key]
        assert list(registry[h['wall_group'].key].ring) == [h['shared_edge'].key]
