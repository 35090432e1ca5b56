"""Shared fixtures for blmesh tests.

Meshes are built directly through the PrismMesh API so tests do not depend
on mesh files. All builders return the mesh plus a dict of named handles.
"""

import math

import numpy as np
import pytest

from blmesh.core.display import ElementColor
from blmesh.core.prism_mesh import PrismMesh


class RecordingTagger:
    """ColorTagger that records every tag call in order."""

    def __init__(self):
        self.calls = []

    def tag(self, element_key, color: ElementColor):
        self.calls.append((element_key, color))


class RecordingRenderer:
    """Renderer that counts redraw requests."""

    def __init__(self):
        self.dirty_count = 0

    def mark_dirty(self):
        self.dirty_count += 1


def build_single_prism(face_on_top=False, n_layer=1):
    """Unit right prism, base z=0, top z=1, standing on a 'wall' face."""
    mesh = PrismMesh()
    coords = [
        (0, 0, 0), (1, 0, 0), (0, 1, 0),
        (0, 0, 1), (1, 0, 1), (0, 1, 1),
    ]
    nodes = [mesh.add_node(c) for c in coords]
    prism = mesh.add_prism(nodes)
    wall = mesh.add_facegroup('wall', n_layer=n_layer)
    face_nodes = nodes[3:] if face_on_top else nodes[:3]
    face = mesh.add_elem2d(face_nodes, wall)
    return mesh, {'nodes': nodes, 'prism': prism, 'face': face, 'wall': wall}


def build_two_prisms():
    """Unit cube split into two prisms sharing the diagonal side face."""
    mesh = PrismMesh()
    coords = [
        (0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0),
        (0, 0, 1), (1, 0, 1), (1, 1, 1), (0, 1, 1),
    ]
    n = [mesh.add_node(c) for c in coords]
    p1 = mesh.add_prism([n[0], n[1], n[2], n[4], n[5], n[6]])
    p2 = mesh.add_prism([n[0], n[2], n[3], n[4], n[6], n[7]])
    wall = mesh.add_facegroup('wall', n_layer=1)
    f1 = mesh.add_elem2d([n[0], n[1], n[2]], wall)
    f2 = mesh.add_elem2d([n[0], n[2], n[3]], wall)
    return mesh, {'nodes': n, 'prisms': [p1, p2], 'faces': [f1, f2], 'wall': wall}


def build_opposite_prisms():
    """
    Two prisms sharing two through-thickness edges, one standing on a floor
    face at z=0 and the other hanging from a ceiling face at z=1.
    """
    mesh = PrismMesh()
    coords = {
        0: (0, 0, 0), 1: (1, 0, 0), 2: (0, 1, 0),
        3: (0, 0, 1), 4: (1, 0, 1), 5: (0, 1, 1),
        6: (-1, 0, 0), 7: (-1, 0, 1),
    }
    n = {k: mesh.add_node(c) for k, c in coords.items()}
    p1 = mesh.add_prism([n[0], n[1], n[2], n[3], n[4], n[5]])
    p2 = mesh.add_prism([n[0], n[2], n[6], n[3], n[5], n[7]])
    floor = mesh.add_facegroup('floor', n_layer=1)
    ceiling = mesh.add_facegroup('ceiling', n_layer=1)
    mesh.add_elem2d([n[0], n[1], n[2]], floor)
    mesh.add_elem2d([n[3], n[5], n[7]], ceiling)
    return mesh, {'nodes': n, 'prisms': [p1, p2], 'floor': floor, 'ceiling': ceiling}


def build_corner(angle_deg=90.0, floor_layers=1, wall_layers=1, same_group=False,
                 internal_face=False, thickness=0.1):
    """
    Floor and wall faces sharing the edge A-B along the y axis.

    The floor lies in z=0 on the +x side; the wall is the floor rotated by
    angle_deg about the y axis. Each face carries one boundary-layer prism
    extruded into the region between them.
    """
    phi = math.radians(angle_deg)
    mesh = PrismMesh()
    a = mesh.add_node((0, 0, 0))
    b = mesh.add_node((0, 1, 0))
    c = mesh.add_node((1, 0.5, 0))
    d = mesh.add_node((math.cos(phi), 0.5, math.sin(phi)))

    floor_offset = np.array([0.0, 0.0, thickness])
    wall_offset = thickness * np.array([math.sin(phi), 0.0, -math.cos(phi)])

    floor_top = [mesh.add_node(mesh.get_node_pos(n) + floor_offset) for n in (a, c, b)]
    wall_top = [mesh.add_node(mesh.get_node_pos(n) + wall_offset) for n in (a, b, d)]

    floor_prism = mesh.add_prism([a, c, b] + floor_top)
    wall_prism = mesh.add_prism([a, b, d] + wall_top)

    floor_group = mesh.add_facegroup('floor', n_layer=floor_layers)
    wall_group = floor_group if same_group else mesh.add_facegroup('wall', n_layer=wall_layers)

    floor_face = mesh.add_elem2d([a, b, c], floor_group)
    internal = None
    if internal_face:
        e = mesh.add_node((-1, 0.5, -1))
        internal = mesh.add_elem2d([a, b, e])
    wall_face = mesh.add_elem2d([a, b, d], wall_group)

    return mesh, {
        'floor_prism': floor_prism,
        'wall_prism': wall_prism,
        'floor_group': floor_group,
        'wall_group': wall_group,
        'floor_face': floor_face,
        'wall_face': wall_face,
        'internal_face': internal,
        'shared_edge': mesh.find_edge_between(a, b),
    }


@pytest.fixture
def single_prism():
    return build_single_prism()


@pytest.fixture
def two_prisms():
    return build_two_prisms()


@pytest.fixture
def opposite_prisms():
    return build_opposite_prisms()


@pytest.fixture
def corner():
    return build_corner()


@pytest.fixture
def recording_tagger():
    return RecordingTagger()


@pytest.fixture
def recording_renderer():
    return RecordingRenderer()
