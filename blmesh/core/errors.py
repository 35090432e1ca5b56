"""
Boundary Layer Errors

Exceptions raised before a boundary-layer pass touches the mesh.

Geometric and topological skip conditions (non-manifold edges, concave
face pairs, facegroups without boundary-layer neighbors) are not errors and
never raise; only configuration-level problems do.
"""


class BoundaryLayerError(Exception):
    """Base class for all boundary-layer processing errors."""


class ConfigurationError(BoundaryLayerError, ValueError):
    """Invalid run configuration (e.g. a division count below 2)."""


class MissingInputError(BoundaryLayerError, FileNotFoundError):
    """No mesh loaded, or the input file could not be read."""
