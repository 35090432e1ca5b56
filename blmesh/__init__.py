"""Boundary-layer prism subdivision and sharp-edge classification."""

__version__ = "0.1.0"
