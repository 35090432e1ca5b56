"""
Element Display Capabilities

Narrow interfaces through which the sharp-edge classifier reports its
coloring, independent of any GUI:

- ColorTagger: tags a volume element with a display color
- Renderer: told once a pass has changed colors so it can redraw

ElementColorCodes is the in-memory tagger used for headless runs and for
writing colors to mesh files.

Color convention:
- Red: elements on the facegroup being classified
- Green: elements on the neighboring boundary-layer facegroup
"""

from enum import Enum
from typing import Iterable, Optional, Protocol

import numpy as np

from blmesh.core.hashtable import ABSENT, HandleKeyedMap


class ElementColor(Enum):
    """Sharp-edge side of a boundary-layer element. Values are file codes."""
    RED = 1
    GREEN = 2


class BoundaryLayerColors:
    """Colors for boundary-layer visualization (RGBA, 0-255)."""
    RED = np.array([255, 0, 0, 255], dtype=np.uint8)
    GREEN = np.array([0, 255, 0, 255], dtype=np.uint8)
    DEFAULT = np.array([0, 170, 255, 255], dtype=np.uint8)   # Light blue (mesh color)

    @classmethod
    def rgba(cls, color: Optional[ElementColor]) -> np.ndarray:
        if color is ElementColor.RED:
            return cls.RED
        if color is ElementColor.GREEN:
            return cls.GREEN
        return cls.DEFAULT


class ColorTagger(Protocol):
    def tag(self, element_key: int, color: ElementColor) -> None:
        ...


class Renderer(Protocol):
    def mark_dirty(self) -> None:
        ...


class NullRenderer:
    """Renderer for headless runs."""

    def mark_dirty(self) -> None:
        pass


class ElementColorCodes:
    """
    Element key -> color map. Tagging an element again overwrites its color.
    """

    def __init__(self):
        self._codes: HandleKeyedMap[ElementColor] = HandleKeyedMap()

    def __len__(self) -> int:
        return len(self._codes)

    def tag(self, element_key: int, color: ElementColor) -> None:
        self._codes.update(element_key, color)

    def color_of(self, element_key: int) -> Optional[ElementColor]:
        color = self._codes.content(element_key)
        return None if color is ABSENT else color

    def keys_with_color(self, color: ElementColor) -> list:
        return sorted(k for k, c in self._codes.items() if c is color)

    def color_codes(self, element_keys: Iterable[int]) -> np.ndarray:
        """Integer codes per element (0 = untagged, 1 = red, 2 = green)."""
        codes = []
        for key in element_keys:
            color = self.color_of(key)
            codes.append(0 if color is None else color.value)
        return np.array(codes, dtype=np.int32)

    def rgba_colors(self, element_keys: Iterable[int]) -> np.ndarray:
        """(E, 4) uint8 RGBA colors per element."""
        colors = [BoundaryLayerColors.rgba(self.color_of(k)) for k in element_keys]
        if not colors:
            return np.zeros((0, 4), dtype=np.uint8)
        return np.vstack(colors)

    def clear(self) -> None:
        self._codes.clean_up()
