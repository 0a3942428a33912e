"""
Shared test fixtures for the support spot search tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest
from shapely.geometry import box

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from support_spots.contracts import (
    ExtrusionCollection,
    ExtrusionPath,
    ExtrusionRole,
    Layer,
    LayerSlice,
    SlicedObject,
)
from support_spots.params import Params

LAYER_HEIGHT = 0.2
WIDTH = 0.45


def square_loop(x0, y0, size, inset=0.0):
    """Closed ccw ring of a square, shrunk by inset."""
    a, b = x0 + inset, x0 + size - inset
    c, d = y0 + inset, y0 + size - inset
    return np.array([(a, c), (b, c), (b, d), (a, d), (a, c)], dtype=float)


def square_slice(x0, y0, size, overlaps_below=(), width=WIDTH, height=LAYER_HEIGHT):
    """Slice of a square with one external perimeter loop."""
    loop = ExtrusionPath(square_loop(x0, y0, size, 0.5 * width), ExtrusionRole.EXTERNAL_PERIMETER, width, height)
    return LayerSlice(
        polygons=box(x0, y0, x0 + size, y0 + size),
        overlaps_below=list(overlaps_below),
        perimeters=[ExtrusionCollection([loop])],
    )


@pytest.fixture
def params():
    return Params()


@pytest.fixture
def make_layer():
    """Factory: make_layer(layer_idx, slices) at the default layer height."""
    def _make(layer_idx, slices):
        return Layer(print_z=(layer_idx + 1) * LAYER_HEIGHT, height=LAYER_HEIGHT, slices=list(slices))
    return _make


@pytest.fixture
def make_square_slice():
    return square_slice


@pytest.fixture
def tower_object():
    """A 10x10 mm square tower, 10 layers high, standing on the bed."""
    layers = []
    for layer_idx in range(10):
        overlaps = [0] if layer_idx > 0 else []
        layers.append(Layer(
            print_z=(layer_idx + 1) * LAYER_HEIGHT,
            height=LAYER_HEIGHT,
            slices=[square_slice(0.0, 0.0, 10.0, overlaps)],
        ))
    return SlicedObject(layers=layers, name="tower")


@pytest.fixture
def floating_object():
    """A tower on the bed and a square appearing in the air next to it at layer 3."""
    layers = []
    for layer_idx in range(8):
        slices = [square_slice(0.0, 0.0, 10.0, [0] if layer_idx > 0 else [])]
        if layer_idx >= 3:
            slices.append(square_slice(30.0, 0.0, 10.0, [1] if layer_idx > 3 else []))
        layers.append(Layer(
            print_z=(layer_idx + 1) * LAYER_HEIGHT,
            height=LAYER_HEIGHT,
            slices=slices,
        ))
    return SlicedObject(layers=layers, name="floating")
