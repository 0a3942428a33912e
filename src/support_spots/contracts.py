"""Data contracts for the support spot search.

Input side: the sliced object as produced by the slicing pipeline (layers,
slices, extrusion trees). Output side: support points and partial objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Sequence, Tuple, Union

import numpy as np
from shapely.geometry import MultiPolygon, Polygon

Vec3 = Tuple[float, float, float]


class AnalysisCancelled(RuntimeError):
    """Raised when the caller cancels a running analysis between layers."""


class SupportPointCause(Enum):
    """Why a support point was generated."""
    LONG_BRIDGE = "long_bridge"                        # bridge longer than the allowed length
    FLOATING_BRIDGE_ANCHOR = "floating_bridge_anchor"  # unsupported bridge endpoint or turn
    FLOATING_EXTRUSION = "floating_extrusion"          # extrusion that does not hold on its own
    SEPARATION_FROM_BED = "separation_from_bed"        # bed-connected part with too small footprint
    UNSTABLE_FLOATING_PART = "unstable_floating_part"  # part not connected to the bed at all
    WEAK_OBJECT_PART = "weak_object_part"              # thin section that may break (hourglass)


class ExtrusionRole(Enum):
    """Role of an extrusion path, as classified by the toolpath generator."""
    PERIMETER = "perimeter"
    EXTERNAL_PERIMETER = "external_perimeter"
    OVERHANG_PERIMETER = "overhang_perimeter"
    INTERNAL_INFILL = "internal_infill"
    SOLID_INFILL = "solid_infill"
    TOP_SOLID_INFILL = "top_solid_infill"
    BRIDGE_INFILL = "bridge_infill"
    GAP_FILL = "gap_fill"

    @property
    def is_perimeter(self) -> bool:
        return self in _PERIMETER_ROLES

    @property
    def is_external_perimeter(self) -> bool:
        return self in (ExtrusionRole.EXTERNAL_PERIMETER, ExtrusionRole.OVERHANG_PERIMETER)

    @property
    def is_bridge(self) -> bool:
        return self in (ExtrusionRole.BRIDGE_INFILL, ExtrusionRole.OVERHANG_PERIMETER)


_PERIMETER_ROLES = frozenset({
    ExtrusionRole.PERIMETER,
    ExtrusionRole.EXTERNAL_PERIMETER,
    ExtrusionRole.OVERHANG_PERIMETER,
})


class BrimType(Enum):
    NO_BRIM = "no_brim"
    OUTER_ONLY = "outer_only"
    INNER_ONLY = "inner_only"
    OUTER_AND_INNER = "outer_and_inner"


# ─── Extrusion tree ──────────────────────────────────────────────────────────

@dataclass
class ExtrusionPath:
    """A single extrusion path with uniform flow."""
    points: np.ndarray   # (N, 2) in mm
    role: ExtrusionRole
    width: float         # flow width in mm
    height: float        # layer height of the flow in mm

    def __post_init__(self) -> None:
        pts = np.asarray(self.points, dtype=float)
        if pts.ndim != 2 or pts.shape[1] != 2 or len(pts) < 2:
            raise ValueError(
                f"ExtrusionPath needs at least two 2D points, got shape {pts.shape}"
            )
        self.points = pts

    @property
    def length(self) -> float:
        return float(np.linalg.norm(np.diff(self.points, axis=0), axis=1).sum())

    @property
    def is_closed(self) -> bool:
        return bool(np.allclose(self.points[0], self.points[-1]))


@dataclass
class ExtrusionCollection:
    """A tree of extrusion paths (perimeter loops, fill islands, ...)."""
    entities: List[Union[ExtrusionPath, "ExtrusionCollection"]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(True for _ in self.iter_paths())

    def iter_paths(self) -> Iterator[ExtrusionPath]:
        stack = list(reversed(self.entities))
        while stack:
            entity = stack.pop()
            if isinstance(entity, ExtrusionCollection):
                stack.extend(reversed(entity.entities))
            else:
                yield entity

    def flatten(self) -> List["FlatExtrusion"]:
        return [FlatExtrusion.from_path(p) for p in self.iter_paths()]


@dataclass(frozen=True)
class FlatExtrusion:
    """Leaf view of an extrusion path with its role tag made explicit."""
    points: np.ndarray
    role: ExtrusionRole
    width: float
    height: float

    @classmethod
    def from_path(cls, path: ExtrusionPath) -> "FlatExtrusion":
        return cls(points=path.points, role=path.role, width=path.width, height=path.height)

    @property
    def length(self) -> float:
        return float(np.linalg.norm(np.diff(self.points, axis=0), axis=1).sum())


# ─── Layers ──────────────────────────────────────────────────────────────────

@dataclass
class LayerSlice:
    """One connected region of a layer with its extrusions.

    `overlaps_below` lists indices of slices in the previous layer that
    overlap this one; it is computed by the slicing pipeline.
    """
    polygons: Union[Polygon, MultiPolygon]
    overlaps_below: List[int] = field(default_factory=list)
    perimeters: List[ExtrusionCollection] = field(default_factory=list)
    fills: List[ExtrusionCollection] = field(default_factory=list)
    thin_fills: ExtrusionCollection = field(default_factory=ExtrusionCollection)

    def extrusion_collections(self) -> List[ExtrusionCollection]:
        return [*self.perimeters, *self.fills, self.thin_fills]


@dataclass
class Layer:
    print_z: float
    height: float
    slices: List[LayerSlice] = field(default_factory=list)

    @property
    def bottom_z(self) -> float:
        return self.print_z - self.height


@dataclass
class SlicedObject:
    """All layers of one print object, bottom to top."""
    layers: List[Layer]
    name: str = "object"

    def validate(self) -> None:
        previous_z = -np.inf
        for layer_idx, layer in enumerate(self.layers):
            if layer.print_z <= previous_z:
                raise ValueError(
                    f"Layer {layer_idx} print_z {layer.print_z} is not above the previous layer"
                )
            previous_z = layer.print_z
            below_count = len(self.layers[layer_idx - 1].slices) if layer_idx > 0 else 0
            for slice_idx, layer_slice in enumerate(layer.slices):
                for link in layer_slice.overlaps_below:
                    if not 0 <= link < below_count:
                        raise ValueError(
                            f"Layer {layer_idx} slice {slice_idx} links to slice {link} below, "
                            f"but the previous layer has {below_count} slices"
                        )

    def bounds(self) -> Tuple[float, float, float, float, float, float]:
        """(minx, miny, minz, maxx, maxy, maxz) over all slices."""
        xy = [s.polygons.bounds for layer in self.layers for s in layer.slices if not s.polygons.is_empty]
        if not xy:
            return (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
        arr = np.array(xy)
        min_z = self.layers[0].bottom_z
        max_z = self.layers[-1].print_z
        return (
            float(arr[:, 0].min()), float(arr[:, 1].min()), min_z,
            float(arr[:, 2].max()), float(arr[:, 3].max()), max_z,
        )


# ─── Results ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SupportPoint:
    cause: SupportPointCause
    position: Vec3
    spot_radius: float

    def to_dict(self) -> dict:
        return {
            "cause": self.cause.value,
            "position": [float(c) for c in self.position],
            "spot_radius": float(self.spot_radius),
        }


@dataclass(frozen=True)
class PartialObject:
    """A distinct region of the object that existed during the print."""
    centroid: Vec3
    volume: float
    connected_to_bed: bool

    def to_dict(self) -> dict:
        return {
            "centroid": [float(c) for c in self.centroid],
            "volume": float(self.volume),
            "connected_to_bed": self.connected_to_bed,
        }


@dataclass(frozen=True)
class CurledLine:
    """A segment of external perimeter expected to curl up."""
    a: Tuple[float, float]
    b: Tuple[float, float]
    curled_height: float


def to_vec3(values: Sequence[float]) -> Vec3:
    return (float(values[0]), float(values[1]), float(values[2]))
