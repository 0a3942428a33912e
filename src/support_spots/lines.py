"""Extrusion lines and nearest-line queries over shapely's STRtree."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry import LineString

from support_spots.contracts import FlatExtrusion, SupportPointCause
from support_spots.geometry import boundary_segments


@dataclass
class ExtrusionLine:
    """One segment of an extrusion path, with the results of its analysis."""
    a: np.ndarray
    b: np.ndarray
    length: float
    origin: Optional[FlatExtrusion] = None
    curled_up_height: float = 0.0
    form_quality: float = 1.0
    support_point_generated: Optional[SupportPointCause] = None

    @classmethod
    def between(cls, a, b, origin: Optional[FlatExtrusion] = None) -> "ExtrusionLine":
        a = np.asarray(a, dtype=float)
        b = np.asarray(b, dtype=float)
        return cls(a=a, b=b, length=float(np.linalg.norm(b - a)), origin=origin)

    @property
    def is_external_perimeter(self) -> bool:
        if self.origin is None:
            raise ValueError("ExtrusionLine has no origin extrusion")
        return self.origin.role.is_external_perimeter

    def direction(self) -> np.ndarray:
        if self.length < 1e-9:
            return np.zeros(2)
        return (self.b - self.a) / self.length


class LinesDistancer:
    """Nearest-segment queries over a fixed set of 2D segments."""

    def __init__(self, segments, lines: Optional[Sequence[ExtrusionLine]] = None) -> None:
        self.segments = np.asarray(segments, dtype=float).reshape(-1, 2, 2)
        self._lines = list(lines) if lines is not None else None
        self._tree = STRtree(shapely.linestrings(self.segments)) if len(self.segments) else None

    @classmethod
    def from_lines(cls, lines: Sequence[ExtrusionLine]) -> "LinesDistancer":
        segments = np.array([[line.a, line.b] for line in lines], dtype=float).reshape(-1, 2, 2)
        return cls(segments, lines=lines)

    def __len__(self) -> int:
        return len(self.segments)

    def is_empty(self) -> bool:
        return self._tree is None

    def get_line(self, index: int) -> ExtrusionLine:
        if self._lines is None:
            raise ValueError("LinesDistancer was built from raw segments, not extrusion lines")
        return self._lines[index]

    def nearest_indices(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Index of the nearest segment and the distance to it, per point."""
        points = np.atleast_2d(np.asarray(points, dtype=float))
        if self._tree is None:
            return np.full(len(points), -1, dtype=int), np.full(len(points), math.inf)
        (input_idx, tree_idx), distances = self._tree.query_nearest(
            shapely.points(points), return_distance=True, all_matches=False,
        )
        nearest = np.full(len(points), -1, dtype=int)
        dist = np.full(len(points), math.inf)
        nearest[input_idx] = tree_idx
        dist[input_idx] = distances
        return nearest, dist

    def distance_from_lines_extra(self, point) -> Tuple[float, int, np.ndarray]:
        """(distance, nearest segment index, nearest point on that segment)."""
        point = np.asarray(point, dtype=float)
        nearest, dist = self.nearest_indices(point)
        index = int(nearest[0])
        if index < 0:
            return math.inf, -1, point.copy()
        return float(dist[0]), index, self.closest_point_on(index, point)

    def closest_point_on(self, index: int, point: np.ndarray) -> np.ndarray:
        a, b = self.segments[index]
        ab = b - a
        denom = float(ab @ ab)
        if denom < 1e-18:
            return a.copy()
        t = min(1.0, max(0.0, float((point - a) @ ab) / denom))
        return a + t * ab

    def intersections_with_line(self, a, b) -> List[np.ndarray]:
        """Crossings of segment a-b with the indexed segments, ordered from a."""
        if self._tree is None:
            return []
        a = np.asarray(a, dtype=float)
        b = np.asarray(b, dtype=float)
        query = LineString([a, b])
        hits = self._tree.query(query, predicate="intersects")
        found: List[np.ndarray] = []
        for index in hits:
            crossing = shapely.intersection(query, self._tree.geometries[index])
            for point in shapely.get_parts(crossing):
                if point.geom_type == "Point":
                    found.append(np.array([point.x, point.y]))
        found.sort(key=lambda p: float(np.linalg.norm(p - a)))
        return found


class BoundaryDistancer(LinesDistancer):
    """Signed distance to slice outlines: negative inside the material."""

    def __init__(self, geometry) -> None:
        super().__init__(boundary_segments(geometry))
        self.geometry = geometry
        if not geometry.is_empty:
            shapely.prepare(self.geometry)

    def signed_distances(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        points = np.atleast_2d(np.asarray(points, dtype=float))
        nearest, dist = self.nearest_indices(points)
        if self.geometry.is_empty:
            return nearest, dist
        inside = shapely.contains_xy(self.geometry, points[:, 0], points[:, 1])
        return nearest, np.where(inside, -dist, dist)

    def signed_distance(self, point) -> float:
        _, dist = self.signed_distances(point)
        return float(dist[0])
