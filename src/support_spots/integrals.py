"""
Area integrals over polygon sets.

Accumulates area, first moment, second moments and product moment of area by
summing signed triangle contributions, so that results of disjoint regions
compose by plain addition and holes subtract themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import numpy as np
from shapely.geometry import LineString, Polygon
from shapely.geometry.polygon import orient
from shapely.ops import unary_union

from support_spots.geometry import iter_polygons

EPSILON = 1e-4


@dataclass
class MomentAccumulator:
    """Integrals over a planar region.

    area:            int dA
    first_moment:    (int x dA, int y dA)
    second_moment:   (int x^2 dA, int y^2 dA)
    product_moment:  int xy dA
    """
    area: float = 0.0
    first_moment: np.ndarray = field(default_factory=lambda: np.zeros(2))
    second_moment: np.ndarray = field(default_factory=lambda: np.zeros(2))
    product_moment: float = 0.0

    def __add__(self, other: "MomentAccumulator") -> "MomentAccumulator":
        return MomentAccumulator(
            area=self.area + other.area,
            first_moment=self.first_moment + other.first_moment,
            second_moment=self.second_moment + other.second_moment,
            product_moment=self.product_moment + other.product_moment,
        )

    def __iadd__(self, other: "MomentAccumulator") -> "MomentAccumulator":
        self.area += other.area
        self.first_moment = self.first_moment + other.first_moment
        self.second_moment = self.second_moment + other.second_moment
        self.product_moment += other.product_moment
        return self

    def scaled(self, factor: float) -> "MomentAccumulator":
        return MomentAccumulator(
            area=self.area * factor,
            first_moment=self.first_moment * factor,
            second_moment=self.second_moment * factor,
            product_moment=self.product_moment * factor,
        )

    def centroid(self) -> Optional[np.ndarray]:
        if abs(self.area) < EPSILON:
            return None
        return self.first_moment / self.area

    def second_moment_about_axis(self, direction: Sequence[float]) -> float:
        return compute_second_moment(self, direction)


def _triangle_fan_moments(ring: np.ndarray) -> MomentAccumulator:
    """Moments of a closed ring, fan-triangulated from its first vertex.

    Triangle areas are signed (ccw positive), which makes concave rings and
    clockwise holes come out right without any special handling.
    """
    if len(ring) > 1 and np.allclose(ring[0], ring[-1]):
        ring = ring[:-1]
    if len(ring) < 3:
        return MomentAccumulator()

    p0 = ring[0]
    p1 = ring[1:-1]
    p2 = ring[2:]

    e1 = p1 - p0
    e2 = p2 - p1
    areas = 0.5 * (e1[:, 0] * e2[:, 1] - e1[:, 1] * e2[:, 0])

    x0, y0 = p0
    x1, y1 = p1[:, 0], p1[:, 1]
    x2, y2 = p2[:, 0], p2[:, 1]

    first_x = areas * (x0 + x1 + x2) / 3.0
    first_y = areas * (y0 + y1 + y2) / 3.0
    second_x = areas * (x0 * x0 + x1 * x1 + x2 * x2 + x0 * x1 + x1 * x2 + x0 * x2) / 6.0
    second_y = areas * (y0 * y0 + y1 * y1 + y2 * y2 + y0 * y1 + y1 * y2 + y0 * y2) / 6.0
    product = areas * (
        2.0 * (x0 * y0 + x1 * y1 + x2 * y2)
        + x0 * y1 + x1 * y0 + x0 * y2 + x2 * y0 + x1 * y2 + x2 * y1
    ) / 12.0

    return MomentAccumulator(
        area=float(areas.sum()),
        first_moment=np.array([first_x.sum(), first_y.sum()]),
        second_moment=np.array([second_x.sum(), second_y.sum()]),
        product_moment=float(product.sum()),
    )


def integrate_contours(contours: Iterable[Sequence[Sequence[float]]]) -> MomentAccumulator:
    """Integrate raw rings, honoring their own orientation (ccw adds, cw subtracts)."""
    result = MomentAccumulator()
    for contour in contours:
        result += _triangle_fan_moments(np.asarray(contour, dtype=float))
    return result


def integrate(geometry) -> MomentAccumulator:
    """Integrate a shapely (Multi)Polygon or a list of them.

    Polygons are oriented first (exterior ccw, holes cw), so overlapping
    input is NOT merged: pass disjoint geometry or union it beforehand.
    """
    result = MomentAccumulator()
    for polygon in iter_polygons(geometry):
        oriented = orient(polygon, sign=1.0)
        result += _triangle_fan_moments(np.asarray(oriented.exterior.coords))
        for interior in oriented.interiors:
            result += _triangle_fan_moments(np.asarray(interior.coords))
    return result


def polylines_covered_by_width(polylines, widths):
    """Area swept by each polyline at its extrusion width (flat ends)."""
    swept = []
    for polyline, width in zip(polylines, widths):
        line = LineString(np.asarray(polyline, dtype=float))
        if line.length <= 0.0 or width <= 0.0:
            continue
        swept.append(line.buffer(0.5 * width, cap_style="flat", join_style="round"))
    if not swept:
        return Polygon()
    return unary_union(swept)


def integrate_polylines(polylines, widths) -> MomentAccumulator:
    return integrate(polylines_covered_by_width(polylines, widths))


def compute_second_moment(integrals: MomentAccumulator, axis_direction: Sequence[float]) -> float:
    """Second moment of area about an axis through the region's centroid.

    The moment for an axis through the coordinate origin follows from the
    axis-aligned moments and the product moment; the parallel axis theorem
    then moves it to the centroid.
    """
    direction = np.asarray(axis_direction, dtype=float)
    norm = np.linalg.norm(direction)
    if norm < 1e-12 or abs(integrals.area) < EPSILON:
        return 0.0
    direction = direction / norm

    i_xx = integrals.second_moment[1]
    i_yy = integrals.second_moment[0]
    i_xy = -integrals.product_moment
    moment_tensor = np.array([[i_xx, i_xy], [i_xy, i_yy]])
    moment_at_origin = float(direction @ moment_tensor @ direction)

    centroid = integrals.first_moment / integrals.area
    # squared distance of the centroid from the axis through the origin
    distance_sq = (direction[0] * centroid[1] - direction[1] * centroid[0]) ** 2
    return moment_at_origin - integrals.area * distance_sq
