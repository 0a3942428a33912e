"""Tests for lines, extrusion_processor and geometry modules."""
import math

import numpy as np
import pytest
from shapely.geometry import MultiPolygon, Polygon, box

from support_spots.contracts import BrimType
from support_spots.extrusion_processor import estimate_curled_up_height, estimate_points_properties
from support_spots.geometry import boundary_segments, get_brim, union_polygons
from support_spots.lines import BoundaryDistancer, ExtrusionLine, LinesDistancer


def _square_loop(size=10.0):
    return np.array([(0.0, 0.0), (size, 0.0), (size, size), (0.0, size), (0.0, 0.0)])


class TestLinesDistancer:
    def test_nearest_line(self):
        distancer = LinesDistancer.from_lines([
            ExtrusionLine.between((0.0, 0.0), (10.0, 0.0)),
            ExtrusionLine.between((0.0, 5.0), (10.0, 5.0)),
        ])
        dist, idx, nearest = distancer.distance_from_lines_extra((3.0, 1.0))
        assert dist == pytest.approx(1.0)
        assert idx == 0
        np.testing.assert_allclose(nearest, [3.0, 0.0])

    def test_nearest_point_clamped_to_segment_end(self):
        distancer = LinesDistancer.from_lines([ExtrusionLine.between((0.0, 0.0), (10.0, 0.0))])
        dist, _, nearest = distancer.distance_from_lines_extra((13.0, 4.0))
        assert dist == pytest.approx(5.0)
        np.testing.assert_allclose(nearest, [10.0, 0.0])

    def test_empty(self):
        distancer = LinesDistancer.from_lines([])
        assert distancer.is_empty()
        dist, idx, _ = distancer.distance_from_lines_extra((1.0, 1.0))
        assert math.isinf(dist)
        assert idx == -1

    def test_intersections_ordered_from_start(self):
        distancer = BoundaryDistancer(box(0, 0, 10, 10))
        crossings = distancer.intersections_with_line((-5.0, 5.0), (15.0, 5.0))
        np.testing.assert_allclose(crossings, [[0.0, 5.0], [10.0, 5.0]])

    def test_raw_segments_have_no_lines(self):
        distancer = LinesDistancer(np.array([[[0.0, 0.0], [1.0, 0.0]]]))
        with pytest.raises(ValueError):
            distancer.get_line(0)


class TestBoundaryDistancer:
    def test_signed_distance(self):
        distancer = BoundaryDistancer(box(0, 0, 10, 10))
        assert distancer.signed_distance((5.0, 5.0)) == pytest.approx(-5.0)
        assert distancer.signed_distance((12.0, 5.0)) == pytest.approx(2.0)

    def test_hole_is_outside(self):
        donut = box(0, 0, 10, 10).difference(box(4, 4, 6, 6))
        assert BoundaryDistancer(donut).signed_distance((5.0, 5.0)) == pytest.approx(1.0)

    def test_empty_boundary_is_infinitely_far(self):
        assert math.isinf(BoundaryDistancer(MultiPolygon()).signed_distance((0.0, 0.0)))


class TestPointsProperties:
    def test_subdivision(self):
        points = estimate_points_properties(
            [(0.0, 0.0), (10.0, 0.0)], LinesDistancer.from_lines([]), 0.45, max_line_length=3.0,
        )
        np.testing.assert_allclose([p.position[0] for p in points], [0.0, 3.0, 6.0, 9.0, 10.0])
        assert all(p.curvature == 0.0 for p in points)

    def test_intersection_inserted(self):
        points = estimate_points_properties(
            [(5.0, 5.0), (15.0, 5.0)], BoundaryDistancer(box(0, 0, 10, 10)), 0.45,
            add_intersections=True, signed_distance=True,
        )
        assert len(points) == 3
        np.testing.assert_allclose(points[1].position, [10.0, 5.0])
        assert points[0].distance == pytest.approx(-5.0)
        assert points[2].distance == pytest.approx(5.0)

    def test_boundary_offset(self):
        points = estimate_points_properties(
            [(12.0, 5.0), (12.0, 6.0)], BoundaryDistancer(box(0, 0, 10, 10)), 0.4,
            boundary_offset=True, signed_distance=True,
        )
        assert points[0].distance == pytest.approx(2.2)

    def test_ccw_loop_turns_left(self):
        points = estimate_points_properties(_square_loop(), LinesDistancer.from_lines([]), 0.45)
        curvatures = [p.curvature for p in points]
        assert max(curvatures) > 0.0
        assert min(curvatures) >= 0.0

    def test_cw_loop_turns_right(self):
        points = estimate_points_properties(_square_loop()[::-1], LinesDistancer.from_lines([]), 0.45)
        curvatures = [p.curvature for p in points]
        assert min(curvatures) < 0.0
        assert max(curvatures) <= 0.0

    def test_no_points(self):
        assert estimate_points_properties([], LinesDistancer.from_lines([]), 0.45) == []


class TestCurledUpHeight:
    def test_supported_line_does_not_curl(self, params):
        assert estimate_curled_up_height(0.0, 0.0, 0.2, 0.45, 0.0, params) == 0.0

    def test_partially_hanging_line(self, params):
        assert estimate_curled_up_height(0.3, 0.0, 0.2, 0.45, 0.0, params) == pytest.approx(0.025)

    def test_convex_turn_curls_more(self, params):
        straight = estimate_curled_up_height(0.3, 0.0, 0.2, 0.45, 0.0, params)
        turning = estimate_curled_up_height(0.3, 1.0, 0.2, 0.45, 0.0, params)
        assert turning > straight

    def test_curl_inherited_from_line_below(self, params):
        assert estimate_curled_up_height(0.0, 0.0, 0.2, 0.45, 1.0, params) == pytest.approx(0.85)

    def test_far_away_line_inherits_nothing(self, params):
        assert estimate_curled_up_height(5.0, 0.0, 0.2, 0.45, 1.0, params) == 0.0


class TestGeometry:
    def test_union_polygons(self):
        merged = union_polygons([box(0, 0, 2, 2), box(1, 0, 3, 2), Polygon()])
        assert isinstance(merged, MultiPolygon)
        assert len(merged.geoms) == 1
        assert merged.area == pytest.approx(6.0)

    def test_boundary_segments(self):
        donut = box(0, 0, 10, 10).difference(box(4, 4, 6, 6))
        assert boundary_segments(donut).shape == (8, 2, 2)
        assert boundary_segments(Polygon()).shape == (0, 2, 2)

    def test_outer_brim(self):
        brim = get_brim(box(0, 0, 10, 10), BrimType.OUTER_ONLY, 2.0)
        assert sum(p.area for p in brim) == pytest.approx(14.0 * 14.0 - 100.0)

    def test_inner_brim(self):
        donut = box(0, 0, 10, 10).difference(box(3, 3, 7, 7))
        assert sum(p.area for p in get_brim(donut, BrimType.INNER_ONLY, 1.0)) == pytest.approx(12.0)
        assert get_brim(donut, BrimType.NO_BRIM, 1.0) == []
