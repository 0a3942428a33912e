"""Tests for local_checks module."""
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from shapely.geometry import MultiPolygon, box

from support_spots.contracts import (
    ExtrusionCollection,
    ExtrusionPath,
    ExtrusionRole,
    FlatExtrusion,
    LayerSlice,
    SupportPointCause,
)
from support_spots.lines import BoundaryDistancer, ExtrusionLine, LinesDistancer
from support_spots.local_checks import (
    EntityToCheck,
    check_extrusion_entity_stability,
    compute_local_supports,
    gather_entities_to_check,
)

WIDTH = 0.45


def square_loop(x0, y0, size, inset):
    a, b = x0 + inset, x0 + size - inset
    c, d = y0 + inset, y0 + size - inset
    return np.array([(a, c), (b, c), (b, d), (a, d), (a, c)], dtype=float)


def _flat(points, role, width=WIDTH, height=0.2):
    return FlatExtrusion(np.asarray(points, dtype=float), role, width, height)


def _loop_lines(points, role=ExtrusionRole.EXTERNAL_PERIMETER):
    origin = _flat(points, role)
    return [ExtrusionLine.between(a, b, origin) for a, b in zip(points[:-1], points[1:])]


EMPTY_LINES = LinesDistancer.from_lines([])


class TestBridges:
    def test_long_bridge_gets_one_point(self, params):
        # 36 mm gap between two pillars
        below = BoundaryDistancer(MultiPolygon([box(-10, -5, 2, 5), box(38, -5, 50, 5)]))
        bridge = _flat([(0.0, 0.0), (40.0, 0.0)], ExtrusionRole.BRIDGE_INFILL)
        lines = check_extrusion_entity_stability(bridge, EMPTY_LINES, below, params)
        flagged = [l for l in lines if l.support_point_generated is not None]
        assert len(flagged) == 1
        assert flagged[0].support_point_generated == SupportPointCause.LONG_BRIDGE
        # both path ends rest on the pillars, so the run is counted in 16 mm subdivisions
        # from the path start and the point lands where it first exceeds the bridge distance
        assert tuple(flagged[0].b) == pytest.approx((32.0, 0.0))
        assert 2.0 < flagged[0].b[0] < 38.0

    def test_short_bridge_needs_nothing(self, params):
        below = BoundaryDistancer(MultiPolygon([box(-10, -5, 2, 5), box(8, -5, 20, 5)]))
        bridge = _flat([(0.0, 0.0), (10.0, 0.0)], ExtrusionRole.BRIDGE_INFILL)
        lines = check_extrusion_entity_stability(bridge, EMPTY_LINES, below, params)
        assert all(l.support_point_generated is None for l in lines)

    def test_way_back_is_not_flagged_twice(self, params):
        below = BoundaryDistancer(MultiPolygon([box(-10, -5, 2, 5), box(38, -5, 50, 5)]))
        zigzag = _flat([(0.0, 0.0), (40.0, 0.0), (40.0, 0.5), (0.0, 0.5)], ExtrusionRole.BRIDGE_INFILL)
        lines = check_extrusion_entity_stability(zigzag, EMPTY_LINES, below, params)
        flagged = [l for l in lines if l.support_point_generated is not None]
        assert flagged
        # long bridge points are only placed going in the first bridging direction
        backward = [
            l for l in flagged
            if l.support_point_generated == SupportPointCause.LONG_BRIDGE and l.direction()[0] < 0
        ]
        assert backward == []


class TestPerimeters:
    def test_supported_perimeter_needs_nothing(self, params):
        loop = square_loop(0, 0, 10, 0.5 * WIDTH)
        prev_lines = LinesDistancer.from_lines(_loop_lines(loop))
        below = BoundaryDistancer(box(0, 0, 10, 10))
        entity = _flat(loop, ExtrusionRole.EXTERNAL_PERIMETER)
        lines = check_extrusion_entity_stability(entity, prev_lines, below, params)
        assert lines
        assert all(l.support_point_generated is None for l in lines)
        assert all(l.is_external_perimeter for l in lines)

    def test_open_floating_path_is_flagged(self, params):
        entity = _flat([(0.0, 0.0), (20.0, 0.0)], ExtrusionRole.PERIMETER)
        lines = check_extrusion_entity_stability(entity, EMPTY_LINES, BoundaryDistancer(MultiPolygon()), params)
        flagged = [l for l in lines if l.support_point_generated is not None]
        assert flagged
        assert {l.support_point_generated for l in flagged} == {SupportPointCause.FLOATING_EXTRUSION}
        # the free start of an open path is flagged right away
        assert lines[0].support_point_generated == SupportPointCause.FLOATING_EXTRUSION

    def test_overhanging_loop_loses_form(self, params):
        below_loop = square_loop(0, 0, 10, 0.5 * WIDTH)
        prev_lines = LinesDistancer.from_lines(_loop_lines(below_loop))
        below = BoundaryDistancer(box(0, 0, 10, 10))
        shifted = below_loop + np.array([0.0, 1.0])
        entity = _flat(shifted, ExtrusionRole.EXTERNAL_PERIMETER)
        lines = check_extrusion_entity_stability(entity, prev_lines, below, params)
        assert any(l.form_quality < 1.0 for l in lines)

    def test_short_entity_is_skipped(self, params):
        entity = _flat([(0.0, 0.0), (0.5, 0.0)], ExtrusionRole.PERIMETER)
        assert check_extrusion_entity_stability(entity, EMPTY_LINES, BoundaryDistancer(MultiPolygon()), params) == []


class TestGatherAndCompute:
    def _slice(self):
        bridge = ExtrusionPath(np.array([(0.0, 0.0), (5.0, 0.0)]), ExtrusionRole.BRIDGE_INFILL, WIDTH, 0.2)
        sparse = ExtrusionPath(np.array([(0.0, 1.0), (5.0, 1.0)]), ExtrusionRole.INTERNAL_INFILL, WIDTH, 0.2)
        outer = ExtrusionPath(square_loop(0, 0, 10, 0.2), ExtrusionRole.EXTERNAL_PERIMETER, WIDTH, 0.2)
        inner = ExtrusionPath(square_loop(0, 0, 10, 0.6), ExtrusionRole.PERIMETER, WIDTH, 0.2)
        return LayerSlice(
            polygons=box(0, 0, 10, 10),
            perimeters=[ExtrusionCollection([outer, ExtrusionCollection([inner])])],
            fills=[ExtrusionCollection([bridge, sparse])],
        )

    def test_gather_selects_bridges_and_perimeters(self, make_layer, make_square_slice):
        layer = make_layer(2, [make_square_slice(20, 0, 5), self._slice()])
        entities = gather_entities_to_check(layer)
        roles = [(e.slice_idx, e.entity.role) for e in entities]
        assert (0, ExtrusionRole.EXTERNAL_PERIMETER) in roles
        assert (1, ExtrusionRole.BRIDGE_INFILL) in roles
        assert (1, ExtrusionRole.PERIMETER) in roles
        assert all(role != ExtrusionRole.INTERNAL_INFILL for _, role in roles)

    def test_parallel_matches_serial(self, params, make_layer):
        layer = make_layer(2, [self._slice()])
        entities = gather_entities_to_check(layer)
        below = BoundaryDistancer(box(20, 20, 30, 30))
        serial = compute_local_supports(entities, below, EMPTY_LINES, 1, params)
        with ThreadPoolExecutor(max_workers=3) as executor:
            parallel = compute_local_supports(entities, below, EMPTY_LINES, 1, params, executor)
        assert len(serial.unstable_lines_per_slice[0]) == len(parallel.unstable_lines_per_slice[0])
        assert [tuple(l.b) for l in serial.ext_perim_lines_per_slice[0]] == [
            tuple(l.b) for l in parallel.ext_perim_lines_per_slice[0]
        ]
        assert all(l.is_external_perimeter for l in serial.ext_perim_lines_per_slice[0])

    def test_entity_to_check_keeps_slice(self):
        entity = _flat([(0.0, 0.0), (1.0, 0.0)], ExtrusionRole.PERIMETER)
        assert EntityToCheck(entity, 3).slice_idx == 3
