"""
Annotation of extrusion points against the previous layer.

Every point of a path gets its distance to the previous layer (to its
external perimeters or to its slice outlines) and a curvature estimate
averaged over sliding windows along the path.
"""
import math
from dataclasses import dataclass
from typing import List, Union

import numpy as np

from support_spots.lines import BoundaryDistancer, LinesDistancer
from support_spots.params import Params

EPSILON = 1e-4
CURVATURE_WINDOWS = (3.0, 9.0, 16.0)  # mm


@dataclass
class ExtendedPoint:
    position: np.ndarray
    distance: float = 0.0
    curvature: float = 0.0


def _distances(prev_layer: Union[LinesDistancer, BoundaryDistancer], points: np.ndarray, signed: bool) -> np.ndarray:
    if signed and isinstance(prev_layer, BoundaryDistancer):
        return prev_layer.signed_distances(points)[1]
    return prev_layer.nearest_indices(points)[1]


def estimate_points_properties(
    input_points,
    prev_layer: Union[LinesDistancer, BoundaryDistancer],
    flow_width: float,
    max_line_length: float = -1.0,
    add_intersections: bool = False,
    boundary_offset: bool = False,
    signed_distance: bool = False,
) -> List[ExtendedPoint]:
    """Annotate path points with distance to the previous layer and curvature.

    Args:
        input_points: (N, 2) path points.
        prev_layer: lines of the previous layer to measure against.
        flow_width: extrusion width of the path.
        max_line_length: when positive, longer segments are subdivided.
        add_intersections: insert points where the path crosses prev_layer.
        boundary_offset: shift distances by half the flow width, so that a
            point is reported as unsupported only when the whole extrusion
            width hangs in the air.
        signed_distance: negative distances inside prev_layer outlines.
    """
    pts = np.asarray(input_points, dtype=float)
    if len(pts) == 0:
        return []
    offset = 0.5 * flow_width if boundary_offset else 0.0

    raw_distances = _distances(prev_layer, pts, signed_distance) + offset
    points: List[ExtendedPoint] = [ExtendedPoint(pts[0].copy(), float(raw_distances[0]))]
    for i in range(1, len(pts)):
        next_point = ExtendedPoint(pts[i].copy(), float(raw_distances[i]))
        previous = points[-1]
        if add_intersections and (
            (previous.distance > offset + EPSILON) != (next_point.distance > offset + EPSILON)
        ):
            for crossing in prev_layer.intersections_with_line(previous.position, next_point.position):
                points.append(ExtendedPoint(crossing, offset))
        points.append(next_point)

    if boundary_offset and add_intersections:
        points = _refine_near_boundary(points, prev_layer, offset, signed_distance)

    if max_line_length > 0:
        points = _subdivide(points, prev_layer, offset, signed_distance, max_line_length)

    _estimate_curvatures(points)
    return points


def _refine_near_boundary(points, prev_layer, offset, signed_distance) -> List[ExtendedPoint]:
    """Add points where long segments leave the close vicinity of the boundary."""
    refined = [points[0]]
    for curr, nxt in zip(points[:-1], points[1:]):
        near = (0 < curr.distance < offset + 2.0) or (0 < nxt.distance < offset + 2.0)
        line_len = float(np.linalg.norm(nxt.position - curr.position))
        if near and line_len > 4.0:
            a0 = min(1.0, max(0.0, (curr.distance + 2 * offset) / line_len))
            a1 = min(1.0, max(0.0, 1.0 - (nxt.distance + 2 * offset) / line_len))
            t0, t1 = min(a0, a1), max(a0, a1)
            extra = []
            if t0 < 1.0:
                extra.append(curr.position + t0 * (nxt.position - curr.position))
            if t1 > 0.0:
                extra.append(curr.position + t1 * (nxt.position - curr.position))
            if extra:
                dists = _distances(prev_layer, np.array(extra), signed_distance) + offset
                refined.extend(ExtendedPoint(p, float(d)) for p, d in zip(extra, dists))
        refined.append(nxt)
    return refined


def _subdivide(points, prev_layer, offset, signed_distance, max_line_length) -> List[ExtendedPoint]:
    subdivided: List[ExtendedPoint] = []
    for curr, nxt in zip(points[:-1], points[1:]):
        subdivided.append(curr)
        length = float(np.linalg.norm(nxt.position - curr.position))
        if length < EPSILON:
            continue
        t = max_line_length / length
        count = int(1.0 / t)
        if count == 0:
            continue
        fractions = np.arange(1, count + 1) * t
        positions = curr.position[None, :] * (1.0 - fractions[:, None]) + nxt.position[None, :] * fractions[:, None]
        dists = _distances(prev_layer, positions, signed_distance) + offset
        subdivided.extend(ExtendedPoint(p, float(d)) for p, d in zip(positions, dists))
    subdivided.append(points[-1])
    return subdivided


def _signed_angle(v1: np.ndarray, v2: np.ndarray) -> float:
    return math.atan2(v1[0] * v2[1] - v1[1] * v2[0], float(v1 @ v2))


def _estimate_curvatures(points: List[ExtendedPoint]) -> None:
    n = len(points)
    angles = np.zeros(n)
    seg_lengths = np.zeros(n)
    for idx in range(n):
        a = points[idx].position
        prev_idx = idx
        while prev_idx > 0:
            prev_idx -= 1
            if float(np.sum((a - points[prev_idx].position) ** 2)) > EPSILON:
                break
        next_idx = idx
        while next_idx < n - 1:
            next_idx += 1
            if float(np.sum((a - points[next_idx].position) ** 2)) > EPSILON:
                break
        seg_lengths[idx] = float(np.linalg.norm(points[max(idx - 1, 0)].position - a))
        if prev_idx != idx and next_idx != idx:
            angles[idx] = _signed_angle(a - points[prev_idx].position, points[next_idx].position - a)

    for window_size in CURVATURE_WINDOWS:
        tail_point, tail_window, tail_angle = 0, 0.0, 0.0
        head_point, head_window, head_angle = 0, 0.0, 0.0
        for idx in range(n):
            if idx > 0:
                tail_window += seg_lengths[idx - 1]
                tail_angle += angles[idx - 1]
                head_window -= seg_lengths[idx - 1]
                head_angle -= angles[idx - 1]
            while tail_window > window_size * 0.5 and tail_point < idx:
                tail_window -= seg_lengths[tail_point]
                tail_angle -= angles[tail_point]
                tail_point += 1
            while head_window < window_size * 0.5 and head_point < n - 1:
                head_window += seg_lengths[head_point]
                head_angle += angles[head_point]
                head_point += 1

            window = tail_window + head_window
            if window < EPSILON:
                continue
            curvature = (tail_angle + head_angle) / window
            if abs(curvature) > abs(points[idx].curvature):
                points[idx].curvature = curvature


def estimate_curled_up_height(
    distance: float,
    curvature: float,
    layer_height: float,
    flow_width: float,
    prev_line_curled_height: float,
    params: Params,
) -> float:
    """Estimate how high an extrusion segment curls above its layer.

    The part of the extrusion glued to the layer below stays put, while the
    floating section shrinks back towards the round nozzle profile and, on
    convex turns, is pulled up by the filament's shrinking tension.
    """
    curled_up_height = 0.0
    if abs(distance) < 3.0 * flow_width:
        curled_up_height = max(prev_line_curled_height - layer_height * 0.75, 0.0)

    low, high = params.malformation_distance_factors
    if low * flow_width < distance < high * flow_width:
        curling_section = distance
        swelling_radius = (layer_height + curling_section) / 2.0
        curled_up_height += max(0.0, (swelling_radius - layer_height) / 2.0)

        if curvature > 0.01:
            radius = 1.0 / curvature
            curling_t = math.sqrt(radius / 100.0)
            b = curling_t * flow_width
            a = curling_section
            curled_up_height += math.sqrt(max(0.0, a * a - b * b))

        curled_up_height = min(curled_up_height, params.max_curled_height_factor * layer_height)

    return curled_up_height
