"""
Curled-up extrusion estimation.

External perimeters hanging partly over the edge of the layer below tend to
curl upwards. The estimate runs bottom-up: a line sitting on a curled line
inherits part of its curl.
"""
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np
from shapely.geometry import LinearRing

from support_spots.contracts import AnalysisCancelled, CurledLine, FlatExtrusion, Layer, SlicedObject
from support_spots.extrusion_processor import estimate_curled_up_height, estimate_points_properties
from support_spots.geometry import union_polygons
from support_spots.lines import BoundaryDistancer, ExtrusionLine, LinesDistancer
from support_spots.params import Params

logger = logging.getLogger(__name__)


def _annotated_lines(
    extrusion: FlatExtrusion,
    points: np.ndarray,
    prev_layer_lines: LinesDistancer,
    flow_width: float,
    layer_height: float,
    max_line_length: float,
    params: Params,
    sign_of: Callable[[np.ndarray, np.ndarray, ExtrusionLine, float], float],
) -> List[ExtrusionLine]:
    annotated = estimate_points_properties(
        points, prev_layer_lines, flow_width, max_line_length, add_intersections=True,
    )
    lines: List[ExtrusionLine] = []
    for i, b in enumerate(annotated):
        a = annotated[i - 1] if i > 0 else b
        line_out = ExtrusionLine.between(a.position, b.position, extrusion)
        middle = 0.5 * (line_out.a + line_out.b)
        middle_distance, bottom_idx, _ = prev_layer_lines.distance_from_lines_extra(middle)
        if bottom_idx >= 0:
            bottom_line = prev_layer_lines.get_line(bottom_idx)
            line_out.curled_up_height = estimate_curled_up_height(
                middle_distance * sign_of(a.position, middle, bottom_line, flow_width),
                0.5 * (a.curvature + b.curvature),
                layer_height,
                flow_width,
                bottom_line.curled_up_height,
                params,
            )
        lines.append(line_out)
    return lines


def _curled(lines: Sequence[ExtrusionLine], params: Params) -> List[CurledLine]:
    return [
        CurledLine(
            a=(float(line.a[0]), float(line.a[1])),
            b=(float(line.b[0]), float(line.b[1])),
            curled_height=line.curled_up_height,
        )
        for line in lines
        if line.curled_up_height > params.curling_tolerance_limit
    ]


def estimate_malformations(
    sliced_object: SlicedObject,
    params: Params,
    cancel: Optional[Callable[[], bool]] = None,
) -> List[List[CurledLine]]:
    """Curled external perimeter lines of every layer, bottom to top."""
    curled_per_layer: List[List[CurledLine]] = []
    prev_layer_lines = LinesDistancer.from_lines([])
    previous: Optional[Layer] = None

    for layer in sliced_object.layers:
        if cancel is not None and cancel():
            raise AnalysisCancelled(f"Malformation estimate cancelled at z={layer.print_z:.3f}")

        boundary_geometry = (
            union_polygons(s.polygons for s in previous.slices) if previous is not None else union_polygons([])
        )
        prev_layer_boundary = BoundaryDistancer(boundary_geometry)

        def boundary_sign(_a, middle, _bottom, flow_width):
            inside = prev_layer_boundary.signed_distance(middle) + 0.5 * flow_width < 0.0
            return -1.0 if inside else 1.0

        current_layer_lines: List[ExtrusionLine] = []
        for layer_slice in layer.slices:
            for perimeter in layer_slice.perimeters:
                for extrusion in perimeter.flatten():
                    if not extrusion.role.is_external_perimeter:
                        continue
                    current_layer_lines.extend(_annotated_lines(
                        extrusion, extrusion.points, prev_layer_lines, extrusion.width,
                        layer.height, params.bridge_distance, params, boundary_sign,
                    ))

        curled = _curled(current_layer_lines, params)
        if curled:
            logger.debug("Layer z=%.3f: %d curled lines", layer.print_z, len(curled))
        curled_per_layer.append(curled)
        prev_layer_lines = LinesDistancer.from_lines(current_layer_lines)
        previous = layer

    return curled_per_layer


def _side_of_bottom_line(a: np.ndarray, _middle, bottom_line: ExtrusionLine, _flow_width) -> float:
    """Support paths have no reliable outline below; use the side of the bottom line."""
    v1 = bottom_line.b - bottom_line.a
    v2 = a - bottom_line.a
    return -1.0 if v1[0] * v2[1] - v1[1] * v2[0] > 0 else 1.0


def estimate_supports_malformations(
    support_layers: Sequence[Layer],
    flow_width: float,
    params: Params,
) -> List[List[CurledLine]]:
    """Curled lines of generated support extrusions (the fills of support layers)."""
    curled_per_layer: List[List[CurledLine]] = []
    prev_layer_lines = LinesDistancer.from_lines([])

    for layer in support_layers:
        current_layer_lines: List[ExtrusionLine] = []
        for layer_slice in layer.slices:
            for fill in layer_slice.fills:
                for extrusion in fill.flatten():
                    # walk every support path as a ccw loop
                    ring = LinearRing(extrusion.points) if len(extrusion.points) >= 3 else None
                    points = extrusion.points
                    if ring is not None and not ring.is_ccw:
                        points = points[::-1]
                    current_layer_lines.extend(_annotated_lines(
                        extrusion, points, prev_layer_lines, flow_width,
                        layer.height, -1.0, params, _side_of_bottom_line,
                    ))
        curled_per_layer.append(_curled(current_layer_lines, params))
        prev_layer_lines = LinesDistancer.from_lines(current_layer_lines)

    return curled_per_layer
