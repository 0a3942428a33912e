"""
Per-extrusion checks of overhangs and bridges.

Every extrusion of a layer is split into lines annotated with the distance to
the layer below. Runs of lines hanging in the air longer than allowed get a
support point cause attached to their last line.
"""
import logging
import math
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from support_spots.contracts import ExtrusionRole, FlatExtrusion, Layer, SupportPointCause
from support_spots.extrusion_processor import estimate_curled_up_height, estimate_points_properties
from support_spots.lines import BoundaryDistancer, ExtrusionLine, LinesDistancer
from support_spots.params import Params

logger = logging.getLogger(__name__)

ANCHOR_CURVATURE = 0.1  # 1/mm; sharper turns of a bridge are anchors, not spans


@dataclass(frozen=True)
class EntityToCheck:
    entity: FlatExtrusion
    slice_idx: int


@dataclass
class LocalSupports:
    unstable_lines_per_slice: List[List[ExtrusionLine]]
    ext_perim_lines_per_slice: List[List[ExtrusionLine]]


def _max_bridge_length(curvature: float, params: Params) -> float:
    return max(
        params.support_points_interface_radius * 2.0,
        params.bridge_distance / (1.0 + abs(curvature)) ** 3,
    )


def _check_bridge(entity: FlatExtrusion, prev_layer_boundary: BoundaryDistancer, params: Params) -> List[ExtrusionLine]:
    """Bridges are aligned to their forward direction; the way back adds no points."""
    flow_width = entity.width
    annotated = estimate_points_properties(
        entity.points, prev_layer_boundary, flow_width, params.bridge_distance,
        add_intersections=True, boundary_offset=True, signed_distance=True,
    )

    lines_out: List[ExtrusionLine] = []
    bridged_distance = 0.0
    bridging_dir: Optional[np.ndarray] = None

    for i, curr in enumerate(annotated):
        prev = annotated[i - 1] if i > 0 else curr
        cause = (
            SupportPointCause.FLOATING_BRIDGE_ANCHOR
            if abs(curr.curvature) > ANCHOR_CURVATURE
            else SupportPointCause.LONG_BRIDGE
        )
        line_out = ExtrusionLine.between(prev.position, curr.position, entity)
        line_dir = line_out.direction()
        max_bridge_len = _max_bridge_length(curr.curvature, params)

        if bridging_dir is None and curr.distance > flow_width and line_out.length > params.bridge_distance * 0.6:
            bridging_dir = line_dir

        if (
            curr.distance > flow_width
            and cause == SupportPointCause.LONG_BRIDGE
            and bridging_dir is not None
            and float(bridging_dir @ line_dir) < 0.8
        ):
            bridged_distance += line_out.length
        elif curr.distance > flow_width:
            bridged_distance += line_out.length
            if bridged_distance > max_bridge_len:
                bridged_distance = 0.0
                line_out.support_point_generated = cause
        else:
            bridged_distance = 0.0

        lines_out.append(line_out)
    return lines_out


def _check_path(
    entity: FlatExtrusion,
    prev_layer_lines: LinesDistancer,
    prev_layer_boundary: BoundaryDistancer,
    params: Params,
) -> List[ExtrusionLine]:
    flow_width = entity.width
    # prev_layer_lines may hold unconnected paths, so only the unsigned distance is reliable
    annotated = estimate_points_properties(
        entity.points, prev_layer_lines, flow_width, params.bridge_distance,
        add_intersections=True,
    )

    lines_out: List[ExtrusionLine] = []
    is_open = not np.allclose(annotated[0].position, annotated[-1].position)
    # free ends of open paths hang in the air from the start
    bridged_distance = params.bridge_distance + 1.0 if is_open else 0.0

    for i, curr in enumerate(annotated):
        prev = annotated[i - 1] if i > 0 else curr
        line_out = ExtrusionLine.between(prev.position, curr.position, entity)

        middle = 0.5 * (line_out.a + line_out.b)
        middle_distance, bottom_idx, _ = prev_layer_lines.distance_from_lines_extra(middle)
        bottom_line = prev_layer_lines.get_line(bottom_idx) if bottom_idx >= 0 else ExtrusionLine.between(middle, middle)

        # sign from the slice outlines below
        if prev_layer_boundary.signed_distance(curr.position) + 0.5 * flow_width < 0.0:
            curr.distance = -curr.distance

        max_bridge_len = _max_bridge_length(curr.curvature, params)

        if curr.distance > 1.2 * flow_width:
            line_out.form_quality = 0.8
            bridged_distance += line_out.length
            if bridged_distance > max_bridge_len:
                line_out.support_point_generated = SupportPointCause.FLOATING_EXTRUSION
                bridged_distance = 0.0
        elif curr.distance > flow_width * 0.8:
            bridged_distance += line_out.length
            line_out.form_quality = bottom_line.form_quality - 0.3
            if line_out.form_quality < 0 and bridged_distance > max_bridge_len:
                line_out.support_point_generated = SupportPointCause.FLOATING_EXTRUSION
                line_out.form_quality = 0.5
                bridged_distance = 0.0
        else:
            bridged_distance = 0.0

        if math.isfinite(middle_distance):
            line_out.curled_up_height = estimate_curled_up_height(
                middle_distance,
                0.5 * (prev.curvature + curr.curvature),
                entity.height,
                flow_width,
                bottom_line.curled_up_height,
                params,
            )
        lines_out.append(line_out)
    return lines_out


def check_extrusion_entity_stability(
    entity: FlatExtrusion,
    prev_layer_lines: LinesDistancer,
    prev_layer_boundary: BoundaryDistancer,
    params: Params,
) -> List[ExtrusionLine]:
    """Split an extrusion into lines and flag where it needs support.

    Pure bridges are measured against the outlines of the layer below;
    everything else against the external perimeters of the layer below.
    """
    if entity.length < params.min_distance_to_allow_local_supports:
        return []
    if entity.role.is_bridge and not entity.role.is_perimeter:
        return _check_bridge(entity, prev_layer_boundary, params)
    return _check_path(entity, prev_layer_lines, prev_layer_boundary, params)


def gather_entities_to_check(layer: Layer) -> List[EntityToCheck]:
    """Bridge infill and all perimeters of a layer, tagged with their slice."""
    entities: List[EntityToCheck] = []
    for slice_idx, layer_slice in enumerate(layer.slices):
        for fill in layer_slice.fills:
            for flat in fill.flatten():
                if flat.role == ExtrusionRole.BRIDGE_INFILL:
                    entities.append(EntityToCheck(flat, slice_idx))
        for perimeter in layer_slice.perimeters:
            for flat in perimeter.flatten():
                entities.append(EntityToCheck(flat, slice_idx))
    return entities


def compute_local_supports(
    entities_to_check: List[EntityToCheck],
    prev_layer_boundary: BoundaryDistancer,
    prev_layer_ext_perim_lines: LinesDistancer,
    slices_count: int,
    params: Params,
    executor: Optional[Executor] = None,
) -> LocalSupports:
    """Run the per-entity checks, grouping results per slice in entity order."""

    def check(e_to_check: EntityToCheck) -> List[ExtrusionLine]:
        return check_extrusion_entity_stability(
            e_to_check.entity, prev_layer_ext_perim_lines, prev_layer_boundary, params
        )

    if executor is None:
        checked = [check(e) for e in entities_to_check]
    else:
        checked = list(executor.map(check, entities_to_check))

    result = LocalSupports(
        unstable_lines_per_slice=[[] for _ in range(slices_count)],
        ext_perim_lines_per_slice=[[] for _ in range(slices_count)],
    )
    for e_to_check, lines in zip(entities_to_check, checked):
        for line in lines:
            if line.support_point_generated is not None:
                result.unstable_lines_per_slice[e_to_check.slice_idx].append(line)
            if line.is_external_perimeter:
                result.ext_perim_lines_per_slice[e_to_check.slice_idx].append(line)
    return result
