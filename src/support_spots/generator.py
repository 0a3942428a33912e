"""
Support spot search over a whole sliced object.

Layers are processed bottom-up. For each layer the object parts are updated
with the new slices, local checks flag unsupported extrusions, and the
external perimeters are walked to check the stability of every part.
"""
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

from support_spots.connections import SliceConnection, precompute_slices_connections
from support_spots.contracts import (
    AnalysisCancelled,
    PartialObject,
    SlicedObject,
    SupportPoint,
    to_vec3,
)
from support_spots.geometry import union_polygons
from support_spots.global_supports import (
    SupportGridFilter,
    reckon_global_supports,
    reckon_new_support_point,
)
from support_spots.lines import BoundaryDistancer, ExtrusionLine, LinesDistancer
from support_spots.local_checks import compute_local_supports, gather_entities_to_check
from support_spots.object_part import (
    ActiveObjectParts,
    SliceMappings,
    to_partial_object,
    update_active_object_parts,
)
from support_spots.params import Params
from support_spots.trace import TraceSink

logger = logging.getLogger(__name__)

CancelCallback = Callable[[], bool]


def check_stability(
    sliced_object: SlicedObject,
    slices_connections: Sequence[Sequence[SliceConnection]],
    params: Params,
    cancel: Optional[CancelCallback] = None,
    trace: Optional[TraceSink] = None,
    executor: Optional[Executor] = None,
) -> Tuple[List[SupportPoint], List[PartialObject]]:
    """Bottom-up pass over the layers with precomputed slice connections."""
    trace = trace or TraceSink()
    support_points: List[SupportPoint] = []
    partial_objects: List[PartialObject] = []
    active_object_parts = ActiveObjectParts()
    slice_mappings = SliceMappings()
    grid = SupportGridFilter.for_bounds(sliced_object.bounds(), params.min_distance_between_support_points)
    prev_layer_ext_perim_lines = LinesDistancer.from_lines([])

    for layer_idx, layer in enumerate(sliced_object.layers):
        if cancel is not None and cancel():
            raise AnalysisCancelled(f"Support spot search cancelled before layer {layer_idx}")

        bottom_z = layer.bottom_z
        slice_mappings = update_active_object_parts(
            layer, layer_idx, params, slices_connections[layer_idx],
            slice_mappings, active_object_parts, partial_objects,
        )

        lower = sliced_object.layers[layer_idx - 1] if layer_idx > 0 else None
        prev_layer_boundary = BoundaryDistancer(
            union_polygons(s.polygons for s in lower.slices) if lower is not None else union_polygons([])
        )
        local_supports = compute_local_supports(
            gather_entities_to_check(layer),
            prev_layer_boundary,
            prev_layer_ext_perim_lines,
            len(layer.slices),
            params,
            executor,
        )

        # points of this layer are committed once the whole layer is done
        layer_points: List[SupportPoint] = []
        current_layer_ext_perim_lines: List[ExtrusionLine] = []
        for slice_idx in range(len(layer.slices)):
            part = active_object_parts.access(slice_mappings.part_ids[slice_idx])
            weakest_conn = slice_mappings.weakest_connections[slice_idx]
            external_perimeter_lines = local_supports.ext_perim_lines_per_slice[slice_idx]

            # the first layers hold to the bed, checking them only adds noise
            if layer_idx > 1:
                for line in local_supports.unstable_lines_per_slice[slice_idx]:
                    point = SupportPoint(
                        line.support_point_generated,
                        to_vec3((line.b[0], line.b[1], bottom_z)),
                        params.support_points_interface_radius,
                    )
                    reckon_new_support_point(part, weakest_conn, layer_points, grid, point)
                reckon_global_supports(
                    external_perimeter_lines, bottom_z, params, part, weakest_conn, layer_points, grid,
                )

            current_layer_ext_perim_lines.extend(external_perimeter_lines)

        prev_layer_ext_perim_lines = LinesDistancer.from_lines(current_layer_ext_perim_lines)
        support_points.extend(layer_points)
        trace.layer_done(layer_idx, layer_points)
        if layer_points:
            logger.debug("Layer %d (z=%.3f): %d support points", layer_idx, layer.print_z, len(layer_points))

    # parts that ended below the top layer are still live too
    for part_id in active_object_parts.live_ids():
        partial = to_partial_object(active_object_parts.access(part_id))
        if partial is not None:
            partial_objects.append(partial)

    return support_points, partial_objects


def analyze(
    sliced_object: SlicedObject,
    params: Optional[Params] = None,
    cancel: Optional[CancelCallback] = None,
    trace: Optional[TraceSink] = None,
    max_workers: Optional[int] = None,
) -> Tuple[List[SupportPoint], List[PartialObject]]:
    """Find support points and partial objects of a sliced object.

    Args:
        sliced_object: layers bottom to top, with slice links to the layer below.
        params: stability model configuration, defaults to Params().
        cancel: polled once per layer; returning True aborts the search
            with AnalysisCancelled.
        trace: receives per-layer points and the final result.
        max_workers: threads for the parallel phases. 1 runs everything
            on the calling thread.

    Raises:
        ValueError: if the sliced object is malformed.
        AnalysisCancelled: if cancel() returned True.
    """
    params = params or Params()
    trace = trace or TraceSink()
    sliced_object.validate()
    logger.info(
        "Searching support spots for %s: %d layers, filament %s",
        sliced_object.name, len(sliced_object.layers), params.filament_type,
    )
    if not sliced_object.layers:
        trace.finished([], [])
        return [], []

    if max_workers == 1:
        connections = precompute_slices_connections(sliced_object)
        points, partial_objects = check_stability(sliced_object, connections, params, cancel, trace)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            connections = precompute_slices_connections(sliced_object, executor)
            points, partial_objects = check_stability(
                sliced_object, connections, params, cancel, trace, executor,
            )

    logger.info(
        "Found %d support points and %d partial objects for %s",
        len(points), len(partial_objects), sliced_object.name,
    )
    trace.finished(points, partial_objects)
    return points, partial_objects


full_search = analyze
