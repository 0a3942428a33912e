"""
Torque balance of a partially printed object.

While a line is extruded, the nozzle pushes on the part, the part's own weight
pulls it sideways, and the bed acceleration shakes it. Those torques are
compared with the yield torque of the bed adhesion footprint and of the
weakest connection between the part and the rest of the object.

A positive margin means the part is expected to fail; the margin is a force
(torque divided by its arm), so it can be compared against support capacity.
"""
import logging
import math
from typing import Sequence, Tuple

import numpy as np

from support_spots.connections import SliceConnection
from support_spots.contracts import SupportPointCause
from support_spots.integrals import EPSILON, MomentAccumulator, compute_second_moment
from support_spots.lines import ExtrusionLine
from support_spots.object_part import ObjectPart
from support_spots.params import Params

logger = logging.getLogger(__name__)


def _distance_to_line(origin: np.ndarray, direction: np.ndarray, point: np.ndarray) -> float:
    norm = float(np.linalg.norm(direction))
    if norm < 1e-12:
        return float(np.linalg.norm(point - origin))
    v = point - origin
    return abs(float(direction[0] * v[1] - direction[1] * v[0])) / norm


def compute_elastic_section_modulus(
    line_dir: Sequence[float],
    extreme_point: Sequence[float],
    integrals: MomentAccumulator,
) -> float:
    """Section modulus of a footprint bent by a force along line_dir.

    The bending axis is perpendicular to line_dir and passes through the
    footprint centroid; the extreme fiber distance is measured from that
    axis to extreme_point.

    Adding area whose projection on line_dir lies between the centroid and
    extreme_point never lowers the modulus. Area added behind the centroid
    can: the centroid moves away from extreme_point faster than the second
    moment grows.
    """
    line_dir = np.asarray(line_dir, dtype=float)
    second_moment = compute_second_moment(integrals, (-line_dir[1], line_dir[0]))
    if second_moment < EPSILON:
        return 0.0

    centroid = integrals.first_moment / integrals.area
    extreme_fiber_dist = _distance_to_line(
        centroid, np.array([line_dir[1], -line_dir[0]]), np.asarray(extreme_point, dtype=float)[:2]
    )
    if extreme_fiber_dist < EPSILON:
        return 0.0
    return second_moment / extreme_fiber_dist


def bed_yield_torque(line_dir, extreme_point, integrals: MomentAccumulator, params: Params) -> float:
    """Torque the bed adhesion resists with, negative by convention."""
    modulus = compute_elastic_section_modulus(line_dir, extreme_point, integrals)
    return -modulus * params.bed_adhesion_yield_strength


def connection_yield_torque(line_dir, extreme_point, integrals: MomentAccumulator, params: Params) -> float:
    modulus = compute_elastic_section_modulus(line_dir, extreme_point, integrals)
    return modulus * params.material_yield_strength


def is_stable_while_extruding(
    part: ObjectPart,
    connection: SliceConnection,
    line: ExtrusionLine,
    extreme_point: Sequence[float],
    layer_z: float,
    params: Params,
) -> Tuple[float, SupportPointCause]:
    """Evaluate the part while `line` is printed at height layer_z.

    Returns (margin, cause). Positive margin: the part fails, cause tells
    whether at the bed or at the weakest connection. The extreme point is
    taken from the current layer, which is on the safe side compared to the
    (unknown, changing) first layer shape.
    """
    extreme_point = np.asarray(extreme_point, dtype=float)
    line_dir = line.direction()
    mass_centroid = part.mass_centroid()
    mass = part.volume * params.filament_density
    weight = mass * params.gravity_constant
    movement_force = params.max_acceleration * mass
    extruder_conflict_force = (
        params.standard_extruder_conflict_force
        + min(line.curled_up_height, 1.0) * params.malformations_additive_conflict_extruder_force
    )

    # bed
    if part.sticking_area < EPSILON:
        return 1.0, SupportPointCause.UNSTABLE_FLOATING_PART

    sticking = part.sticking_integrals()
    bed_centroid = part.sticking_centroid_accumulator / part.sticking_area
    bed_yield = bed_yield_torque(line_dir, extreme_point, sticking, params)

    bed_weight_arm = mass_centroid[:2] - bed_centroid[:2]
    bed_weight_arm_len = float(np.linalg.norm(bed_weight_arm))
    bed_weight_dir_variance = (
        compute_second_moment(sticking, (-bed_weight_arm[1], bed_weight_arm[0])) / part.sticking_area
    )
    # a centroid within the spread of the footprint does not tip the part
    tipping_limit = params.tipping_deviation_factor * np.sqrt(max(0.0, bed_weight_dir_variance))
    bed_weight_sign = -1.0 if bed_weight_arm_len < tipping_limit else 1.0
    bed_weight_torque = bed_weight_sign * bed_weight_arm_len * weight

    bed_movement_arm = max(0.0, float(mass_centroid[2] - bed_centroid[2]))
    bed_movement_torque = movement_force * bed_movement_arm

    bed_conflict_torque_arm = layer_z - float(bed_centroid[2])
    bed_conflict_torque = extruder_conflict_force * bed_conflict_torque_arm

    bed_total_torque = bed_movement_torque + bed_conflict_torque + bed_weight_torque + bed_yield

    logger.debug(
        "bed: centroid=%s yield=%.4g weight_arm=%.4g weight=%.4g movement_arm=%.4g movement=%.4g "
        "conflict_arm=%.4g conflict=%.4g curled=%.3f total=%.4g layer_z=%.3f",
        bed_centroid, bed_yield, bed_weight_arm_len, bed_weight_torque, bed_movement_arm,
        bed_movement_torque, bed_conflict_torque_arm, bed_conflict_torque,
        line.curled_up_height, bed_total_torque, layer_z,
    )

    if bed_total_torque > 0:
        cause = (
            SupportPointCause.SEPARATION_FROM_BED
            if part.connected_to_bed
            else SupportPointCause.UNSTABLE_FLOATING_PART
        )
        if bed_conflict_torque_arm < EPSILON:
            # held only by support points placed at this very height
            return math.inf, cause
        return bed_total_torque / bed_conflict_torque_arm, cause

    # weakest connection
    if connection.is_empty:
        return 1.0, SupportPointCause.UNSTABLE_FLOATING_PART

    conn_centroid = connection.centroid_accumulator / connection.area
    conn_height = layer_z - float(conn_centroid[2])
    if conn_height < params.min_weak_connection_height:
        return -1.0, SupportPointCause.WEAK_OBJECT_PART

    conn_yield = connection_yield_torque(line_dir, extreme_point, connection.to_integrals(), params)

    conn_weight_arm = float(np.linalg.norm(conn_centroid[:2] - mass_centroid[:2]))
    if conn_height < params.min_weight_arm_height:
        # weight distribution between the connection and the layer is unknown
        conn_weight_arm = 0.0
    height_ratio = 1.0 - float(conn_centroid[2]) / layer_z
    conn_weight_torque = conn_weight_arm * weight * height_ratio * height_ratio

    conn_movement_arm = max(0.0, float(mass_centroid[2] - conn_centroid[2]))
    conn_movement_torque = movement_force * conn_movement_arm

    conn_conflict_torque_arm = conn_height
    conn_conflict_torque = extruder_conflict_force * conn_conflict_torque_arm

    conn_total_torque = conn_movement_torque + conn_conflict_torque + conn_weight_torque - conn_yield

    logger.debug(
        "connection: centroid=%s yield=%.4g weight_arm=%.4g weight=%.4g movement_arm=%.4g "
        "movement=%.4g conflict_arm=%.4g conflict=%.4g total=%.4g layer_z=%.3f",
        conn_centroid, conn_yield, conn_weight_arm, conn_weight_torque, conn_movement_arm,
        conn_movement_torque, conn_conflict_torque_arm, conn_conflict_torque,
        conn_total_torque, layer_z,
    )

    return conn_total_torque / conn_conflict_torque_arm, SupportPointCause.WEAK_OBJECT_PART
