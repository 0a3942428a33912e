"""
Support point emission: spatial dedup grid and global stability placement.
"""
import logging
import math
from typing import List, Sequence, Set, Tuple

import numpy as np

from support_spots.connections import SliceConnection
from support_spots.contracts import SupportPoint, to_vec3
from support_spots.integrals import EPSILON
from support_spots.lines import ExtrusionLine, LinesDistancer
from support_spots.object_part import ObjectPart
from support_spots.params import Params
from support_spots.stability import is_stable_while_extruding

logger = logging.getLogger(__name__)


class SupportGridFilter:
    """Voxel grid remembering which cells already hold a support point.

    The grid spans the given bounds padded by one cell on each side;
    positions outside are clamped to the border cells.
    """

    def __init__(self, bounds_min: Sequence[float], bounds_max: Sequence[float], cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"Grid cell size must be positive, got {cell_size}")
        self.cell_size = np.full(3, float(cell_size))
        self.origin = np.asarray(bounds_min, dtype=float) - self.cell_size
        size = np.asarray(bounds_max, dtype=float) + self.cell_size - self.origin
        self.cell_count = (size // self.cell_size).astype(int) + 1
        self._taken: Set[int] = set()

    @classmethod
    def for_bounds(cls, bounds: Tuple[float, ...], cell_size: float) -> "SupportGridFilter":
        """From a (minx, miny, minz, maxx, maxy, maxz) tuple."""
        return cls(bounds[:3], bounds[3:], cell_size)

    def to_cell_coords(self, position: Sequence[float]) -> Tuple[int, int, int]:
        coords = np.floor((np.asarray(position, dtype=float) - self.origin) / self.cell_size).astype(int)
        coords = np.clip(coords, 0, self.cell_count - 1)
        return int(coords[0]), int(coords[1]), int(coords[2])

    def to_cell_index(self, cell_coords: Tuple[int, int, int]) -> int:
        x, y, z = cell_coords
        nx, ny = int(self.cell_count[0]), int(self.cell_count[1])
        return z * nx * ny + y * nx + x

    def cell_center(self, cell_coords: Tuple[int, int, int]) -> np.ndarray:
        return self.origin + np.asarray(cell_coords, dtype=float) * self.cell_size + self.cell_size / 2.0

    def take_position(self, position: Sequence[float]) -> None:
        self._taken.add(self.to_cell_index(self.to_cell_coords(position)))

    def position_taken(self, position: Sequence[float]) -> bool:
        return self.to_cell_index(self.to_cell_coords(position)) in self._taken

    def __len__(self) -> int:
        return len(self._taken)


def reckon_new_support_point(
    part: ObjectPart,
    weakest_conn: SliceConnection,
    points: List[SupportPoint],
    grid: SupportGridFilter,
    point: SupportPoint,
    is_global: bool = False,
) -> bool:
    """Record a support point and let it stabilize the part.

    Global points never share a grid cell. Local points (bridges, overhangs)
    may be dense, but only the first point in a cell counts towards the
    part's adhesion, so overlapping spots do not inflate it. Returns whether
    the point was added.
    """
    taken = grid.position_taken(point.position)
    if taken and is_global:
        return False

    area = point.spot_radius * point.spot_radius * math.pi
    if not taken:
        part.add_support_point(point.position, area)

    points.append(point)
    grid.take_position(point.position)

    # an empty weakest connection does not exist and stays empty
    if not weakest_conn.is_empty:
        weakest_conn.add_support_spot(point.position, area)
    return True


def reckon_global_supports(
    external_perimeter_lines: Sequence[ExtrusionLine],
    bottom_z: float,
    params: Params,
    part: ObjectPart,
    weakest_conn: SliceConnection,
    points: List[SupportPoint],
    grid: SupportGridFilter,
) -> None:
    """Walk the external perimeter and check the part at spaced candidates.

    Candidates lie at least min_distance_between_support_points apart along
    the perimeter, except where the line curls up. The extreme point for each
    candidate is the slice point nearest to a site far ahead along the line.
    """
    if not external_perimeter_lines:
        return
    lines_distancer = LinesDistancer.from_lines(external_perimeter_lines)
    unchecked_dist = params.min_distance_between_support_points + 1.0

    for line in external_perimeter_lines:
        if (
            unchecked_dist + line.length < params.min_distance_between_support_points
            and line.curled_up_height < params.curling_tolerance_limit
        ) or line.length < EPSILON:
            unchecked_dist += line.length
            continue

        unchecked_dist = line.length
        pivot_site_search_point = line.b + line.direction() * params.pivot_lookahead
        _, _, nearest_point = lines_distancer.distance_from_lines_extra(pivot_site_search_point)
        position = to_vec3((nearest_point[0], nearest_point[1], bottom_z))
        force, cause = is_stable_while_extruding(part, weakest_conn, line, position, bottom_z, params)
        if force > 0:
            logger.debug("Global support at %s: %s, force %.4g", position, cause.value, force)
            reckon_new_support_point(
                part, weakest_conn, points, grid,
                SupportPoint(cause, position, params.support_points_interface_radius),
                is_global=True,
            )
