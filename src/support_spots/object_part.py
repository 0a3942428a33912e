"""
Object parts and their tracking across layers.

An object part is a piece of the print that is physically one body at the
current height. Slices of a new layer either start a new part (nothing below
them) or join the parts of the slices they overlap; parts that touch through a
common slice are merged via union-find.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from support_spots.connections import SliceConnection
from support_spots.contracts import ExtrusionCollection, Layer, PartialObject, to_vec3
from support_spots.geometry import get_brim
from support_spots.integrals import EPSILON, MomentAccumulator, integrate, integrate_polylines
from support_spots.params import Params

logger = logging.getLogger(__name__)


@dataclass
class ObjectPart:
    connected_to_bed: bool = False
    volume: float = 0.0
    volume_centroid_accumulator: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sticking_area: float = 0.0
    sticking_centroid_accumulator: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sticking_second_moment_accumulator: np.ndarray = field(default_factory=lambda: np.zeros(2))
    sticking_covariance_accumulator: float = 0.0

    @classmethod
    def from_extrusions(
        cls,
        extrusion_collections: Sequence[ExtrusionCollection],
        connected_to_bed: bool,
        print_z: float,
        layer_height: float,
        brim=None,
    ) -> "ObjectPart":
        """Part made of one slice's extrusions (and brim, on the first layer)."""
        part = cls(connected_to_bed=connected_to_bed)
        bottom_z = print_z - layer_height
        center_z = print_z - layer_height / 2.0

        for collection in extrusion_collections:
            paths = list(collection.iter_paths())
            if not paths:
                continue
            integrals = integrate_polylines([p.points for p in paths], [p.width for p in paths])
            if integrals.area < EPSILON:
                continue
            volume = integrals.area * layer_height
            part.volume += volume
            centroid = integrals.first_moment / integrals.area
            part.volume_centroid_accumulator = part.volume_centroid_accumulator + volume * np.array(
                [centroid[0], centroid[1], center_z]
            )
            if connected_to_bed:
                part._add_sticking(integrals, bottom_z)

        if brim:
            part._add_sticking(integrate(brim), bottom_z)
        return part

    def _add_sticking(self, integrals: MomentAccumulator, z: float) -> None:
        self.sticking_area += integrals.area
        self.sticking_centroid_accumulator = self.sticking_centroid_accumulator + np.array(
            [integrals.first_moment[0], integrals.first_moment[1], z * integrals.area]
        )
        self.sticking_second_moment_accumulator = self.sticking_second_moment_accumulator + integrals.second_moment
        self.sticking_covariance_accumulator += integrals.product_moment

    def add(self, other: "ObjectPart") -> None:
        self.connected_to_bed = self.connected_to_bed or other.connected_to_bed
        self.volume += other.volume
        self.volume_centroid_accumulator = self.volume_centroid_accumulator + other.volume_centroid_accumulator
        self.sticking_area += other.sticking_area
        self.sticking_centroid_accumulator = self.sticking_centroid_accumulator + other.sticking_centroid_accumulator
        self.sticking_second_moment_accumulator = (
            self.sticking_second_moment_accumulator + other.sticking_second_moment_accumulator
        )
        self.sticking_covariance_accumulator += other.sticking_covariance_accumulator

    def add_support_point(self, position: Sequence[float], sticking_area: float) -> None:
        """A support point glues the part to the bed over its spot area."""
        position = np.asarray(position, dtype=float)
        self.sticking_area += sticking_area
        self.sticking_centroid_accumulator = self.sticking_centroid_accumulator + sticking_area * position
        self.sticking_second_moment_accumulator = (
            self.sticking_second_moment_accumulator + sticking_area * position[:2] * position[:2]
        )
        self.sticking_covariance_accumulator += sticking_area * position[0] * position[1]

    def sticking_integrals(self) -> MomentAccumulator:
        return MomentAccumulator(
            area=self.sticking_area,
            first_moment=self.sticking_centroid_accumulator[:2].copy(),
            second_moment=self.sticking_second_moment_accumulator.copy(),
            product_moment=self.sticking_covariance_accumulator,
        )

    def mass_centroid(self) -> np.ndarray:
        if self.volume < EPSILON:
            return np.zeros(3)
        return self.volume_centroid_accumulator / self.volume


def to_partial_object(part: ObjectPart) -> Optional[PartialObject]:
    if part.volume > EPSILON:
        return PartialObject(
            centroid=to_vec3(part.volume_centroid_accumulator / part.volume),
            volume=part.volume,
            connected_to_bed=part.connected_to_bed,
        )
    return None


class ActiveObjectParts:
    """Arena of live object parts with union-find over their handles.

    Handles are plain ints; the arena owns the parts. A merged-away handle
    keeps resolving to the surviving part through the parent array.
    """

    def __init__(self) -> None:
        self._parts: Dict[int, ObjectPart] = {}
        self._parent: List[int] = []

    def __len__(self) -> int:
        return len(self._parts)

    def insert(self, part: ObjectPart) -> int:
        part_id = len(self._parent)
        self._parent.append(part_id)
        self._parts[part_id] = part
        return part_id

    def get_flat_id(self, part_id: int) -> int:
        root = part_id
        while self._parent[root] != root:
            root = self._parent[root]
        # path compression
        node = part_id
        while self._parent[node] != root:
            self._parent[node], node = root, self._parent[node]
        return root

    def access(self, part_id: int) -> ObjectPart:
        return self._parts[self.get_flat_id(part_id)]

    def merge(self, from_id: int, to_id: int) -> None:
        """Fold part `from_id` into `to_id`."""
        to_flat = self.get_flat_id(to_id)
        from_flat = self.get_flat_id(from_id)
        if to_flat == from_flat:
            return
        self._parts[to_flat].add(self._parts.pop(from_flat))
        self._parent[from_flat] = to_flat
        self._parent[from_id] = to_flat

    def live_ids(self) -> List[int]:
        return sorted(self._parts)


@dataclass
class SliceMappings:
    """Per-slice state of the last processed layer."""
    part_ids: Dict[int, int] = field(default_factory=dict)
    weakest_connections: Dict[int, SliceConnection] = field(default_factory=dict)


def estimate_connection_strength(connection: SliceConnection, bottom_z: float) -> float:
    """Rough stiffness of a connection as seen from the layer at bottom_z.

    An empty connection does not exist and scores +inf, so it is never
    picked as the weakest one.
    """
    if connection.is_empty:
        return math.inf
    centroid = connection.centroid_accumulator / connection.area
    variance = connection.second_moment_accumulator / connection.area - centroid[:2] * centroid[:2]
    xy_variance = max(0.0, float(variance[0] + variance[1]))
    arm_len_estimate = max(1.0, bottom_z - centroid[2])
    return connection.area * math.sqrt(xy_variance) / arm_len_estimate


def update_active_object_parts(
    layer: Layer,
    layer_idx: int,
    params: Params,
    slice_connections: Sequence[SliceConnection],
    previous_mappings: SliceMappings,
    active_object_parts: ActiveObjectParts,
    partial_objects: List[PartialObject],
) -> SliceMappings:
    """Register this layer's slices with the object parts below them."""
    new_mappings = SliceMappings()
    connected_to_bed = layer_idx == 0
    with_brim = connected_to_bed and params.has_brim

    for slice_idx, layer_slice in enumerate(layer.slices):
        brim = get_brim(layer_slice.polygons, params.brim_type, params.brim_width) if with_brim else None
        new_part = ObjectPart.from_extrusions(
            layer_slice.extrusion_collections(),
            connected_to_bed,
            layer.print_z,
            layer.height,
            brim,
        )
        connection_to_below = slice_connections[slice_idx]

        if connection_to_below.is_empty:
            # new object part emerging
            part_id = active_object_parts.insert(new_part)
            new_mappings.part_ids[slice_idx] = part_id
            new_mappings.weakest_connections[slice_idx] = connection_to_below.copy()
            if layer_idx > 0:
                logger.debug("Layer %d slice %d starts a floating part %d", layer_idx, slice_idx, part_id)
            continue

        part_ids: List[int] = []
        below_connections: List[SliceConnection] = []
        for link in layer_slice.overlaps_below:
            flat_id = active_object_parts.get_flat_id(previous_mappings.part_ids[link])
            if flat_id not in part_ids:
                part_ids.append(flat_id)
            below_connections.append(previous_mappings.weakest_connections[link])

        final_part_id = part_ids[0]
        for part_id in part_ids[1:]:
            partial = to_partial_object(active_object_parts.access(part_id))
            if partial is not None:
                partial_objects.append(partial)
            active_object_parts.merge(part_id, final_part_id)
        if len(part_ids) > 1:
            logger.debug("Layer %d slice %d merged %d parts into %d", layer_idx, slice_idx, len(part_ids), final_part_id)

        bottom_z = layer.bottom_z
        transferred = min(
            below_connections,
            key=lambda conn: estimate_connection_strength(conn, bottom_z),
        )
        if estimate_connection_strength(transferred, bottom_z) > estimate_connection_strength(connection_to_below, bottom_z):
            transferred = connection_to_below

        new_mappings.weakest_connections[slice_idx] = transferred.copy()
        new_mappings.part_ids[slice_idx] = final_part_id
        active_object_parts.access(final_part_id).add(new_part)

    return new_mappings
