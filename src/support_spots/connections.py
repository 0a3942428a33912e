"""
Slice connectivity estimation.

For every slice of every layer, integrates the overlap with the linked slices
of the layer below. Each estimate only reads layer geometry and writes its own
output slot, so the whole object is estimated in parallel.
"""
import logging
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from support_spots.contracts import Layer, SlicedObject
from support_spots.geometry import bbox_intersects, bbox_of, clip_to_bbox, union_polygons
from support_spots.integrals import EPSILON, MomentAccumulator, integrate

logger = logging.getLogger(__name__)


@dataclass
class SliceConnection:
    """Integrals of the area through which a slice holds to the layer below.

    The centroid accumulator is 3D: xy from the geometry, z = print_z * area.
    """
    area: float = 0.0
    centroid_accumulator: np.ndarray = field(default_factory=lambda: np.zeros(3))
    second_moment_accumulator: np.ndarray = field(default_factory=lambda: np.zeros(2))
    covariance_accumulator: float = 0.0

    @classmethod
    def from_integrals(cls, integrals: MomentAccumulator, z: float) -> "SliceConnection":
        return cls(
            area=integrals.area,
            centroid_accumulator=np.array([
                integrals.first_moment[0], integrals.first_moment[1], z * integrals.area,
            ]),
            second_moment_accumulator=integrals.second_moment.copy(),
            covariance_accumulator=integrals.product_moment,
        )

    @property
    def is_empty(self) -> bool:
        return self.area < EPSILON

    def copy(self) -> "SliceConnection":
        return SliceConnection(
            area=self.area,
            centroid_accumulator=self.centroid_accumulator.copy(),
            second_moment_accumulator=self.second_moment_accumulator.copy(),
            covariance_accumulator=self.covariance_accumulator,
        )

    def add(self, other: "SliceConnection") -> None:
        self.area += other.area
        self.centroid_accumulator = self.centroid_accumulator + other.centroid_accumulator
        self.second_moment_accumulator = self.second_moment_accumulator + other.second_moment_accumulator
        self.covariance_accumulator += other.covariance_accumulator

    def add_support_spot(self, position: Sequence[float], area: float) -> None:
        """Account for a support point holding this connection."""
        position = np.asarray(position, dtype=float)
        self.area += area
        self.centroid_accumulator = self.centroid_accumulator + area * position
        self.second_moment_accumulator = self.second_moment_accumulator + area * position[:2] * position[:2]
        self.covariance_accumulator += area * position[0] * position[1]

    def centroid(self) -> Optional[np.ndarray]:
        if self.is_empty:
            return None
        return self.centroid_accumulator / self.area

    def to_integrals(self) -> MomentAccumulator:
        return MomentAccumulator(
            area=self.area,
            first_moment=self.centroid_accumulator[:2].copy(),
            second_moment=self.second_moment_accumulator.copy(),
            product_moment=self.covariance_accumulator,
        )


def estimate_slice_connection(layer: Layer, lower_layer: Optional[Layer], slice_idx: int) -> SliceConnection:
    """Overlap of one slice with the slices it is linked to below."""
    layer_slice = layer.slices[slice_idx]
    if lower_layer is None or not layer_slice.overlaps_below:
        return SliceConnection()

    linked = sorted(set(layer_slice.overlaps_below))
    below = union_polygons(lower_layer.slices[idx].polygons for idx in linked)
    current = layer_slice.polygons
    if below.is_empty or current.is_empty:
        return SliceConnection()

    current_bb = bbox_of(current)
    below_bb = bbox_of(below)
    if not bbox_intersects(current_bb, below_bb):
        return SliceConnection()

    overlap = clip_to_bbox(current, below_bb).intersection(clip_to_bbox(below, current_bb))
    return SliceConnection.from_integrals(integrate(overlap), layer.print_z)


def precompute_slices_connections(
    sliced_object: SlicedObject,
    executor: Optional[Executor] = None,
) -> List[List[SliceConnection]]:
    """Connection to the layer below for every (layer, slice) pair."""
    tasks = [
        (layer_idx, slice_idx)
        for layer_idx, layer in enumerate(sliced_object.layers)
        for slice_idx in range(len(layer.slices))
    ]

    def estimate(task):
        layer_idx, slice_idx = task
        lower = sliced_object.layers[layer_idx - 1] if layer_idx > 0 else None
        return estimate_slice_connection(sliced_object.layers[layer_idx], lower, slice_idx)

    if executor is None:
        estimates = [estimate(task) for task in tasks]
    else:
        estimates = list(executor.map(estimate, tasks))

    result: List[List[SliceConnection]] = [[SliceConnection() for _ in layer.slices] for layer in sliced_object.layers]
    for (layer_idx, slice_idx), connection in zip(tasks, estimates):
        result[layer_idx][slice_idx] = connection

    logger.debug("Estimated %d slice connections", len(tasks))
    return result
