"""
Physical and tunable parameters of the support spot search.

Units used throughout the package: distance [mm], mass [g], time [s],
force [g*mm/s^2].
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from support_spots.contracts import BrimType
from support_spots.materials import (
    DEFAULT_FILAMENT,
    MPA,
    SUPPORT_SPOTS_ADHESION_MPA,
    lookup_filament,
)

logger = logging.getLogger(__name__)

GRAVITY_CONSTANT = 9806.65  # mm/s^2; objects are assumed to stand on a horizontal bed


@dataclass(frozen=True)
class Params:
    """Read-only configuration of the stability model."""

    bridge_distance: float = 16.0  # mm
    # Max XY acceleration of the object. Strictly relevant only for bed
    # slingers; the force is small, so it is always included.
    max_acceleration: float = 1000.0  # mm/s^2
    raft_layers_count: int = 0
    filament_type: str = DEFAULT_FILAMENT
    brim_type: BrimType = BrimType.NO_BRIM
    brim_width: float = 0.0  # mm

    malformation_distance_factors: Tuple[float, float] = (0.2, 1.1)
    max_curled_height_factor: float = 10.0
    curling_tolerance_limit: float = 0.1

    min_distance_between_support_points: float = 3.0  # mm
    support_points_interface_radius: float = 1.5  # mm
    min_distance_to_allow_local_supports: float = 1.0  # mm

    gravity_constant: float = GRAVITY_CONSTANT
    filament_density: float = 1.25e-3  # g/mm^3
    # 33 MPa is the yield strength of ABS, the weakest of the common materials
    material_yield_strength: float = 33.0 * MPA
    # force that can occasionally push the model (filament leaks, small curling, ...)
    standard_extruder_conflict_force: float = 10.0 * GRAVITY_CONSTANT
    # extra force where curled filament piles up under the nozzle
    malformations_additive_conflict_extruder_force: float = 65.0 * GRAVITY_CONSTANT

    # Calibration constants (empirically tuned, not physical laws)
    tipping_deviation_factor: float = 2.0  # weight arm below this many std devs does not tip
    min_weak_connection_height: float = 3.0  # mm; fresher connections are not judged
    min_weight_arm_height: float = 30.0  # mm; weight ignored closer to the weak connection
    pivot_lookahead: float = 300.0  # mm; lookahead along the line for the pivot search

    @property
    def support_spots_adhesion_strength(self) -> float:
        return SUPPORT_SPOTS_ADHESION_MPA * MPA

    @property
    def bed_adhesion_yield_strength(self) -> float:
        """Yield strength of the bond between the first layer and the bed."""
        if self.raft_layers_count > 0:
            return self.support_spots_adhesion_strength * 2.0
        filament = lookup_filament(self.filament_type)
        if filament is None:
            return lookup_filament(DEFAULT_FILAMENT).bed_adhesion_yield_strength
        return filament.bed_adhesion_yield_strength

    @property
    def has_brim(self) -> bool:
        return (
            self.raft_layers_count == 0
            and self.brim_type != BrimType.NO_BRIM
            and self.brim_width > 0.0
        )

    @classmethod
    def from_filament_types(
        cls,
        filament_types: Sequence[str],
        max_acceleration: Optional[float] = None,
        **overrides,
    ) -> "Params":
        """Create Params for a print using the given extruder filaments.

        Only the first filament is taken into account.
        """
        if len(filament_types) > 1:
            logger.warning(
                "Support spot search does not handle multiple materials, only %s will be used",
                filament_types[0],
            )
        if not filament_types or not filament_types[0].strip():
            logger.error("Empty filament type, falling back to %s", DEFAULT_FILAMENT)
            filament_type = DEFAULT_FILAMENT
        else:
            filament_type = filament_types[0].strip()
            if lookup_filament(filament_type) is None:
                logger.warning(
                    "Unknown filament type %s, using %s bed adhesion",
                    filament_type, DEFAULT_FILAMENT,
                )
            logger.debug("Applying filament type: %s", filament_type)
        if max_acceleration is not None:
            overrides["max_acceleration"] = float(max_acceleration)
        return cls(filament_type=filament_type, **overrides)
