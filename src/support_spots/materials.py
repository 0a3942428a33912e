"""
Filament catalog.

Bed adhesion yield strengths per filament type, used by the stability model
to turn the first-layer footprint into a resisting torque.
"""

from dataclasses import dataclass
from typing import Tuple

MPA = 1e6  # g/(mm*s^2) per MPa


@dataclass(frozen=True)
class Filament:
    """A filament family the stability model knows about."""

    name: str
    aliases: Tuple[str, ...]
    bed_adhesion_mpa: float  # yield strength of the first-layer bond to the bed

    @property
    def bed_adhesion_yield_strength(self) -> float:
        return self.bed_adhesion_mpa * MPA


FILAMENTS = {
    "PLA": Filament(name="PLA", aliases=("PLA",), bed_adhesion_mpa=0.018),
    "PETG": Filament(name="PETG", aliases=("PET", "PETG"), bed_adhesion_mpa=0.3),
    # TODO: ABS/ASA value is an estimate, replace with measured adhesion
    "ABS": Filament(name="ABS", aliases=("ABS", "ASA"), bed_adhesion_mpa=0.1),
}

# PLA has quite low adhesion, so it is the conservative fallback
DEFAULT_FILAMENT = "PLA"

# Adhesion of the object to support spots / raft interface
SUPPORT_SPOTS_ADHESION_MPA = 0.018


def lookup_filament(filament_type: str):
    """Return the catalog entry for a filament type name, or None."""
    key = filament_type.strip().upper()
    for filament in FILAMENTS.values():
        if key in filament.aliases:
            return filament
    return None
