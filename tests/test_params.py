"""Tests for params and materials modules."""
import dataclasses

import pytest

from support_spots.contracts import BrimType
from support_spots.materials import DEFAULT_FILAMENT, lookup_filament
from support_spots.params import Params


class TestFilaments:
    def test_lookup_by_alias(self):
        assert lookup_filament("PET").name == "PETG"
        assert lookup_filament(" petg ").name == "PETG"
        assert lookup_filament("asa").name == "ABS"

    def test_unknown_filament(self):
        assert lookup_filament("NYLON-CF") is None


class TestBedAdhesion:
    def test_pla(self):
        assert Params(filament_type="PLA").bed_adhesion_yield_strength == pytest.approx(0.018e6)

    def test_petg_is_stronger_than_pla(self):
        assert Params(filament_type="PET").bed_adhesion_yield_strength > Params().bed_adhesion_yield_strength

    def test_unknown_falls_back_to_pla(self):
        assert (
            Params(filament_type="NYLON").bed_adhesion_yield_strength
            == Params(filament_type="PLA").bed_adhesion_yield_strength
        )

    def test_raft_doubles_support_adhesion(self):
        params = Params(filament_type="PETG", raft_layers_count=2)
        assert params.bed_adhesion_yield_strength == pytest.approx(2.0 * params.support_spots_adhesion_strength)


class TestBrim:
    def test_no_brim_by_default(self):
        assert not Params().has_brim

    def test_outer_brim(self):
        assert Params(brim_type=BrimType.OUTER_ONLY, brim_width=3.0).has_brim

    def test_zero_width_brim(self):
        assert not Params(brim_type=BrimType.OUTER_ONLY, brim_width=0.0).has_brim

    def test_raft_disables_brim(self):
        assert not Params(brim_type=BrimType.OUTER_ONLY, brim_width=3.0, raft_layers_count=1).has_brim


class TestFromFilamentTypes:
    def test_first_filament_wins(self):
        assert Params.from_filament_types(["PETG", "PLA"]).filament_type == "PETG"

    def test_empty_falls_back(self):
        assert Params.from_filament_types([]).filament_type == DEFAULT_FILAMENT
        assert Params.from_filament_types(["  "]).filament_type == DEFAULT_FILAMENT

    def test_overrides(self):
        params = Params.from_filament_types(["PLA"], max_acceleration=3000, bridge_distance=10.0)
        assert params.max_acceleration == 3000.0
        assert params.bridge_distance == 10.0

    def test_params_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            Params().bridge_distance = 1.0


class TestCalibrationConstants:
    """Empirically tuned thresholds, not physical laws. Changing them shifts every result."""

    def test_defaults(self):
        params = Params()
        assert params.tipping_deviation_factor == 2.0
        assert params.min_weak_connection_height == 3.0
        assert params.min_weight_arm_height == 30.0
        assert params.pivot_lookahead == 300.0

    def test_overridable(self):
        assert Params(min_weight_arm_height=10.0).min_weight_arm_height == 10.0
