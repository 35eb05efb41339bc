"""
Unit tests for the quantity ledger.
"""

import math
from datetime import datetime

import pytest

from roll_production.domain import Stage, StageRecord
from roll_production.errors import (
    ExceedsUpstreamError,
    InvalidQuantityError,
    StageAlreadyRecordedError,
)
from roll_production.ledger import (
    record_stage,
    stage_records,
    upstream_for,
    upstream_quantity,
    upstream_quantity_for,
)


class TestUpstreamQuantity:

    def test_nothing_recorded(self, make_roll):
        assert upstream_quantity(make_roll()) is None

    def test_extrusion_only(self, make_roll):
        assert upstream_quantity(make_roll(extrusion=80.0)) == 80.0

    def test_printing_wins_over_extrusion(self, make_roll):
        assert upstream_quantity(make_roll(extrusion=80.0, printing=75.0)) == 75.0

    def test_printing_reads_extrusion_even_after_printing(self, make_roll):
        roll = make_roll(extrusion=80.0, printing=75.0)
        assert upstream_quantity_for(roll, Stage.PRINTING) == 80.0
        assert upstream_for(roll, Stage.CUTTING) == StageRecord(Stage.PRINTING, 75.0)
        assert upstream_for(roll, Stage.EXTRUSION) is None


class TestRecordStage:

    def test_records_quantity_without_mutating_input(self, make_roll):
        roll = make_roll()
        when = datetime(2026, 10, 19, 9, 15)

        updated = record_stage(
            roll, Stage.EXTRUSION, 50, operator_id="op-1", recorded_at=when
        )

        assert updated.extrusion_qty == 50.0
        assert updated.extruded_by == "op-1"
        assert updated.extruded_at == when
        assert roll.extrusion_qty is None

    @pytest.mark.parametrize("bad", [-0.5, float("nan"), math.inf, "lots", None])
    def test_rejects_invalid_quantities(self, make_roll, bad):
        with pytest.raises(InvalidQuantityError):
            record_stage(make_roll(), Stage.EXTRUSION, bad)

    def test_second_recording_fails_even_with_same_value(self, make_roll):
        roll = record_stage(make_roll(), Stage.EXTRUSION, 50)

        with pytest.raises(StageAlreadyRecordedError) as excinfo:
            record_stage(roll, Stage.EXTRUSION, 50)

        assert excinfo.value.existing == 50.0
        assert excinfo.value.stage == "Extrusion"

    def test_overwrite_replaces_value(self, make_roll):
        roll = record_stage(make_roll(), Stage.EXTRUSION, 50)
        assert record_stage(roll, Stage.EXTRUSION, 45, overwrite=True).extrusion_qty == 45.0

    def test_printing_cannot_exceed_extrusion(self, make_roll):
        with pytest.raises(ExceedsUpstreamError) as excinfo:
            record_stage(make_roll(extrusion=100.0), Stage.PRINTING, 100.5)

        assert excinfo.value.upstream_stage == "Extrusion"
        assert excinfo.value.upstream_quantity == 100.0

    def test_cutting_checks_printing_when_present(self, make_roll):
        roll = make_roll(extrusion=100.0, printing=90.0)

        with pytest.raises(ExceedsUpstreamError) as excinfo:
            record_stage(roll, Stage.CUTTING, 95)

        assert excinfo.value.upstream_stage == "Printing"

    def test_cutting_checks_extrusion_when_printing_skipped(self, make_roll):
        roll = make_roll(extrusion=100.0)

        assert record_stage(roll, Stage.CUTTING, 100).cutting_qty == 100.0
        with pytest.raises(ExceedsUpstreamError):
            record_stage(roll, Stage.CUTTING, 101)

    def test_equal_to_upstream_within_float_tolerance(self, make_roll):
        roll = make_roll(extrusion=0.3)
        assert record_stage(roll, Stage.CUTTING, 0.1 + 0.2).cutting_qty == 0.1 + 0.2

    def test_overwrite_cannot_drop_below_downstream(self, make_roll):
        roll = make_roll(extrusion=100.0, printing=90.0)

        with pytest.raises(ExceedsUpstreamError) as excinfo:
            record_stage(roll, Stage.EXTRUSION, 85, overwrite=True)

        assert excinfo.value.stage == "Printing"

    def test_zero_is_a_valid_quantity(self, make_roll):
        assert record_stage(make_roll(extrusion=10.0), Stage.CUTTING, 0).cutting_qty == 0.0


def test_stage_records_skip_unrecorded_stages(make_roll):
    roll = make_roll(extrusion=100.0, cutting=92.0)
    assert stage_records(roll) == [
        StageRecord(Stage.EXTRUSION, 100.0),
        StageRecord(Stage.CUTTING, 92.0),
    ]
