"""
Unit tests for job order balance tracking.
"""

import pytest

from roll_production.balance import (
    balance_snapshot,
    drawn_quantity,
    ensure_within_balance,
    remaining_balance,
)
from roll_production.domain import RollStatus
from roll_production.errors import DataIntegrityError, ExceedsJobOrderBalanceError


def test_new_job_order_has_full_balance(job_order):
    assert remaining_balance(job_order, []) == 100.0


def test_full_extrusion_leaves_nothing(job_order, make_roll):
    rolls = [make_roll(extrusion=100.0, status=RollStatus.AWAITING_CUTTING)]
    assert remaining_balance(job_order, rolls) == 0.0


def test_balance_is_floored_at_zero(job_order, make_roll):
    rolls = [
        make_roll(roll_id="a", extrusion=70.0),
        make_roll(roll_id="b", sequence=2, extrusion=60.0),
    ]
    assert drawn_quantity(job_order, rolls) == 130.0
    assert remaining_balance(job_order, rolls) == 0.0


def test_damaged_rolls_do_not_draw(job_order, make_roll):
    rolls = [
        make_roll(roll_id="a", extrusion=40.0),
        make_roll(roll_id="b", sequence=2, extrusion=30.0, status=RollStatus.DAMAGED),
    ]
    assert remaining_balance(job_order, rolls) == 60.0


def test_excluding_roll_releases_its_own_contribution(job_order, make_roll):
    rolls = [
        make_roll(roll_id="a", extrusion=40.0),
        make_roll(roll_id="b", sequence=2, extrusion=30.0),
    ]
    assert remaining_balance(job_order, rolls, excluding_roll_id="b") == 60.0


def test_rolls_without_extrusion_count_as_zero(job_order, make_roll):
    assert remaining_balance(job_order, [make_roll()]) == 100.0


def test_foreign_roll_is_a_data_integrity_error(job_order, make_roll):
    with pytest.raises(DataIntegrityError):
        remaining_balance(job_order, [make_roll(job_order_id="JO-9")])


class TestEnsureWithinBalance:

    def test_accepts_exact_fit(self, job_order, make_roll):
        rolls = [make_roll(roll_id="a", extrusion=60.0)]
        assert ensure_within_balance(job_order, rolls, 40.0) == 40.0

    def test_rejects_overdraw(self, job_order, make_roll):
        rolls = [make_roll(roll_id="a", extrusion=60.0)]

        with pytest.raises(ExceedsJobOrderBalanceError) as excinfo:
            ensure_within_balance(job_order, rolls, 40.5)

        assert excinfo.value.remaining == 40.0
        assert excinfo.value.proposed == 40.5

    def test_editing_a_roll_counts_its_old_quantity_as_available(self, job_order, make_roll):
        rolls = [
            make_roll(roll_id="a", extrusion=60.0),
            make_roll(roll_id="b", sequence=2, extrusion=40.0),
        ]
        ensure_within_balance(job_order, rolls, 35.0, roll_id="b")
        with pytest.raises(ExceedsJobOrderBalanceError):
            ensure_within_balance(job_order, rolls, 41.0, roll_id="b")

    def test_float_sums_still_fit_the_target(self, job_order, make_roll):
        rolls = [
            make_roll(roll_id="a", extrusion=33.3),
            make_roll(roll_id="b", sequence=2, extrusion=33.3),
        ]
        ensure_within_balance(job_order, rolls, 33.4)

    def test_balance_never_goes_negative_after_accepted_draws(self, job_order, make_roll):
        rolls = []
        for index, quantity in enumerate([25.0, 25.0, 30.0, 20.0]):
            ensure_within_balance(job_order, rolls, quantity)
            rolls.append(make_roll(roll_id=str(index), sequence=index + 1, extrusion=quantity))
            assert remaining_balance(job_order, rolls) >= 0
        assert remaining_balance(job_order, rolls) == 0.0


def test_snapshot_reports_drawn_and_remaining(job_order, make_roll):
    rolls = [
        make_roll(roll_id="a", extrusion=25.0),
        make_roll(roll_id="b", sequence=2),
    ]
    snapshot = balance_snapshot(job_order, rolls)

    assert snapshot.job_order_id == "JO-1"
    assert snapshot.drawn == 25.0
    assert snapshot.remaining == 75.0
    assert snapshot.roll_count == 2
