"""
Unit tests for waste aggregation.
"""

from datetime import date, datetime

import pytest

from roll_production.aggregation import (
    UNASSIGNED,
    GroupBy,
    PercentageMode,
    build_waste_record,
    by_customer,
    by_operator,
    by_section,
    by_stage,
    by_timeframe,
    group_waste,
)
from roll_production.domain import WasteRecord


def record(roll_id, input_qty, output_qty, day, operator="op-1", section="A", customer="Acme"):
    waste = max(0.0, input_qty - output_qty)
    return WasteRecord(
        roll_id=roll_id,
        job_order_id="JO-1",
        input_quantity=input_qty,
        output_quantity=output_qty,
        waste=waste,
        waste_percentage=waste / input_qty * 100 if input_qty else None,
        recorded_on=day,
        operator_id=operator,
        section=section,
        customer_name=customer,
    )


@pytest.fixture
def records():
    return [
        record("r1", 100.0, 90.0, date(2026, 10, 1), operator="op-1", section="A"),
        record("r2", 200.0, 190.0, date(2026, 10, 1), operator="op-2", section="B"),
        record("r3", 50.0, 40.0, date(2026, 10, 2), operator="op-1", section="A",
               customer="Noor"),
        record("r4", 80.0, 80.0, date(2026, 10, 5), operator=None, section="",
               customer=""),
    ]


class TestByTimeframe:

    def test_groups_by_day_with_mean_percentage(self, records):
        summaries = by_timeframe(records, date(2026, 10, 1), date(2026, 10, 2))

        assert [summary.key for summary in summaries] == ["2026-10-01", "2026-10-02"]
        first = summaries[0]
        assert first.total_waste == 20.0
        assert first.item_count == 2
        # mean of 10% and 5%, not 20 / 300
        assert first.waste_percentage == pytest.approx(7.5)

    def test_weighted_mode(self, records):
        summaries = by_timeframe(
            records, date(2026, 10, 1), date(2026, 10, 1), PercentageMode.WEIGHTED
        )
        assert summaries[0].waste_percentage == pytest.approx(20 / 300 * 100)

    def test_bounds_are_inclusive(self, records):
        summaries = by_timeframe(records, date(2026, 10, 2), date(2026, 10, 5))
        assert [summary.key for summary in summaries] == ["2026-10-02", "2026-10-05"]

    def test_datetimes_compare_by_calendar_day(self, records):
        summaries = by_timeframe(
            records, datetime(2026, 10, 5, 23, 0), datetime(2026, 10, 5, 23, 30)
        )
        assert [summary.key for summary in summaries] == ["2026-10-05"]

    def test_reversed_window_is_rejected(self, records):
        with pytest.raises(ValueError):
            by_timeframe(records, date(2026, 10, 5), date(2026, 10, 1))

    def test_empty_window(self, records):
        assert by_timeframe(records, date(2026, 11, 1), date(2026, 11, 30)) == []


class TestRankedGroupings:

    def test_by_operator_sorted_by_total_waste(self, records):
        summaries = by_operator(records)

        assert [summary.key for summary in summaries] == ["op-1", "op-2", UNASSIGNED]
        assert summaries[0].total_waste == 20.0
        assert summaries[0].item_count == 2
        assert summaries[0].waste_percentage == pytest.approx(15.0)

    def test_ties_break_on_key(self, records):
        summaries = by_section(records[:3] + [record("r5", 10.0, 0.0, date(2026, 10, 1),
                                                      section="C")])
        assert [(summary.key, summary.total_waste) for summary in summaries] == [
            ("A", 20.0),
            ("B", 10.0),
            ("C", 10.0),
        ]

    def test_by_customer(self, records):
        summaries = by_customer(records)
        assert [summary.key for summary in summaries] == ["Acme", "Noor", UNASSIGNED]
        assert summaries[0].total_input == 300.0
        assert summaries[0].total_output == 280.0

    def test_missing_percentages_are_left_out_of_the_mean(self):
        rows = [
            record("r1", 100.0, 90.0, date(2026, 10, 1)),
            record("r2", 0.0, 0.0, date(2026, 10, 1)),
        ]
        summary = by_operator(rows)[0]
        assert summary.waste_percentage == pytest.approx(10.0)
        assert summary.item_count == 2


class TestGroupWaste:

    def test_day_grouping_requires_window(self, records):
        with pytest.raises(ValueError):
            group_waste(records, GroupBy.DAY)

    def test_window_narrows_other_groupings(self, records):
        summaries = group_waste(
            records, GroupBy.OPERATOR, start=date(2026, 10, 2), end=date(2026, 10, 5)
        )
        assert {summary.key: summary.item_count for summary in summaries} == {
            "op-1": 1,
            UNASSIGNED: 1,
        }

    def test_open_ended_window(self, records):
        summaries = group_waste(records, GroupBy.CUSTOMER, start=date(2026, 10, 2))
        assert {summary.key for summary in summaries} == {"Noor", UNASSIGNED}


class TestBuildWasteRecord:

    def test_from_finished_roll(self, make_roll, job_order):
        roll = make_roll(extrusion=100.0, printing=95.0, cutting=90.0, extruded_by="op-3")

        row = build_waste_record(roll, job_order, section="Hall A")

        assert row.input_quantity == 100.0
        assert row.output_quantity == 90.0
        assert row.waste == 10.0
        assert row.waste_percentage == pytest.approx(10.0)
        assert row.operator_id == "op-3"
        assert row.section == "Hall A"
        assert row.customer_name == "Acme Bags"
        assert row.recorded_on == date(2026, 10, 19)

    def test_unextruded_roll_has_no_record(self, make_roll, job_order):
        assert build_waste_record(make_roll(), job_order) is None


def test_by_stage_splits_printing_and_cutting(make_roll):
    rolls = [
        make_roll(roll_id="a", extrusion=100.0, printing=95.0, cutting=90.0),
        make_roll(roll_id="b", sequence=2, extrusion=50.0, cutting=45.0),
        make_roll(roll_id="c", sequence=3, extrusion=50.0),
    ]

    printing, cutting = by_stage(rolls)

    assert printing.key == "Printing"
    assert printing.total_waste == 5.0
    assert printing.item_count == 1
    assert cutting.key == "Cutting"
    assert cutting.total_waste == 10.0
    assert cutting.total_input == 145.0
    assert cutting.waste_percentage == pytest.approx(10 / 145 * 100)
