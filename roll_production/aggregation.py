"""Waste aggregation over already-fetched records.

All functions here are pure: callers fetch the rolls and job orders, turn
them into WasteRecords with ``build_waste_record`` and hand them over.

Per-group percentages default to the plain mean of the per-record
percentages, which is how the legacy reports computed them. Pass
``PercentageMode.WEIGHTED`` to get total waste over total input instead.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from .domain import JobOrder, Roll, Stage, WasteRecord, WasteSummary
from .ledger import upstream_for
from .waste import (
    last_recorded_stage,
    roll_cumulative_waste,
    roll_cumulative_waste_percentage,
    stage_waste,
)

DateLike = Union[date, datetime]


class PercentageMode(str, Enum):
    MEAN_OF_RECORDS = "mean"
    WEIGHTED = "weighted"


class GroupBy(str, Enum):
    DAY = "day"
    OPERATOR = "operator"
    SECTION = "section"
    CUSTOMER = "customer"


UNASSIGNED = "unassigned"


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def build_waste_record(
    roll: Roll,
    job_order: JobOrder,
    *,
    operator_id: Optional[str] = None,
    section: str = "",
    recorded_on: Optional[DateLike] = None,
) -> Optional[WasteRecord]:
    """Turn a roll into an aggregator row, or ``None`` before extrusion.

    The operator defaults to whoever extruded the roll and the date to the
    roll's creation day.
    """

    if roll.extrusion_qty is None:
        return None
    last = last_recorded_stage(roll)
    return WasteRecord(
        roll_id=roll.id,
        job_order_id=roll.job_order_id,
        input_quantity=roll.extrusion_qty,
        output_quantity=last.quantity,
        waste=roll_cumulative_waste(roll) or 0.0,
        waste_percentage=roll_cumulative_waste_percentage(roll),
        recorded_on=_as_date(recorded_on or roll.created_at),
        operator_id=operator_id if operator_id is not None else roll.extruded_by,
        section=section,
        customer_name=job_order.customer_name,
    )


def summarize(
    key: str,
    records: Sequence[WasteRecord],
    mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
) -> WasteSummary:
    total_input = sum(record.input_quantity for record in records)
    total_output = sum(record.output_quantity for record in records)
    total_waste = sum(record.waste for record in records)
    if mode is PercentageMode.WEIGHTED:
        percentage = total_waste / total_input * 100 if total_input else None
    else:
        percentages = [
            record.waste_percentage
            for record in records
            if record.waste_percentage is not None
        ]
        percentage = sum(percentages) / len(percentages) if percentages else None
    return WasteSummary(
        key=key,
        total_input=total_input,
        total_output=total_output,
        total_waste=total_waste,
        waste_percentage=percentage,
        item_count=len(records),
    )


def _grouped(
    records: Iterable[WasteRecord], key: Callable[[WasteRecord], str]
) -> Dict[str, List[WasteRecord]]:
    groups: Dict[str, List[WasteRecord]] = defaultdict(list)
    for record in records:
        groups[key(record)].append(record)
    return groups


def _ranked(
    records: Iterable[WasteRecord],
    key: Callable[[WasteRecord], str],
    mode: PercentageMode,
) -> List[WasteSummary]:
    summaries = [
        summarize(group_key, group, mode)
        for group_key, group in _grouped(records, key).items()
    ]
    summaries.sort(key=lambda summary: (-summary.total_waste, summary.key))
    return summaries


def by_timeframe(
    records: Iterable[WasteRecord],
    start: DateLike,
    end: DateLike,
    mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
) -> List[WasteSummary]:
    """One summary per calendar day in ``[start, end]``, oldest first."""

    first, last = _as_date(start), _as_date(end)
    if last < first:
        raise ValueError("Timeframe end must not be before its start")
    in_window = [
        record
        for record in records
        if first <= _as_date(record.recorded_on) <= last
    ]
    groups = _grouped(in_window, lambda record: _as_date(record.recorded_on).isoformat())
    return [summarize(day, groups[day], mode) for day in sorted(groups)]


def by_operator(
    records: Iterable[WasteRecord],
    mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
) -> List[WasteSummary]:
    return _ranked(records, lambda record: record.operator_id or UNASSIGNED, mode)


def by_section(
    records: Iterable[WasteRecord],
    mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
) -> List[WasteSummary]:
    return _ranked(records, lambda record: record.section or UNASSIGNED, mode)


def by_customer(
    records: Iterable[WasteRecord],
    mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
) -> List[WasteSummary]:
    return _ranked(records, lambda record: record.customer_name or UNASSIGNED, mode)


def group_waste(
    records: Iterable[WasteRecord],
    group_by: GroupBy,
    *,
    start: Optional[DateLike] = None,
    end: Optional[DateLike] = None,
    mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
) -> List[WasteSummary]:
    """Dispatch to the grouping named by ``group_by``.

    ``start``/``end`` narrow every grouping; the daily grouping requires
    both.
    """

    if group_by is GroupBy.DAY:
        if start is None or end is None:
            raise ValueError("Grouping by day requires both start and end")
        return by_timeframe(records, start, end, mode)
    if start is not None or end is not None:
        first = _as_date(start) if start is not None else date.min
        last = _as_date(end) if end is not None else date.max
        records = [
            record for record in records if first <= _as_date(record.recorded_on) <= last
        ]
    if group_by is GroupBy.OPERATOR:
        return by_operator(records, mode)
    if group_by is GroupBy.SECTION:
        return by_section(records, mode)
    return by_customer(records, mode)


def by_stage(
    rolls: Iterable[Roll],
    mode: PercentageMode = PercentageMode.WEIGHTED,
) -> List[WasteSummary]:
    """Waste lost at printing and at cutting, summed over ``rolls``.

    Printing waste is measured against extrusion, cutting waste against
    whichever stage fed the cutter.
    """

    per_stage: Dict[Stage, List[WasteRecord]] = {Stage.PRINTING: [], Stage.CUTTING: []}
    for roll in rolls:
        for stage in per_stage:
            output = roll.printing_qty if stage is Stage.PRINTING else roll.cutting_qty
            upstream = upstream_for(roll, stage)
            if upstream is None or output is None:
                continue
            waste = stage_waste(upstream.quantity, output)
            per_stage[stage].append(
                WasteRecord(
                    roll_id=roll.id,
                    job_order_id=roll.job_order_id,
                    input_quantity=upstream.quantity,
                    output_quantity=output,
                    waste=waste,
                    waste_percentage=(
                        waste / upstream.quantity * 100 if upstream.quantity else None
                    ),
                    recorded_on=_as_date(roll.created_at),
                )
            )
    return [summarize(stage.value, records, mode) for stage, records in per_stage.items()]


__all__ = [
    "PercentageMode",
    "GroupBy",
    "UNASSIGNED",
    "build_waste_record",
    "summarize",
    "by_timeframe",
    "by_operator",
    "by_section",
    "by_customer",
    "group_waste",
    "by_stage",
]
