"""Stage-pairwise and cumulative waste calculations.

Waste is never negative. When a later stage reports more material than the
stage before it (a data-entry error), the waste functions floor at zero;
``quantity_anomalies`` reports those regressions separately.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .domain import Roll, Stage, StageRecord
from .ledger import QUANTITY_TOLERANCE, stage_records, upstream_for


def stage_waste(input_qty: Optional[float], output_qty: Optional[float]) -> Optional[float]:
    if input_qty is None or output_qty is None:
        return None
    return max(0.0, input_qty - output_qty)


def stage_waste_percentage(
    input_qty: Optional[float], output_qty: Optional[float]
) -> Optional[float]:
    """Waste as a percentage of ``input_qty``; unrounded.

    ``None`` exactly when there is no input to measure against. A missing
    output counts as nothing delivered.
    """

    if input_qty is None or input_qty == 0:
        return None
    waste = max(0.0, input_qty - (output_qty or 0.0))
    return (waste / input_qty) * 100


def printing_waste(roll: Roll) -> Optional[float]:
    return stage_waste(roll.extrusion_qty, roll.printing_qty)


def cutting_waste(roll: Roll) -> Optional[float]:
    """Waste between cutting and whichever stage fed it."""

    upstream = upstream_for(roll, Stage.CUTTING)
    if upstream is None:
        return None
    return stage_waste(upstream.quantity, roll.cutting_qty)


def last_recorded_stage(roll: Roll) -> Optional[StageRecord]:
    records = stage_records(roll)
    return records[-1] if records else None


def roll_cumulative_waste(roll: Roll) -> Optional[float]:
    """Waste from extrusion to the latest recorded stage.

    ``None`` until extrusion is recorded; ``0.0`` while extrusion is the only
    recorded stage.
    """

    if roll.extrusion_qty is None:
        return None
    return stage_waste(roll.extrusion_qty, last_recorded_stage(roll).quantity)


def roll_cumulative_waste_percentage(roll: Roll) -> Optional[float]:
    if roll.extrusion_qty is None:
        return None
    return stage_waste_percentage(
        roll.extrusion_qty, last_recorded_stage(roll).quantity
    )


def job_order_cumulative_waste(rolls: Iterable[Roll]) -> float:
    """Sum of per-roll ``extrusion - cutting``, each term floored at zero.

    Flooring per roll keeps a regressed roll (cutting > extrusion) from
    cancelling genuine waste on its siblings.
    """

    total = 0.0
    for roll in rolls:
        waste = stage_waste(roll.extrusion_qty, roll.cutting_qty)
        if waste is not None:
            total += waste
    return total


def job_order_waste_percentage(rolls: Iterable[Roll]) -> Optional[float]:
    rolls = list(rolls)
    extruded = sum(roll.extrusion_qty or 0.0 for roll in rolls)
    if extruded == 0:
        return None
    return job_order_cumulative_waste(rolls) / extruded * 100


def cumulative_cutting_waste(rolls: Iterable[Roll]) -> Optional[float]:
    """Total cutting-stage waste over rolls that reached cutting."""

    wastes = [cutting_waste(roll) for roll in rolls]
    recorded = [waste for waste in wastes if waste is not None]
    if not recorded:
        return None
    return sum(recorded)


def cumulative_cutting_waste_percentage(rolls: Iterable[Roll]) -> Optional[float]:
    fed = 0.0
    waste = 0.0
    counted = False
    for roll in rolls:
        upstream = upstream_for(roll, Stage.CUTTING)
        if upstream is None or roll.cutting_qty is None:
            continue
        counted = True
        fed += upstream.quantity
        waste += max(0.0, upstream.quantity - roll.cutting_qty)
    if not counted or fed == 0:
        return None
    return waste / fed * 100


def quantity_anomalies(roll: Roll) -> List[str]:
    """Describe every recorded stage that reports more than its upstream."""

    anomalies = []
    for record in stage_records(roll):
        upstream = upstream_for(roll, record.stage)
        if upstream is None:
            continue
        if record.quantity > upstream.quantity + QUANTITY_TOLERANCE:
            anomalies.append(
                f"{record.stage.value} quantity {record.quantity:g} exceeds "
                f"{upstream.stage.value} quantity {upstream.quantity:g}"
            )
    if (
        roll.extrusion_qty is not None
        and roll.cutting_qty is not None
        and roll.printing_qty is not None
        and roll.cutting_qty > roll.extrusion_qty + QUANTITY_TOLERANCE
    ):
        anomalies.append(
            f"Cutting quantity {roll.cutting_qty:g} exceeds "
            f"Extrusion quantity {roll.extrusion_qty:g}"
        )
    return anomalies


__all__ = [
    "stage_waste",
    "stage_waste_percentage",
    "printing_waste",
    "cutting_waste",
    "last_recorded_stage",
    "roll_cumulative_waste",
    "roll_cumulative_waste_percentage",
    "job_order_cumulative_waste",
    "job_order_waste_percentage",
    "cumulative_cutting_waste",
    "cumulative_cutting_waste_percentage",
    "quantity_anomalies",
]
