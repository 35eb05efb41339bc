"""Quantity ledger: validated access to a roll's three stage quantities."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Tuple

from .domain import STAGE_ORDER, Roll, Stage, StageRecord, utc_now
from .errors import ExceedsUpstreamError, InvalidQuantityError, StageAlreadyRecordedError

# Absolute slack for float comparisons; 33.3 + 33.3 + 33.4 must still fit 100.
QUANTITY_TOLERANCE = 1e-9

_QUANTITY_FIELDS = {
    Stage.EXTRUSION: "extrusion_qty",
    Stage.PRINTING: "printing_qty",
    Stage.CUTTING: "cutting_qty",
}
_OPERATOR_FIELDS = {
    Stage.EXTRUSION: ("extruded_by", "extruded_at"),
    Stage.PRINTING: ("printed_by", "printed_at"),
    Stage.CUTTING: ("cut_by", "cut_at"),
}


def exceeds(quantity: float, limit: float) -> bool:
    return quantity > limit + QUANTITY_TOLERANCE


def quantity_for(roll: Roll, stage: Stage) -> Optional[float]:
    return getattr(roll, _QUANTITY_FIELDS[stage])


def upstream_quantity(roll: Roll) -> Optional[float]:
    """Return the most recent non-null quantity before cutting.

    Printing is optional, so cutting draws from printing when it was
    recorded and from extrusion otherwise.
    """

    if roll.printing_qty is not None:
        return roll.printing_qty
    return roll.extrusion_qty


def upstream_for(roll: Roll, stage: Stage) -> Optional[StageRecord]:
    """Return the recorded stage that feeds ``stage``, if any."""

    if stage is Stage.EXTRUSION:
        return None
    if stage is Stage.PRINTING:
        if roll.extrusion_qty is None:
            return None
        return StageRecord(Stage.EXTRUSION, roll.extrusion_qty)
    if roll.printing_qty is not None:
        return StageRecord(Stage.PRINTING, roll.printing_qty)
    if roll.extrusion_qty is not None:
        return StageRecord(Stage.EXTRUSION, roll.extrusion_qty)
    return None


def upstream_quantity_for(roll: Roll, stage: Stage) -> Optional[float]:
    record = upstream_for(roll, stage)
    return record.quantity if record is not None else None


def stage_records(roll: Roll) -> List[StageRecord]:
    """Recorded stages of ``roll`` in production order."""

    records = []
    for stage in STAGE_ORDER:
        quantity = quantity_for(roll, stage)
        if quantity is not None:
            records.append(StageRecord(stage, quantity))
    return records


def _downstream_records(roll: Roll, stage: Stage) -> List[Tuple[Stage, float]]:
    # Only the stages that would read ``stage`` as their upstream.
    if stage is Stage.EXTRUSION:
        candidates = [Stage.PRINTING]
        if roll.printing_qty is None:
            candidates.append(Stage.CUTTING)
    elif stage is Stage.PRINTING:
        candidates = [Stage.CUTTING]
    else:
        candidates = []
    return [
        (candidate, quantity_for(roll, candidate))
        for candidate in candidates
        if quantity_for(roll, candidate) is not None
    ]


def validate_quantity(stage: Stage, quantity: float) -> float:
    try:
        value = float(quantity)
    except (TypeError, ValueError) as exc:
        raise InvalidQuantityError(stage.value, quantity) from exc
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise InvalidQuantityError(stage.value, quantity)
    return value


def record_stage(
    roll: Roll,
    stage: Stage,
    quantity: float,
    *,
    overwrite: bool = False,
    operator_id: Optional[str] = None,
    recorded_at: Optional[datetime] = None,
) -> Roll:
    """Return a copy of ``roll`` with ``quantity`` recorded for ``stage``.

    Raises InvalidQuantityError for negative input, StageAlreadyRecordedError
    when the stage holds a value and ``overwrite`` is false, and
    ExceedsUpstreamError when the quantity is larger than the upstream
    stage's (or, on overwrite, smaller than an already recorded downstream
    stage's) quantity.
    """

    value = validate_quantity(stage, quantity)
    existing = quantity_for(roll, stage)
    if existing is not None and not overwrite:
        raise StageAlreadyRecordedError(roll.id, stage.value, existing, value)

    upstream = upstream_for(roll, stage)
    if upstream is not None and exceeds(value, upstream.quantity):
        raise ExceedsUpstreamError(
            roll.id, stage.value, value, upstream.stage.value, upstream.quantity
        )
    if existing is not None:
        for downstream_stage, downstream_qty in _downstream_records(roll, stage):
            if exceeds(downstream_qty, value):
                raise ExceedsUpstreamError(
                    roll.id, downstream_stage.value, downstream_qty, stage.value, value
                )

    operator_field, timestamp_field = _OPERATOR_FIELDS[stage]
    changes = {
        _QUANTITY_FIELDS[stage]: value,
        timestamp_field: recorded_at or utc_now(),
    }
    if operator_id is not None:
        changes[operator_field] = operator_id
    return replace(roll, **changes)


__all__ = [
    "QUANTITY_TOLERANCE",
    "exceeds",
    "quantity_for",
    "upstream_quantity",
    "upstream_for",
    "upstream_quantity_for",
    "stage_records",
    "validate_quantity",
    "record_stage",
]
