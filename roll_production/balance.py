"""Job order balance tracking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .domain import JobOrder, Roll
from .errors import DataIntegrityError, ExceedsJobOrderBalanceError
from .ledger import exceeds


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Drawn and remaining quantity of a job order at one point in time."""

    job_order_id: str
    target: float
    drawn: float
    remaining: float
    roll_count: int


def _drawing_rolls(
    job_order: JobOrder, rolls: Iterable[Roll], excluding_roll_id: Optional[str]
) -> List[Roll]:
    drawing = []
    for roll in rolls:
        if roll.job_order_id != job_order.id:
            raise DataIntegrityError(
                f"Roll {roll.id!r} belongs to job order {roll.job_order_id!r}, "
                f"not {job_order.id!r}",
                {"roll_id": roll.id, "job_order_id": job_order.id},
            )
        if roll.id == excluding_roll_id or roll.is_void:
            continue
        drawing.append(roll)
    return drawing


def drawn_quantity(
    job_order: JobOrder,
    existing_rolls: Iterable[Roll],
    excluding_roll_id: Optional[str] = None,
) -> float:
    """Total extrusion already drawn against the job order."""

    return sum(
        roll.extrusion_qty or 0.0
        for roll in _drawing_rolls(job_order, existing_rolls, excluding_roll_id)
    )


def remaining_balance(
    job_order: JobOrder,
    existing_rolls: Iterable[Roll],
    excluding_roll_id: Optional[str] = None,
) -> float:
    """Quantity the job order may still authorize, floored at zero.

    ``excluding_roll_id`` leaves one roll out of the total so that a roll
    revising its own extrusion quantity is not counted against itself.
    Damaged rolls are void and never count.
    """

    drawn = drawn_quantity(job_order, existing_rolls, excluding_roll_id)
    return max(0.0, job_order.target_quantity - drawn)


def ensure_within_balance(
    job_order: JobOrder,
    existing_rolls: Iterable[Roll],
    proposed_quantity: float,
    *,
    roll_id: Optional[str] = None,
) -> float:
    """Raise ExceedsJobOrderBalanceError unless ``proposed_quantity`` fits.

    When ``roll_id`` is given, that roll's prior extrusion is released before
    the comparison. Returns the remaining balance the check was made against.
    """

    remaining = remaining_balance(job_order, existing_rolls, excluding_roll_id=roll_id)
    if exceeds(proposed_quantity, remaining):
        raise ExceedsJobOrderBalanceError(job_order.id, proposed_quantity, remaining)
    return remaining


def balance_snapshot(job_order: JobOrder, existing_rolls: Iterable[Roll]) -> BalanceSnapshot:
    rolls = list(existing_rolls)
    drawn = drawn_quantity(job_order, rolls)
    return BalanceSnapshot(
        job_order_id=job_order.id,
        target=job_order.target_quantity,
        drawn=drawn,
        remaining=max(0.0, job_order.target_quantity - drawn),
        roll_count=len(rolls),
    )


__all__ = [
    "BalanceSnapshot",
    "drawn_quantity",
    "remaining_balance",
    "ensure_within_balance",
    "balance_snapshot",
]
