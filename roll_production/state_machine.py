"""Roll state machine.

Every legal (status, command) pair is listed in ``TRANSITIONS``. Commands
issued from any other status raise InvalidTransitionError; there are no
silent no-ops. Each command validates its quantity through the ledger,
applies the balance guard where relevant and returns a TransitionResult
with the updated roll and the waste it produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .balance import ensure_within_balance
from .domain import Command, JobOrder, Roll, RollStatus, Stage, StageRecord, utc_now
from .errors import DataIntegrityError, InvalidTransitionError
from .ledger import quantity_for, record_stage, upstream_for, validate_quantity
from .logging_config import get_logger
from .waste import roll_cumulative_waste, stage_waste, stage_waste_percentage

logger = get_logger(__name__)

# Resolved per job order: rolls skip printing when the order does not need it.
DEFAULT_FOR_JOB_ORDER = None


@dataclass(frozen=True, slots=True)
class TransitionRule:
    """One row of the transition table."""

    command: Command
    sources: FrozenSet[RollStatus]
    default_target: Optional[RollStatus]
    allowed_targets: FrozenSet[RollStatus]
    requires: Optional[Callable[[Roll], bool]] = None
    requirement: str = ""


def _printing_recorded(roll: Roll) -> bool:
    return roll.printing_qty is not None


TRANSITIONS: Tuple[TransitionRule, ...] = (
    TransitionRule(
        command=Command.RECORD_EXTRUSION,
        sources=frozenset({RollStatus.AWAITING_EXTRUSION}),
        default_target=DEFAULT_FOR_JOB_ORDER,
        allowed_targets=frozenset(
            {RollStatus.AWAITING_PRINTING, RollStatus.AWAITING_CUTTING, RollStatus.DAMAGED}
        ),
    ),
    TransitionRule(
        command=Command.RECORD_PRINTING,
        sources=frozenset({RollStatus.AWAITING_PRINTING, RollStatus.QUALITY_ISSUE}),
        default_target=RollStatus.AWAITING_CUTTING,
        allowed_targets=frozenset(
            {RollStatus.AWAITING_CUTTING, RollStatus.AWAITING_RECEIVING, RollStatus.DAMAGED}
        ),
    ),
    TransitionRule(
        command=Command.RECORD_CUTTING,
        sources=frozenset({RollStatus.AWAITING_CUTTING, RollStatus.QUALITY_ISSUE}),
        default_target=RollStatus.AWAITING_RECEIVING,
        allowed_targets=frozenset(
            {RollStatus.AWAITING_RECEIVING, RollStatus.DAMAGED, RollStatus.QUALITY_ISSUE}
        ),
    ),
    # Printing was entered but the status was never advanced.
    TransitionRule(
        command=Command.RECORD_CUTTING,
        sources=frozenset({RollStatus.AWAITING_PRINTING}),
        default_target=RollStatus.AWAITING_RECEIVING,
        allowed_targets=frozenset(
            {RollStatus.AWAITING_RECEIVING, RollStatus.DAMAGED, RollStatus.QUALITY_ISSUE}
        ),
        requires=_printing_recorded,
        requirement="printing quantity has not been recorded",
    ),
    TransitionRule(
        command=Command.RECEIVE,
        sources=frozenset({RollStatus.AWAITING_RECEIVING}),
        default_target=RollStatus.RECEIVED,
        allowed_targets=frozenset({RollStatus.RECEIVED}),
    ),
)

_RULES: Dict[Tuple[RollStatus, Command], TransitionRule] = {
    (source, rule.command): rule for rule in TRANSITIONS for source in rule.sources
}


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Outcome of a successful command."""

    roll: Roll
    previous_status: RollStatus
    command: Command
    stage_record: Optional[StageRecord] = None
    stage_waste: Optional[float] = None
    stage_waste_percentage: Optional[float] = None
    cumulative_waste: Optional[float] = None
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def status(self) -> RollStatus:
        return self.roll.status


def allowed_commands(roll: Roll) -> List[Command]:
    """Commands that have a transition from the roll's current status."""

    commands = []
    for command in Command:
        rule = _RULES.get((roll.status, command))
        if rule is None:
            continue
        if rule.requires is not None and not rule.requires(roll):
            continue
        commands.append(command)
    return commands


def _rule_for(roll: Roll, command: Command) -> TransitionRule:
    rule = _RULES.get((roll.status, command))
    if rule is None:
        logger.warning(
            "Rejected %s for roll %s in status %s", command.value, roll.id, roll.status.value
        )
        raise InvalidTransitionError(roll.id, roll.status.value, command.value)
    if rule.requires is not None and not rule.requires(roll):
        logger.warning(
            "Rejected %s for roll %s in status %s: %s",
            command.value,
            roll.id,
            roll.status.value,
            rule.requirement,
        )
        raise InvalidTransitionError(
            roll.id, roll.status.value, command.value, rule.requirement
        )
    return rule


def _resolve_target(
    roll: Roll,
    rule: TransitionRule,
    default_target: RollStatus,
    requested: Optional[RollStatus],
) -> RollStatus:
    if requested is None:
        return default_target
    allowed = set(rule.allowed_targets)
    if rule.command is Command.RECORD_EXTRUSION:
        # Operators may only divert a freshly extruded roll to Damaged.
        allowed = {default_target, RollStatus.DAMAGED}
    if requested not in allowed:
        raise InvalidTransitionError(
            roll.id,
            roll.status.value,
            rule.command.value,
            f"target status {requested.value!r} is not allowed",
        )
    return requested


def _check_job_order(roll: Roll, job_order: JobOrder) -> None:
    if roll.job_order_id != job_order.id:
        logger.error(
            "Roll %s references job order %s but %s was supplied",
            roll.id,
            roll.job_order_id,
            job_order.id,
        )
        raise DataIntegrityError(
            f"Roll {roll.id!r} references job order {roll.job_order_id!r}, "
            f"got {job_order.id!r}",
            {"roll_id": roll.id, "job_order_id": job_order.id},
        )


def _zero_warning(stage: Stage, quantity: float) -> Tuple[str, ...]:
    if quantity == 0:
        return (f"{stage.value} recorded a zero quantity",)
    return ()


def _finish(
    roll: Roll,
    updated: Roll,
    rule: TransitionRule,
    stage: Stage,
    target: RollStatus,
) -> TransitionResult:
    quantity = quantity_for(updated, stage)
    upstream = upstream_for(roll, stage)
    upstream_qty = upstream.quantity if upstream is not None else None
    updated = replace(updated, status=target)
    warnings = _zero_warning(stage, quantity)
    result = TransitionResult(
        roll=updated,
        previous_status=roll.status,
        command=rule.command,
        stage_record=StageRecord(stage, quantity),
        stage_waste=stage_waste(upstream_qty, quantity),
        stage_waste_percentage=stage_waste_percentage(upstream_qty, quantity),
        cumulative_waste=roll_cumulative_waste(updated),
        warnings=warnings,
    )
    for warning in warnings:
        logger.warning("Roll %s: %s", roll.id, warning)
    logger.info(
        "Roll %s %s: %s -> %s (%s=%g)",
        roll.id,
        rule.command.value,
        roll.status.value,
        target.value,
        stage.value,
        quantity,
    )
    return result


def start_roll(
    job_order: JobOrder,
    roll_id: str,
    sequence: int,
    *,
    operator_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
    notes: str = "",
) -> Roll:
    """Create a roll awaiting extrusion against ``job_order``."""

    if sequence < 1:
        raise ValueError("Roll sequence numbers start at 1")
    return Roll(
        id=roll_id,
        job_order_id=job_order.id,
        sequence=sequence,
        created_at=created_at or utc_now(),
        created_by=operator_id,
        notes=notes,
    )


def record_extrusion(
    roll: Roll,
    job_order: JobOrder,
    sibling_rolls: Iterable[Roll],
    quantity: float,
    *,
    target: Optional[RollStatus] = None,
    operator_id: Optional[str] = None,
    recorded_at: Optional[datetime] = None,
) -> TransitionResult:
    """Record extrusion output, guarded by the job order's remaining balance."""

    _check_job_order(roll, job_order)
    rule = _rule_for(roll, Command.RECORD_EXTRUSION)
    value = validate_quantity(Stage.EXTRUSION, quantity)
    ensure_within_balance(job_order, sibling_rolls, value, roll_id=roll.id)
    default_target = (
        RollStatus.AWAITING_PRINTING
        if job_order.requires_printing
        else RollStatus.AWAITING_CUTTING
    )
    resolved = _resolve_target(roll, rule, default_target, target)
    updated = record_stage(
        roll, Stage.EXTRUSION, value, operator_id=operator_id, recorded_at=recorded_at
    )
    return _finish(roll, updated, rule, Stage.EXTRUSION, resolved)


def record_printing(
    roll: Roll,
    quantity: float,
    *,
    target: Optional[RollStatus] = None,
    overwrite: bool = False,
    operator_id: Optional[str] = None,
    recorded_at: Optional[datetime] = None,
) -> TransitionResult:
    rule = _rule_for(roll, Command.RECORD_PRINTING)
    resolved = _resolve_target(roll, rule, rule.default_target, target)
    updated = record_stage(
        roll,
        Stage.PRINTING,
        quantity,
        overwrite=overwrite,
        operator_id=operator_id,
        recorded_at=recorded_at,
    )
    return _finish(roll, updated, rule, Stage.PRINTING, resolved)


def record_cutting(
    roll: Roll,
    quantity: float,
    *,
    target: Optional[RollStatus] = None,
    overwrite: bool = False,
    operator_id: Optional[str] = None,
    recorded_at: Optional[datetime] = None,
) -> TransitionResult:
    rule = _rule_for(roll, Command.RECORD_CUTTING)
    resolved = _resolve_target(roll, rule, rule.default_target, target)
    updated = record_stage(
        roll,
        Stage.CUTTING,
        quantity,
        overwrite=overwrite,
        operator_id=operator_id,
        recorded_at=recorded_at,
    )
    return _finish(roll, updated, rule, Stage.CUTTING, resolved)


def receive(
    roll: Roll,
    notes: Optional[str] = None,
    *,
    received_at: Optional[datetime] = None,
) -> TransitionResult:
    """Close the roll out at the receiving desk, appending receipt notes."""

    rule = _rule_for(roll, Command.RECEIVE)
    combined = roll.notes
    if notes:
        combined = f"{roll.notes}\n{notes}" if roll.notes else notes
    updated = replace(
        roll,
        status=RollStatus.RECEIVED,
        notes=combined,
        received_at=received_at or utc_now(),
    )
    logger.info("Roll %s received", roll.id)
    return TransitionResult(
        roll=updated,
        previous_status=roll.status,
        command=rule.command,
        cumulative_waste=roll_cumulative_waste(updated),
    )


def apply_command(
    command: Command,
    roll: Roll,
    job_order: JobOrder,
    sibling_rolls: Sequence[Roll] = (),
    *,
    quantity: Optional[float] = None,
    target: Optional[RollStatus] = None,
    overwrite: bool = False,
    operator_id: Optional[str] = None,
    notes: Optional[str] = None,
    at: Optional[datetime] = None,
) -> TransitionResult:
    """Dispatch ``command`` to its transition function."""

    _check_job_order(roll, job_order)
    if command is Command.RECEIVE:
        return receive(roll, notes, received_at=at)
    if quantity is None:
        raise ValueError(f"{command.value} requires a quantity")
    if command is Command.RECORD_EXTRUSION:
        if overwrite:
            raise InvalidTransitionError(
                roll.id,
                roll.status.value,
                command.value,
                "extrusion cannot be overwritten through a transition",
            )
        return record_extrusion(
            roll,
            job_order,
            sibling_rolls,
            quantity,
            target=target,
            operator_id=operator_id,
            recorded_at=at,
        )
    if command is Command.RECORD_PRINTING:
        return record_printing(
            roll,
            quantity,
            target=target,
            overwrite=overwrite,
            operator_id=operator_id,
            recorded_at=at,
        )
    return record_cutting(
        roll,
        quantity,
        target=target,
        overwrite=overwrite,
        operator_id=operator_id,
        recorded_at=at,
    )


__all__ = [
    "TransitionRule",
    "TRANSITIONS",
    "TransitionResult",
    "allowed_commands",
    "start_roll",
    "record_extrusion",
    "record_printing",
    "record_cutting",
    "receive",
    "apply_command",
]
