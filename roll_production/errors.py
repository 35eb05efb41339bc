"""
Exceptions raised by the roll production workflow engine.

Exception Hierarchy:
    WorkflowError (base)
    ├── InvalidQuantityError        - negative or non-numeric quantity
    ├── StageAlreadyRecordedError   - stage re-entered without overwrite
    ├── ExceedsUpstreamError        - output larger than the prior stage
    ├── ExceedsJobOrderBalanceError - extrusion would overdraw the job order
    ├── InvalidTransitionError      - command not legal from current status
    ├── PermissionDeniedError       - capability gate refused the operator
    └── DataIntegrityError          - inconsistent stored data, halts the operation

All of these are local validation failures. None of them is retried by the
engine; callers correct the input and re-issue the command.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidQuantityError(WorkflowError):
    """A stage quantity was negative or not a finite number."""

    def __init__(self, stage: str, quantity: Any):
        super().__init__(
            f"Invalid {stage} quantity: {quantity!r}",
            {"stage": stage, "quantity": quantity},
        )
        self.stage = stage
        self.quantity = quantity


class StageAlreadyRecordedError(WorkflowError):
    """The stage already holds a quantity and no overwrite was requested."""

    def __init__(self, roll_id: str, stage: str, existing: float, proposed: float):
        super().__init__(
            f"{stage} quantity for roll {roll_id!r} is already recorded",
            {
                "roll_id": roll_id,
                "stage": stage,
                "existing": existing,
                "proposed": proposed,
            },
        )
        self.roll_id = roll_id
        self.stage = stage
        self.existing = existing
        self.proposed = proposed


class ExceedsUpstreamError(WorkflowError):
    """A stage output would exceed the quantity delivered by its upstream stage."""

    def __init__(
        self,
        roll_id: str,
        stage: str,
        quantity: float,
        upstream_stage: str,
        upstream_quantity: float,
    ):
        super().__init__(
            f"{stage} quantity {quantity:g} exceeds {upstream_stage} "
            f"quantity {upstream_quantity:g} for roll {roll_id!r}",
            {
                "roll_id": roll_id,
                "stage": stage,
                "quantity": quantity,
                "upstream_stage": upstream_stage,
                "upstream_quantity": upstream_quantity,
            },
        )
        self.roll_id = roll_id
        self.stage = stage
        self.quantity = quantity
        self.upstream_stage = upstream_stage
        self.upstream_quantity = upstream_quantity


class ExceedsJobOrderBalanceError(WorkflowError):
    """Extrusion would push the job order past its target quantity."""

    def __init__(self, job_order_id: str, proposed: float, remaining: float):
        super().__init__(
            f"Extrusion quantity {proposed:g} exceeds remaining balance "
            f"{remaining:g} of job order {job_order_id!r}",
            {
                "job_order_id": job_order_id,
                "proposed": proposed,
                "remaining": remaining,
            },
        )
        self.job_order_id = job_order_id
        self.proposed = proposed
        self.remaining = remaining


class InvalidTransitionError(WorkflowError):
    """The command has no transition defined from the roll's current status."""

    def __init__(self, roll_id: str, status: str, command: str, reason: str = ""):
        message = f"Cannot {command} roll {roll_id!r} in status {status!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message, {"roll_id": roll_id, "status": status, "command": command}
        )
        self.roll_id = roll_id
        self.status = status
        self.command = command


class PermissionDeniedError(WorkflowError):
    """The authorization gate refused the operator for this command."""

    def __init__(self, operator_id: Optional[str], command: str, roll_id: str):
        super().__init__(
            f"Operator {operator_id!r} may not {command} roll {roll_id!r}",
            {"operator_id": operator_id, "command": command, "roll_id": roll_id},
        )
        self.operator_id = operator_id
        self.command = command
        self.roll_id = roll_id


class DataIntegrityError(WorkflowError):
    """Stored data contradicts itself; the operation must not guess a default."""


__all__ = [
    "WorkflowError",
    "InvalidQuantityError",
    "StageAlreadyRecordedError",
    "ExceedsUpstreamError",
    "ExceedsJobOrderBalanceError",
    "InvalidTransitionError",
    "PermissionDeniedError",
    "DataIntegrityError",
]
