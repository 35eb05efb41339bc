"""Roll production workflow engine.

This package tracks extruded rolls through extrusion, optional printing,
cutting and receiving, guards every recorded quantity against its upstream
stage and its job order's target, and computes and aggregates material
waste.
"""

from .domain import (
    Command,
    JobOrder,
    Roll,
    RollStatus,
    Stage,
    StageRecord,
    WasteRecord,
    WasteSummary,
)
from .errors import (
    DataIntegrityError,
    ExceedsJobOrderBalanceError,
    ExceedsUpstreamError,
    InvalidQuantityError,
    InvalidTransitionError,
    PermissionDeniedError,
    StageAlreadyRecordedError,
    WorkflowError,
)
from .services import WorkflowService

__all__ = [
    "Command",
    "JobOrder",
    "Roll",
    "RollStatus",
    "Stage",
    "StageRecord",
    "WasteRecord",
    "WasteSummary",
    "WorkflowError",
    "InvalidQuantityError",
    "StageAlreadyRecordedError",
    "ExceedsUpstreamError",
    "ExceedsJobOrderBalanceError",
    "InvalidTransitionError",
    "PermissionDeniedError",
    "DataIntegrityError",
    "WorkflowService",
]
