"""Core data structures for the roll production workflow engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Tuple


def utc_now() -> datetime:
    """Timezone-aware current time used for every engine timestamp."""

    return datetime.now(timezone.utc)


class Stage(str, Enum):
    """Manufacturing stages that produce a measured output quantity."""

    EXTRUSION = "Extrusion"
    PRINTING = "Printing"
    CUTTING = "Cutting"

    @classmethod
    def parse(cls, value: str) -> "Stage":
        for stage in cls:
            if value.lower() in {stage.value.lower(), stage.name.lower()}:
                return stage
        raise ValueError(f"Unknown stage {value!r}")


STAGE_ORDER: Tuple[Stage, ...] = (Stage.EXTRUSION, Stage.PRINTING, Stage.CUTTING)


class RollStatus(str, Enum):
    """Lifecycle states of a roll on the shop floor."""

    AWAITING_EXTRUSION = "Awaiting Extrusion"
    AWAITING_PRINTING = "For Printing"
    AWAITING_CUTTING = "For Cutting"
    AWAITING_RECEIVING = "For Receiving"
    RECEIVED = "Received"
    DAMAGED = "Damage"
    QUALITY_ISSUE = "QC Issue"

    @property
    def is_terminal(self) -> bool:
        return self in {RollStatus.RECEIVED, RollStatus.DAMAGED}

    @classmethod
    def parse(cls, value: str) -> "RollStatus":
        text = value.strip().lower()
        as_name = text.replace("-", "_").replace(" ", "_")
        for status in cls:
            if text == status.value.lower() or as_name == status.name.lower():
                return status
        raise ValueError(f"Unknown roll status {value!r}")


class Command(str, Enum):
    """Operator commands accepted by the roll state machine."""

    RECORD_EXTRUSION = "record_extrusion"
    RECORD_PRINTING = "record_printing"
    RECORD_CUTTING = "record_cutting"
    RECEIVE = "receive"

    @classmethod
    def for_stage(cls, stage: Stage) -> "Command":
        return {
            Stage.EXTRUSION: cls.RECORD_EXTRUSION,
            Stage.PRINTING: cls.RECORD_PRINTING,
            Stage.CUTTING: cls.RECORD_CUTTING,
        }[stage]


@dataclass(slots=True)
class JobOrder:
    """Authorization context limiting how much material its rolls may draw."""

    id: str
    target_quantity: float
    requires_printing: bool = False
    customer_id: str = ""
    order_id: str = ""
    item_id: str = ""
    customer_name: str = ""


@dataclass(slots=True)
class Roll:
    """A physical unit of extruded material tracked through the stages."""

    id: str
    job_order_id: str
    sequence: int
    extrusion_qty: Optional[float] = None
    printing_qty: Optional[float] = None
    cutting_qty: Optional[float] = None
    status: RollStatus = RollStatus.AWAITING_EXTRUSION
    notes: str = ""
    created_at: datetime = field(default_factory=utc_now)
    created_by: Optional[str] = None
    extruded_by: Optional[str] = None
    printed_by: Optional[str] = None
    cut_by: Optional[str] = None
    extruded_at: Optional[datetime] = None
    printed_at: Optional[datetime] = None
    cut_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_void(self) -> bool:
        """Damaged rolls no longer draw against their job order."""

        return self.status is RollStatus.DAMAGED


@dataclass(frozen=True, slots=True)
class StageRecord:
    """A recorded (stage, quantity) pair, produced while computing waste."""

    stage: Stage
    quantity: float


@dataclass(frozen=True, slots=True)
class WasteRecord:
    """One waste-bearing row fed to the aggregator."""

    roll_id: str
    job_order_id: str
    input_quantity: float
    output_quantity: float
    waste: float
    waste_percentage: Optional[float]
    recorded_on: date
    operator_id: Optional[str] = None
    section: str = ""
    customer_name: str = ""


@dataclass(frozen=True, slots=True)
class WasteSummary:
    """Aggregated waste figures for one grouping key."""

    key: str
    total_input: float
    total_output: float
    total_waste: float
    waste_percentage: Optional[float]
    item_count: int


__all__ = [
    "Stage",
    "STAGE_ORDER",
    "RollStatus",
    "Command",
    "JobOrder",
    "Roll",
    "StageRecord",
    "WasteRecord",
    "WasteSummary",
    "utc_now",
]
