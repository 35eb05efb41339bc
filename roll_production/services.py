"""Service layer that runs workflow commands against the repositories."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from .aggregation import GroupBy, PercentageMode, build_waste_record, by_stage, group_waste
from .balance import BalanceSnapshot, balance_snapshot, ensure_within_balance
from .domain import (
    Command,
    JobOrder,
    Roll,
    RollStatus,
    Stage,
    WasteRecord,
    WasteSummary,
    utc_now,
)
from .errors import DataIntegrityError, InvalidTransitionError, PermissionDeniedError
from .ledger import record_stage as ledger_record_stage, validate_quantity
from .logging_config import get_logger
from .repository import (
    InMemoryRepository,
    InMemoryRollRepository,
    JobOrderRepository,
    RecordNotFoundError,
    RollRepository,
)
from .state_machine import TransitionResult, apply_command, start_roll
from .waste import (
    cumulative_cutting_waste,
    cumulative_cutting_waste_percentage,
    cutting_waste,
    job_order_cumulative_waste,
    job_order_waste_percentage,
    printing_waste,
    quantity_anomalies,
    roll_cumulative_waste,
    roll_cumulative_waste_percentage,
)

logger = get_logger(__name__)

Authorizer = Callable[[Optional[str], Command, Roll], bool]
RollIdFactory = Callable[[JobOrder, int, datetime], str]


def default_roll_id(job_order: JobOrder, sequence: int, created_at: datetime) -> str:
    """Human-readable ``<job order>/<sequence>/<YYYYMMDD>`` identifier."""

    return f"{job_order.id}/{sequence:03d}/{created_at:%Y%m%d}"


@dataclass(slots=True)
class RollWasteReport:
    """Per-stage and cumulative waste of a single roll."""

    roll_id: str
    printing_waste: Optional[float]
    cutting_waste: Optional[float]
    cumulative_waste: Optional[float]
    cumulative_waste_percentage: Optional[float]
    anomalies: List[str] = field(default_factory=list)


@dataclass(slots=True)
class JobOrderWasteReport:
    """Waste totals over every roll of a job order."""

    job_order_id: str
    cumulative_waste: float
    waste_percentage: Optional[float]
    cutting_waste: Optional[float]
    cutting_waste_percentage: Optional[float]
    roll_count: int


class WorkflowService:
    """Facade that exposes the roll workflow to clients.

    Every command re-reads the roll and its siblings right before the
    transition and saves with the version it read, so two operators racing
    on the same roll cannot both succeed.
    """

    def __init__(
        self,
        job_order_repo: Optional[JobOrderRepository] = None,
        roll_repo: Optional[RollRepository] = None,
        *,
        authorizer: Optional[Authorizer] = None,
        roll_id_factory: RollIdFactory = default_roll_id,
        operator_sections: Optional[Mapping[str, str]] = None,
        percentage_mode: PercentageMode = PercentageMode.MEAN_OF_RECORDS,
    ) -> None:
        self.job_orders = (
            job_order_repo if job_order_repo is not None else InMemoryRepository[JobOrder]()
        )
        self.rolls = roll_repo if roll_repo is not None else InMemoryRollRepository()
        self.authorizer = authorizer
        self.roll_id_factory = roll_id_factory
        self.operator_sections: Dict[str, str] = dict(operator_sections or {})
        self.percentage_mode = percentage_mode

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------
    def register_job_order(
        self,
        target_quantity: float,
        *,
        requires_printing: bool = False,
        job_order_id: Optional[str] = None,
        customer_id: str = "",
        customer_name: str = "",
        order_id: str = "",
        item_id: str = "",
    ) -> JobOrder:
        if target_quantity < 0:
            raise ValueError("Job order target quantity must not be negative")
        job_order = JobOrder(
            id=job_order_id or str(uuid4()),
            target_quantity=float(target_quantity),
            requires_printing=requires_printing,
            customer_id=customer_id,
            order_id=order_id,
            item_id=item_id,
            customer_name=customer_name,
        )
        self.job_orders.add(job_order.id, job_order)
        return job_order

    def assign_operator_section(self, operator_id: str, section: str) -> None:
        self.operator_sections[operator_id] = section

    def get_roll(self, roll_id: str) -> Roll:
        return self.rolls.get(roll_id)

    def _job_order_for(self, roll: Roll) -> JobOrder:
        try:
            return self.job_orders.get(roll.job_order_id)
        except RecordNotFoundError as exc:
            logger.error(
                "Roll %s references missing job order %s", roll.id, roll.job_order_id
            )
            raise DataIntegrityError(
                f"Roll {roll.id!r} references missing job order {roll.job_order_id!r}",
                {"roll_id": roll.id, "job_order_id": roll.job_order_id},
            ) from exc

    def _authorize(self, operator_id: Optional[str], command: Command, roll: Roll) -> None:
        if self.authorizer is None:
            return
        if not self.authorizer(operator_id, command, roll):
            logger.warning(
                "Operator %s denied %s on roll %s", operator_id, command.value, roll.id
            )
            raise PermissionDeniedError(operator_id, command.value, roll.id)

    # ------------------------------------------------------------------
    # Workflow commands
    # ------------------------------------------------------------------
    def start_roll(
        self,
        job_order_id: str,
        *,
        operator_id: Optional[str] = None,
        notes: str = "",
        created_at: Optional[datetime] = None,
    ) -> Roll:
        """Open the next roll of ``job_order_id``, awaiting extrusion."""

        job_order = self.job_orders.get(job_order_id)
        siblings = self.rolls.list_by_job_order(job_order_id)
        sequence = max((roll.sequence for roll in siblings), default=0) + 1
        created = created_at or utc_now()
        roll = start_roll(
            job_order,
            self.roll_id_factory(job_order, sequence, created),
            sequence,
            operator_id=operator_id,
            created_at=created,
            notes=notes,
        )
        # Opening a roll is the first step of extrusion.
        self._authorize(operator_id, Command.RECORD_EXTRUSION, roll)
        saved = self.rolls.save(roll, expected_version=0)
        logger.info("Started roll %s for job order %s", saved.id, job_order_id)
        return saved

    def record_stage(
        self,
        roll_id: str,
        stage: Stage,
        quantity: float,
        *,
        operator_id: Optional[str] = None,
        target: Optional[RollStatus] = None,
        overwrite: bool = False,
        at: Optional[datetime] = None,
    ) -> TransitionResult:
        command = Command.for_stage(stage)
        roll = self.rolls.get(roll_id)
        job_order = self._job_order_for(roll)
        self._authorize(operator_id, command, roll)
        siblings = self.rolls.list_by_job_order(job_order.id)
        result = apply_command(
            command,
            roll,
            job_order,
            siblings,
            quantity=quantity,
            target=target,
            overwrite=overwrite,
            operator_id=operator_id,
            at=at,
        )
        saved = self.rolls.save(result.roll, expected_version=roll.version)
        return replace(result, roll=saved)

    def receive_roll(
        self,
        roll_id: str,
        notes: Optional[str] = None,
        *,
        operator_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> TransitionResult:
        roll = self.rolls.get(roll_id)
        job_order = self._job_order_for(roll)
        self._authorize(operator_id, Command.RECEIVE, roll)
        result = apply_command(Command.RECEIVE, roll, job_order, notes=notes, at=at)
        saved = self.rolls.save(result.roll, expected_version=roll.version)
        return replace(result, roll=saved)

    def revise_extrusion(
        self,
        roll_id: str,
        quantity: float,
        *,
        operator_id: Optional[str] = None,
    ) -> Roll:
        """Correct an already recorded extrusion quantity in place.

        The roll's own previous extrusion is released before the balance
        check, and downstream stages must still fit under the new value.
        The status is left untouched. A roll without extrusion has nothing
        to revise and must go through ``record_stage`` instead.
        """

        roll = self.rolls.get(roll_id)
        job_order = self._job_order_for(roll)
        self._authorize(operator_id, Command.RECORD_EXTRUSION, roll)
        if roll.extrusion_qty is None:
            logger.warning("Rejected extrusion revision of unextruded roll %s", roll.id)
            raise InvalidTransitionError(
                roll.id,
                roll.status.value,
                Command.RECORD_EXTRUSION.value,
                "extrusion has not been recorded yet",
            )
        value = validate_quantity(Stage.EXTRUSION, quantity)
        siblings = self.rolls.list_by_job_order(job_order.id)
        ensure_within_balance(job_order, siblings, value, roll_id=roll.id)
        updated = ledger_record_stage(
            roll,
            Stage.EXTRUSION,
            value,
            overwrite=True,
            operator_id=operator_id,
            recorded_at=roll.extruded_at,
        )
        saved = self.rolls.save(updated, expected_version=roll.version)
        logger.info(
            "Revised extrusion of roll %s from %g to %g", roll.id, roll.extrusion_qty, value
        )
        return saved

    # ------------------------------------------------------------------
    # Balance and waste queries
    # ------------------------------------------------------------------
    def job_order_balance(self, job_order_id: str) -> BalanceSnapshot:
        job_order = self.job_orders.get(job_order_id)
        return balance_snapshot(job_order, self.rolls.list_by_job_order(job_order_id))

    def roll_waste(self, roll_id: str) -> RollWasteReport:
        roll = self.rolls.get(roll_id)
        return RollWasteReport(
            roll_id=roll.id,
            printing_waste=printing_waste(roll),
            cutting_waste=cutting_waste(roll),
            cumulative_waste=roll_cumulative_waste(roll),
            cumulative_waste_percentage=roll_cumulative_waste_percentage(roll),
            anomalies=quantity_anomalies(roll),
        )

    def job_order_waste(self, job_order_id: str) -> JobOrderWasteReport:
        self.job_orders.get(job_order_id)
        rolls = self.rolls.list_by_job_order(job_order_id)
        return JobOrderWasteReport(
            job_order_id=job_order_id,
            cumulative_waste=job_order_cumulative_waste(rolls),
            waste_percentage=job_order_waste_percentage(rolls),
            cutting_waste=cumulative_cutting_waste(rolls),
            cutting_waste_percentage=cumulative_cutting_waste_percentage(rolls),
            roll_count=len(rolls),
        )

    def waste_records(self) -> List[WasteRecord]:
        """Build aggregator rows for every extruded roll."""

        job_orders = {job_order.id: job_order for job_order in self.job_orders.list()}
        records = []
        for roll in self.rolls.list():
            job_order = job_orders.get(roll.job_order_id)
            if job_order is None:
                raise DataIntegrityError(
                    f"Roll {roll.id!r} references missing job order {roll.job_order_id!r}",
                    {"roll_id": roll.id, "job_order_id": roll.job_order_id},
                )
            record = build_waste_record(
                roll,
                job_order,
                section=self.operator_sections.get(roll.extruded_by or "", ""),
            )
            if record is not None:
                records.append(record)
        return records

    def waste_summary(
        self,
        group_by: GroupBy,
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
        mode: Optional[PercentageMode] = None,
    ) -> List[WasteSummary]:
        return group_waste(
            self.waste_records(),
            group_by,
            start=start,
            end=end,
            mode=mode or self.percentage_mode,
        )

    def stage_waste_summary(self, job_order_id: Optional[str] = None) -> List[WasteSummary]:
        rolls = (
            self.rolls.list_by_job_order(job_order_id)
            if job_order_id is not None
            else self.rolls.list()
        )
        return by_stage(rolls)


__all__ = [
    "WorkflowService",
    "RollWasteReport",
    "JobOrderWasteReport",
    "default_roll_id",
]
