"""Demonstration script for the roll production workflow engine."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pprint import pprint

from . import RollStatus, Stage, WorkflowService
from .aggregation import GroupBy
from .errors import ExceedsJobOrderBalanceError
from .logging_config import setup_logging


def main() -> None:
    setup_logging()
    workflow = WorkflowService(
        operator_sections={"op-anas": "Extrusion Hall A", "op-rania": "Extrusion Hall B"}
    )

    printed_bags = workflow.register_job_order(
        300,
        requires_printing=True,
        job_order_id="JO-1042",
        customer_name="Al Noor Supermarkets",
    )
    plain_film = workflow.register_job_order(
        120, job_order_id="JO-1043", customer_name="Gulf Packaging"
    )

    day = datetime(2026, 10, 12, 7, 30)

    # Printed job order: extrusion -> printing -> cutting -> receiving
    for offset, (extruded, printed, cut) in enumerate(
        [(100.0, 96.5, 93.0), (100.0, 97.0, 95.5), (90.0, 88.0, 80.0)]
    ):
        started = day + timedelta(days=offset)
        roll = workflow.start_roll(printed_bags.id, operator_id="op-anas", created_at=started)
        workflow.record_stage(roll.id, Stage.EXTRUSION, extruded, operator_id="op-anas")
        workflow.record_stage(roll.id, Stage.PRINTING, printed, operator_id="op-samir")
        result = workflow.record_stage(roll.id, Stage.CUTTING, cut, operator_id="op-huda")
        print(
            f"{roll.id}: cutting waste {result.stage_waste:.1f} kg, "
            f"cumulative {result.cumulative_waste:.1f} kg"
        )
        workflow.receive_roll(roll.id, "Checked at warehouse gate 2")

    try:
        overdraw = workflow.start_roll(printed_bags.id, operator_id="op-anas", created_at=day)
        workflow.record_stage(overdraw.id, Stage.EXTRUSION, 50, operator_id="op-anas")
    except ExceedsJobOrderBalanceError as exc:
        print(f"Blocked: {exc.message}")

    # Unprinted job order: extrusion goes straight to cutting
    for offset, (extruded, cut) in enumerate([(60.0, 57.0), (60.0, 0.0)]):
        roll = workflow.start_roll(
            plain_film.id, operator_id="op-rania", created_at=day + timedelta(days=offset)
        )
        workflow.record_stage(roll.id, Stage.EXTRUSION, extruded, operator_id="op-rania")
        result = workflow.record_stage(
            roll.id,
            Stage.CUTTING,
            cut,
            operator_id="op-huda",
            target=RollStatus.DAMAGED if cut == 0 else None,
        )
        for warning in result.warnings:
            print(f"Warning on {roll.id}: {warning}")

    print("\nBalance of JO-1042:")
    pprint(workflow.job_order_balance(printed_bags.id))
    print("\nWaste of JO-1043:")
    pprint(workflow.job_order_waste(plain_film.id))

    print("\nDaily waste:")
    pprint(
        workflow.waste_summary(
            GroupBy.DAY, start=date(2026, 10, 12), end=date(2026, 10, 18)
        )
    )
    print("\nWaste by section:")
    pprint(workflow.waste_summary(GroupBy.SECTION))
    print("\nWaste by customer:")
    pprint(workflow.waste_summary(GroupBy.CUSTOMER))


if __name__ == "__main__":
    main()
