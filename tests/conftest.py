"""Shared fixtures for the roll production tests."""

from datetime import datetime

import pytest

from roll_production.domain import JobOrder, Roll, RollStatus


@pytest.fixture
def job_order():
    """A job order that skips printing."""
    return JobOrder(id="JO-1", target_quantity=100.0, customer_name="Acme Bags")


@pytest.fixture
def printed_job_order():
    return JobOrder(
        id="JO-2", target_quantity=300.0, requires_printing=True, customer_name="Noor Retail"
    )


@pytest.fixture
def make_roll():
    """Factory for rolls with chosen quantities and status."""

    def _make(
        roll_id="JO-1/001/20261019",
        job_order_id="JO-1",
        sequence=1,
        extrusion=None,
        printing=None,
        cutting=None,
        status=RollStatus.AWAITING_EXTRUSION,
        created_at=datetime(2026, 10, 19, 8, 0),
        **extra,
    ):
        return Roll(
            id=roll_id,
            job_order_id=job_order_id,
            sequence=sequence,
            extrusion_qty=extrusion,
            printing_qty=printing,
            cutting_qty=cutting,
            status=status,
            created_at=created_at,
            **extra,
        )

    return _make
