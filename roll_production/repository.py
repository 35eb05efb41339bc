"""Repository contracts and in-memory implementations used by the service layer."""

from __future__ import annotations

from dataclasses import replace
from typing import Generic, List, MutableMapping, Optional, Protocol, TypeVar

from .domain import JobOrder, Roll

T = TypeVar("T")


class RepositoryError(RuntimeError):
    """Base exception for repository errors."""


class DuplicateRecordError(RepositoryError):
    """Raised when attempting to insert a record that already exists."""


class RecordNotFoundError(RepositoryError):
    """Raised when a requested record is missing."""


class ConcurrentModificationError(RepositoryError):
    """Raised when a save finds the stored version has moved on."""


class RollRepository(Protocol):
    """What the workflow needs from roll persistence."""

    def get(self, item_id: str) -> Roll: ...

    def list_by_job_order(self, job_order_id: str) -> List[Roll]: ...

    def save(self, roll: Roll, expected_version: Optional[int] = None) -> Roll: ...

    def list(self) -> List[Roll]: ...


class JobOrderRepository(Protocol):
    def get(self, item_id: str) -> JobOrder: ...

    def add(self, item_id: str, item: JobOrder) -> None: ...

    def list(self) -> List[JobOrder]: ...


class InMemoryRepository(Generic[T]):
    """Generic repository backed by a simple dictionary."""

    def __init__(self) -> None:
        self._items: MutableMapping[str, T] = {}

    def add(self, item_id: str, item: T) -> None:
        if item_id in self._items:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
        self._items[item_id] = item

    def get(self, item_id: str) -> T:
        try:
            return self._items[item_id]
        except KeyError as exc:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found") from exc

    def list(self) -> List[T]:
        return list(self._items.values())


class InMemoryRollRepository(InMemoryRepository[Roll]):
    """Roll store with an optimistic version check on save."""

    def list_by_job_order(self, job_order_id: str) -> List[Roll]:
        rolls = [roll for roll in self._items.values() if roll.job_order_id == job_order_id]
        rolls.sort(key=lambda roll: roll.sequence)
        return rolls

    def save(self, roll: Roll, expected_version: Optional[int] = None) -> Roll:
        """Store ``roll`` and return it with its version bumped.

        With ``expected_version`` the save only succeeds while the stored
        roll still carries that version; a new roll expects version 0 and
        must not exist yet.
        """

        current = self._items.get(roll.id)
        stored_version = current.version if current is not None else 0
        if expected_version is not None and stored_version != expected_version:
            raise ConcurrentModificationError(
                f"Roll {roll.id!r} changed since version {expected_version}"
            )
        saved = replace(roll, version=stored_version + 1)
        self._items[roll.id] = saved
        return saved


__all__ = [
    "RollRepository",
    "JobOrderRepository",
    "InMemoryRepository",
    "InMemoryRollRepository",
    "RepositoryError",
    "DuplicateRecordError",
    "RecordNotFoundError",
    "ConcurrentModificationError",
]
