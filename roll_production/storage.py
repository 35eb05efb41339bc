"""SQLite-backed persistence for rolls and job orders."""

from __future__ import annotations

import pickle
import sqlite3
from dataclasses import replace
from typing import Generic, List, Optional, TypeVar

from .domain import JobOrder, Roll
from .repository import (
    ConcurrentModificationError,
    DuplicateRecordError,
    RecordNotFoundError,
)

T = TypeVar("T")


class SQLiteRepository(Generic[T]):
    """Repository implementation that persists records inside SQLite."""

    def __init__(self, connection: sqlite3.Connection, table: str) -> None:
        self._connection = connection
        self._table = table
        self._create_table()

    def _create_table(self) -> None:
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {self._table} ("  # nosec - static table names
            "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):  # pragma: no cover - defensive
            return False
        cursor = self._connection.execute(
            f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
        )
        return cursor.fetchone() is not None

    def add(self, item_id: str, item: T) -> None:
        if item_id in self:
            raise DuplicateRecordError(f"Record with id {item_id!r} already exists")
        self._connection.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
            (item_id, pickle.dumps(item)),
        )
        self._connection.commit()

    def get(self, item_id: str) -> T:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
        )
        row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Record with id {item_id!r} not found")
        return pickle.loads(row[0])

    def list(self) -> List[T]:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} ORDER BY id"
        )
        return [pickle.loads(row[0]) for row in cursor.fetchall()]


class SQLiteRollRepository(SQLiteRepository[Roll]):
    """Roll table with indexed job order and a version column for CAS saves."""

    def _create_table(self) -> None:
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {self._table} ("  # nosec - static table names
            "id TEXT PRIMARY KEY, job_order_id TEXT NOT NULL, "
            "sequence INTEGER NOT NULL, version INTEGER NOT NULL, "
            "payload BLOB NOT NULL)"
        )
        self._connection.execute(
            f"CREATE INDEX IF NOT EXISTS {self._table}_job_order "
            f"ON {self._table} (job_order_id)"
        )
        self._connection.commit()

    def add(self, item_id: str, item: Roll) -> None:
        if item_id != item.id:
            raise ValueError("Roll id does not match the storage key")
        try:
            self.save(item, expected_version=0)
        except ConcurrentModificationError as exc:
            raise DuplicateRecordError(
                f"Record with id {item_id!r} already exists"
            ) from exc

    def list_by_job_order(self, job_order_id: str) -> List[Roll]:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} WHERE job_order_id = ? ORDER BY sequence",
            (job_order_id,),
        )
        return [pickle.loads(row[0]) for row in cursor.fetchall()]

    def save(self, roll: Roll, expected_version: Optional[int] = None) -> Roll:
        """Insert or update ``roll`` in one statement, bumping its version.

        With ``expected_version`` the update only matches while the stored
        version is unchanged; zero matched rows means another writer won.
        """

        if expected_version == 0:
            saved = replace(roll, version=1)
            try:
                self._connection.execute(
                    f"INSERT INTO {self._table} "
                    "(id, job_order_id, sequence, version, payload) VALUES (?, ?, ?, ?, ?)",
                    (saved.id, saved.job_order_id, saved.sequence, 1, pickle.dumps(saved)),
                )
            except sqlite3.IntegrityError as exc:
                self._connection.rollback()
                raise ConcurrentModificationError(
                    f"Roll {roll.id!r} changed since version 0"
                ) from exc
            self._connection.commit()
            return saved

        if expected_version is None:
            cursor = self._connection.execute(
                f"SELECT version FROM {self._table} WHERE id = ?", (roll.id,)
            )
            row = cursor.fetchone()
            if row is None:
                return self.save(roll, expected_version=0)
            expected_version = int(row[0])

        saved = replace(roll, version=expected_version + 1)
        cursor = self._connection.execute(
            f"UPDATE {self._table} SET job_order_id = ?, sequence = ?, version = ?, "
            "payload = ? WHERE id = ? AND version = ?",
            (
                saved.job_order_id,
                saved.sequence,
                saved.version,
                pickle.dumps(saved),
                saved.id,
                expected_version,
            ),
        )
        if cursor.rowcount == 0:
            self._connection.rollback()
            raise ConcurrentModificationError(
                f"Roll {roll.id!r} changed since version {expected_version}"
            )
        self._connection.commit()
        return saved


class WorkflowDatabase:
    """Convenience facade bundling the SQLite repositories."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self.job_orders = SQLiteRepository[JobOrder](connection, "job_orders")
        self.rolls = SQLiteRollRepository(connection, "rolls")

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "WorkflowDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "SQLiteRollRepository", "WorkflowDatabase"]
