"""SQLite-backed storage for financial receipts."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


class DuplicateReceiptError(Exception):
    """Raised when a receipt of the same type already exists for the task."""


class ReceiptStore:
    """
    Stores immutable receipts and the global receipt-number counter.

    Each (task_id, receipt_type) pair exists at most once, and every receipt
    number is drawn from a single counter row inside the inserting
    transaction.
    """

    _COLUMNS: tuple[str, ...] = (
        "receipt_id",
        "receipt_number",
        "receipt_type",
        "task_id",
        "offer_id",
        "payment_id",
        "poster_id",
        "tasker_id",
        "amount",
        "offer_amount",
        "service_fee",
        "total_paid",
        "amount_received",
        "currency",
        "intent_id",
        "fee_reason",
        "task_title",
        "date_completed",
        "generated_at",
    )
    _COUNTER_NAME = "receipt_number"

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS receipts (
                    receipt_id TEXT PRIMARY KEY,
                    receipt_number TEXT NOT NULL UNIQUE,
                    receipt_type TEXT NOT NULL CHECK (receipt_type IN ('payment', 'earnings')),
                    task_id TEXT NOT NULL,
                    offer_id TEXT NOT NULL,
                    payment_id TEXT NOT NULL,
                    poster_id TEXT NOT NULL,
                    tasker_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    offer_amount INTEGER NOT NULL,
                    service_fee INTEGER NOT NULL,
                    total_paid INTEGER NOT NULL,
                    amount_received INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    intent_id TEXT NOT NULL,
                    fee_reason TEXT NOT NULL,
                    task_title TEXT NOT NULL,
                    date_completed TEXT NOT NULL,
                    generated_at TEXT NOT NULL,
                    UNIQUE(task_id, receipt_type)
                );

                CREATE INDEX IF NOT EXISTS idx_receipts_poster ON receipts(poster_id);
                CREATE INDEX IF NOT EXISTS idx_receipts_tasker ON receipts(tasker_id);

                CREATE TABLE IF NOT EXISTS receipt_counters (
                    name TEXT PRIMARY KEY,
                    value INTEGER NOT NULL
                );
                """
            )
            self._db.execute(
                "INSERT OR IGNORE INTO receipt_counters (name, value) VALUES (?, 0)",
                (self._COUNTER_NAME,),
            )
            self._db.commit()

    def _row_to_receipt(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._COLUMNS}

    def _select(self, where: str, params: tuple[object, ...], suffix: str = "") -> list[dict[str, Any]]:
        query = f"SELECT {', '.join(self._COLUMNS)} FROM receipts WHERE {where} {suffix}"  # nosec B608
        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [self._row_to_receipt(row) for row in rows]

    def insert_receipts(
        self,
        receipts: list[dict[str, Any]],
        number_formatter: Callable[[int], str],
    ) -> list[dict[str, Any]]:
        """
        Insert receipts atomically, numbering each from the global counter.

        ``receipt_number`` is filled in here; the caller supplies every other
        column. Returns the inserted rows.

        Raises:
            DuplicateReceiptError: a receipt of one of the types already exists
        """
        inserted: list[dict[str, Any]] = []
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        query = (
            f"INSERT INTO receipts ({', '.join(self._COLUMNS)}) "  # nosec B608
            f"VALUES ({placeholders})"
        )

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                for receipt in receipts:
                    self._db.execute(
                        "UPDATE receipt_counters SET value = value + 1 WHERE name = ?",
                        (self._COUNTER_NAME,),
                    )
                    row = self._db.execute(
                        "SELECT value FROM receipt_counters WHERE name = ?",
                        (self._COUNTER_NAME,),
                    ).fetchone()
                    numbered = {**receipt, "receipt_number": number_formatter(int(row[0]))}
                    self._db.execute(query, tuple(numbered[column] for column in self._COLUMNS))
                    inserted.append(numbered)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                if "unique" in str(exc).lower():
                    raise DuplicateReceiptError(
                        f"Receipts already issued for task {receipts[0]['task_id']}"
                    ) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
        return inserted

    def get_receipts_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Receipts for a task, payment receipt first."""
        return self._select("task_id = ?", (task_id,), "ORDER BY receipt_type DESC")

    def get_receipt(self, receipt_id: str) -> dict[str, Any] | None:
        """Fetch a receipt by ID."""
        rows = self._select("receipt_id = ?", (receipt_id,))
        return rows[0] if rows else None

    def list_receipts_for_user(
        self,
        user_id: str,
        receipt_type: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Receipts visible to a user, newest first, plus the total count.

        Posters see payment receipts and taskers see earnings receipts.
        """
        clauses = [
            "((receipt_type = 'payment' AND poster_id = ?) "
            "OR (receipt_type = 'earnings' AND tasker_id = ?))"
        ]
        params: list[object] = [user_id, user_id]
        if receipt_type is not None:
            clauses.append("receipt_type = ?")
            params.append(receipt_type)
        where = " AND ".join(clauses)

        with self._lock:
            count_row = self._db.execute(
                f"SELECT COUNT(*) FROM receipts WHERE {where}",  # nosec B608
                params,
            ).fetchone()
        rows = self._select(
            where,
            (*params, limit, offset),
            "ORDER BY generated_at DESC, receipt_number DESC LIMIT ? OFFSET ?",
        )
        return rows, int(count_row[0])

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
