"""SQLite-backed storage for tasks, offers and escrow payments."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import Any


class DuplicateTaskError(Exception):
    """Raised when attempting to insert a task with a duplicate task_id."""


class DuplicateOfferError(Exception):
    """Raised when a bidder already has a pending offer on the task."""


class TaskStateConflictError(Exception):
    """Raised when a conditional write finds the task or offer in another state."""


class TaskStore:
    """SQLite-backed storage for tasks, offers, and payments."""

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "poster_id",
        "title",
        "budget",
        "currency",
        "status",
        "assignee_id",
        "accepted_offer_id",
        "receipts_pending",
        "created_at",
        "assigned_at",
        "marked_done_at",
        "completed_at",
        "cancelled_at",
    )
    _OFFER_COLUMNS: tuple[str, ...] = (
        "offer_id",
        "task_id",
        "bidder_id",
        "amount",
        "currency",
        "message",
        "status",
        "created_at",
        "resolved_at",
    )
    _PAYMENT_COLUMNS: tuple[str, ...] = (
        "payment_id",
        "task_id",
        "offer_id",
        "payer_id",
        "payee_id",
        "gross_amount",
        "platform_fee",
        "payee_amount",
        "currency",
        "intent_id",
        "fee_reason",
        "status",
        "cancel_pending",
        "created_at",
        "captured_at",
        "cancelled_at",
    )

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id TEXT PRIMARY KEY,
                    poster_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    budget INTEGER NOT NULL CHECK (budget >= 0),
                    currency TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'open',
                    assignee_id TEXT,
                    accepted_offer_id TEXT,
                    receipts_pending INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    assigned_at TEXT,
                    marked_done_at TEXT,
                    completed_at TEXT,
                    cancelled_at TEXT
                );

                CREATE TABLE IF NOT EXISTS offers (
                    offer_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL REFERENCES tasks(task_id),
                    bidder_id TEXT NOT NULL,
                    amount INTEGER NOT NULL CHECK (amount > 0),
                    currency TEXT NOT NULL,
                    message TEXT,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL,
                    resolved_at TEXT
                );

                CREATE UNIQUE INDEX IF NOT EXISTS idx_offers_one_pending_per_bidder
                    ON offers(task_id, bidder_id) WHERE status = 'pending';

                CREATE UNIQUE INDEX IF NOT EXISTS idx_offers_one_accepted_per_task
                    ON offers(task_id) WHERE status = 'accepted';

                CREATE TABLE IF NOT EXISTS payments (
                    payment_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL UNIQUE REFERENCES tasks(task_id),
                    offer_id TEXT NOT NULL REFERENCES offers(offer_id),
                    payer_id TEXT NOT NULL,
                    payee_id TEXT NOT NULL,
                    gross_amount INTEGER NOT NULL,
                    platform_fee INTEGER NOT NULL,
                    payee_amount INTEGER NOT NULL,
                    currency TEXT NOT NULL,
                    intent_id TEXT NOT NULL,
                    fee_reason TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    cancel_pending INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    captured_at TEXT,
                    cancelled_at TEXT,
                    CHECK (gross_amount = payee_amount + platform_fee)
                );
                """
            )
            self._db.commit()

    @staticmethod
    def _row_to_dict(row: sqlite3.Row, columns: tuple[str, ...]) -> dict[str, Any]:
        return {column: row[column] for column in columns}

    def _rollback(self) -> None:
        with contextlib.suppress(sqlite3.Error):
            self._db.execute("ROLLBACK")

    def _conditional_update(
        self,
        table: str,
        key_column: str,
        key: str,
        updates: dict[str, Any],
        allowed: tuple[str, ...],
        expected_status: str | None,
    ) -> int:
        if any(column not in allowed for column in updates):
            msg = f"Attempted to update unknown {table} column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())
        query = f"UPDATE {table} SET {set_clause} WHERE {key_column} = ?"  # nosec B608
        params.append(key)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        cursor = self._db.execute(query, params)
        return int(cursor.rowcount)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data[column] for column in self._TASK_COLUMNS)
        placeholders = ", ".join("?" for _ in self._TASK_COLUMNS)
        query = (
            f"INSERT INTO tasks ({', '.join(self._TASK_COLUMNS)}) "  # nosec B608
            f"VALUES ({placeholders})"
        )

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(query, values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                if "unique" in str(exc).lower():
                    raise DuplicateTaskError(
                        f"A task with task_id={task_data['task_id']} already exists"
                    ) from exc
                raise
            except Exception:
                self._rollback()
                raise

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        with self._lock:
            row = self._db.execute(
                f"SELECT {', '.join(self._TASK_COLUMNS)} FROM tasks WHERE task_id = ?",  # nosec B608
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_dict(row, self._TASK_COLUMNS)

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        with self._lock:
            rowcount = self._conditional_update(
                "tasks", "task_id", task_id, updates, self._TASK_COLUMNS, expected_status
            )
            self._db.commit()
        return rowcount

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    def summarize_payments(self) -> dict[str, Any]:
        """
        Escrow position across all payments: counts by status, minor units
        still held per currency, and how many holds and receipt sets are
        waiting on a retry.
        """
        with self._lock:
            by_status = self._db.execute(
                "SELECT status, COUNT(*) FROM payments GROUP BY status"
            ).fetchall()
            held = self._db.execute(
                "SELECT currency, SUM(gross_amount) FROM payments"
                " WHERE status = 'pending' AND cancel_pending = 0 GROUP BY currency"
            ).fetchall()
            releases_pending = self._db.execute(
                "SELECT COUNT(*) FROM payments WHERE cancel_pending = 1"
            ).fetchone()[0]
            receipts_pending = self._db.execute(
                "SELECT COUNT(*) FROM tasks WHERE receipts_pending = 1"
            ).fetchone()[0]
        return {
            "payments_by_status": {str(row[0]): int(row[1]) for row in by_status},
            "held_by_currency": {str(row[0]): int(row[1]) for row in held},
            "releases_pending": int(releases_pending),
            "receipts_pending": int(receipts_pending),
        }

    def cancel_task(
        self,
        task_id: str,
        *,
        expected_status: str,
        cancelled_at: str,
        payment_updates: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        """
        Move a task to cancelled, reject its pending offers and apply the
        payment outcome in one transaction.

        Returns the offers that were rejected.

        Raises:
            TaskStateConflictError: the task is no longer in expected_status
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                updated = self._conditional_update(
                    "tasks",
                    "task_id",
                    task_id,
                    {"status": "cancelled", "cancelled_at": cancelled_at},
                    self._TASK_COLUMNS,
                    expected_status,
                )
                if updated == 0:
                    raise TaskStateConflictError(
                        f"Task {task_id} is no longer in status {expected_status}"
                    )
                rejected = self._reject_pending_offers(task_id, cancelled_at)
                if payment_updates:
                    self._conditional_update(
                        "payments",
                        "task_id",
                        task_id,
                        payment_updates,
                        self._PAYMENT_COLUMNS,
                        None,
                    )
                self._db.commit()
            except Exception:
                self._rollback()
                raise
        return rejected

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def insert_offer(self, offer_data: dict[str, Any]) -> None:
        """Insert a pending offer."""
        values = tuple(offer_data[column] for column in self._OFFER_COLUMNS)
        placeholders = ", ".join("?" for _ in self._OFFER_COLUMNS)
        query = (
            f"INSERT INTO offers ({', '.join(self._OFFER_COLUMNS)}) "  # nosec B608
            f"VALUES ({placeholders})"
        )

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(query, values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                if "unique" in str(exc).lower():
                    raise DuplicateOfferError(
                        "This bidder already has a pending offer on this task"
                    ) from exc
                raise
            except Exception:
                self._rollback()
                raise

    def get_offer(self, offer_id: str, task_id: str) -> dict[str, Any] | None:
        """Fetch an offer by offer_id and task_id."""
        with self._lock:
            row = self._db.execute(
                f"SELECT {', '.join(self._OFFER_COLUMNS)} FROM offers "  # nosec B608
                "WHERE offer_id = ? AND task_id = ?",
                (offer_id, task_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_dict(row, self._OFFER_COLUMNS)

    def list_offers(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all offers for a task in submission order."""
        with self._lock:
            rows = self._db.execute(
                f"SELECT {', '.join(self._OFFER_COLUMNS)} FROM offers "  # nosec B608
                "WHERE task_id = ? ORDER BY created_at, offer_id",
                (task_id,),
            ).fetchall()
        return [self._row_to_dict(row, self._OFFER_COLUMNS) for row in rows]

    def update_offer(
        self,
        offer_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update offer columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        with self._lock:
            rowcount = self._conditional_update(
                "offers", "offer_id", offer_id, updates, self._OFFER_COLUMNS, expected_status
            )
            self._db.commit()
        return rowcount

    def _reject_pending_offers(self, task_id: str, resolved_at: str) -> list[dict[str, Any]]:
        rows = self._db.execute(
            f"SELECT {', '.join(self._OFFER_COLUMNS)} FROM offers "  # nosec B608
            "WHERE task_id = ? AND status = 'pending'",
            (task_id,),
        ).fetchall()
        self._db.execute(
            "UPDATE offers SET status = 'rejected', resolved_at = ? "
            "WHERE task_id = ? AND status = 'pending'",
            (resolved_at, task_id),
        )
        rejected = [self._row_to_dict(row, self._OFFER_COLUMNS) for row in rows]
        for offer in rejected:
            offer["status"] = "rejected"
            offer["resolved_at"] = resolved_at
        return rejected

    def accept_offer(
        self,
        task_id: str,
        offer_id: str,
        payment_data: dict[str, Any],
        accepted_at: str,
    ) -> list[dict[str, Any]]:
        """
        Assign the task to the offer's bidder in one transaction.

        The task moves open -> assigned, the offer pending -> accepted, every
        other pending offer is rejected and the escrow payment row is inserted.

        Returns the offers rejected by this acceptance.

        Raises:
            TaskStateConflictError: task no longer open or offer no longer pending
        """
        payment_values = tuple(payment_data[column] for column in self._PAYMENT_COLUMNS)
        placeholders = ", ".join("?" for _ in self._PAYMENT_COLUMNS)
        payment_query = (
            f"INSERT INTO payments ({', '.join(self._PAYMENT_COLUMNS)}) "  # nosec B608
            f"VALUES ({placeholders})"
        )

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                task_updated = self._conditional_update(
                    "tasks",
                    "task_id",
                    task_id,
                    {
                        "status": "assigned",
                        "assignee_id": payment_data["payee_id"],
                        "accepted_offer_id": offer_id,
                        "assigned_at": accepted_at,
                    },
                    self._TASK_COLUMNS,
                    "open",
                )
                if task_updated == 0:
                    raise TaskStateConflictError(f"Task {task_id} is no longer open")

                offer_updated = self._conditional_update(
                    "offers",
                    "offer_id",
                    offer_id,
                    {"status": "accepted", "resolved_at": accepted_at},
                    self._OFFER_COLUMNS,
                    "pending",
                )
                if offer_updated == 0:
                    raise TaskStateConflictError(f"Offer {offer_id} is no longer pending")

                rejected = self._reject_pending_offers(task_id, accepted_at)
                self._db.execute(payment_query, payment_values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                self._rollback()
                raise TaskStateConflictError(
                    f"Task {task_id} already has an accepted offer or payment"
                ) from exc
            except Exception:
                self._rollback()
                raise
        return rejected

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def get_payment_for_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch the escrow payment attached to a task."""
        with self._lock:
            row = self._db.execute(
                f"SELECT {', '.join(self._PAYMENT_COLUMNS)} FROM payments "  # nosec B608
                "WHERE task_id = ?",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_dict(row, self._PAYMENT_COLUMNS)

    def update_payment(
        self,
        payment_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update payment columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        with self._lock:
            rowcount = self._conditional_update(
                "payments",
                "payment_id",
                payment_id,
                updates,
                self._PAYMENT_COLUMNS,
                expected_status,
            )
            self._db.commit()
        return rowcount

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
