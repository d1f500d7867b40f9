"""SQLite-backed storage for reviews and derived rating aggregates."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable


class DuplicateReviewError(Exception):
    """Raised when the reviewer already reviewed this reviewee for the task."""


class ReviewStore:
    """SQLite-backed storage for reviews and per-user rating aggregates."""

    _REVIEW_COLUMNS: tuple[str, ...] = (
        "review_id",
        "task_id",
        "reviewer_id",
        "reviewee_id",
        "reviewer_role",
        "rating",
        "text",
        "visible",
        "created_at",
    )
    _AGGREGATE_COLUMNS: tuple[str, ...] = (
        "user_id",
        "scope",
        "total_count",
        "average",
        "star_1",
        "star_2",
        "star_3",
        "star_4",
        "star_5",
        "updated_at",
    )

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
                CREATE TABLE IF NOT EXISTS reviews (
                    review_id TEXT PRIMARY KEY,
                    task_id TEXT NOT NULL,
                    reviewer_id TEXT NOT NULL,
                    reviewee_id TEXT NOT NULL,
                    reviewer_role TEXT NOT NULL CHECK (reviewer_role IN ('poster', 'tasker')),
                    rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                    text TEXT NOT NULL,
                    visible INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    UNIQUE(task_id, reviewer_id, reviewee_id)
                );

                CREATE INDEX IF NOT EXISTS idx_reviews_reviewee ON reviews(reviewee_id);
                CREATE INDEX IF NOT EXISTS idx_reviews_task ON reviews(task_id);

                CREATE TABLE IF NOT EXISTS rating_aggregates (
                    user_id TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    total_count INTEGER NOT NULL,
                    average REAL NOT NULL,
                    star_1 INTEGER NOT NULL,
                    star_2 INTEGER NOT NULL,
                    star_3 INTEGER NOT NULL,
                    star_4 INTEGER NOT NULL,
                    star_5 INTEGER NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, scope)
                );
                """
            )
            self._db.commit()

    def _row_to_review(self, row: sqlite3.Row) -> dict[str, Any]:
        review = {column: row[column] for column in self._REVIEW_COLUMNS}
        review["visible"] = bool(review["visible"])
        return review

    def _review_select(self) -> str:
        return f"SELECT {', '.join(self._REVIEW_COLUMNS)} FROM reviews"  # nosec B608

    def insert_review(self, review_data: dict[str, Any]) -> None:
        """Insert a review row."""
        values = tuple(review_data[column] for column in self._REVIEW_COLUMNS)
        placeholders = ", ".join("?" for _ in self._REVIEW_COLUMNS)
        query = (
            f"INSERT INTO reviews ({', '.join(self._REVIEW_COLUMNS)}) "  # nosec B608
            f"VALUES ({placeholders})"
        )

        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                self._db.execute(query, values)
                self._db.commit()
            except sqlite3.IntegrityError as exc:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                if "unique" in str(exc).lower():
                    raise DuplicateReviewError(
                        "This reviewer already reviewed this user for the task"
                    ) from exc
                raise
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise

    def list_reviews_for_user(
        self,
        user_id: str,
        reviewer_role: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        """Visible reviews received by a user, newest first, plus the total count."""
        where = "reviewee_id = ? AND visible = 1"
        params: list[object] = [user_id]
        if reviewer_role is not None:
            where += " AND reviewer_role = ?"
            params.append(reviewer_role)

        with self._lock:
            count_row = self._db.execute(
                f"SELECT COUNT(*) FROM reviews WHERE {where}",  # nosec B608
                params,
            ).fetchone()
            rows = self._db.execute(
                f"{self._review_select()} WHERE {where} "
                "ORDER BY created_at DESC, review_id LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
        return [self._row_to_review(row) for row in rows], int(count_row[0])

    def list_reviews_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Visible reviews written for a task."""
        with self._lock:
            rows = self._db.execute(
                f"{self._review_select()} WHERE task_id = ? AND visible = 1 ORDER BY created_at",
                (task_id,),
            ).fetchall()
        return [self._row_to_review(row) for row in rows]

    def has_review(self, task_id: str, reviewer_id: str, reviewee_id: str) -> bool:
        """Whether the reviewer already reviewed the reviewee for this task, hidden or not."""
        with self._lock:
            row = self._db.execute(
                "SELECT 1 FROM reviews WHERE task_id = ? AND reviewer_id = ? AND reviewee_id = ?",
                (task_id, reviewer_id, reviewee_id),
            ).fetchone()
        return row is not None

    def recompute_rating_aggregates(
        self,
        user_id: str,
        compute: Callable[[list[dict[str, Any]]], list[dict[str, Any]]],
    ) -> list[dict[str, Any]]:
        """
        Rebuild a user's aggregates from their full visible review set.

        Reading the reviews and replacing the aggregate rows happen in the
        same write transaction, so a concurrent review cannot be missed.
        """
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
                rows = self._db.execute(
                    f"{self._review_select()} WHERE reviewee_id = ? AND visible = 1",
                    (user_id,),
                ).fetchall()
                aggregates = compute([self._row_to_review(row) for row in rows])
                placeholders = ", ".join("?" for _ in self._AGGREGATE_COLUMNS)
                for aggregate in aggregates:
                    self._db.execute(
                        f"INSERT OR REPLACE INTO rating_aggregates "  # nosec B608
                        f"({', '.join(self._AGGREGATE_COLUMNS)}) VALUES ({placeholders})",
                        tuple(aggregate[column] for column in self._AGGREGATE_COLUMNS),
                    )
                self._db.commit()
            except Exception:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
        return aggregates

    def get_rating_aggregates(self, user_id: str) -> dict[str, dict[str, Any]]:
        """Stored aggregates for a user keyed by scope."""
        with self._lock:
            rows = self._db.execute(
                f"SELECT {', '.join(self._AGGREGATE_COLUMNS)} FROM rating_aggregates "  # nosec B608
                "WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        return {
            row["scope"]: {column: row[column] for column in self._AGGREGATE_COLUMNS}
            for row in rows
        }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
