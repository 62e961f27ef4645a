"""Monthly time-series tables of the dashboard database."""

import sqlite3
from pathlib import Path
from typing import Any

from app.core.errors import PersistenceError
from app.services.database import connect, init_dashboard_db


class DashboardStore:
    """Idempotent per-period upserts and history reads."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    def initialize(self) -> "DashboardStore":
        init_dashboard_db(self.db_path)
        return self

    def save_monthly(self, month: str, year: int, coverage, epic) -> None:
        """Upsert the coverage row for (month, year) and the epic row for (epic_key, month, year).

        Both rows are written in one transaction.
        """
        self.initialize()
        try:
            with connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO monthly_automation_stats
                        (month, year, total_cases, automated_cases, manual_cases,
                         not_required_cases, automation_percentage)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(month, year) DO UPDATE SET
                        total_cases = excluded.total_cases,
                        automated_cases = excluded.automated_cases,
                        manual_cases = excluded.manual_cases,
                        not_required_cases = excluded.not_required_cases,
                        automation_percentage = excluded.automation_percentage,
                        created_at = CURRENT_TIMESTAMP
                    """,
                    (
                        month,
                        year,
                        coverage.total_cases,
                        coverage.automated_cases,
                        coverage.manual_cases,
                        coverage.not_required_cases,
                        coverage.automation_percentage,
                    ),
                )
                conn.execute(
                    """
                    INSERT INTO epic_progress_stats
                        (epic_key, month, year, total_stories, done_stories, todo_stories,
                         po_review_stories, declined_stories, progress_percentage)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(epic_key, month, year) DO UPDATE SET
                        total_stories = excluded.total_stories,
                        done_stories = excluded.done_stories,
                        todo_stories = excluded.todo_stories,
                        po_review_stories = excluded.po_review_stories,
                        declined_stories = excluded.declined_stories,
                        progress_percentage = excluded.progress_percentage,
                        created_at = CURRENT_TIMESTAMP
                    """,
                    (
                        epic.epic_key,
                        month,
                        year,
                        epic.total_stories,
                        epic.done_stories,
                        epic.todo_stories,
                        epic.po_review_stories,
                        epic.declined_stories,
                        epic.progress_percentage,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not save monthly stats: {exc}") from exc

    def _query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        self.initialize()
        with connect(self.db_path, readonly=True) as conn:
            return conn.execute(sql, params).fetchall()

    def latest_automation_stats(self) -> dict[str, Any] | None:
        rows = self._query(
            "SELECT * FROM monthly_automation_stats ORDER BY created_at DESC, id DESC LIMIT 1"
        )
        return rows[0] if rows else None

    def automation_history(self, limit: int = 12) -> list[dict[str, Any]]:
        return self._query(
            "SELECT * FROM monthly_automation_stats ORDER BY year DESC, created_at DESC, id DESC LIMIT ?",
            (max(1, int(limit)),),
        )

    def epic_history(self, limit: int = 12, epic_key: str | None = None) -> list[dict[str, Any]]:
        if epic_key:
            return self._query(
                "SELECT * FROM epic_progress_stats WHERE epic_key = ? "
                "ORDER BY year DESC, created_at DESC, id DESC LIMIT ?",
                (epic_key, max(1, int(limit))),
            )
        return self._query(
            "SELECT * FROM epic_progress_stats ORDER BY year DESC, created_at DESC, id DESC LIMIT ?",
            (max(1, int(limit)),),
        )
