"""Append-only audit trail of sync and aggregation attempts."""

import json
import sqlite3
import sys
from pathlib import Path
from typing import Any

from app.core.errors import PersistenceError
from app.services.database import connect, init_dashboard_db

STATUSES = ("success", "error")


class ExecutionLog:
    """Writes and reads rows of the ``execution_logs`` table."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._ready = False

    def _ensure(self):
        if not self._ready:
            init_dashboard_db(self.db_path)
            self._ready = True

    def write(
        self,
        type: str,
        status: str,
        message: str,
        details: Any = None,
        *,
        job_id: str | None = None,
    ) -> int:
        """Append one entry and return its id."""
        if status not in STATUSES:
            raise ValueError(f"status must be one of {STATUSES}, got {status!r}")
        self._ensure()
        try:
            with connect(self.db_path) as conn:
                cur = conn.execute(
                    "INSERT INTO execution_logs (type, status, message, details, job_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (type, status, message, json.dumps(details, default=str), job_id),
                )
                return int(cur.lastrowid)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not write execution log: {exc}") from exc

    def safe_write(self, type: str, status: str, message: str, details: Any = None, **kwargs) -> int | None:
        """``write`` for error paths: a failing audit write must not mask the original error."""
        try:
            return self.write(type, status, message, details, **kwargs)
        except PersistenceError as exc:
            print(f"[ERROR] execution log unavailable: {exc}", file=sys.stderr, flush=True)
            return None

    def _read(self, sql: str, params: tuple) -> list[dict[str, Any]]:
        self._ensure()
        with connect(self.db_path, readonly=True) as conn:
            rows = conn.execute(sql, params).fetchall()
        for row in rows:
            raw = row.get("details")
            row["details"] = json.loads(raw) if raw else None
        return rows

    def tail(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent ``limit`` entries, newest first."""
        return self._read(
            "SELECT id, execution_date, type, status, message, details, job_id "
            "FROM execution_logs ORDER BY execution_date DESC, id DESC LIMIT ?",
            (max(1, int(limit)),),
        )

    def for_job(self, job_id: str) -> list[dict[str, Any]]:
        """Entries written by one background job, oldest first."""
        return self._read(
            "SELECT id, execution_date, type, status, message, details, job_id "
            "FROM execution_logs WHERE job_id = ? ORDER BY id",
            (job_id,),
        )
