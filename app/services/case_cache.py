"""Local SQLite mirror of the TestRail project/suite/section/case hierarchy."""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from app.core.errors import PersistenceError
from app.services.database import CACHE_TABLES, connect, init_cache_db


def _flag(value: Any) -> int:
    return 1 if value else 0


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def project_row(project: dict[str, Any]) -> tuple:
    return (
        int(project["id"]),
        project.get("name"),
        _flag(project.get("is_completed")),
        _int_or_none(project.get("suite_mode")),
        project.get("url"),
        project.get("announcement"),
    )


def suite_row(project_id: int, suite: dict[str, Any]) -> tuple:
    return (
        int(suite["id"]),
        project_id,
        suite.get("name"),
        suite.get("description"),
        _flag(suite.get("is_master")),
        suite.get("url"),
    )


def section_row(suite_id: int, section: dict[str, Any]) -> tuple:
    return (
        int(section["id"]),
        suite_id,
        section.get("name"),
        section.get("description"),
        _int_or_none(section.get("parent_id")),
        _int_or_none(section.get("depth")),
    )


def case_row(section_id: int, case: dict[str, Any]) -> tuple:
    steps_separated = case.get("custom_steps_separated")
    return (
        int(case["id"]),
        section_id,
        case.get("title"),
        case.get("custom_preconds"),
        json.dumps(steps_separated) if steps_separated is not None else None,
        case.get("custom_steps"),
        _int_or_none(case.get("type_id")),
        _int_or_none(case.get("priority_id")),
        case.get("estimate"),
        case.get("refs"),
        _int_or_none(case.get("created_by")),
        _int_or_none(case.get("created_on")),
        _int_or_none(case.get("updated_by")),
        _int_or_none(case.get("updated_on")),
        _int_or_none(case.get("milestone_id")),
        case.get("custom_expected"),
        _int_or_none(case.get("status_id")),
        _int_or_none(case.get("template_id")),
        _int_or_none(case.get("custom_automation_type")),
        json.dumps(case),
    )


class CacheWriter:
    """Upserts applied to the connection of one open sync cycle."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def mark_all_inactive(self) -> None:
        for table in CACHE_TABLES:
            self.conn.execute(f"UPDATE {table} SET active = 0")

    def upsert_project(self, project: dict[str, Any]) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO projects "
            "(id, name, is_completed, suite_mode, url, announcement, active) "
            "VALUES (?, ?, ?, ?, ?, ?, 1)",
            project_row(project),
        )

    def upsert_suite(self, project_id: int, suite: dict[str, Any]) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO suites "
            "(id, project_id, name, description, is_master, url, active) "
            "VALUES (?, ?, ?, ?, ?, ?, 1)",
            suite_row(project_id, suite),
        )

    def upsert_section(self, suite_id: int, section: dict[str, Any]) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO sections "
            "(id, suite_id, name, description, parent_id, depth, active) "
            "VALUES (?, ?, ?, ?, ?, ?, 1)",
            section_row(suite_id, section),
        )

    def upsert_case(self, section_id: int, case: dict[str, Any]) -> None:
        self.conn.execute(
            """
            INSERT OR REPLACE INTO cases (
                id, section_id, title, custom_preconds, custom_steps_separated, custom_steps,
                type_id, priority_id, estimate, refs, created_by, created_on, updated_by,
                updated_on, milestone_id, custom_expected, status_id, template_id,
                custom_automation_type, data, active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
            """,
            case_row(section_id, case),
        )


class CaseCacheStore:
    """Reads and writes the cache database.

    Writes happen only inside ``sync_cycle()``; every read opens and closes
    its own connection and only returns ``active = 1`` rows.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    def initialize(self) -> "CaseCacheStore":
        init_cache_db(self.db_path)
        return self

    @contextmanager
    def sync_cycle(self) -> Iterator[CacheWriter]:
        """Wipe every ``active`` flag and yield a writer for the re-walk.

        The wipe and all upserts share one transaction that commits when the
        block exits normally; an exception (or a killed process) leaves the
        previous cycle's state untouched.
        """
        self.initialize()
        try:
            with connect(self.db_path) as conn:
                writer = CacheWriter(conn)
                writer.mark_all_inactive()
                yield writer
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cache write failed: {exc}") from exc

    def _query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        if not self.db_path.exists():
            return []
        with connect(self.db_path, readonly=True) as conn:
            return conn.execute(sql, params).fetchall()

    def list_projects(self) -> list[dict[str, Any]]:
        return self._query(
            "SELECT id, name, is_completed, suite_mode, url, announcement "
            "FROM projects WHERE active = 1 ORDER BY name"
        )

    def list_suites(self, project_id: int) -> list[dict[str, Any]]:
        return self._query(
            "SELECT id, project_id, name, description, is_master, url "
            "FROM suites WHERE project_id = ? AND active = 1 ORDER BY name",
            (project_id,),
        )

    def list_sections(self, suite_id: int) -> list[dict[str, Any]]:
        return self._query(
            "SELECT id, suite_id, name, description, parent_id, depth "
            "FROM sections WHERE suite_id = ? AND active = 1 "
            "ORDER BY COALESCE(parent_id, 0), name",
            (suite_id,),
        )

    def list_cases(self, suite_id: int) -> list[dict[str, Any]]:
        rows = self._query(
            """
            SELECT c.id, c.section_id, c.title, c.custom_preconds, c.custom_steps,
                   c.custom_steps_separated, c.custom_expected, c.type_id, c.priority_id,
                   c.estimate, c.refs, c.custom_automation_type, s.name AS section_name
            FROM cases c
            INNER JOIN sections s ON c.section_id = s.id
            WHERE s.suite_id = ? AND c.active = 1 AND s.active = 1
            ORDER BY s.name, c.title
            """,
            (suite_id,),
        )
        for row in rows:
            steps = row.get("custom_steps_separated")
            row["custom_steps_separated"] = json.loads(steps) if steps else None
        return rows

    def get_case_payload(self, case_id: int) -> dict[str, Any] | None:
        """Decode the raw TestRail payload stored for an active case."""
        rows = self._query("SELECT data FROM cases WHERE id = ? AND active = 1", (case_id,))
        if not rows or not rows[0]["data"]:
            return None
        return json.loads(rows[0]["data"])

    def table_counts(self) -> dict[str, dict[str, int]]:
        """Active/total row counts per cache table."""
        counts: dict[str, dict[str, int]] = {}
        for table in CACHE_TABLES:
            rows = self._query(
                f"SELECT COUNT(*) AS total, COALESCE(SUM(active), 0) AS active FROM {table}"
            )
            counts[table] = rows[0] if rows else {"total": 0, "active": 0}
        return counts
