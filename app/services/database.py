"""SQLite connection handling and schemas for the local stores.

Two single-file databases are used:

- the *cache* database mirrors TestRail projects, suites, sections and cases
  and is written only by the sync job;
- the *dashboard* database holds the monthly time-series tables and the
  execution log and is written only by the monthly aggregator (plus the
  sync job's log entries).

Every logical operation opens its own connection through ``connect()`` and
the connection is closed on both the success and the error path.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from app.core.errors import PersistenceError

CACHE_TABLES = ("projects", "suites", "sections", "cases")

CACHE_SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY,
    name TEXT,
    is_completed INTEGER,
    suite_mode INTEGER,
    url TEXT,
    announcement TEXT,
    active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0, 1))
);

CREATE TABLE IF NOT EXISTS suites (
    id INTEGER PRIMARY KEY,
    project_id INTEGER,
    name TEXT,
    description TEXT,
    is_master INTEGER,
    url TEXT,
    active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0, 1))
);

CREATE TABLE IF NOT EXISTS sections (
    id INTEGER PRIMARY KEY,
    suite_id INTEGER,
    name TEXT,
    description TEXT,
    parent_id INTEGER,
    depth INTEGER,
    active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0, 1))
);

CREATE TABLE IF NOT EXISTS cases (
    id INTEGER PRIMARY KEY,
    section_id INTEGER,
    title TEXT,
    custom_preconds TEXT,
    custom_steps_separated TEXT,
    custom_steps TEXT,
    type_id INTEGER,
    priority_id INTEGER,
    estimate TEXT,
    refs TEXT,
    created_by INTEGER,
    created_on INTEGER,
    updated_by INTEGER,
    updated_on INTEGER,
    milestone_id INTEGER,
    custom_expected TEXT,
    status_id INTEGER,
    template_id INTEGER,
    custom_automation_type INTEGER,
    data TEXT,
    active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0, 1))
);

CREATE INDEX IF NOT EXISTS idx_suites_project ON suites(project_id, active);
CREATE INDEX IF NOT EXISTS idx_sections_suite ON sections(suite_id, active);
CREATE INDEX IF NOT EXISTS idx_cases_section ON cases(section_id, active);
"""

DASHBOARD_SCHEMA = """
CREATE TABLE IF NOT EXISTS monthly_automation_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    month TEXT NOT NULL,
    year INTEGER NOT NULL,
    total_cases INTEGER DEFAULT 0,
    automated_cases INTEGER DEFAULT 0,
    manual_cases INTEGER DEFAULT 0,
    not_required_cases INTEGER DEFAULT 0,
    automation_percentage REAL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(month, year)
);

CREATE TABLE IF NOT EXISTS epic_progress_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    epic_key TEXT NOT NULL,
    month TEXT NOT NULL,
    year INTEGER NOT NULL,
    total_stories INTEGER DEFAULT 0,
    done_stories INTEGER DEFAULT 0,
    todo_stories INTEGER DEFAULT 0,
    po_review_stories INTEGER DEFAULT 0,
    declined_stories INTEGER DEFAULT 0,
    progress_percentage REAL DEFAULT 0,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(epic_key, month, year)
);

CREATE TABLE IF NOT EXISTS execution_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    execution_date DATETIME DEFAULT CURRENT_TIMESTAMP,
    type TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('success', 'error')),
    message TEXT,
    details TEXT,
    job_id TEXT
);

CREATE INDEX IF NOT EXISTS idx_execution_logs_job ON execution_logs(job_id);
"""


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Row factory returning plain dicts (JSON-serialisable as-is)."""
    fields = [column[0] for column in cursor.description]
    return dict(zip(fields, row))


@contextmanager
def connect(db_path: Path | str, *, readonly: bool = False) -> Iterator[sqlite3.Connection]:
    """Open a connection for one logical operation.

    Commits on a clean exit, rolls back on error, and always closes.
    Read-only connections use SQLite's ``mode=ro`` URI so the cache can be
    queried from another job without risk of writing to it.
    """
    path = Path(db_path)
    if readonly:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
    conn.row_factory = dict_factory
    try:
        yield conn
        if not readonly:
            conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _apply_schema(db_path: Path | str, schema: str) -> None:
    try:
        with connect(db_path) as conn:
            # Persisted in the file: readers keep the last committed snapshot
            # while a sync cycle holds its write transaction.
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(schema)
            if schema is CACHE_SCHEMA:
                _migrate_cache(conn)
    except (sqlite3.Error, OSError) as exc:
        raise PersistenceError(f"Could not initialise database {db_path}: {exc}") from exc


def _migrate_cache(conn: sqlite3.Connection) -> None:
    """Add columns introduced after the first release to an existing cache file."""
    columns = {row["name"] for row in conn.execute("PRAGMA table_info(cases)")}
    if "custom_automation_type" not in columns:
        conn.execute("ALTER TABLE cases ADD COLUMN custom_automation_type INTEGER")


def init_cache_db(db_path: Path | str) -> Path:
    _apply_schema(db_path, CACHE_SCHEMA)
    return Path(db_path)


def init_dashboard_db(db_path: Path | str) -> Path:
    _apply_schema(db_path, DASHBOARD_SCHEMA)
    return Path(db_path)
