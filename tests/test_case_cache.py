import json
import sqlite3

import pytest

from app.core.errors import PersistenceError
from app.services.case_cache import CaseCacheStore, case_row
from app.services.database import connect
from tests.test_base import make_case


@pytest.fixture
def cache(tmp_path):
    return CaseCacheStore(tmp_path / "cases.db").initialize()


def _seed(cache):
    with cache.sync_cycle() as writer:
        writer.upsert_project({"id": 19, "name": "iVision5", "is_completed": False, "suite_mode": 3})
        writer.upsert_suite(19, {"id": 100, "name": "Regression", "description": "Main suite"})
        writer.upsert_section(100, {"id": 1000, "name": "Login", "depth": 0})
        writer.upsert_section(100, {"id": 1001, "name": "Errors", "parent_id": 1000, "depth": 1})
        writer.upsert_case(1000, make_case(1, title="b login", automation_type=2))
        writer.upsert_case(1000, make_case(2, title="a login"))
        writer.upsert_case(1001, make_case(3, title="bad password"))


def test_reads_return_active_rows_in_name_order(cache):
    _seed(cache)

    assert [p["id"] for p in cache.list_projects()] == [19]
    assert [s["name"] for s in cache.list_suites(19)] == ["Regression"]
    # Top-level sections first, then children
    assert [s["id"] for s in cache.list_sections(100)] == [1000, 1001]
    cases = cache.list_cases(100)
    assert [(c["section_name"], c["title"]) for c in cases] == [
        ("Errors", "bad password"),
        ("Login", "a login"),
        ("Login", "b login"),
    ]
    assert cases[0]["custom_steps_separated"] == [{"content": "Open page", "expected": "Page shown"}]


def test_new_cycle_marks_unvisited_rows_inactive(cache):
    _seed(cache)

    with cache.sync_cycle() as writer:
        writer.upsert_project({"id": 19, "name": "iVision5"})
        writer.upsert_suite(19, {"id": 100, "name": "Regression"})
        writer.upsert_section(100, {"id": 1000, "name": "Login"})
        writer.upsert_case(1000, make_case(1, title="b login"))

    assert [c["id"] for c in cache.list_cases(100)] == [1]
    assert [s["id"] for s in cache.list_sections(100)] == [1000]
    counts = cache.table_counts()
    assert counts["cases"] == {"total": 3, "active": 1}
    assert counts["sections"] == {"total": 2, "active": 1}


def test_failed_cycle_rolls_back_the_wipe(cache):
    _seed(cache)

    with pytest.raises(RuntimeError):
        with cache.sync_cycle() as writer:
            writer.upsert_project({"id": 19, "name": "iVision5"})
            raise RuntimeError("killed mid-walk")

    assert len(cache.list_cases(100)) == 3
    assert cache.table_counts()["cases"]["active"] == 3


def test_raw_payload_is_stored_and_decoded_on_demand(cache):
    payload = make_case(7, custom_fields_we_do_not_model={"x": 1})
    with cache.sync_cycle() as writer:
        writer.upsert_section(100, {"id": 1000, "name": "Login"})
        writer.upsert_case(1000, payload)

    assert cache.get_case_payload(7) == json.loads(json.dumps(payload))
    assert cache.get_case_payload(999) is None


def test_case_row_keeps_zero_values_and_lifts_automation_type():
    row = case_row(10, {"id": "5", "title": "t", "custom_automation_type": 0, "priority_id": 0})

    assert row[0] == 5
    assert row[7] == 0  # priority_id
    assert row[18] == 0  # custom_automation_type
    assert json.loads(row[19])["title"] == "t"


def test_sql_values_are_parameterised(cache):
    title = "x'); DROP TABLE cases; --"
    with cache.sync_cycle() as writer:
        writer.upsert_section(100, {"id": 1000, "name": "Login"})
        writer.upsert_case(1000, make_case(1, title=title))

    assert cache.list_cases(100)[0]["title"] == title


def test_write_failure_surfaces_as_persistence_error(cache):
    with connect(cache.db_path) as conn:
        conn.execute("DROP TABLE cases")
        conn.execute("CREATE TABLE cases (id INTEGER PRIMARY KEY, active INTEGER)")

    with pytest.raises(PersistenceError):
        with cache.sync_cycle() as writer:
            writer.upsert_case(1000, make_case(1))


def test_missing_database_reads_as_empty(tmp_path):
    cache = CaseCacheStore(tmp_path / "absent.db")

    assert cache.list_projects() == []
    assert not (tmp_path / "absent.db").exists()


def test_active_flag_is_constrained(cache):
    with pytest.raises(sqlite3.IntegrityError):
        with connect(cache.db_path) as conn:
            conn.execute("INSERT INTO projects (id, name, active) VALUES (1, 'x', 2)")


def test_cache_file_uses_write_ahead_log(cache):
    with connect(cache.db_path) as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()["journal_mode"] == "wal"


def test_reads_see_last_committed_snapshot_during_a_large_cycle(cache):
    _seed(cache)
    notes = "x" * 2048

    with cache.sync_cycle() as writer:
        writer.upsert_section(100, {"id": 1000, "name": "Login"})
        for case_id in range(100, 3100):
            writer.upsert_case(1000, make_case(case_id, custom_notes=notes))

        assert [p["id"] for p in cache.list_projects()] == [19]
        assert len(cache.list_cases(100)) == 3
        assert cache.table_counts()["cases"] == {"total": 3, "active": 3}

    assert cache.list_projects() == []
    assert len(cache.list_cases(100)) == 3000


def test_empty_step_list_is_kept_as_empty_list(cache):
    assert case_row(1000, {"id": 1, "custom_steps_separated": []})[4] == "[]"
    assert case_row(1000, {"id": 2})[4] is None

    with cache.sync_cycle() as writer:
        writer.upsert_section(100, {"id": 1000, "name": "Login"})
        writer.upsert_case(1000, make_case(1, custom_steps_separated=[]))

    assert cache.list_cases(100)[0]["custom_steps_separated"] == []
