"""
Shared fixtures: an in-memory fake TestRail hierarchy and a base test case
wired to temporary SQLite stores through FastAPI dependency overrides.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

from fastapi.testclient import TestClient

from app.core.dependencies import (
    get_case_cache,
    get_dashboard_store,
    get_execution_log,
    get_job_manager,
    get_testrail_client,
)
from app.main import app
from app.services.case_cache import CaseCacheStore
from app.services.dashboard_store import DashboardStore
from app.services.execution_log import ExecutionLog
from testrail_client import TransientRemoteError


def make_case(case_id, title=None, automation_type=None, **extra):
    case = {
        "id": case_id,
        "title": title or f"Case {case_id}",
        "type_id": 7,
        "priority_id": 2,
        "custom_preconds": "Logged in",
        "custom_steps_separated": [{"content": "Open page", "expected": "Page shown"}],
        "custom_automation_type": automation_type,
    }
    case.update(extra)
    return case


class FakeTestRail:
    """Tree-shaped stand-in for ``TestRailClient`` used by sync tests.

    ``tree`` maps project dicts to suites, sections and cases::

        {"projects": [...], "suites": {pid: [...]}, "sections": {sid: [...]},
         "cases": {section_id: [...]}}

    ``fail`` holds ``("suites", pid)`` / ``("sections", sid)`` /
    ``("cases", section_id)`` / ``("projects", None)`` keys that should raise.
    """

    def __init__(self, tree, fail=None):
        self.tree = tree
        self.fail = set(fail or ())
        self.calls = []

    def _maybe_fail(self, kind, key):
        self.calls.append((kind, key))
        if (kind, key) in self.fail:
            raise TransientRemoteError(f'{{"error": "{kind} {key} unavailable"}}', status_code=500)

    def get_projects(self):
        self._maybe_fail("projects", None)
        return list(self.tree["projects"])

    def get_suites(self, project_id):
        self._maybe_fail("suites", project_id)
        return list(self.tree["suites"].get(project_id, []))

    def get_sections(self, project_id, suite_id):
        self._maybe_fail("sections", suite_id)
        return list(self.tree["sections"].get(suite_id, []))

    def get_cases(self, project_id, suite_id=None, section_id=None):
        self._maybe_fail("cases", section_id)
        return list(self.tree["cases"].get(section_id, []))


def sample_tree():
    """Project 19 with three suites; project 20 is completed and must be skipped."""
    return {
        "projects": [
            {"id": 19, "name": "iVision5", "is_completed": False, "suite_mode": 3},
            {"id": 20, "name": "Legacy", "is_completed": True, "suite_mode": 1},
        ],
        "suites": {
            19: [
                {"id": 100, "name": "A suite", "is_master": False},
                {"id": 200, "name": "B suite"},
                {"id": 300, "name": "C suite"},
            ],
            20: [{"id": 900, "name": "Never synced"}],
        },
        "sections": {
            100: [
                {"id": 1000, "name": "Login", "depth": 0},
                {"id": 1001, "name": "Login errors", "parent_id": 1000, "depth": 1},
            ],
            200: [{"id": 2000, "name": "Reports", "depth": 0}],
            300: [{"id": 3000, "name": "Settings", "depth": 0}],
        },
        "cases": {
            1000: [make_case(1, automation_type=2), make_case(2, automation_type=1)],
            1001: [make_case(3, automation_type=0)],
            2000: [make_case(4, automation_type=2)],
            3000: [make_case(5), make_case(6, automation_type=2)],
        },
    }


class StoreTestCase(unittest.TestCase):
    """Temporary cache and dashboard databases, removed after each test."""

    def setUp(self):
        self.tmpdir = Path(tempfile.mkdtemp(prefix="testrail_viewer_"))
        self.cache_db = self.tmpdir / "testrail_cases.db"
        self.dashboard_db = self.tmpdir / "testrail_dashboard.db"
        self.cache = CaseCacheStore(self.cache_db).initialize()
        self.store = DashboardStore(self.dashboard_db).initialize()
        self.log = ExecutionLog(self.dashboard_db)

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)


class BaseTestCase(StoreTestCase):
    """API test case with stores and the TestRail client overridden."""

    def setUp(self):
        super().setUp()
        self.mock_client = Mock()
        self.mock_client.get_case.return_value = {"id": 789, "title": "Test Case", "refs": "REF-123"}
        self.mock_client.get_reports.return_value = [{"id": 3, "name": "Ivision Automated Report"}]
        self.mock_client.run_report.return_value = {"report_url": "https://example.testrail.io/r/3"}
        self.mock_client.get_suites.return_value = [{"id": 100, "name": "A suite"}]
        self.mock_client.get_cases.return_value = [make_case(1)]

        self.mock_jobs = Mock()
        self.mock_jobs.stats.return_value = {"size": 0, "running": 0, "queued": 0, "latest_job": None}

        app.dependency_overrides[get_testrail_client] = lambda: self.mock_client
        app.dependency_overrides[get_case_cache] = lambda: self.cache
        app.dependency_overrides[get_dashboard_store] = lambda: self.store
        app.dependency_overrides[get_execution_log] = lambda: self.log
        app.dependency_overrides[get_job_manager] = lambda: self.mock_jobs

        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        super().tearDown()
