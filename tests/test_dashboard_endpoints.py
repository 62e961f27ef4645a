from types import SimpleNamespace

from app.services.aggregator import AutomationCoverage, EpicProgress
from app.services.sync import SyncEngine
from tests.test_base import BaseTestCase, FakeTestRail, sample_tree


class TestDashboardEndpoints(BaseTestCase):
    def test_automation_coverage_from_cache(self):
        SyncEngine(FakeTestRail(sample_tree()), self.cache, self.log, verbose=False).run()

        response = self.client.get("/api/dashboard/automation-coverage/19")

        assert response.status_code == 200
        # Cases 1, 4 and 6 automated; 2 manual; 3 and 5 not required
        assert response.json() == {
            "project_id": 19,
            "total": 6,
            "automated": 3,
            "manual": 1,
            "not_required": 2,
            "automationPercentage": 50.0,
        }

    def test_automation_coverage_rejects_non_positive_project(self):
        response = self.client.get("/api/dashboard/automation-coverage/0")

        assert response.status_code == 400

    def test_current_stats_null_before_first_run(self):
        response = self.client.get("/api/dashboard/current-automation-stats")

        assert response.status_code == 200
        assert response.json() is None

    def test_history_endpoints_return_saved_months(self):
        coverage = AutomationCoverage(10, 6, 4, 0, 60.0)
        self.store.save_monthly("May", 2025, coverage, EpicProgress("OPR-3401", 5, 2, 3, 0, 0, 40.0))
        self.store.save_monthly("June", 2025, coverage, EpicProgress("OPR-3401", 5, 3, 2, 0, 0, 60.0))

        current = self.client.get("/api/dashboard/current-automation-stats").json()
        history = self.client.get("/api/dashboard/automation-history").json()
        epics = self.client.get("/api/dashboard/epic-history", params={"epic_key": "OPR-3401"}).json()

        assert current["automation_percentage"] == 60.0
        assert {row["month"] for row in history} == {"May", "June"}
        assert sorted(row["done_stories"] for row in epics) == [2, 3]

    def test_execution_logs_default_and_limit(self):
        for i in range(3):
            self.log.write("sync", "success", f"run {i}", {"cases": i})

        all_entries = self.client.get("/api/dashboard/execution-logs").json()
        limited = self.client.get("/api/dashboard/execution-logs", params={"limit": 1}).json()

        assert [e["message"] for e in all_entries] == ["run 2", "run 1", "run 0"]
        assert limited[0]["details"] == {"cases": 2}
        assert len(limited) == 1

    def test_execution_logs_rejects_zero_limit(self):
        response = self.client.get("/api/dashboard/execution-logs", params={"limit": 0})

        assert response.status_code == 400

    def test_trigger_returns_job_id_immediately(self):
        self.mock_jobs.enqueue.return_value = SimpleNamespace(id="abc123", status="queued")

        response = self.client.post("/api/dashboard/trigger-monthly-report")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["job_id"] == "abc123"
        assert body["status_url"] == "/api/dashboard/monthly-report/abc123"
        self.mock_jobs.enqueue.assert_called_once_with()

    def test_job_status_found_and_missing(self):
        self.mock_jobs.status.side_effect = lambda job_id: (
            {"id": job_id, "status": "success", "result": {"month": "June"}, "meta": {}}
            if job_id == "abc123"
            else None
        )

        found = self.client.get("/api/dashboard/monthly-report/abc123")
        missing = self.client.get("/api/dashboard/monthly-report/zzz")

        assert found.status_code == 200
        assert found.json()["status"] == "success"
        assert missing.status_code == 404
        assert missing.json()["detail"] == "Monthly report job not found"
