"""
Monthly automation-coverage and epic-progress aggregation.

The aggregator takes one snapshot per calendar month:

- Automation coverage: active cached cases under the configured TestRail
  project, classified by ``custom_automation_type``
  (2 = Automated, 1 = To do / manual, 0 or NULL = Not required).
  ``automation_percentage = round(automated / total * 100, 2)``.
- Epic progress: stories linked to the configured Jira epic, bucketed by
  status name. ``progress_percentage = round(done / total * 100, 2)``.

Both percentages are 0.0 when the total is zero.

Results are upserted on (month, year) and (epic_key, month, year), so a
second run in the same month overwrites the first. Every source fetch and the
overall run write an execution-log entry. A Jira failure substitutes a
zero-valued epic record; any other failure aborts the run.
"""

import sqlite3
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from app.core.errors import AggregationSourceError, ConfigError, PersistenceError
from app.services.dashboard_store import DashboardStore
from app.services.database import connect
from app.services.execution_log import ExecutionLog

# Locale independent on purpose: calendar.month_name follows LC_TIME.
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

AUTOMATION_TYPE_AUTOMATED = 2
AUTOMATION_TYPE_TODO = 1
AUTOMATION_TYPE_NOT_REQUIRED = 0

DONE_STATUSES = {"Done"}
PO_REVIEW_STATUSES = {"PO Review"}
DECLINED_STATUSES = {"Declined", "Won't Do"}


def month_name(moment: datetime) -> str:
    return MONTH_NAMES[moment.month - 1]


def percentage(part: int, total: int) -> float:
    """``part / total`` as a percentage rounded to 2 places; 0.0 when total is 0."""
    if not total:
        return 0.0
    return round(part / total * 100, 2)


@dataclass
class AutomationCoverage:
    total_cases: int = 0
    automated_cases: int = 0
    manual_cases: int = 0
    not_required_cases: int = 0
    automation_percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class EpicProgress:
    epic_key: str
    total_stories: int = 0
    done_stories: int = 0
    todo_stories: int = 0
    po_review_stories: int = 0
    declined_stories: int = 0
    progress_percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MonthlyReportResult:
    month: str
    year: int
    automation: AutomationCoverage
    epic: EpicProgress
    epic_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "month": self.month,
            "year": self.year,
            "automationData": self.automation.to_dict(),
            "epicData": self.epic.to_dict(),
            "epic_fallback": self.epic_fallback,
        }


def classify_story_status(status_name: str | None) -> str:
    """Bucket a Jira status name into done / po_review / declined / todo."""
    if status_name in DONE_STATUSES:
        return "done"
    if status_name in PO_REVIEW_STATUSES:
        return "po_review"
    if status_name in DECLINED_STATUSES:
        return "declined"
    return "todo"


def summarize_epic(epic_key: str, issues: list[dict[str, Any]], total: int | None = None) -> EpicProgress:
    progress = EpicProgress(epic_key=epic_key)
    for issue in issues:
        fields = issue.get("fields") or {}
        status = (fields.get("status") or {}).get("name")
        bucket = classify_story_status(status)
        if bucket == "done":
            progress.done_stories += 1
        elif bucket == "po_review":
            progress.po_review_stories += 1
        elif bucket == "declined":
            progress.declined_stories += 1
        else:
            progress.todo_stories += 1
    progress.total_stories = max(int(total or 0), len(issues))
    progress.progress_percentage = percentage(progress.done_stories, progress.total_stories)
    return progress


COVERAGE_SQL = """
SELECT
    COUNT(*) AS total,
    COALESCE(SUM(CASE WHEN c.custom_automation_type = ? THEN 1 ELSE 0 END), 0) AS automated,
    COALESCE(SUM(CASE WHEN c.custom_automation_type = ? THEN 1 ELSE 0 END), 0) AS manual,
    COALESCE(SUM(CASE WHEN c.custom_automation_type = ? OR c.custom_automation_type IS NULL
                      THEN 1 ELSE 0 END), 0) AS not_required
FROM cases c
JOIN sections sec ON c.section_id = sec.id
JOIN suites s ON sec.suite_id = s.id
WHERE c.active = 1 AND s.project_id = ?
"""


def get_automation_coverage(cache_db_path: Path | str, project_id: int) -> AutomationCoverage:
    """Coverage counts for ``project_id`` read from the cache database (read-only)."""
    path = Path(cache_db_path)
    if not path.exists():
        return AutomationCoverage()
    with connect(path, readonly=True) as conn:
        row = conn.execute(
            COVERAGE_SQL,
            (
                AUTOMATION_TYPE_AUTOMATED,
                AUTOMATION_TYPE_TODO,
                AUTOMATION_TYPE_NOT_REQUIRED,
                project_id,
            ),
        ).fetchone()
    total = int(row["total"] or 0)
    automated = int(row["automated"] or 0)
    return AutomationCoverage(
        total_cases=total,
        automated_cases=automated,
        manual_cases=int(row["manual"] or 0),
        not_required_cases=int(row["not_required"] or 0),
        automation_percentage=percentage(automated, total),
    )


class MonthlyAggregator:
    """Runs one monthly snapshot and persists it."""

    def __init__(
        self,
        cache_db_path: Path | str,
        store: DashboardStore,
        log: ExecutionLog,
        jira_client=None,
        *,
        project_id: int = 19,
        epic_key: str = "OPR-3401",
        missing_credentials=None,
    ):
        self.cache_db_path = Path(cache_db_path)
        self.store = store
        self.log = log
        self.jira_client = jira_client
        self.project_id = project_id
        self.epic_key = epic_key
        self._missing_credentials = missing_credentials or (lambda: [])

    @classmethod
    def from_config(cls, cfg, jira_client=None) -> "MonthlyAggregator":
        return cls(
            cfg.CACHE_DB_PATH,
            DashboardStore(cfg.DASHBOARD_DB_PATH),
            ExecutionLog(cfg.DASHBOARD_DB_PATH),
            jira_client,
            project_id=cfg.TESTRAIL_PROJECT_ID,
            epic_key=cfg.JIRA_EPIC_KEY,
            missing_credentials=cfg.missing_credentials,
        )

    def validate_credentials(self):
        missing = list(self._missing_credentials())
        if missing:
            raise ConfigError(f"Missing environment variables: {', '.join(missing)}")

    def collect_coverage(self, job_id: str | None = None) -> AutomationCoverage:
        try:
            coverage = get_automation_coverage(self.cache_db_path, self.project_id)
        except sqlite3.Error as exc:
            self.log.safe_write("coverage", "error", str(exc), {"project_id": self.project_id}, job_id=job_id)
            raise
        print(
            f"[monthly-report] coverage project={self.project_id}: total={coverage.total_cases} "
            f"automated={coverage.automated_cases} ({coverage.automation_percentage}%) "
            f"manual={coverage.manual_cases} not_required={coverage.not_required_cases}",
            flush=True,
        )
        self.log.write(
            "coverage",
            "success",
            f"Automation data for project {self.project_id} collected from cache",
            coverage.to_dict(),
            job_id=job_id,
        )
        return coverage

    def fetch_epic_progress(self, job_id: str | None = None) -> EpicProgress:
        try:
            if self.jira_client is None:
                raise ConfigError("Jira client is not configured")
            epic = self.jira_client.get_issue(self.epic_key)
            summary = ((epic or {}).get("fields") or {}).get("summary")
            issues, total = self.jira_client.get_epic_issues(self.epic_key)
            progress = summarize_epic(self.epic_key, issues, total)
        except Exception as exc:
            self.log.safe_write("epic", "error", str(exc), {"epic_key": self.epic_key}, job_id=job_id)
            raise AggregationSourceError(f"Epic {self.epic_key} unavailable: {exc}") from exc
        print(
            f"[monthly-report] epic {self.epic_key} ({summary}): total={progress.total_stories} "
            f"done={progress.done_stories} ({progress.progress_percentage}%)",
            flush=True,
        )
        self.log.write("epic", "success", "Epic data collected via API", progress.to_dict(), job_id=job_id)
        return progress

    def run(self, now: datetime | None = None, job_id: str | None = None) -> MonthlyReportResult:
        moment = now or datetime.now()
        month, year = month_name(moment), moment.year
        print(f"[monthly-report] starting {month}/{year}", flush=True)
        try:
            self.validate_credentials()
            coverage = self.collect_coverage(job_id)
            fallback = False
            try:
                epic = self.fetch_epic_progress(job_id)
            except AggregationSourceError as exc:
                print(f"[monthly-report] {exc}; using zero-valued epic data", flush=True)
                epic = EpicProgress(epic_key=self.epic_key)
                fallback = True
            self.store.save_monthly(month, year, coverage, epic)
            result = MonthlyReportResult(month, year, coverage, epic, epic_fallback=fallback)
            self.log.write(
                "monthly_report",
                "success",
                "Monthly report executed successfully",
                result.to_dict(),
                job_id=job_id,
            )
        except Exception as exc:
            print(f"[monthly-report] failed: {type(exc).__name__}: {exc}", flush=True)
            self.log.safe_write(
                "monthly_report",
                "error",
                str(exc),
                {"month": month, "year": year, "error_type": type(exc).__name__},
                job_id=job_id,
            )
            if isinstance(exc, sqlite3.Error):
                raise PersistenceError(str(exc)) from exc
            raise
        print(f"[monthly-report] completed {month}/{year}", flush=True)
        return result
