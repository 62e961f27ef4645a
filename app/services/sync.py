"""
TestRail → SQLite sync engine.

One call to ``SyncEngine.run()`` is a *cache cycle*:

1. fetch the project list (failure here is fatal and changes nothing);
2. drop completed projects;
3. mark every cached project, suite, section and case inactive;
4. walk project → suite → section → case, upserting each node as active
   before its children are fetched;
5. commit.

A fetch failure below the project list (one project's suites, one suite's
sections, one section's cases) is recorded as a ``PartialSyncError`` and the
walk moves on to the next sibling; so does a node payload without a usable
id. Anything not revisited keeps ``active = 0``, which is how remote
deletions are reconciled.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from app.core.errors import FatalSyncError, PartialSyncError, PersistenceError
from app.services.case_cache import CacheWriter, CaseCacheStore
from app.services.execution_log import ExecutionLog
from testrail_client import capture_telemetry

LOG_TYPE = "sync"

# A node payload without a usable integer id or of the wrong shape.
MALFORMED_NODE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


def _node_id(node: Any) -> Any:
    return node.get("id") if isinstance(node, dict) else None


@dataclass
class SyncSummary:
    """Outcome of one cache cycle."""

    projects_total: int = 0
    projects: int = 0
    suites: int = 0
    sections: int = 0
    cases: int = 0
    errors: list[PartialSyncError] = field(default_factory=list)
    duration_ms: float = 0.0
    api_call_count: int = 0

    @property
    def partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "projects_total": self.projects_total,
            "projects": self.projects,
            "suites": self.suites,
            "sections": self.sections,
            "cases": self.cases,
            "errors": [err.to_dict() for err in self.errors],
            "duration_ms": round(self.duration_ms, 2),
            "api_call_count": self.api_call_count,
        }


class SyncEngine:
    """Mirrors the remote hierarchy into a ``CaseCacheStore``."""

    def __init__(self, client, store: CaseCacheStore, log: ExecutionLog | None = None, *, verbose: bool = True):
        self.client = client
        self.store = store
        self.log = log
        self.verbose = verbose

    def _say(self, message: str):
        if self.verbose:
            print(f"[sync] {message}", flush=True)

    def _record_partial(self, summary: SyncSummary, node_type: str, node_id: int, exc: Exception):
        err = PartialSyncError(node_type, node_id, exc)
        summary.errors.append(err)
        print(f"[sync] skipping {err}", flush=True)

    def fetch_active_projects(self) -> tuple[list[dict[str, Any]], int]:
        try:
            projects = self.client.get_projects()
        except Exception as exc:
            raise FatalSyncError(f"Could not fetch project list: {exc}") from exc
        if not isinstance(projects, list):
            raise FatalSyncError("Failed to fetch projects. Check your TestRail credentials.")
        active = [p for p in projects if isinstance(p, dict) and not p.get("is_completed")]
        return active, len(projects)

    def run(self) -> SyncSummary:
        start = time.perf_counter()
        summary = SyncSummary()
        with capture_telemetry() as telemetry:
            try:
                projects, summary.projects_total = self.fetch_active_projects()
            except FatalSyncError as exc:
                print(f"[sync] aborted: {exc}", flush=True)
                if self.log:
                    self.log.safe_write(LOG_TYPE, "error", str(exc), {"stage": "get_projects"})
                raise

            self._say(f"Processing {len(projects)} active projects out of {summary.projects_total} total")
            try:
                with self.store.sync_cycle() as writer:
                    for index, project in enumerate(projects, start=1):
                        self._say(f"[{index}/{len(projects)}] project {project.get('name')} (ID: {project.get('id')})")
                        self._sync_project(writer, project, summary)
            except PersistenceError as exc:
                print(f"[sync] cache write failed: {exc}", flush=True)
                if self.log:
                    self.log.safe_write(LOG_TYPE, "error", str(exc), summary.to_dict())
                raise
            except Exception as exc:
                print(f"[sync] aborted: {type(exc).__name__}: {exc}", flush=True)
                if self.log:
                    details = summary.to_dict()
                    details["error_type"] = type(exc).__name__
                    self.log.safe_write(LOG_TYPE, "error", str(exc), details)
                raise

        summary.api_call_count = len(telemetry.get("api_calls", []))
        summary.duration_ms = (time.perf_counter() - start) * 1000.0
        message = "TestRail cases synced to SQLite"
        if summary.partial:
            message += f" with {len(summary.errors)} skipped node(s)"
        self._say(f"{message}: {summary.cases} cases in {summary.duration_ms:.0f}ms")
        if self.log:
            self.log.write(LOG_TYPE, "success", message, summary.to_dict())
        return summary

    def _sync_project(self, writer: CacheWriter, project: dict[str, Any], summary: SyncSummary):
        try:
            project_id = int(project["id"])
            writer.upsert_project(project)
        except MALFORMED_NODE_ERRORS as exc:
            self._record_partial(summary, "project", _node_id(project), exc)
            return
        summary.projects += 1
        try:
            suites = self.client.get_suites(project_id)
        except Exception as exc:
            self._record_partial(summary, "project", project_id, exc)
            return
        self._say(f"  - Found {len(suites)} suites")
        for suite in suites:
            self._sync_suite(writer, project_id, suite, summary)

    def _sync_suite(self, writer: CacheWriter, project_id: int, suite: dict[str, Any], summary: SyncSummary):
        try:
            suite_id = int(suite["id"])
            writer.upsert_suite(project_id, suite)
        except MALFORMED_NODE_ERRORS as exc:
            self._record_partial(summary, "suite", _node_id(suite), exc)
            return
        summary.suites += 1
        try:
            sections = self.client.get_sections(project_id, suite_id)
        except Exception as exc:
            self._record_partial(summary, "suite", suite_id, exc)
            return
        self._say(f"    Suite {suite.get('name')}: {len(sections)} sections")
        for section in sections:
            self._sync_section(writer, project_id, suite_id, section, summary)

    def _sync_section(
        self,
        writer: CacheWriter,
        project_id: int,
        suite_id: int,
        section: dict[str, Any],
        summary: SyncSummary,
    ):
        try:
            section_id = int(section["id"])
            writer.upsert_section(suite_id, section)
        except MALFORMED_NODE_ERRORS as exc:
            self._record_partial(summary, "section", _node_id(section), exc)
            return
        summary.sections += 1
        try:
            cases = self.client.get_cases(project_id, suite_id=suite_id, section_id=section_id)
        except Exception as exc:
            self._record_partial(summary, "section", section_id, exc)
            return
        for case in cases:
            try:
                writer.upsert_case(section_id, case)
            except MALFORMED_NODE_ERRORS as exc:
                self._record_partial(summary, "case", _node_id(case), exc)
                continue
            summary.cases += 1
