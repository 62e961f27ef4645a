"""Background execution of the monthly report with pollable job ids."""

import threading
import time
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from app.services.execution_log import ExecutionLog


@dataclass(slots=True)
class MonthlyReportJob:
    """One submitted monthly report run."""

    id: str
    status: str = "queued"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: Dict[str, Any] | None = None
    error: str | None = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        return {
            "id": self.id,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "result": self.result,
            "error": self.error,
            "meta": self.meta,
        }


class MonthlyReportJobManager:
    """Runs aggregator jobs on a small thread pool.

    ``runner(job_id)`` must execute the report and return a JSON-serialisable
    result; it is expected to tag its execution-log rows with ``job_id`` so
    the outcome stays discoverable after the in-memory history is trimmed.
    """

    def __init__(
        self,
        runner: Callable[[str], Dict[str, Any]],
        log: ExecutionLog | None = None,
        max_workers: int = 1,
        max_history: int = 20,
    ):
        self.runner = runner
        self.log = log
        self.executor = ThreadPoolExecutor(max_workers=max_workers)
        self.jobs: Dict[str, MonthlyReportJob] = {}
        self.order: deque[str] = deque()
        self.lock = threading.Lock()
        self.max_history = max_history

    def enqueue(self) -> MonthlyReportJob:
        job_id = uuid.uuid4().hex
        job = MonthlyReportJob(id=job_id)
        with self.lock:
            self.jobs[job_id] = job
            self.order.append(job_id)
        self.executor.submit(self._run_job, job_id)
        return job

    def get(self, job_id: str) -> MonthlyReportJob | None:
        with self.lock:
            return self.jobs.get(job_id)

    def status(self, job_id: str) -> Dict[str, Any] | None:
        """Job state from memory, else rebuilt from the execution log."""
        job = self.get(job_id)
        if job:
            return job.to_dict()
        if self.log is None:
            return None
        entries = self.log.for_job(job_id)
        if not entries:
            return None
        final = next((e for e in reversed(entries) if e["type"] == "monthly_report"), None)
        return {
            "id": job_id,
            "status": final["status"] if final else "running",
            "created_at": entries[0]["execution_date"],
            "started_at": entries[0]["execution_date"],
            "completed_at": final["execution_date"] if final else None,
            "result": final["details"] if final and final["status"] == "success" else None,
            "error": final["message"] if final and final["status"] == "error" else None,
            "meta": {"source": "execution_log", "entries": entries},
        }

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            running = sum(1 for jid in self.order if self.jobs[jid].status == "running")
            queued = sum(1 for jid in self.order if self.jobs[jid].status == "queued")
            latest = self.jobs[self.order[-1]] if self.order else None
        return {
            "size": len(self.order),
            "running": running,
            "queued": queued,
            "history_limit": self.max_history,
            "latest_job": {"id": latest.id, "status": latest.status} if latest else None,
        }

    def shutdown(self, wait: bool = True):
        self.executor.shutdown(wait=wait)

    def _trim_history(self):
        with self.lock:
            while len(self.order) > self.max_history:
                oldest_id = self.order[0]
                job = self.jobs.get(oldest_id)
                if job and job.status not in {"success", "error"}:
                    break
                self.order.popleft()
                self.jobs.pop(oldest_id, None)

    def _run_job(self, job_id: str):
        job = self.get(job_id)
        if not job:
            return
        job.status = "running"
        job.started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        print(f"[job] {job_id} monthly report started", flush=True)
        try:
            job.result = self.runner(job_id)
            job.status = "success"
            job.meta["duration_ms"] = round((time.perf_counter() - start) * 1000.0, 2)
            print(f"[job] {job_id} completed in {job.meta['duration_ms']:.0f}ms", flush=True)
        except Exception as exc:
            job.error = str(exc)
            job.status = "error"
            print(f"[job] {job_id} failed: {exc}", flush=True)
        finally:
            job.completed_at = datetime.now(timezone.utc)
            self._trim_history()
