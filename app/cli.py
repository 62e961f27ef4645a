"""Command-line entry points for the scheduled jobs.

``testrail-sync`` runs one cache cycle; ``testrail-monthly-report`` takes the
monthly snapshot. Both are meant to be started by cron or a task scheduler.
"""

import argparse
import json
import sys
from pathlib import Path

from app.core.config import config
from app.core.errors import ConfigError, FatalSyncError, PersistenceError
from app.services.aggregator import MonthlyAggregator
from app.services.case_cache import CaseCacheStore
from app.services.dashboard_store import DashboardStore
from app.services.execution_log import ExecutionLog
from app.services.sync import SyncEngine
from jira_client import JiraClient
from testrail_client import TestRailClient


def sync_main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Mirror TestRail projects, suites, sections and cases into SQLite.")
    ap.add_argument("--db", type=Path, default=config.CACHE_DB_PATH, help="cache database path")
    ap.add_argument("--log-db", type=Path, default=config.DASHBOARD_DB_PATH, help="execution log database path")
    ap.add_argument("--quiet", action="store_true", help="only print errors and the final summary")
    args = ap.parse_args(argv)

    try:
        client = TestRailClient.from_env()
        engine = SyncEngine(
            client,
            CaseCacheStore(args.db),
            ExecutionLog(args.log_db),
            verbose=not args.quiet,
        )
        summary = engine.run()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (FatalSyncError, PersistenceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"An unexpected error occurred: {e}", file=sys.stderr)
        return 1
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def monthly_main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Record this month's automation coverage and epic progress.")
    ap.add_argument("--project", type=int, default=config.TESTRAIL_PROJECT_ID, help="TestRail project id")
    ap.add_argument("--epic", default=config.JIRA_EPIC_KEY, help="Jira epic key")
    ap.add_argument("--cache-db", type=Path, default=config.CACHE_DB_PATH)
    ap.add_argument("--db", type=Path, default=config.DASHBOARD_DB_PATH, help="dashboard database path")
    args = ap.parse_args(argv)

    try:
        jira = JiraClient.from_env()
    except ConfigError:
        jira = None
    aggregator = MonthlyAggregator(
        args.cache_db,
        DashboardStore(args.db),
        ExecutionLog(args.db),
        jira,
        project_id=args.project,
        epic_key=args.epic,
        missing_credentials=config.missing_credentials,
    )
    try:
        result = aggregator.run()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"An unexpected error occurred: {e}", file=sys.stderr)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else ""
    if command == "sync":
        sys.exit(sync_main(sys.argv[2:]))
    if command == "monthly-report":
        sys.exit(monthly_main(sys.argv[2:]))
    print("usage: python -m app.cli {sync,monthly-report} [options]", file=sys.stderr)
    sys.exit(2)
