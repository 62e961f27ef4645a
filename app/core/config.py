"""Application configuration management.

Importing this module loads the project's ``.env`` file into the process
environment, so it must be imported before anything that reads settings at
import time (``testrail_client`` reads its HTTP defaults that way).
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def load_env_file(path: Path | str | None = None) -> Path | None:
    """Load settings from ``path`` (default: ``ENV_FILE`` or ``<project>/.env``).

    Values in the file replace those already in the environment. Returns the
    file that was read, or None when there is none.
    """
    env_file = Path(path or os.getenv("ENV_FILE") or PROJECT_ROOT / ".env")
    if not env_file.is_file():
        return None
    load_dotenv(dotenv_path=env_file, override=True)
    return env_file


def _int_env(name: str, default: int) -> int:
    """Get integer environment variable with fallback."""
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _str_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Get stripped string environment variable, treating blanks as unset."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


def _path_env(name: str, default: str) -> Path:
    return Path(_str_env(name, default))


class Config:
    """Application configuration.

    Values are read when the object is built; tests that change the
    environment can call ``reload()``.
    """

    def __init__(self):
        self.reload()

    def reload(self):
        # TestRail
        self.TESTRAIL_URL = _str_env("TESTRAIL_URL")
        self.TESTRAIL_API_USER = _str_env("TESTRAIL_API_USER")
        self.TESTRAIL_API_KEY = _str_env("TESTRAIL_API_KEY")
        self.TESTRAIL_PROJECT_ID = _int_env("TESTRAIL_PROJECT_ID", 19)

        # Jira
        self.JIRA_URL = _str_env("JIRA_URL", "https://fugro.atlassian.net")
        self.JIRA_EMAIL = _str_env("JIRA_EMAIL")
        self.JIRA_API_TOKEN = _str_env("JIRA_API_TOKEN")
        self.JIRA_EPIC_KEY = _str_env("JIRA_EPIC_KEY", "OPR-3401")

        # Local stores
        self.CACHE_DB_PATH = _path_env("CACHE_DB_PATH", "data/testrail_cases.db")
        self.DASHBOARD_DB_PATH = _path_env("DASHBOARD_DB_PATH", "data/testrail_dashboard.db")

        # Dashboard
        self.DASHBOARD_HISTORY_LIMIT = max(1, _int_env("DASHBOARD_HISTORY_LIMIT", 12))
        self.EXECUTION_LOG_LIMIT = max(1, _int_env("EXECUTION_LOG_LIMIT", 50))
        self.EXECUTION_LOG_MAX_LIMIT = max(1, _int_env("EXECUTION_LOG_MAX_LIMIT", 500))

        # Monthly job
        self.MONTHLY_JOB_WORKERS = max(1, _int_env("MONTHLY_JOB_WORKERS", 1))
        self.MONTHLY_JOB_HISTORY = max(5, _int_env("MONTHLY_JOB_HISTORY", 20))
        return self

    # Reports pinned on the dashboard for quick access
    FIXED_REPORTS = [
        {"id": 3, "name": "Ivision Automated Report", "project_id": 19, "project_name": "Ivision"},
        {"id": 4, "name": "Fastlane Automated Report", "project_id": 21, "project_name": "Fastlane"},
    ]

    def missing_credentials(self) -> list[str]:
        """Names of every credential the monthly report needs but does not have."""
        required = {
            "TESTRAIL_API_USER": self.TESTRAIL_API_USER,
            "TESTRAIL_API_KEY": self.TESTRAIL_API_KEY,
            "JIRA_EMAIL": self.JIRA_EMAIL,
            "JIRA_API_TOKEN": self.JIRA_API_TOKEN,
        }
        return [name for name, value in required.items() if not value]


load_env_file()

# Global configuration instance
config = Config()
