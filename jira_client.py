import os
from dataclasses import dataclass
from typing import Any

import requests

from testrail_client import (
    DEFAULT_HTTP_BACKOFF,
    DEFAULT_HTTP_RETRIES,
    DEFAULT_HTTP_TIMEOUT,
    ConfigError,
    request_with_retry,
)

DEFAULT_SEARCH_PAGE_SIZE = 100


def jira_get(
    session: requests.Session,
    base_url: str,
    path: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
):
    """GET a Jira REST v2 resource with the shared retry policy."""
    url = f"{base_url}/rest/api/2/{path}"
    return request_with_retry(
        session,
        url,
        path,
        params=params,
        timeout=timeout,
        max_attempts=max_attempts,
        backoff=backoff,
        label="fetchFromJira",
    )


def search_issues(
    session,
    base_url,
    jql: str,
    *,
    fields: str = "summary,status,issuetype",
    page_size: int = DEFAULT_SEARCH_PAGE_SIZE,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
) -> tuple[list, int]:
    """Return ``(issues, total)`` for a JQL query, following startAt pagination."""
    issues: list = []
    start_at = 0
    total = 0
    while True:
        data = jira_get(
            session,
            base_url,
            "search",
            params={
                "jql": jql,
                "startAt": start_at,
                "maxResults": page_size,
                "fields": fields,
            },
            timeout=timeout,
            max_attempts=max_attempts,
            backoff=backoff,
        )
        if not isinstance(data, dict):
            break
        batch = data.get("issues") or []
        issues.extend(batch)
        total = int(data.get("total") or 0)
        start_at += len(batch)
        if not batch or start_at >= total:
            break
    return issues, max(total, len(issues))


@dataclass(slots=True)
class JiraClient:
    """Minimal Jira REST client for epic progress lookups."""

    base_url: str
    auth: tuple[str, str]
    timeout: float = DEFAULT_HTTP_TIMEOUT
    max_attempts: int = DEFAULT_HTTP_RETRIES
    backoff: float = DEFAULT_HTTP_BACKOFF

    @classmethod
    def from_env(cls) -> "JiraClient":
        required = ("JIRA_EMAIL", "JIRA_API_TOKEN")
        values = {name: (os.getenv(name) or "").strip() for name in required}
        missing = [name for name in required if not values[name]]
        if missing:
            raise ConfigError(f"Missing environment variables: {', '.join(missing)}")
        base_url = (os.getenv("JIRA_URL") or "https://fugro.atlassian.net").strip().rstrip("/")
        return cls(base_url=base_url, auth=(values["JIRA_EMAIL"], values["JIRA_API_TOKEN"]))

    def make_session(self) -> requests.Session:
        sess = requests.Session()
        sess.auth = self.auth
        sess.headers["Accept"] = "application/json"
        return sess

    def get_issue(self, key: str):
        with self.make_session() as session:
            return jira_get(
                session,
                self.base_url,
                f"issue/{key}",
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def search_issues(self, jql: str, *, fields: str = "summary,status,issuetype") -> tuple[list, int]:
        with self.make_session() as session:
            return search_issues(
                session,
                self.base_url,
                jql,
                fields=fields,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def get_epic_issues(self, epic_key: str) -> tuple[list, int]:
        """Stories linked to ``epic_key``."""
        return self.search_issues(f'"Epic Link" = "{epic_key}"')
