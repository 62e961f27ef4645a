import pytest

from jira_client import JiraClient, search_issues
from testrail_client import ConfigError


class FakeResponse:
    status_code = 200
    text = ""

    def __init__(self, payload):
        self._payload = payload

    def json(self):
        return self._payload


class RecordingSession:
    def __init__(self, pages):
        self._pages = iter(pages)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, dict(params or {})))
        return FakeResponse(next(self._pages))


def _issues(*statuses):
    return [{"key": f"OPR-{i}", "fields": {"status": {"name": s}}} for i, s in enumerate(statuses)]


def test_search_issues_follows_start_at_pagination(monkeypatch):
    monkeypatch.setattr("time.sleep", lambda _x: None)
    session = RecordingSession(
        [
            {"startAt": 0, "total": 3, "issues": _issues("Done", "To Do")},
            {"startAt": 2, "total": 3, "issues": _issues("PO Review")},
        ]
    )

    issues, total = search_issues(session, "https://jira.example", '"Epic Link" = "OPR-3401"', page_size=2)

    assert total == 3
    assert len(issues) == 3
    assert session.requests[0][0] == "https://jira.example/rest/api/2/search"
    assert [params["startAt"] for _url, params in session.requests] == [0, 2]
    assert session.requests[0][1]["jql"] == '"Epic Link" = "OPR-3401"'


def test_search_issues_stops_on_empty_page(monkeypatch):
    session = RecordingSession([{"startAt": 0, "total": 5, "issues": []}])

    issues, total = search_issues(session, "https://jira.example", "project = OPR")

    assert issues == []
    assert total == 5
    assert len(session.requests) == 1


def test_from_env_names_missing_variables(monkeypatch):
    monkeypatch.delenv("JIRA_EMAIL", raising=False)
    monkeypatch.delenv("JIRA_API_TOKEN", raising=False)

    with pytest.raises(ConfigError, match="JIRA_EMAIL, JIRA_API_TOKEN"):
        JiraClient.from_env()


def test_get_epic_issues_uses_epic_link_jql(monkeypatch):
    seen = {}

    def fake_search(session, base_url, jql, **kwargs):
        seen["jql"] = jql
        return [], 0

    monkeypatch.setattr("jira_client.search_issues", fake_search)
    client = JiraClient(base_url="https://jira.example", auth=("a@b.c", "t"))

    assert client.get_epic_issues("OPR-3401") == ([], 0)
    assert seen["jql"] == '"Epic Link" = "OPR-3401"'
