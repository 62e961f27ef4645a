import os

from app.core.config import Config, load_env_file


def test_env_file_values_override_the_environment(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("TESTRAIL_PROJECT_ID=21\nJIRA_EPIC_KEY=OPR-9\n")
    monkeypatch.setenv("TESTRAIL_PROJECT_ID", "19")
    monkeypatch.setenv("JIRA_EPIC_KEY", "OPR-3401")

    assert load_env_file(env_file) == env_file

    cfg = Config()
    assert cfg.TESTRAIL_PROJECT_ID == 21
    assert cfg.JIRA_EPIC_KEY == "OPR-9"


def test_env_file_location_can_be_overridden(tmp_path, monkeypatch):
    env_file = tmp_path / "settings.env"
    env_file.write_text("DASHBOARD_HISTORY_LIMIT=6\n")
    monkeypatch.setenv("ENV_FILE", str(env_file))
    monkeypatch.setenv("DASHBOARD_HISTORY_LIMIT", "12")

    assert load_env_file() == env_file
    assert os.environ["DASHBOARD_HISTORY_LIMIT"] == "6"


def test_missing_env_file_is_ignored(tmp_path):
    assert load_env_file(tmp_path / "absent.env") is None


def test_missing_credentials_lists_every_blank_value(monkeypatch):
    for name in ("TESTRAIL_API_USER", "JIRA_EMAIL"):
        monkeypatch.setenv(name, "  ")
    monkeypatch.setenv("TESTRAIL_API_KEY", "key")
    monkeypatch.setenv("JIRA_API_TOKEN", "token")

    assert Config().missing_credentials() == ["TESTRAIL_API_USER", "JIRA_EMAIL"]
