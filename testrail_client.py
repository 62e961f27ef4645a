import contextlib
import contextvars
import os
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


DEFAULT_HTTP_TIMEOUT = _env_float("TESTRAIL_HTTP_TIMEOUT", 20.0)
DEFAULT_HTTP_RETRIES = max(1, _env_int("TESTRAIL_HTTP_RETRIES", 3))
DEFAULT_HTTP_BACKOFF = max(0.0, _env_float("TESTRAIL_HTTP_BACKOFF", 1.0))
DEFAULT_CASES_PAGE_SIZE = max(1, _env_int("TESTRAIL_CASES_PAGE_SIZE", 100))


# --- Telemetry helpers ---
_telemetry_ctx: contextvars.ContextVar[dict | None] = contextvars.ContextVar(
    "testrail_viewer_telemetry", default=None
)


@contextlib.contextmanager
def capture_telemetry():
    """Capture API call telemetry for the current context."""
    data = {"api_calls": []}
    token = _telemetry_ctx.set(data)
    try:
        yield data
    finally:
        _telemetry_ctx.reset(token)


def record_api_call(
    kind: str, endpoint: str, elapsed_ms: float, status: str, error: str | None = None
):
    telemetry = _telemetry_ctx.get()
    if telemetry is None:
        return
    telemetry.setdefault("api_calls", []).append(
        {
            "kind": kind,
            "endpoint": endpoint,
            "elapsed_ms": round(elapsed_ms, 2),
            "status": status,
            "error": error,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


class ConfigError(Exception):
    """Raised when required configuration (credentials, base URL) is missing."""


class AuthConfigError(ConfigError):
    """Raised when the TestRail base URL or user/key pair is not configured."""

    def __init__(self, missing: list[str]):
        super().__init__(f"TestRail credentials/config missing: {', '.join(missing)}")
        self.missing = missing


class TransientRemoteError(Exception):
    """Non-2xx response or network failure talking to a remote service.

    The message is the response body (or the network error text) so callers
    see exactly what the remote side reported.
    """

    def __init__(self, message: str, *, endpoint: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


def linear_backoff(attempt: int, base: float) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
    return base * attempt


def request_with_retry(
    session: requests.Session,
    url: str,
    endpoint: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
    label: str = "fetchFromTestrail",
):
    """GET ``url`` and decode JSON, retrying any failure with linear backoff.

    Waits ``backoff * attempt`` seconds between attempts and re-raises the
    last error unchanged once ``max_attempts`` is exhausted.
    """
    attempts = max(1, max_attempts or DEFAULT_HTTP_RETRIES)
    base_delay = DEFAULT_HTTP_BACKOFF if backoff is None else backoff
    for attempt in range(1, attempts + 1):
        start = time.perf_counter()
        try:
            try:
                if params:
                    r = session.get(url, params=params, timeout=timeout or DEFAULT_HTTP_TIMEOUT)
                else:
                    r = session.get(url, timeout=timeout or DEFAULT_HTTP_TIMEOUT)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                raise TransientRemoteError(str(exc), endpoint=endpoint) from exc
            if not 200 <= r.status_code < 300:
                raise TransientRemoteError(r.text, endpoint=endpoint, status_code=r.status_code)
            data = r.json()
            record_api_call("GET", endpoint, (time.perf_counter() - start) * 1000.0, "ok")
            return data
        except Exception as exc:
            record_api_call(
                "GET",
                endpoint,
                (time.perf_counter() - start) * 1000.0,
                "error",
                str(exc),
            )
            if attempt == attempts:
                print(
                    f"[FAIL] {label}({endpoint}) failed after {attempts} attempts.",
                    file=sys.stderr,
                    flush=True,
                )
                raise
            print(
                f"[RETRY] Error on {label}({endpoint}), attempt {attempt}: {exc}",
                file=sys.stderr,
                flush=True,
            )
            time.sleep(linear_backoff(attempt, base_delay))


def api_get(
    session: requests.Session,
    base_url: str,
    endpoint: str,
    *,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
):
    """GET a TestRail API v2 endpoint with retry for transient errors."""
    url = f"{base_url}/index.php?/api/v2/{endpoint}"
    return request_with_retry(
        session,
        url,
        endpoint,
        timeout=timeout,
        max_attempts=max_attempts,
        backoff=backoff,
    )


def _unwrap(data: Any, key: str) -> list:
    """Accept both bare lists and TestRail's paginated ``{key: [...]}`` envelopes."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        items = data.get(key)
        if isinstance(items, list):
            return items
    return []


def get_projects(
    session,
    base_url,
    *,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
) -> list:
    data = api_get(
        session,
        base_url,
        "get_projects",
        timeout=timeout,
        max_attempts=max_attempts,
        backoff=backoff,
    )
    if not isinstance(data, (list, dict)) or (
        isinstance(data, dict) and not isinstance(data.get("projects"), list)
    ):
        raise TransientRemoteError(
            "Failed to fetch projects. Check your TestRail credentials.",
            endpoint="get_projects",
        )
    return _unwrap(data, "projects")


def get_suites(
    session,
    base_url,
    project_id: int,
    *,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
) -> list:
    data = api_get(
        session,
        base_url,
        f"get_suites/{project_id}",
        timeout=timeout,
        max_attempts=max_attempts,
        backoff=backoff,
    )
    return _unwrap(data, "suites")


def get_sections(
    session,
    base_url,
    project_id: int,
    suite_id: int,
    *,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
) -> list:
    sections: list = []
    offset, limit = 0, 250
    while True:
        data = api_get(
            session,
            base_url,
            f"get_sections/{project_id}&suite_id={suite_id}&limit={limit}&offset={offset}",
            timeout=timeout,
            max_attempts=max_attempts,
            backoff=backoff,
        )
        items = _unwrap(data, "sections")
        sections.extend(items)
        # Bare lists are never paginated
        if isinstance(data, list) or len(items) < limit:
            break
        offset += limit
    return sections


def get_cases(
    session,
    base_url,
    project_id: int,
    *,
    suite_id: int | None = None,
    section_id: int | None = None,
    page_size: int | None = None,
    timeout: float | None = None,
    max_attempts: int | None = None,
    backoff: float | None = None,
) -> list:
    """Return list of cases for a project (optionally filtered by suite/section)."""
    cases: list = []
    offset, limit = 0, max(1, page_size or DEFAULT_CASES_PAGE_SIZE)
    while True:
        qs = []
        if suite_id is not None:
            qs.append(f"suite_id={suite_id}")
        if section_id is not None:
            qs.append(f"section_id={section_id}")
        qs += [f"limit={limit}", f"offset={offset}"]
        endpoint = f"get_cases/{project_id}&" + "&".join(qs)
        data = api_get(
            session,
            base_url,
            endpoint,
            timeout=timeout,
            max_attempts=max_attempts,
            backoff=backoff,
        )
        items = _unwrap(data, "cases")
        cases.extend(items)
        if isinstance(data, list) or len(items) < limit:
            break
        offset += limit
    return cases


@dataclass(slots=True)
class TestRailClient:
    """Centralized TestRail client with shared timeout/retry config."""

    __test__ = False

    base_url: str
    auth: tuple[str, str]
    timeout: float = DEFAULT_HTTP_TIMEOUT
    max_attempts: int = DEFAULT_HTTP_RETRIES
    backoff: float = DEFAULT_HTTP_BACKOFF
    page_size: int = DEFAULT_CASES_PAGE_SIZE

    @classmethod
    def from_env(cls) -> "TestRailClient":
        """Build a client from TESTRAIL_URL / TESTRAIL_API_USER / TESTRAIL_API_KEY."""
        required = ("TESTRAIL_URL", "TESTRAIL_API_USER", "TESTRAIL_API_KEY")
        values = {name: (os.getenv(name) or "").strip() for name in required}
        missing = [name for name in required if not values[name]]
        if missing:
            raise AuthConfigError(missing)
        return cls(
            base_url=values["TESTRAIL_URL"].rstrip("/"),
            auth=(values["TESTRAIL_API_USER"], values["TESTRAIL_API_KEY"]),
        )

    def make_session(self) -> requests.Session:
        sess = requests.Session()
        sess.auth = self.auth
        sess.headers["Content-Type"] = "application/json"
        return sess

    def _get(self, endpoint: str):
        with self.make_session() as session:
            return api_get(
                session,
                self.base_url,
                endpoint,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def get_projects(self) -> list:
        with self.make_session() as session:
            return get_projects(
                session,
                self.base_url,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def get_project(self, project_id: int):
        return self._get(f"get_project/{project_id}")

    def get_suites(self, project_id: int) -> list:
        with self.make_session() as session:
            return get_suites(
                session,
                self.base_url,
                project_id,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def get_sections(self, project_id: int, suite_id: int) -> list:
        with self.make_session() as session:
            return get_sections(
                session,
                self.base_url,
                project_id,
                suite_id,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def get_cases(
        self,
        project_id: int,
        suite_id: int | None = None,
        section_id: int | None = None,
    ) -> list:
        with self.make_session() as session:
            return get_cases(
                session,
                self.base_url,
                project_id,
                suite_id=suite_id,
                section_id=section_id,
                page_size=self.page_size,
                timeout=self.timeout,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
            )

    def get_case(self, case_id: int):
        return self._get(f"get_case/{case_id}")

    def get_reports(self, project_id: int):
        return self._get(f"get_reports/{project_id}")

    def run_report(self, report_id: int):
        return self._get(f"run_report/{report_id}")
