"""
Shared pytest fixtures for analysis-spine tests.

This module provides:
- ``FakeServices``: an ``httpx.MockTransport`` handler standing in for
  every remote service (connection, validation, pipeline, standardize,
  changeset, feedback, run-result listing)
- Settings with zero poll/retry delays and a temporary state file
- Sample run payloads

Usage:
    def test_something(fake, session):
        fake.runs = ["r_1"]
        outcome = asyncio.run(session.analyze(...))
        assert fake.calls == [...]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from analysis_spine.cache.store import ResultStore
from analysis_spine.client.remote import RemoteJobClient
from analysis_spine.core.models import AnalysisRun, Credentials, sort_versions
from analysis_spine.core.settings import AnalysisSpineSettings, clear_settings_cache
from analysis_spine.orchestration.session import AnalysisSession

APP = "http://app.test/api"
VALIDATION = "http://validation.test/api/v1"
PIPELINE = "http://pipeline.test/api/v1"
FEEDBACK = "http://feedback.test/api/v1"

_PREFIXES = {
    "app.test": "/api",
    "validation.test": "/api/v1",
    "pipeline.test": "/api/v1",
    "feedback.test": "/api/v1",
}


# =============================================================================
# Sample data
# =============================================================================


def make_run_payload(run_id: str = "r_1", task_id: str = "task-1") -> dict[str, Any]:
    """A standardized run with three segments of two questions each."""

    def segment(index: int, name: str) -> dict[str, Any]:
        return {
            "segmentId": f"seg-{index}",
            "name": name,
            "analysis": {"D1": f"{name} size", "D2": "growth", "D3": "churn", "D4": "margin"},
            "valueQuestions": [
                {"id": f"q{index}a", "question": f"How large is {name}?", "sql": "select 1"},
                {"id": f"q{index}b", "question": f"How fast is {name} growing?"},
            ],
        }

    return {
        "run_id": run_id,
        "task_id": task_id,
        "anchIndex": {"metric": "revenue"},
        "segments": [segment(1, "Enterprise"), segment(2, "SMB"), segment(3, "Consumer")],
    }


def make_run(run_id: str = "r_1", task_id: str = "task-1") -> AnalysisRun:
    return AnalysisRun.from_wire(make_run_payload(run_id, task_id))


# =============================================================================
# Fake remote services
# =============================================================================


class FakeServices:
    """Scriptable stand-in for the remote services.

    Every request is recorded in ``calls`` as ``"METHOD /path"`` with the
    service prefix stripped, its JSON body in ``bodies`` and its query
    string in ``params``.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.bodies: list[Any] = []
        self.params: list[dict[str, str]] = []

        self.connection: dict[str, Any] = {"success": True}
        self.connection_record: dict[str, Any] = {"success": True, "record": {"id": "conn-1"}}
        self.validation: dict[str, Any] = {
            "trace_id": "trace-1",
            "data_structure": {"tables": ["orders"], "database_note": "2 tables found"},
            "validation_report": {"summary": {"status": "usable", "note": "looks fine"}},
        }
        self.job_id = "job-1"
        self.job_statuses: list[dict[str, Any]] = [
            {"status": "running", "progress": 25},
            {"status": "running", "progress": 75},
            {
                "status": "completed",
                "progress": 100,
                "run_results": {"task_id": "task-1", "raw": True},
            },
        ]
        self.standardized: dict[str, Any] = make_run_payload()
        self.standardize_response: httpx.Response | None = None
        self.changeset: dict[str, Any] = {"status": "ok", "run_results": {"raw": "edited"}}
        self.feedback: dict[str, Any] = {"status": "ok", "run_results": {"raw": "feedback"}}
        self.runs: list[str] = []
        self.listings: list[list[str]] = []
        self.run_results: dict[str, dict[str, Any]] = {}
        self.errors: dict[str, httpx.Response] = {}

    # -- helpers ---------------------------------------------------------------
    def count(self, fragment: str) -> int:
        return sum(1 for call in self.calls if fragment in call)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    # -- transport -------------------------------------------------------------
    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(_PREFIXES.get(request.url.host, ""))
        call = f"{request.method} {path}"
        self.calls.append(call)
        self.bodies.append(json.loads(request.content) if request.content else None)
        self.params.append(dict(request.url.params))

        if call in self.errors:
            return self.errors[call]

        if call == "POST /validate-connection":
            return httpx.Response(200, json=self.connection)
        if call == "POST /data-connections":
            return httpx.Response(200, json=self.connection_record)
        if call == "POST /validate":
            return httpx.Response(200, json=self.validation)
        if call == "POST /pipeline/run":
            return httpx.Response(200, json={"job_id": self.job_id})
        if call.startswith("GET /runs/job/"):
            status = self.job_statuses.pop(0) if len(self.job_statuses) > 1 else self.job_statuses[0]
            return httpx.Response(200, json=status)
        if call == "POST /standal_sql":
            if self.standardize_response is not None:
                return self.standardize_response
            return httpx.Response(200, json={"run_results": {"run_result": self.standardized}})
        if call == "POST /user-feedback/changeset":
            return httpx.Response(200, json=self.changeset)
        if call == "POST /feedback-mrf/process":
            return httpx.Response(200, json=self.feedback)
        if call == "GET /run-results":
            runs = self.listings.pop(0) if self.listings else self.runs
            if not self.listings:
                self.runs = runs
            return httpx.Response(200, json={"data": [{"run_id": run_id} for run_id in runs]})
        if call.startswith("GET /run-result/"):
            run_id = path.rsplit("/", 1)[1]
            return httpx.Response(200, json={"data": self.run_results.get(run_id)})
        return httpx.Response(404, json={"error": f"no route for {call}"})


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_settings_cache():
    """Reset the cached settings around each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path: Path) -> AnalysisSpineSettings:
    return AnalysisSpineSettings(
        app_api_url=APP,
        validation_api_url=VALIDATION,
        pipeline_api_url=PIPELINE,
        feedback_api_url=FEEDBACK,
        poll_interval_seconds=0,
        poll_max_seconds=5,
        version_initial_delay_seconds=0,
        version_retry_delay_seconds=0,
        state_path=tmp_path / "state.json",
    )


@pytest.fixture
def fake() -> FakeServices:
    return FakeServices()


@pytest.fixture
def client(settings, fake) -> RemoteJobClient:
    return RemoteJobClient(settings, http_client=fake.client())


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(project_id="proj-1", access_token="token-1")


@pytest.fixture
def store() -> ResultStore:
    return ResultStore(user_id="user-1")


@pytest.fixture
def loaded_store() -> ResultStore:
    """A store holding run ``r_1`` of ``task-1`` with one listed version."""
    store = ResultStore(user_id="user-1")
    store.replace(make_run())
    store.set_versions(sort_versions(["r_1"]))
    return store


@pytest.fixture
def session(settings, fake, store) -> AnalysisSession:
    return AnalysisSession(settings, store=store, http_client=fake.client())


@pytest.fixture
def run_factory():
    return make_run


@pytest.fixture
def run_payload_factory():
    return make_run_payload
