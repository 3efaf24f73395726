"""Remote Job Client - request/response wrapper around the analysis services.

Each method is one awaited HTTP call with a defined failure contract:
transport failures, non-2xx responses and unusable bodies are converted
into the error kind that belongs to the calling stage, with the httpx
exception chained as ``cause``. The client holds no state beyond its
``httpx.AsyncClient`` and never caches.

Services::

    app_api_url         POST /validate-connection
                        POST /data-connections
                        GET  /run-results?user_id&task_id
                        GET  /run-result/{runId}?user_id&task_id
    validation_api_url  POST /validate
    pipeline_api_url    POST /pipeline/run
                        GET  /runs/job/{jobId}
    feedback_api_url    POST /standal_sql
                        POST /user-feedback/changeset
                        POST /feedback-mrf/process
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import httpx

from analysis_spine.changeset.builder import ChangesetEntry, ensure_submittable
from analysis_spine.core.errors import (
    AnalysisSpineError,
    ConnectionValidationError,
    DataValidationError,
    MutationIgnored,
    RunError,
    StandardizationError,
    VersionLookupError,
)
from analysis_spine.core.logging import get_logger
from analysis_spine.core.models import (
    AnalysisRun,
    Credentials,
    DataValidationReport,
    MutationResponse,
)
from analysis_spine.core.settings import AnalysisSpineSettings
from analysis_spine.execution.timeout import TimeoutExpired, with_deadline_async

logger = get_logger(__name__)


def _error_field(response: httpx.Response) -> str | None:
    """Best-effort extraction of the ``error`` field from an error body."""
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:200] or None
    if isinstance(payload, dict):
        return payload.get("error") or payload.get("detail")
    return None


class RemoteJobClient:
    """Async client for the connection, validation, pipeline and mutation services."""

    def __init__(
        self,
        settings: AnalysisSpineSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        self._owns_client = http_client is None

    async def __aenter__(self) -> RemoteJobClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _url(self, base: str, path: str) -> str:
        return f"{base.rstrip('/')}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        url: str,
        error_cls: type[AnalysisSpineError],
        *,
        failure: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send a request and return its JSON object body.

        Any transport error, non-2xx status or non-object body is raised
        as ``error_cls`` with ``url``/``http_status`` in its context.
        """
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise error_cls(f"{failure}: {exc}", cause=exc).with_context(url=url) from exc

        if response.is_error:
            detail = _error_field(response) or f"{failure}: {response.status_code}"
            raise error_cls(detail).with_context(url=url, http_status=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise error_cls(f"{failure}: invalid JSON response", cause=exc).with_context(
                url=url, http_status=response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise error_cls(f"{failure}: unexpected response shape").with_context(url=url)
        return payload

    # ------------------------------------------------------------------
    # connection
    # ------------------------------------------------------------------
    async def validate_connection(self, credentials: Credentials) -> None:
        """Check credentials upstream; blank credentials fail without a call."""
        if credentials.is_blank:
            raise ConnectionValidationError("Project ID and Access Token are required")

        url = self._url(self._settings.app_api_url, "/validate-connection")
        payload = await self._request(
            "POST",
            url,
            ConnectionValidationError,
            failure="Connection validation failed",
            json=credentials.to_wire(),
        )
        if not payload.get("success"):
            raise ConnectionValidationError(
                payload.get("error") or ConnectionValidationError.guidance
            ).with_context(url=url)

    async def register_connection(self, user_id: str, credentials: Credentials) -> str | None:
        """Record the data connection and return its id."""
        url = self._url(self._settings.app_api_url, "/data-connections")
        payload = await self._request(
            "POST",
            url,
            ConnectionValidationError,
            failure="Saving data connection failed",
            json={
                "userId": user_id,
                "connectionInfo": {
                    "project_id": credentials.project_id,
                    "access_token": credentials.access_token.get_secret_value(),
                },
                "connectionSource": "supabase",
                "status": "active",
            },
        )
        if not payload.get("success"):
            raise ConnectionValidationError(
                payload.get("error") or "Data connections failed"
            ).with_context(url=url)
        record = payload.get("record") or {}
        return record.get("id")

    # ------------------------------------------------------------------
    # data validation
    # ------------------------------------------------------------------
    async def validate_data(
        self,
        credentials: Credentials,
        connection_id: str,
        *,
        user_id: str,
    ) -> DataValidationReport:
        """Fetch the validator's report.

        Transport failures raise ``DataValidationError``; the semantic
        ``unusable`` verdict is left on the report for
        ``DataValidationReport.ensure_usable``.
        """
        url = self._url(self._settings.validation_api_url, "/validate")
        payload = await self._request(
            "POST",
            url,
            DataValidationError,
            failure="Data validation failed",
            json={
                "user_id": user_id,
                "connection_id": connection_id,
                "project_id": credentials.project_id,
                "access_token": credentials.access_token.get_secret_value(),
            },
        )
        return DataValidationReport.from_payload(payload)

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------
    async def run_pipeline(
        self,
        *,
        user_id: str,
        trace_id: str | None,
        connection_id: str,
        data_structure: dict[str, Any],
    ) -> str:
        """Start the pipeline job and return its id."""
        url = self._url(self._settings.pipeline_api_url, "/pipeline/run")
        payload = await self._request(
            "POST",
            url,
            RunError,
            failure="Pipeline run failed",
            json={
                "user_id": user_id,
                "trace_id": trace_id,
                "connection_id": connection_id,
                "data_structure": data_structure,
            },
        )
        job_id = payload.get("job_id")
        if not job_id:
            raise RunError("Pipeline run returned no job_id").with_context(url=url, trace_id=trace_id)
        return str(job_id)

    async def get_job(self, job_id: str) -> dict[str, Any]:
        """One status query for ``job_id``."""
        url = self._url(self._settings.pipeline_api_url, f"/runs/job/{job_id}")
        return await self._request("GET", url, RunError, failure="Job status query failed")

    # ------------------------------------------------------------------
    # standardize
    # ------------------------------------------------------------------
    async def standardize(self, run_results: dict[str, Any]) -> AnalysisRun:
        """Transform raw run results into the display shape under a hard deadline."""
        url = self._url(self._settings.feedback_api_url, "/standal_sql")
        seconds = self._settings.standardize_timeout_seconds
        try:
            async with with_deadline_async(seconds, operation="standardize"):
                response = await self._client.post(
                    url,
                    json={"run_results": run_results},
                    timeout=seconds,
                )
        except TimeoutExpired as exc:
            raise StandardizationError(str(exc), cause=exc).with_context(
                url=url, deadline_seconds=exc.seconds
            ) from exc
        except httpx.TimeoutException as exc:
            raise StandardizationError(
                f"Operation 'standardize' timed out after {seconds}s", cause=exc
            ).with_context(url=url) from exc
        except httpx.HTTPError as exc:
            raise StandardizationError(f"standal_sql request failed: {exc}", cause=exc).with_context(
                url=url
            ) from exc

        try:
            body = json.loads(response.text)
        except ValueError as exc:
            raise StandardizationError(
                "Invalid JSON response from standal_sql", cause=exc
            ).with_context(url=url, http_status=response.status_code) from exc

        if response.is_error:
            if isinstance(body, str):
                message = body[:200]
            elif isinstance(body, dict) and body.get("error"):
                message = str(body["error"])
            else:
                message = f"standal_sql HTTP {response.status_code}"
            raise StandardizationError(message).with_context(url=url, http_status=response.status_code)

        run_result = None
        if isinstance(body, dict):
            run_result = (body.get("run_results") or {}).get("run_result")
        if not isinstance(run_result, dict):
            raise StandardizationError("standal_sql returned no run_result").with_context(url=url)

        task_id = run_results.get("task_id")
        run = AnalysisRun.from_wire(run_result)
        if run.task_id is None and task_id:
            run = run.with_ids(task_id=str(task_id))
        return run

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    async def submit_changeset(
        self,
        *,
        feedback_text: str,
        base_run_id: str,
        user_id: str,
        task_id: str,
        entries: Sequence[ChangesetEntry],
    ) -> MutationResponse:
        """Submit changeset entries; selectors are serialised (and checked) here."""
        changeset = ensure_submittable(entries)
        url = self._url(self._settings.feedback_api_url, "/user-feedback/changeset")
        payload = await self._request(
            "POST",
            url,
            RunError,
            failure="Changeset submission failed",
            json={
                "feedback_text": feedback_text,
                "base_run_id": base_run_id,
                "user_id": user_id,
                "task_id": task_id,
                "changeset": changeset,
            },
        )
        response = MutationResponse.from_payload(payload)
        if response.ignored:
            raise MutationIgnored(MutationIgnored.guidance).with_context(
                url=url, run_id=base_run_id, task_id=task_id
            )
        return response

    async def process_feedback(
        self,
        *,
        feedback_text: str,
        base_run_id: str,
        user_id: str,
        task_id: str,
        connection_id: str | None,
    ) -> MutationResponse:
        """Free-text feedback; ``ignored`` raises, other statuses are returned."""
        url = self._url(self._settings.feedback_api_url, "/feedback-mrf/process")
        payload = await self._request(
            "POST",
            url,
            RunError,
            failure="Feedback processing failed",
            json={
                "feedback_text": feedback_text,
                "base_run_id": base_run_id,
                "policy": "standard",
                "user_id": user_id,
                "task_id": task_id,
                "connection_id": connection_id or "",
            },
        )
        response = MutationResponse.from_payload(payload)
        if response.ignored:
            raise MutationIgnored(MutationIgnored.guidance).with_context(
                url=url, run_id=base_run_id, task_id=task_id
            )
        return response

    # ------------------------------------------------------------------
    # versions
    # ------------------------------------------------------------------
    async def list_runs(self, *, user_id: str, task_id: str) -> list[dict[str, Any]]:
        url = self._url(self._settings.app_api_url, "/run-results")
        payload = await self._request(
            "GET",
            url,
            VersionLookupError,
            failure="Failed to fetch versions",
            params={"user_id": user_id, "task_id": task_id},
        )
        data = payload.get("data") or []
        return [item for item in data if isinstance(item, dict)]

    async def get_run_result(self, run_id: str, *, user_id: str, task_id: str) -> dict[str, Any] | None:
        url = self._url(self._settings.app_api_url, f"/run-result/{run_id}")
        payload = await self._request(
            "GET",
            url,
            VersionLookupError,
            failure="Failed to fetch version data",
            params={"user_id": user_id, "task_id": task_id},
        )
        data = payload.get("data")
        return data if isinstance(data, dict) else None


__all__ = ["RemoteJobClient"]
