"""Stage Sequencer - drives one analysis saga from credentials to a cached run.

The sequencer runs the five stages strictly in order::

    CONNECTING        validate credentials, record the data connection
    READING_SCHEMA    fetch the validator's report
    VALIDATING_DATA   check the report's verdict
    RUNNING_PIPELINE  start the job and poll it, projecting job progress
    EVALUATING        standardize the raw result under its own deadline

The first failure stops the saga. The error is classified by the stage
that raised it (anything unexpected is wrapped into that stage's error
kind) and kept on the outcome as ``Failed(stage, error)``; nothing is
retried. On success the run starts a new task in the store (its task id
replaces any earlier one) and the version list is refreshed. A refresh
failure at that point only marks the outcome ``versions_stale``.

Example::

    sequencer = StageSequencer(client, store, reconciler, settings=settings)
    outcome = await sequencer.run(credentials, user_id="u-1")
    if outcome.succeeded:
        print(outcome.versions[0].display)
    else:
        print(outcome.failure.stage, outcome.failure.message)
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from analysis_spine.cache.store import ResultStore
from analysis_spine.client.remote import RemoteJobClient
from analysis_spine.core.errors import AnalysisSpineError, RunError, describe
from analysis_spine.core.logging import LogContext, get_logger
from analysis_spine.core.models import AnalysisRun, Credentials, DataValidationReport, JobResult
from analysis_spine.core.settings import AnalysisSpineSettings
from analysis_spine.execution.events import ProgressChannel, ProgressProjector, utcnow
from analysis_spine.execution.poller import JobPoller
from analysis_spine.execution.retry import CancellationToken
from analysis_spine.orchestration.stages import (
    STAGE_ORDER,
    SagaOutcome,
    SagaState,
    Stage,
    StageFailure,
)
from analysis_spine.versions.reconciler import VersionReconciler

logger = get_logger(__name__)


@dataclass
class _SagaData:
    """Values handed from one stage to the next."""

    credentials: Credentials
    user_id: str
    connection_id: str = ""
    report: DataValidationReport | None = None
    job: JobResult | None = None
    run: AnalysisRun | None = None


class StageSequencer:
    """Run the analysis saga against one ``ResultStore``."""

    def __init__(
        self,
        client: RemoteJobClient,
        store: ResultStore,
        reconciler: VersionReconciler,
        *,
        settings: AnalysisSpineSettings,
        projector: ProgressProjector | None = None,
        poller: JobPoller | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._reconciler = reconciler
        self._settings = settings
        self._token = token or CancellationToken()
        self.projector = projector or ProgressProjector()
        self._poller = poller or JobPoller(
            client.get_job,
            interval=settings.poll_interval_seconds,
            max_duration=settings.poll_max_seconds,
            token=self._token,
        )
        self.state = SagaState.IDLE
        self.transitions: list[SagaState] = [SagaState.IDLE]

    @property
    def progress(self) -> float:
        return self.projector.progress

    def _transition(self, state: SagaState) -> None:
        self.state = state
        self.transitions.append(state)

    def _steps(self) -> dict[Stage, Callable[[_SagaData], Awaitable[None]]]:
        return {
            Stage.CONNECTING: self._connect,
            Stage.READING_SCHEMA: self._read_schema,
            Stage.VALIDATING_DATA: self._validate_data,
            Stage.RUNNING_PIPELINE: self._run_pipeline,
            Stage.EVALUATING: self._evaluate,
        }

    async def run(self, credentials: Credentials, *, user_id: str) -> SagaOutcome:
        """Execute the saga. Raises ``SagaInProgressError`` if the store is busy."""
        async with self._store.activity("analysis"):
            saga_id = uuid.uuid4().hex[:12]
            self.projector.reset()
            self.state = SagaState.IDLE
            self.transitions = [SagaState.IDLE]

            outcome = SagaOutcome(
                saga_id=saga_id,
                state=SagaState.IDLE,
                progress=0.0,
                started_at=utcnow(),
            )
            data = _SagaData(credentials=credentials, user_id=user_id)
            steps = self._steps()

            async with LogContext(saga_id=saga_id, user_id=user_id):
                logger.info("saga_started")
                for stage in STAGE_ORDER:
                    self._transition(SagaState.for_stage(stage))
                    self.projector.advance(stage.value, stage.range.start, message=stage.label)
                    logger.info("stage_started", stage=stage.value)

                    try:
                        await steps[stage](data)
                    except AnalysisSpineError as exc:
                        return self._fail(outcome, stage, exc, data)
                    except Exception as exc:
                        logger.exception("stage_exception", stage=stage.value, error=str(exc))
                        wrapped = stage.error_cls(str(exc) or type(exc).__name__, cause=exc)
                        return self._fail(outcome, stage, wrapped, data)

                    outcome.completed_stages.append(stage)
                    self.projector.advance(stage.value, stage.range.end)
                    logger.info("stage_completed", stage=stage.value, progress=self.progress)

                await self._finish(outcome, data)
                return outcome

    # ------------------------------------------------------------------
    # stages
    # ------------------------------------------------------------------
    async def _connect(self, data: _SagaData) -> None:
        await self._client.validate_connection(data.credentials)
        try:
            connection_id = await self._client.register_connection(data.user_id, data.credentials)
        except AnalysisSpineError as exc:
            logger.warning("connection_record_failed", **describe(exc))
            connection_id = None
        data.connection_id = connection_id or ""

        self._store.user_id = data.user_id
        self._store.credentials = data.credentials
        self._store.connection_id = data.connection_id

    async def _read_schema(self, data: _SagaData) -> None:
        data.report = await self._client.validate_data(
            data.credentials, data.connection_id, user_id=data.user_id
        )
        if data.report.database_note:
            logger.info("database_note", note=data.report.database_note)

    async def _validate_data(self, data: _SagaData) -> None:
        data.report.ensure_usable()

    async def _run_pipeline(self, data: _SagaData) -> None:
        report = data.report
        job_id = await self._client.run_pipeline(
            user_id=data.user_id,
            trace_id=report.trace_id,
            connection_id=data.connection_id,
            data_structure=report.data_structure,
        )
        logger.info("job_started", job_id=job_id, trace_id=report.trace_id)

        channel = ProgressChannel()
        stage = Stage.RUNNING_PIPELINE
        consumer = asyncio.create_task(self.projector.consume(channel, stage.value, stage.range))
        try:
            job = await self._poller.poll(job_id, channel=channel)
        finally:
            channel.close()
            await consumer

        if not job.succeeded:
            raise RunError(
                job.error or f"Pipeline job ended with status {job.status.value}",
                job_status=job.status.value,
            ).with_context(job_id=job_id, trace_id=report.trace_id)
        if not job.run_results:
            raise RunError(
                "Pipeline job completed without run_results", job_status=job.status.value
            ).with_context(job_id=job_id)
        data.job = job

    async def _evaluate(self, data: _SagaData) -> None:
        run = await self._client.standardize(data.job.run_results)
        run = run.with_ids(user_id=run.user_id or data.user_id)
        if run.task_id is None and data.job.task_id:
            run = run.with_ids(task_id=data.job.task_id)
        data.run = run

    # ------------------------------------------------------------------
    # terminal states
    # ------------------------------------------------------------------
    async def _finish(self, outcome: SagaOutcome, data: _SagaData) -> None:
        self._store.start_task(data.run)
        outcome.run = data.run

        try:
            outcome.versions = await self._reconciler.refresh_versions()
        except AnalysisSpineError as exc:
            outcome.versions_stale = True
            logger.warning("versions_refresh_failed", **describe(exc))

        self.projector.advance(Stage.EVALUATING.value, 100.0, message="complete")
        self._transition(SagaState.COMPLETE)
        outcome.state = SagaState.COMPLETE
        outcome.progress = self.progress
        outcome.completed_at = utcnow()
        logger.info(
            "saga_completed",
            run_id=data.run.run_id,
            task_id=self._store.task_id,
            versions=len(outcome.versions),
            duration_seconds=outcome.duration_seconds,
        )

    def _fail(
        self,
        outcome: SagaOutcome,
        stage: Stage,
        error: AnalysisSpineError,
        data: _SagaData,
    ) -> SagaOutcome:
        error.with_context(stage=stage.value)
        if data.job is not None:
            outcome.raw_result = data.job.run_results
            error.with_context(job_id=data.job.job_id)

        self._transition(SagaState.FAILED)
        outcome.state = SagaState.FAILED
        outcome.failure = StageFailure(stage=stage, error=error)
        outcome.progress = self.progress
        outcome.completed_at = utcnow()
        logger.error("saga_failed", **describe(error))
        return outcome


__all__ = ["StageSequencer"]
