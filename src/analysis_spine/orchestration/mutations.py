"""
Mutation flow - apply an edit to the current run and reconcile versions.

Manifesto:
    An edit is a small saga of its own: submit, optionally restandardize,
    replace the cached run, then wait for the version history to catch
    up. Removals and renames come back from the mutation service already
    in display shape, so they skip standardize and refresh versions once.
    Everything else is restandardized, and its new version may not be
    listed yet, so the reconciler polls a bounded number of times.

Architecture:
    ::

        submit(command)
          │  ChangesetBuilder.build()      local refusal, zero calls
          ▼
        submit_entries(entries)            SUBMITTING     0 → 30
          │  client.submit_changeset()     "ignored" → IGNORED
          ▼
        requires_standardize?
          ├─ yes: client.standardize()     STANDARDIZING 30 → 70
          │       store.replace()          CACHING       70 → 90
          │       await_new_version()      RECONCILING   90 → 100
          └─ no:  store.replace(run_result)
                  refresh_versions()

        submit_feedback(text)              free-text variant via /feedback-mrf/process

Tags:
    mutation, changeset, feedback, reconciliation, analysis-spine
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from analysis_spine.cache.store import ResultStore
from analysis_spine.changeset.builder import ChangesetBuilder, ChangesetEntry, ensure_submittable
from analysis_spine.changeset.commands import Command, CommandKind
from analysis_spine.client.remote import RemoteJobClient
from analysis_spine.core.errors import (
    AnalysisSpineError,
    ChangesetRejected,
    MutationIgnored,
    StandardizationError,
    describe,
)
from analysis_spine.core.logging import LogContext, get_logger
from analysis_spine.core.models import AnalysisRun, MutationResponse, Version
from analysis_spine.execution.events import ProgressProjector
from analysis_spine.orchestration.stages import CACHING, RECONCILING, STANDARDIZING, SUBMITTING
from analysis_spine.versions.reconciler import VersionReconciler

logger = get_logger(__name__)


class MutationState(str, Enum):
    """How a mutation ended."""

    APPLIED = "applied"
    IGNORED = "ignored"
    REGENERATION_REQUIRED = "regeneration_required"
    FAILED = "failed"


@dataclass
class MutationOutcome:
    """Result of one mutation."""

    mutation_id: str
    state: MutationState
    progress: float = 0.0
    run: AnalysisRun | None = None
    versions: list[Version] = field(default_factory=list)
    error: AnalysisSpineError | None = None
    stage: str | None = None
    message: str | None = None
    versions_stale: bool = False

    @property
    def applied(self) -> bool:
        return self.state is MutationState.APPLIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "mutation_id": self.mutation_id,
            "state": self.state.value,
            "progress": self.progress,
            "run_id": self.run.run_id if self.run else None,
            "versions": [version.display for version in self.versions],
            "stage": self.stage,
            "message": self.message,
            "error": self.error.to_dict() if self.error else None,
            "versions_stale": self.versions_stale,
        }


class MutationRunner:
    """Submit edits against the store's current run."""

    def __init__(
        self,
        client: RemoteJobClient,
        store: ResultStore,
        reconciler: VersionReconciler,
        *,
        builder: ChangesetBuilder | None = None,
        projector: ProgressProjector | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._reconciler = reconciler
        self._builder = builder or ChangesetBuilder()
        self.projector = projector or ProgressProjector()

    def _require_run(self) -> AnalysisRun:
        if self._store.run is None:
            raise ChangesetRejected("There is no analysis result to edit", reason="no_run")
        if not self._store.task_id or not self._store.user_id:
            raise ChangesetRejected("No task has been established yet", reason="no_task")
        return self._store.run

    def _pinned_segment(self, command: Command, run: AnalysisRun) -> str | None:
        if command.kind is CommandKind.RENAME_SEGMENT:
            return command.new_name
        if command.kind in (CommandKind.REMOVE_SEGMENTS, CommandKind.MERGE_SEGMENTS):
            # a removed or merged-away selection falls back to the first segment
            return self._store.selected_segment
        segment = run.segment_by_id(command.segment_id) if command.segment_id else None
        return segment.name if segment else None

    async def submit(self, command: Command, feedback_text: str = "") -> MutationOutcome:
        """Build entries for ``command`` and apply them."""
        run = self._require_run()
        entries = self._builder.build(command, run)
        return await self.submit_entries(
            entries,
            feedback_text=feedback_text or command.feedback_text(),
            requires_standardize=command.kind.requires_standardize,
            target_segment=self._pinned_segment(command, run),
        )

    async def submit_entries(
        self,
        entries: Sequence[ChangesetEntry],
        *,
        feedback_text: str = "",
        requires_standardize: bool = True,
        target_segment: str | None = None,
    ) -> MutationOutcome:
        """Submit prepared entries. Every selector is checked before any call."""
        self._require_run()
        ensure_submittable(entries)

        async with self._store.activity("mutation"):
            store = self._store
            outcome = MutationOutcome(mutation_id=uuid.uuid4().hex[:12], state=MutationState.FAILED)
            async with LogContext(mutation_id=outcome.mutation_id, task_id=store.task_id):
                self.projector.reset()
                previous_count = len(store.versions)
                base_run_id = store.selected_run_id

                logger.info(
                    "mutation_started",
                    entries=len(entries),
                    base_run_id=base_run_id,
                    requires_standardize=requires_standardize,
                )
                self.projector.advance("submitting", SUBMITTING.start)
                try:
                    response = await self._client.submit_changeset(
                        feedback_text=feedback_text,
                        base_run_id=base_run_id,
                        user_id=store.user_id,
                        task_id=store.task_id,
                        entries=entries,
                    )
                except MutationIgnored as exc:
                    return self._ignored(outcome, exc)
                except AnalysisSpineError as exc:
                    return self._fail(outcome, "submitting", exc)
                self.projector.advance("submitting", SUBMITTING.end)

                if requires_standardize:
                    return await self._restandardize(outcome, response, previous_count, target_segment)
                return await self._apply_direct(outcome, response, target_segment)

    async def submit_feedback(self, feedback_text: str) -> MutationOutcome:
        """Free-text edit through the feedback service."""
        if not feedback_text.strip():
            raise ChangesetRejected("Feedback text is empty", reason="empty_feedback")
        self._require_run()

        async with self._store.activity("feedback"):
            store = self._store
            outcome = MutationOutcome(mutation_id=uuid.uuid4().hex[:12], state=MutationState.FAILED)
            async with LogContext(mutation_id=outcome.mutation_id, task_id=store.task_id):
                self.projector.reset()
                previous_count = len(store.versions)
                self.projector.advance("submitting", SUBMITTING.start)
                try:
                    response = await self._client.process_feedback(
                        feedback_text=feedback_text.strip(),
                        base_run_id=store.selected_run_id,
                        user_id=store.user_id,
                        task_id=store.task_id,
                        connection_id=store.connection_id,
                    )
                except MutationIgnored as exc:
                    return self._ignored(outcome, exc)
                except AnalysisSpineError as exc:
                    return self._fail(outcome, "submitting", exc)
                self.projector.advance("submitting", SUBMITTING.end)

                if response.requires_full_regeneration:
                    outcome.state = MutationState.REGENERATION_REQUIRED
                    outcome.progress = self.projector.progress
                    outcome.message = "This change needs a full re-analysis."
                    logger.info("mutation_requires_regeneration")
                    return outcome

                return await self._restandardize(
                    outcome, response, previous_count, store.selected_segment
                )

    # ------------------------------------------------------------------
    # reconciliation paths
    # ------------------------------------------------------------------
    async def _restandardize(
        self,
        outcome: MutationOutcome,
        response: MutationResponse,
        previous_count: int,
        target_segment: str | None,
    ) -> MutationOutcome:
        if not response.run_results:
            error = StandardizationError("No run_results in mutation response")
            return self._fail(outcome, "standardizing", error)

        self.projector.advance("standardizing", STANDARDIZING.start)
        try:
            run = await self._client.standardize(response.run_results)
        except AnalysisSpineError as exc:
            return self._fail(outcome, "standardizing", exc)
        self.projector.advance("standardizing", STANDARDIZING.end)

        self._cache(outcome, run, target_segment)

        self.projector.advance("reconciling", RECONCILING.start)
        try:
            outcome.versions = await self._reconciler.await_new_version(previous_count)
        except AnalysisSpineError as exc:
            outcome.versions_stale = True
            logger.warning("versions_refresh_failed", **describe(exc))
        return self._applied(outcome)

    async def _apply_direct(
        self,
        outcome: MutationOutcome,
        response: MutationResponse,
        target_segment: str | None,
    ) -> MutationOutcome:
        if response.run_result is not None:
            self._cache(outcome, AnalysisRun.from_wire(response.run_result), target_segment)
        else:
            logger.info("mutation_returned_no_run")

        self.projector.advance("reconciling", RECONCILING.start)
        try:
            outcome.versions = await self._reconciler.refresh_versions()
        except AnalysisSpineError as exc:
            outcome.versions_stale = True
            logger.warning("versions_refresh_failed", **describe(exc))
        return self._applied(outcome)

    def _cache(self, outcome: MutationOutcome, run: AnalysisRun, target_segment: str | None) -> None:
        store = self._store
        self.projector.advance("caching", CACHING.start)
        run = run.with_ids(task_id=run.task_id or store.task_id, user_id=run.user_id or store.user_id)
        store.replace(run, target_segment=target_segment)
        outcome.run = run
        self.projector.advance("caching", CACHING.end)

    # ------------------------------------------------------------------
    # terminal states
    # ------------------------------------------------------------------
    def _applied(self, outcome: MutationOutcome) -> MutationOutcome:
        self.projector.advance("reconciling", RECONCILING.end)
        outcome.state = MutationState.APPLIED
        outcome.progress = self.projector.progress
        logger.info(
            "mutation_applied",
            run_id=outcome.run.run_id if outcome.run else None,
            versions=len(outcome.versions),
        )
        return outcome

    def _ignored(self, outcome: MutationOutcome, exc: MutationIgnored) -> MutationOutcome:
        outcome.state = MutationState.IGNORED
        outcome.error = exc
        outcome.message = exc.display_message()
        outcome.progress = self.projector.progress
        logger.info("mutation_ignored", **describe(exc))
        return outcome

    def _fail(self, outcome: MutationOutcome, stage: str, exc: AnalysisSpineError) -> MutationOutcome:
        exc.with_context(stage=stage)
        outcome.state = MutationState.FAILED
        outcome.stage = stage
        outcome.error = exc
        outcome.message = exc.display_message()
        outcome.progress = self.projector.progress
        logger.error("mutation_failed", **describe(exc))
        return outcome


__all__ = ["MutationRunner", "MutationOutcome", "MutationState"]
