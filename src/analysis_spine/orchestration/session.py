"""Session wiring: one store, one client, and the flows that share them."""

from __future__ import annotations

import httpx

from analysis_spine.cache.store import ResultStore
from analysis_spine.changeset.commands import Command
from analysis_spine.client.remote import RemoteJobClient
from analysis_spine.core.models import AnalysisRun, Credentials, Version
from analysis_spine.core.settings import AnalysisSpineSettings, get_settings
from analysis_spine.execution.events import ProgressListener, ProgressProjector
from analysis_spine.execution.retry import CancellationToken
from analysis_spine.orchestration.mutations import MutationOutcome, MutationRunner
from analysis_spine.orchestration.sequencer import StageSequencer
from analysis_spine.orchestration.stages import SagaOutcome
from analysis_spine.versions.reconciler import VersionReconciler


class AnalysisSession:
    """Owns the ``ResultStore`` and exposes the saga, mutation and version operations.

    Args:
        settings: Defaults to ``get_settings()``
        store: Existing store (e.g. loaded from a snapshot)
        http_client: Injected ``httpx.AsyncClient`` (tests pass a ``MockTransport`` client)
        listeners: Progress listeners attached to the shared projector
    """

    def __init__(
        self,
        settings: AnalysisSpineSettings | None = None,
        *,
        store: ResultStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        listeners: list[ProgressListener] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or ResultStore()
        self.token = CancellationToken()
        self.projector = ProgressProjector(listeners)
        self.client = RemoteJobClient(self.settings, http_client=http_client)
        self.reconciler = VersionReconciler(
            self.client, self.store, settings=self.settings, token=self.token
        )
        self.sequencer = StageSequencer(
            self.client,
            self.store,
            self.reconciler,
            settings=self.settings,
            projector=self.projector,
            token=self.token,
        )
        self.mutations = MutationRunner(
            self.client, self.store, self.reconciler, projector=self.projector
        )

    async def __aenter__(self) -> AnalysisSession:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel pending waits (poll intervals, version retries)."""
        self.token.cancel(reason)

    async def analyze(self, credentials: Credentials, *, user_id: str) -> SagaOutcome:
        return await self.sequencer.run(credentials, user_id=user_id)

    async def mutate(self, command: Command, feedback_text: str = "") -> MutationOutcome:
        return await self.mutations.submit(command, feedback_text)

    async def feedback(self, text: str) -> MutationOutcome:
        return await self.mutations.submit_feedback(text)

    async def refresh_versions(self) -> list[Version]:
        return await self.reconciler.refresh_versions()

    async def select_version(self, display: str) -> AnalysisRun:
        return await self.reconciler.select_version(display)


__all__ = ["AnalysisSession"]
