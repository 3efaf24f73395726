"""Version Reconciler - keeps the cached version list in step with the server.

The server-side run history is append-only and eventually consistent: a
mutation can return before its new run is listed. ``refresh_versions``
takes one snapshot of the list; ``await_new_version`` polls a bounded
number of times for the list to grow and then proceeds with whatever it
has, without raising. Ordering is numeric on the ``r_<N>`` suffix,
newest first. Installing a list selects the newest version and, when the
cached run is an older listed version, loads the newest one into the
store.
"""

from __future__ import annotations

from analysis_spine.cache.store import ResultStore
from analysis_spine.client.remote import RemoteJobClient
from analysis_spine.core.errors import (
    SelectionBlockedError,
    VersionLookupError,
    VersionNotFoundError,
)
from analysis_spine.core.logging import get_logger
from analysis_spine.core.models import AnalysisRun, Version, sort_versions
from analysis_spine.core.settings import AnalysisSpineSettings
from analysis_spine.execution.retry import CancellationToken, ConstantBackoff, retry_until

logger = get_logger(__name__)


class VersionReconciler:
    """Version bookkeeping for one ``ResultStore``."""

    def __init__(
        self,
        client: RemoteJobClient,
        store: ResultStore,
        *,
        settings: AnalysisSpineSettings,
        token: CancellationToken | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._settings = settings
        self._token = token or CancellationToken()

    async def _fetch(self) -> list[Version]:
        store = self._store
        rows = await self._client.list_runs(user_id=store.user_id, task_id=store.task_id)
        return sort_versions([str(row.get("run_id") or "") for row in rows if row.get("run_id")])

    async def refresh_versions(self) -> list[Version]:
        """Fetch, sort and install the version list; the newest becomes selected."""
        if not self._store.task_id or not self._store.user_id:
            logger.warning(
                "versions_skipped_no_task",
                task_id=self._store.task_id,
                user_id=self._store.user_id,
            )
            return []

        versions = await self._fetch()
        await self._install(versions)
        return versions

    async def _install(self, versions: list[Version]) -> None:
        store = self._store
        store.set_versions(versions)
        logger.info(
            "versions_refreshed",
            task_id=store.task_id,
            count=len(versions),
            latest=versions[0].display if versions else None,
        )
        if not versions:
            return

        newest = versions[0]
        # a run that is not listed yet is newer than anything listed
        cached = store.run.run_id if store.run else None
        if cached == newest.run_id or (cached and cached not in store.version_map.values()):
            return
        await self._load(newest.display, newest.run_id)

    async def _load(self, display: str, run_id: str) -> AnalysisRun:
        store = self._store
        data = await self._client.get_run_result(
            run_id, user_id=store.user_id, task_id=store.task_id
        )
        if data is None:
            raise VersionLookupError(f"No data found for {display}").with_context(run_id=run_id)

        run = AnalysisRun.from_wire(data).with_ids(
            run_id=run_id, task_id=store.task_id, user_id=store.user_id
        )
        store.replace(run, target_segment=store.selected_segment)
        store.selected_version = display
        logger.info("version_loaded", version=display, run_id=run_id)
        return run

    async def latest(self) -> Version | None:
        """Refresh the list and return the newest version."""
        versions = await self.refresh_versions()
        return versions[0] if versions else None

    async def await_new_version(
        self,
        previous_count: int,
        *,
        retries: int | None = None,
        initial_delay: float | None = None,
        retry_delay: float | None = None,
    ) -> list[Version]:
        """Poll until more than ``previous_count`` versions are listed.

        Gives up quietly after ``retries`` fetches and installs the last
        list it saw. Lookup errors propagate.
        """
        settings = self._settings
        retries = settings.version_retries if retries is None else retries
        initial_delay = (
            settings.version_initial_delay_seconds if initial_delay is None else initial_delay
        )
        retry_delay = settings.version_retry_delay_seconds if retry_delay is None else retry_delay

        if not self._store.task_id or not self._store.user_id:
            logger.warning("versions_skipped_no_task", task_id=self._store.task_id)
            return []

        outcome = await retry_until(
            self._fetch,
            lambda versions: len(versions) > previous_count,
            strategy=ConstantBackoff(max_retries=retries, delay=retry_delay),
            token=self._token,
            initial_delay=initial_delay,
            on_attempt=lambda attempt, versions: logger.debug(
                "version_poll", attempt=attempt, count=len(versions), previous=previous_count
            ),
        )
        if not outcome.converged:
            logger.warning(
                "version_not_visible_yet",
                previous=previous_count,
                count=len(outcome.value),
                attempts=outcome.attempts,
            )
        await self._install(outcome.value)
        return outcome.value

    async def select_version(self, display: str) -> AnalysisRun:
        """Switch the cached run to the version labelled ``display``."""
        store = self._store
        if store.is_busy:
            raise SelectionBlockedError(store.active or "operation", "select_version")
        run_id = store.version_map.get(display)
        if run_id is None:
            raise VersionNotFoundError(display)

        async with store.activity("select_version", error_cls=SelectionBlockedError):
            return await self._load(display, run_id)


__all__ = ["VersionReconciler"]
