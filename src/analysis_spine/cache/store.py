"""
Result Cache - the single owner of the current run and its version bookkeeping.

Manifesto:
    There is exactly one current result per session and it is replaced,
    never patched. The store is an explicit object handed to the
    sequencer, the mutation runner and the reconciler; nothing reaches
    it through a module global. It also carries the single-flight guard
    that keeps a second saga, mutation or version switch from starting
    while one is running.

Architecture:
    ::

        ResultStore
        ├── run: AnalysisRun | None          replace(run, target_segment)
        ├── selected_segment: str | None     pinned name, else the first segment
        ├── task_id                          establish_task(): first value wins
        │                                    start_task(run): a fresh analysis resets it
        ├── user_id / credentials / connection_id
        ├── versions / version_map / selected_version
        └── activity(kind)                   async single-flight guard

        save(path) / load(path)  →  JSON snapshot (never job state)

Tags:
    cache, store, snapshot, single-flight, analysis-spine
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from analysis_spine.core.errors import ConfigError, SagaInProgressError
from analysis_spine.core.logging import get_logger
from analysis_spine.core.models import AnalysisRun, Credentials, Segment, Version

logger = get_logger(__name__)

SNAPSHOT_VERSION = 1


class ResultStore:
    """Mutable holder of the session's current result state."""

    def __init__(self, *, user_id: str | None = None) -> None:
        self.run: AnalysisRun | None = None
        self.selected_segment: str | None = None
        self.task_id: str | None = None
        self.user_id = user_id
        self.credentials: Credentials | None = None
        self.connection_id: str | None = None
        self.versions: list[Version] = []
        self.version_map: dict[str, str] = {}
        self.selected_version: str | None = None
        self._activity: str | None = None

    # =========================================================================
    # RUN
    # =========================================================================

    def replace(self, run: AnalysisRun, target_segment: str | None = None) -> Segment | None:
        """Replace the cached run wholesale and settle the selected segment.

        The pinned ``target_segment`` is kept when the new run still has a
        segment of that name; otherwise the first segment in run order is
        selected. Returns the selected segment.
        """
        self.run = run
        if run.task_id:
            self.establish_task(run.task_id)

        if target_segment and run.segment_by_name(target_segment) is not None:
            self.selected_segment = target_segment
        else:
            self.selected_segment = run.segments[0].name if run.segments else None

        logger.debug(
            "result_replaced",
            run_id=run.run_id,
            segments=len(run.segments),
            selected_segment=self.selected_segment,
        )
        return self.current_segment

    def start_task(self, run: AnalysisRun) -> Segment | None:
        """Cache the result of a fresh analysis as the start of a new task.

        The new run's task id replaces the previous one, and the previous
        task's versions and segment selection are dropped.
        """
        previous = self.task_id
        self.task_id = None
        self.set_versions([])
        segment = self.replace(run)
        if previous is not None and previous != self.task_id:
            logger.info("task_replaced", previous_task_id=previous, task_id=self.task_id)
        return segment

    def establish_task(self, task_id: str) -> str:
        """Record the task id once; mutation results never rewrite it."""
        if self.task_id is None:
            self.task_id = task_id
            logger.info("task_established", task_id=task_id)
        elif task_id != self.task_id:
            logger.warning("task_id_ignored", task_id=self.task_id, offered=task_id)
        return self.task_id

    @property
    def current_segment(self) -> Segment | None:
        if self.run is None or self.selected_segment is None:
            return None
        return self.run.segment_by_name(self.selected_segment)

    def select_segment(self, name: str) -> Segment:
        if self.run is None or self.run.segment_by_name(name) is None:
            raise KeyError(name)
        self.selected_segment = name
        return self.run.segment_by_name(name)

    def questions_with_sql(self, segment_name: str | None = None) -> dict[str, Any]:
        """Questions of a segment with their SQL, plus the run's anchor index."""
        name = segment_name or self.selected_segment
        segment = self.run.segment_by_name(name) if self.run and name else None
        if segment is None:
            return {"segment": name, "anch_index": None, "questions": []}
        return {
            "segment": segment.name,
            "anch_index": self.run.anch_index,
            "questions": [
                {"id": question.id, "question": question.question, "sql": question.sql}
                for question in segment.value_questions
            ],
        }

    # =========================================================================
    # VERSIONS
    # =========================================================================

    def set_versions(self, versions: list[Version]) -> None:
        """Install a freshly sorted version list and select the newest."""
        self.versions = list(versions)
        self.version_map = {version.display: version.run_id for version in versions}
        self.selected_version = versions[0].display if versions else None

    @property
    def selected_run_id(self) -> str | None:
        if self.selected_version and self.selected_version in self.version_map:
            return self.version_map[self.selected_version]
        return self.run.run_id if self.run else None

    # =========================================================================
    # SINGLE-FLIGHT
    # =========================================================================

    @property
    def is_busy(self) -> bool:
        return self._activity is not None

    @property
    def active(self) -> str | None:
        return self._activity

    @asynccontextmanager
    async def activity(
        self, kind: str, *, error_cls: type[SagaInProgressError] = SagaInProgressError
    ) -> AsyncIterator[None]:
        """Hold the store for one saga, mutation or version switch."""
        if self._activity is not None:
            raise error_cls(self._activity, kind)
        self._activity = kind
        try:
            yield
        finally:
            self._activity = None

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def to_snapshot(self) -> dict[str, Any]:
        credentials = None
        if self.credentials is not None:
            credentials = {
                "project_id": self.credentials.project_id,
                "access_token": self.credentials.access_token.get_secret_value(),
            }
        return {
            "snapshot_version": SNAPSHOT_VERSION,
            "run": self.run.to_wire() if self.run else None,
            "selected_segment": self.selected_segment,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "credentials": credentials,
            "connection_id": self.connection_id,
            "versions": [version.to_dict() for version in self.versions],
            "selected_version": self.selected_version,
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> ResultStore:
        if data.get("snapshot_version") != SNAPSHOT_VERSION:
            raise ConfigError(f"Unsupported state snapshot version: {data.get('snapshot_version')}")

        store = cls(user_id=data.get("user_id"))
        store.task_id = data.get("task_id")
        store.connection_id = data.get("connection_id")
        if data.get("credentials"):
            store.credentials = Credentials(
                project_id=data["credentials"]["project_id"],
                access_token=SecretStr(data["credentials"]["access_token"]),
            )
        if data.get("run"):
            store.run = AnalysisRun.from_wire(data["run"])
        store.selected_segment = data.get("selected_segment")
        versions = [Version.from_run_id(item["run_id"]) for item in data.get("versions") or []]
        store.versions = versions
        store.version_map = {version.display: version.run_id for version in versions}
        store.selected_version = data.get("selected_version")
        return store

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_snapshot(), indent=2), encoding="utf-8")
        logger.debug("state_saved", path=str(path))

    @classmethod
    def load(cls, path: Path, *, user_id: str | None = None) -> ResultStore:
        """Load a snapshot, or return an empty store when none exists."""
        if not path.exists():
            return cls(user_id=user_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ConfigError(f"State file {path} is not valid JSON", cause=exc) from exc
        store = cls.from_snapshot(data)
        if user_id and store.user_id is None:
            store.user_id = user_id
        return store


__all__ = ["ResultStore", "SNAPSHOT_VERSION"]
