"""Analysis data model - runs, segments, questions, versions and jobs.

ARCHITECTURE
────────────
::

    AnalysisRun  (frozen, replaced wholesale)
      ├── run_id / task_id / user_id
      ├── anch_index
      └── segments: tuple[Segment]
            ├── segment_id / name
            ├── analysis: Analysis (D1..D4)
            └── value_questions: tuple[ValueQuestion]

    Version       ── display "v<N>" ↔ run_id "r_<N>"
    JobResult     ── one status payload from the job service
    Credentials   ── project id + access token
    DataValidationReport / MutationResponse ── typed service replies

Wire payloads use camelCase (``segmentId``, ``valueQuestions``,
``anchIndex``); models accept both the alias and the field name and
dump by alias.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from analysis_spine.core.errors import DataValidationError

RUN_ID_PATTERN = re.compile(r"r_(\d+)")

DIMENSIONS = ("D1", "D2", "D3", "D4")


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")


class ValueQuestion(_WireModel):
    """A value question owned by exactly one segment."""

    id: str = ""
    question: str = ""
    sql: str | None = None
    tags: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("question") and data.get("text"):
                data["question"] = data["text"]
            if data.get("id") is not None:
                data["id"] = str(data["id"])
            if data.get("tags") is None:
                data.pop("tags", None)
        return data


class Analysis(_WireModel):
    """Four independently editable analysis dimensions."""

    d1: Any = Field(default=None, alias="D1")
    d2: Any = Field(default=None, alias="D2")
    d3: Any = Field(default=None, alias="D3")
    d4: Any = Field(default=None, alias="D4")

    def dimension(self, name: str) -> Any:
        if name.upper() not in DIMENSIONS:
            raise KeyError(name)
        return getattr(self, name.lower())


class Segment(_WireModel):
    segment_id: str = Field(default="", alias="segmentId")
    name: str = ""
    analysis: Analysis = Field(default_factory=Analysis)
    value_questions: tuple[ValueQuestion, ...] = Field(default=(), alias="valueQuestions")

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("segmentId") and not data.get("segment_id") and data.get("id"):
                data["segmentId"] = data["id"]
            for key in ("segmentId", "segment_id"):
                if data.get(key) is not None:
                    data[key] = str(data[key])
            if data.get("analysis") is None:
                data.pop("analysis", None)
            if data.get("valueQuestions") is None:
                data.pop("valueQuestions", None)
        return data

    def question(self, question_id: str) -> ValueQuestion | None:
        for item in self.value_questions:
            if item.id == question_id:
                return item
        return None


class AnalysisRun(_WireModel):
    """Immutable snapshot of one analysis result."""

    run_id: str | None = None
    task_id: str | None = None
    user_id: str | None = None
    anch_index: Any = Field(default=None, alias="anchIndex")
    segments: tuple[Segment, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("anchIndex") is None and data.get("anchorIndex") is not None:
                data["anchIndex"] = data["anchorIndex"]
            if data.get("segments") is None:
                data.pop("segments", None)
        return data

    @classmethod
    def from_wire(cls, payload: dict[str, Any]) -> AnalysisRun:
        return cls.model_validate(payload)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def with_ids(self, **updates: str | None) -> AnalysisRun:
        """Copy with ``run_id``/``task_id``/``user_id`` overridden."""
        return self.model_copy(update={k: v for k, v in updates.items() if v is not None})

    @property
    def segment_names(self) -> list[str]:
        return [segment.name for segment in self.segments]

    def segment_by_id(self, segment_id: str) -> Segment | None:
        for segment in self.segments:
            if segment.segment_id == segment_id:
                return segment
        return None

    def segment_by_name(self, name: str) -> Segment | None:
        for segment in self.segments:
            if segment.name == name:
                return segment
        return None


@dataclass(frozen=True)
class Version:
    """Display-facing projection of a run id."""

    display: str
    run_id: str
    number: int = 0

    @classmethod
    def from_run_id(cls, run_id: str) -> Version:
        match = RUN_ID_PATTERN.search(run_id or "")
        if match is None:
            return cls(display=run_id, run_id=run_id, number=0)
        number = int(match.group(1))
        return cls(display=f"v{number}", run_id=run_id, number=number)

    def to_dict(self) -> dict[str, Any]:
        return {"display": self.display, "run_id": self.run_id}


def sort_versions(run_ids: list[str]) -> list[Version]:
    """Numeric, newest-first ordering of run ids."""
    versions = [Version.from_run_id(run_id) for run_id in run_ids]
    return sorted(versions, key=lambda v: v.number, reverse=True)


class JobStatus(str, Enum):
    """Status of a remote pipeline job."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ERROR = "error"
    TIMEOUT = "timeout"

    @classmethod
    def coerce(cls, value: Any) -> JobStatus:
        """Map a wire status to the enum; unknown values count as running."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.ERROR})


@dataclass
class JobResult:
    """Outcome of polling a job: the terminal (or synthesised) payload."""

    job_id: str
    status: JobStatus
    progress: float | None = None
    run_results: dict[str, Any] | None = None
    error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, job_id: str, payload: dict[str, Any]) -> JobResult:
        progress = payload.get("progress")
        run_results = payload.get("run_results")
        return cls(
            job_id=job_id,
            status=JobStatus.coerce(payload.get("status")),
            progress=float(progress) if isinstance(progress, (int, float)) else None,
            run_results=run_results if isinstance(run_results, dict) else None,
            error=payload.get("error"),
            raw=payload,
        )

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.COMPLETED

    @property
    def task_id(self) -> str | None:
        if self.run_results and self.run_results.get("task_id"):
            return str(self.run_results["task_id"])
        if self.raw.get("task_id"):
            return str(self.raw["task_id"])
        return None


class Credentials(BaseModel):
    """Data-source credentials bundle."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    access_token: SecretStr

    @property
    def is_blank(self) -> bool:
        return not self.project_id.strip() or not self.access_token.get_secret_value().strip()

    def to_wire(self) -> dict[str, str]:
        return {
            "projectId": self.project_id,
            "accessToken": self.access_token.get_secret_value(),
        }


@dataclass
class DataValidationReport:
    """Reply from the data validator."""

    trace_id: str | None
    data_structure: dict[str, Any]
    status: str | None = None
    note: str | None = None
    user_id: str | None = None
    connection_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DataValidationReport:
        summary = (payload.get("validation_report") or {}).get("summary") or {}
        return cls(
            trace_id=payload.get("trace_id"),
            data_structure=payload.get("data_structure") or {},
            status=summary.get("status"),
            note=summary.get("note"),
            user_id=payload.get("user_id"),
            connection_id=payload.get("connection_id"),
            raw=payload,
        )

    @property
    def database_note(self) -> str | None:
        return self.data_structure.get("database_note")

    @property
    def usable(self) -> bool:
        return self.status != "unusable"

    def ensure_usable(self) -> None:
        """Raise the semantic validation error when the verdict is ``unusable``."""
        if not self.usable:
            message = self.note or "Data validation failed"
            raise DataValidationError(message, semantic=True, note=self.note).with_context(
                trace_id=self.trace_id,
            )


class MutationStatus:
    IGNORED = "ignored"
    REQUIRES_FULL_REGENERATION = "requires_full_regeneration"


@dataclass
class MutationResponse:
    """Reply from the changeset or feedback services."""

    status: str | None
    run_results: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> MutationResponse:
        run_results = payload.get("run_results")
        return cls(
            status=payload.get("status"),
            run_results=run_results if isinstance(run_results, dict) else None,
            raw=payload,
        )

    @property
    def ignored(self) -> bool:
        return self.status == MutationStatus.IGNORED

    @property
    def requires_full_regeneration(self) -> bool:
        return self.status == MutationStatus.REQUIRES_FULL_REGENERATION

    @property
    def run_result(self) -> dict[str, Any] | None:
        if not self.run_results:
            return None
        inner = self.run_results.get("run_result")
        return inner if isinstance(inner, dict) else None
