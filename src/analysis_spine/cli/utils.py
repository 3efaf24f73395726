"""
CLI utility helpers - session/state management and output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import httpx
import typer
from rich.console import Console
from rich.table import Table

from analysis_spine.cache.store import ResultStore
from analysis_spine.core.errors import AnalysisSpineError
from analysis_spine.core.models import Version
from analysis_spine.core.settings import AnalysisSpineSettings, get_settings
from analysis_spine.execution.events import ProgressEvent
from analysis_spine.orchestration.mutations import MutationOutcome, MutationState
from analysis_spine.orchestration.session import AnalysisSession
from analysis_spine.orchestration.stages import SagaOutcome

console = Console()
err_console = Console(stderr=True)

T = TypeVar("T")


# ── Session / state helpers ──────────────────────────────────────────────


def state_path(override: str | None = None) -> Path:
    return Path(override) if override else get_settings().state_path


def load_store(path: Path) -> ResultStore:
    try:
        return ResultStore.load(path)
    except AnalysisSpineError as exc:
        fail(exc)


def make_session(
    store: ResultStore,
    *,
    settings: AnalysisSpineSettings | None = None,
    show_progress: bool = True,
    http_client: httpx.AsyncClient | None = None,
) -> AnalysisSession:
    """Build a session around ``store``, printing progress events to stderr."""
    listeners = [_print_progress] if show_progress else None
    return AnalysisSession(settings, store=store, http_client=http_client, listeners=listeners)


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning analysis-spine errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except AnalysisSpineError as exc:
        fail(exc)


async def with_session(session: AnalysisSession, coro: Coroutine[Any, Any, T]) -> T:
    async with session:
        return await coro


def fail(error: AnalysisSpineError) -> None:
    err_console.print(f"[bold red]Error[/bold red] ({error.kind.value}): {error.display_message()}")
    if error.message and error.guidance != error.message:
        err_console.print(f"[dim]{error.guidance}[/dim]")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _print_progress(event: ProgressEvent) -> None:
    suffix = f" ({event.job_status})" if event.job_status else ""
    err_console.print(f"[dim]{event.progress:5.1f}%  {event.stage}{suffix}[/dim]")


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_versions(versions: list[Version], selected: str | None, *, as_json: bool = False) -> None:
    if as_json:
        print_json({"versions": [v.to_dict() for v in versions], "selected": selected})
        return
    if not versions:
        console.print("[dim]No versions.[/dim]")
        return
    table = Table(title="Versions", pad_edge=False)
    table.add_column("version")
    table.add_column("run_id")
    table.add_column("selected")
    for version in versions:
        table.add_row(version.display, version.run_id, "*" if version.display == selected else "")
    console.print(table)


def print_saga(outcome: SagaOutcome, *, as_json: bool = False) -> None:
    if as_json:
        print_json(outcome.to_dict())
    elif outcome.succeeded:
        latest = outcome.versions[0].display if outcome.versions else "-"
        console.print(
            f"[green]Analysis complete[/green] run={outcome.run.run_id} version={latest}"
        )
        if outcome.versions_stale:
            console.print("[yellow]Version list could not be refreshed.[/yellow]")
    if not outcome.succeeded:
        failure = outcome.failure
        err_console.print(
            f"[bold red]Failed[/bold red] at {failure.stage.label}: {failure.message}"
        )
        err_console.print(f"[dim]{failure.error.guidance}[/dim]")
        raise typer.Exit(code=1)


def print_mutation(outcome: MutationOutcome, *, as_json: bool = False) -> None:
    if as_json:
        print_json(outcome.to_dict())
    elif outcome.state is MutationState.APPLIED:
        latest = outcome.versions[0].display if outcome.versions else "-"
        console.print(f"[green]Applied[/green] version={latest}")
    elif outcome.state is MutationState.IGNORED:
        console.print(f"[yellow]Ignored[/yellow]: {outcome.message}")
    elif outcome.state is MutationState.REGENERATION_REQUIRED:
        console.print(f"[yellow]{outcome.message}[/yellow] Run `analysis-spine analyze` again.")
    if outcome.state is MutationState.FAILED:
        err_console.print(f"[bold red]Failed[/bold red] ({outcome.stage}): {outcome.message}")
        raise typer.Exit(code=1)


def print_run(store: ResultStore, *, segment: str | None = None, as_json: bool = False) -> None:
    if store.run is None:
        console.print("[dim]No analysis result cached.[/dim]")
        return
    projection = store.questions_with_sql(segment)
    if as_json:
        print_json(
            {
                "run_id": store.run.run_id,
                "task_id": store.task_id,
                "version": store.selected_version,
                "segments": [
                    {"segment_id": s.segment_id, "name": s.name} for s in store.run.segments
                ],
                "selected": projection,
            }
        )
        return

    console.print(
        f"[bold]Run[/bold] {store.run.run_id}  task={store.task_id}  "
        f"version={store.selected_version or '-'}"
    )
    table = Table(title="Segments", pad_edge=False)
    table.add_column("segment_id")
    table.add_column("name")
    table.add_column("questions")
    for item in store.run.segments:
        marker = " *" if item.name == projection["segment"] else ""
        table.add_row(item.segment_id, f"{item.name}{marker}", str(len(item.value_questions)))
    console.print(table)

    for question in projection["questions"]:
        console.print(f"  [cyan]{question['id']}[/cyan] {question['question']}")
        if question["sql"]:
            console.print(f"    [dim]{question['sql']}[/dim]")
