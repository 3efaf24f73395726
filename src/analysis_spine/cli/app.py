"""
Root Typer application for the analysis-spine CLI.

The result store is persisted to a JSON state file between invocations,
so ``analyze`` followed by ``versions list`` or ``mutate ...`` works the
way a single interactive session would.
"""

from __future__ import annotations

import typer
from pydantic import SecretStr

from analysis_spine.changeset.commands import Command, CommandKind
from analysis_spine.cli.utils import (
    console,
    load_store,
    make_session,
    print_mutation,
    print_run,
    print_saga,
    print_versions,
    run,
    state_path,
    with_session,
)
from analysis_spine.core.logging import configure_logging
from analysis_spine.core.models import Credentials
from analysis_spine.core.settings import get_settings

app = typer.Typer(
    name="analysis-spine",
    help="analysis-spine - run analyses, apply edits and manage result versions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
versions_app = typer.Typer(no_args_is_help=True)
mutate_app = typer.Typer(no_args_is_help=True)

app.add_typer(versions_app, name="versions", help="Result version history.")
app.add_typer(mutate_app, name="mutate", help="Edit the current result.")

STATE_OPTION = typer.Option(None, "--state", help="State file (default: settings.state_path)")
JSON_OPTION = typer.Option(False, "--json")

EDIT_KINDS = {
    "correct": CommandKind.CORRECT_SEGMENT,
    "add-segment": CommandKind.ADD_SEGMENT,
    "merge": CommandKind.MERGE_SEGMENTS,
    "d1": CommandKind.EDIT_D1,
    "d2": CommandKind.EDIT_D2,
    "d3": CommandKind.EDIT_D3,
    "d4": CommandKind.EDIT_D4,
    "add-question": CommandKind.ADD_QUESTION,
    "question": CommandKind.EDIT_QUESTION,
}


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from analysis_spine import __version__

        typer.echo(f"analysis-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """analysis-spine CLI - analyses, edits and versions."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")


# ── Analysis ─────────────────────────────────────────────────────────────


@app.command()
def analyze(
    project_id: str = typer.Option(..., "--project-id", envvar="ANALYSIS_SPINE_PROJECT_ID"),
    access_token: str = typer.Option(
        ..., "--access-token", envvar="ANALYSIS_SPINE_ACCESS_TOKEN", hide_input=True
    ),
    user_id: str = typer.Option(..., "--user-id", "-u", envvar="ANALYSIS_SPINE_USER_ID"),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Run the full analysis saga and cache the result."""
    path = state_path(state)
    store = load_store(path)
    session = make_session(store, show_progress=not json_out)
    credentials = Credentials(project_id=project_id, access_token=SecretStr(access_token))

    outcome = run(with_session(session, session.analyze(credentials, user_id=user_id)))
    if outcome.succeeded:
        store.save(path)
    print_saga(outcome, as_json=json_out)


@app.command()
def show(
    segment: str | None = typer.Option(None, "--segment", "-s", help="Segment name"),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Show the cached result and the selected segment's questions."""
    store = load_store(state_path(state))
    print_run(store, segment=segment, as_json=json_out)


@app.command()
def feedback(
    text: str = typer.Argument(..., help="Free-text instruction"),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Apply a free-text edit to the current result."""
    path = state_path(state)
    store = load_store(path)
    session = make_session(store, show_progress=not json_out)
    outcome = run(with_session(session, session.feedback(text)))
    store.save(path)
    print_mutation(outcome, as_json=json_out)


# ── Versions ─────────────────────────────────────────────────────────────


@versions_app.command("list")
def list_versions(
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Refresh and list versions of the current task."""
    path = state_path(state)
    store = load_store(path)
    session = make_session(store, show_progress=False)
    versions = run(with_session(session, session.refresh_versions()))
    store.save(path)
    print_versions(versions, store.selected_version, as_json=json_out)


@versions_app.command("select")
def select_version(
    version: str = typer.Argument(..., help="Version label, e.g. v3"),
    state: str | None = STATE_OPTION,
) -> None:
    """Load a version as the current result."""
    path = state_path(state)
    store = load_store(path)
    session = make_session(store, show_progress=False)
    selected = run(with_session(session, session.select_version(version)))
    store.save(path)
    console.print(f"Selected {version} (run {selected.run_id})")


# ── Mutations ────────────────────────────────────────────────────────────


def _mutate(command: Command, state: str | None, json_out: bool) -> None:
    path = state_path(state)
    store = load_store(path)
    session = make_session(store, show_progress=not json_out)
    outcome = run(with_session(session, session.mutate(command)))
    store.save(path)
    print_mutation(outcome, as_json=json_out)


@mutate_app.command()
def rename(
    segment_id: str = typer.Argument(...),
    new_name: str = typer.Argument(...),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Rename a segment."""
    command = Command(CommandKind.RENAME_SEGMENT, segment_ids=(segment_id,), new_name=new_name)
    _mutate(command, state, json_out)


@mutate_app.command("remove-segments")
def remove_segments(
    segment_ids: list[str] = typer.Argument(...),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Remove one or more segments."""
    command = Command(CommandKind.REMOVE_SEGMENTS, segment_ids=tuple(segment_ids))
    _mutate(command, state, json_out)


@mutate_app.command("remove-questions")
def remove_questions(
    segment_id: str = typer.Argument(...),
    question_ids: list[str] = typer.Argument(...),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Remove value questions from a segment."""
    command = Command(
        CommandKind.REMOVE_QUESTIONS,
        segment_ids=(segment_id,),
        question_ids=tuple(question_ids),
    )
    _mutate(command, state, json_out)


@mutate_app.command()
def edit(
    kind: str = typer.Argument(..., help=f"One of: {', '.join(EDIT_KINDS)}"),
    segment: list[str] = typer.Option([], "--segment", "-s", help="Segment id (repeat for merge)"),
    question: str | None = typer.Option(None, "--question", "-q", help="Question id"),
    prompt: str = typer.Option("", "--prompt", "-p"),
    state: str | None = STATE_OPTION,
    json_out: bool = JSON_OPTION,
) -> None:
    """Correct, add or merge segments, or edit dimensions and questions."""
    command_kind = EDIT_KINDS.get(kind.lower())
    if command_kind is None:
        console.print(f"[red]Unknown edit kind {kind!r}[/red]")
        raise typer.Exit(code=2)
    command = Command(
        command_kind,
        segment_ids=tuple(segment),
        question_ids=(question,) if question else (),
        prompt=prompt,
    )
    _mutate(command, state, json_out)
