"""trafficpact inspect -- print the interactions stored for one test."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from trafficpact.cli.output import render_interactions
from trafficpact.errors import TrafficPactError
from trafficpact.recording.models import RecordingType, compose_recording_index
from trafficpact.storage.recording_store import RecordingStore, compose_recording_path


def inspect_recording(
    recording_base: Path = typer.Argument(..., help="Recording path without .json"),
    key: str = typer.Option(..., "--key", "-k", help="Index key: profile/provider/usecase"),
    content_hash: str = typer.Option(..., "--hash", help="Content hash of the test"),
    recording_type: RecordingType = typer.Option(
        RecordingType.MAIN, "--type", "-t", help="Recording phase"
    ),
    candidate: bool = typer.Option(False, "--new", help="Read the candidate file"),
) -> None:
    """Print the recorded HTTP calls for one test."""
    console = Console()
    store = RecordingStore()
    path = compose_recording_path(recording_base, "new" if candidate else None)
    index = compose_recording_index(key, recording_type)

    try:
        interactions = store.read(path, index, content_hash)
    except TrafficPactError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    render_interactions(f"{index} ({content_hash})", interactions, recording_type, console)
