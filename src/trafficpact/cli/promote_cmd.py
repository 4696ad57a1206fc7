"""trafficpact promote -- merge the candidate file into the main file."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from trafficpact.errors import TrafficPactError
from trafficpact.storage.recording_store import RecordingStore, compose_recording_path


def promote(
    recording_base: Path = typer.Argument(..., help="Recording path without .json"),
) -> None:
    """Promote <base>-new.json into <base>.json, archiving the old file."""
    console = Console()
    store = RecordingStore()

    try:
        archive_path = store.promote_candidate(recording_base)
    except TrafficPactError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    main_path = compose_recording_path(recording_base)
    console.print(f"[green]Promoted candidate into {main_path}[/green]")
    if archive_path is not None:
        console.print(f"Previous recordings archived at {archive_path}")
