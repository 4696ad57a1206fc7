"""trafficpact compare -- classify the difference between main and candidate.

Matches the entry stored in ``<base>.json`` against the same entry in
``<base>-new.json`` and prints the impact. Exits with code 2 when the
impact is MAJOR so CI jobs can gate on breaking changes.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from trafficpact.cli.output import render_impact
from trafficpact.errors import TrafficPactError
from trafficpact.matching.analyzer import ImpactLevel, analyze_impact
from trafficpact.matching.matcher import match_traffic
from trafficpact.recording.models import RecordingType, compose_recording_index
from trafficpact.storage.recording_store import RecordingStore, compose_recording_path


def compare(
    recording_base: Path = typer.Argument(..., help="Recording path without .json"),
    key: str = typer.Option(..., "--key", "-k", help="Index key: profile/provider/usecase"),
    content_hash: str = typer.Option(..., "--hash", help="Content hash of the test"),
    recording_type: RecordingType = typer.Option(
        RecordingType.MAIN, "--type", "-t", help="Recording phase"
    ),
) -> None:
    """Compare stored traffic with candidate traffic and print the impact."""
    console = Console()
    store = RecordingStore()
    index = compose_recording_index(key, recording_type)

    try:
        old = store.read(compose_recording_path(recording_base), index, content_hash)
        new = store.read(compose_recording_path(recording_base, "new"), index, content_hash)
        result = match_traffic(old, new)
    except TrafficPactError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    impact = ImpactLevel.NONE if result.valid else analyze_impact(result.errors)
    render_impact(impact, result.errors, console)

    if impact is ImpactLevel.MAJOR:
        raise typer.Exit(code=2)
