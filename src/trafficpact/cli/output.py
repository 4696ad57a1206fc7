"""Rich terminal output for recordings and impact analysis."""

from __future__ import annotations

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from trafficpact.matching.analyzer import ImpactLevel
from trafficpact.matching.errors import ErrorBucket
from trafficpact.recording.models import Interaction, RecordingType

# Impact styling: impact value -> Rich style
_IMPACT_STYLES: dict[ImpactLevel, str] = {
    ImpactLevel.NONE: "bold green",
    ImpactLevel.PATCH: "bold cyan",
    ImpactLevel.MINOR: "bold yellow",
    ImpactLevel.MAJOR: "bold red",
}


def _pretty(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)


def render_interactions(
    title: str,
    interactions: list[Interaction],
    recording_type: RecordingType,
    console: Console,
) -> None:
    """Print every recorded call, preferring the decoded response body."""
    console.print(f"[bold black on green]Inspect {escape(title)}:[/bold black on green]")
    console.print()

    if recording_type is not RecordingType.MAIN:
        console.print(f"[red]Test [bold]{recording_type.value}[/bold] call[/red]")
        console.print()

    if not interactions:
        console.print("[dim]No HTTP calls recorded.[/dim]")
        return

    for call in interactions:
        console.print(
            f"HTTP [bold]{escape(call.method or 'undefined')}[/bold] call to "
            f"[bold]{escape(call.scope + call.path)}[/bold]:",
            highlight=False,
        )
        console.print()

        if call.body is not None:
            if call.body == "":
                console.print("Empty request body")
            else:
                console.print("Request body:")
                console.print(_pretty(call.body), markup=False)
            console.print()

        status = call.status if call.status is not None else "undefined"
        if call.decoded_response is not None:
            console.print(f"Decoded response body with [bold]{status}[/bold] status code:")
            console.print(_pretty(call.decoded_response), markup=False)
        else:
            console.print(f"Response body with [bold]{status}[/bold] status code:")
            console.print(_pretty(call.response), markup=False)
        console.print()


def render_impact(impact: ImpactLevel, bucket: ErrorBucket | None, console: Console) -> None:
    """Print the impact level and a table of bucketed findings."""
    style = _IMPACT_STYLES[impact]
    console.print(f"[bold]Impact:[/bold] [{style}]{impact.value.upper()}[/{style}]")

    if bucket is None or bucket.is_empty():
        console.print("[green]Recordings match.[/green]")
        return

    table = Table(box=box.SIMPLE, show_header=True, padding=(0, 2))
    table.add_column("Change", style="bold")
    table.add_column("Kind")
    table.add_column("Details")

    for label, errors in (
        ("added", bucket.added),
        ("removed", bucket.removed),
        ("changed", bucket.changed),
    ):
        for error in errors:
            table.add_row(label, error.kind.value, escape(error.message))

    console.print(table)
