"""trafficpact CLI entry point."""

import typer

from trafficpact import __version__
from trafficpact.cli.compare_cmd import compare
from trafficpact.cli.inspect_cmd import inspect_recording
from trafficpact.cli.promote_cmd import promote

app = typer.Typer(
    name="trafficpact",
    help="Contract testing for recorded HTTP traffic",
    no_args_is_help=True,
)

# Register subcommands
app.command()(compare)
app.command(name="inspect")(inspect_recording)
app.command()(promote)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"trafficpact {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Contract testing for recorded HTTP traffic."""
