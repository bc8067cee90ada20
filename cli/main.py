#!/usr/bin/env python3
"""
kubedebug CLI - Remote debugging for Kubernetes workloads

Main entrypoint for the kubedebug command-line tool.
"""

import typer
from rich.console import Console
from rich.table import Table

from cli.commands import profile, run

# Initialize Typer app
app = typer.Typer(
    name="kubedebug",
    help="Relaunch a Deployment or StatefulSet container under the dlv debug agent",
    add_completion=False,
)

console = Console()

app.command("run")(run.run_command)
app.command("validate")(profile.validate_command)
app.command("launch")(profile.launch_command)


@app.command()
def version():
    """Show version information."""
    from cli import __version__

    table = Table(show_header=False, box=None)
    table.add_row("[bold]kubedebug[/bold]", f"v{__version__}")
    table.add_row("Debug agent", "dlv (headless, API v2)")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
