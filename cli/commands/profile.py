"""
Profile commands: validate a profile and write the IDE launch file
"""

import typer
from rich.console import Console
from rich.table import Table

from kubedebug.core import DebugProfile, ProfileError, load_profile, write_launch_file

console = Console()


def _load_or_exit(config: str) -> DebugProfile:
    try:
        return load_profile(config)
    except ProfileError as e:
        console.print(f"[red]Invalid profile {config}:[/red] {e}")
        raise typer.Exit(code=1)


def validate_command(
    config: str = typer.Option("config.yaml", "--config", "-c", help="Path to the debug profile YAML"),
):
    """
    Validate a debug profile and print its resolved values.

    Examples:
        kubedebug validate -c config.yaml
    """
    debug_profile = _load_or_exit(config)

    table = Table(title=f"Profile {debug_profile.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Namespace", debug_profile.namespace)
    table.add_row("Workload type", debug_profile.workload_type.value)
    table.add_row("Label selector", debug_profile.label_selector_string or "-")
    table.add_row("Field selector", debug_profile.field_selector_string or "-")
    table.add_row("Container", debug_profile.container_name)
    table.add_row("Command", " ".join(debug_profile.command_args))
    table.add_row("dlv host path", debug_profile.debug_agent_host_path)
    table.add_row("Replacement executable", debug_profile.replacement_executable_host_path or "-")
    table.add_row("Node host", debug_profile.node_host or "-")
    table.add_row("Debug port", str(debug_profile.debug_port))

    console.print(table)
    console.print("[green]✓ Profile is valid[/green]")


def launch_command(
    config: str = typer.Option("config.yaml", "--config", "-c", help="Path to the debug profile YAML"),
):
    """
    Write {projectRootDir}/.vscode/launch.json, backing up any existing file.

    Examples:
        kubedebug launch -c config.yaml
    """
    debug_profile = _load_or_exit(config)
    try:
        path = write_launch_file(debug_profile)
    except OSError as e:
        console.print(f"[red]Error writing launch file:[/red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Wrote {path}[/green]")
