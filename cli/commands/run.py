"""
Run command: start the debug controller
"""

import typer

from kubedebug.controller.logging_config import get_logger, setup_logging
from kubedebug.controller.main import run_controller
from kubedebug.core import ProfileError, load_profile, write_launch_file


def run_command(
    config: str = typer.Option("config.yaml", "--config", "-c", help="Path to the debug profile YAML"),
    watch_only: bool = typer.Option(
        False, "--watch-only", "-w", help="Only log observed workloads, never modify them"
    ),
):
    """
    Watch the profile's workloads and relaunch the target container under dlv.

    Examples:
        kubedebug run -c config.yaml
        kubedebug run -c config.yaml --watch-only
    """
    setup_logging()
    logger = get_logger("kubedebug.cli")

    try:
        debug_profile = load_profile(config)
    except ProfileError as e:
        logger.critical(f"load config failed: {e}", extra={"config": config})
        raise typer.Exit(code=1)

    try:
        path = write_launch_file(debug_profile)
        logger.info(f"Wrote IDE launch configuration to {path}")
    except OSError as e:
        logger.error(f"generate vscode launch config file failed: {e}")

    run_controller(debug_profile, observe_only=watch_only)
