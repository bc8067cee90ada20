"""
IDE attach configuration.

Writes a VS Code launch.json that attaches a Go debugger to the dlv server
exposed through the companion Service's node port.
"""

import json
from pathlib import Path
from typing import Any, Dict

from .profile import DebugProfile

LAUNCH_DIR = ".vscode"
LAUNCH_FILE = "launch.json"
BACKUP_SUFFIX = ".bak"


def build_launch_config(profile: DebugProfile) -> Dict[str, Any]:
    return {
        "version": "0.2.0",
        "configurations": [
            {
                "name": "Debug K8S Pod Container",
                "type": "go",
                "request": "attach",
                "mode": "remote",
                "showLog": True,
                "host": profile.node_host,
                "port": profile.debug_port,
                "remotePath": profile.project_root_dir,
            }
        ],
    }


def write_launch_file(profile: DebugProfile) -> Path:
    """
    Write ``<projectRootDir>/.vscode/launch.json``.

    An existing launch.json is renamed to launch.json.bak first, replacing any
    older backup.

    Returns:
        Path of the written file

    Raises:
        OSError: If the directory or file cannot be written
    """
    launch_dir = Path(profile.project_root_dir) / LAUNCH_DIR
    launch_dir.mkdir(parents=True, exist_ok=True)

    launch_path = launch_dir / LAUNCH_FILE
    if launch_path.exists():
        launch_path.replace(launch_path.with_name(LAUNCH_FILE + BACKUP_SUFFIX))

    with open(launch_path, "w") as f:
        json.dump(build_launch_config(profile), f, indent=2)
        f.write("\n")
    return launch_path
