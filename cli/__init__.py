"""
kubedebug CLI - relaunch a Kubernetes workload container under dlv

Commands:
- kubedebug run - Start the debug controller
- kubedebug validate - Check a profile file
- kubedebug launch - Write the VS Code attach configuration
"""

from kubedebug import __version__

__all__ = ["__version__"]
