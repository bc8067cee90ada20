"""
kubedebug

Reconciliation controller that relaunches a workload container under a remote
debug agent and exposes the debug port through an owned NodePort Service.
"""

__version__ = "0.1.0"
