"""
Core debug-controller primitives with no cluster dependency.

This module provides:
- DebugProfile: Immutable, validated profile loaded once at startup
- load_profile / parse_profile: YAML and mapping loaders
- write_launch_file: IDE attach configuration
- Error types shared by the controller
"""

from .profile import (
    DebugProfile,
    WorkloadType,
    MIN_DEBUG_PORT,
    MAX_DEBUG_PORT,
    load_profile,
    parse_profile,
)
from .launch import build_launch_config, write_launch_file
from .errors import ProfileError, ConflictRetryExhausted, ReconcileCancelled

__all__ = [
    "DebugProfile",
    "WorkloadType",
    "MIN_DEBUG_PORT",
    "MAX_DEBUG_PORT",
    "load_profile",
    "parse_profile",
    "build_launch_config",
    "write_launch_file",
    "ProfileError",
    "ConflictRetryExhausted",
    "ReconcileCancelled",
]
