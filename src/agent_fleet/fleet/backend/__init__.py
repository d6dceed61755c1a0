"""Agent launch backends."""

from agent_fleet.fleet.backend.base import (
    ExternallyManagedBackend,
    LaunchBackend,
    LaunchHandle,
    LaunchRequest,
)
from agent_fleet.fleet.backend.subprocess_backend import LaunchError, SubprocessLaunchBackend

__all__ = [
    "ExternallyManagedBackend",
    "LaunchBackend",
    "LaunchError",
    "LaunchHandle",
    "LaunchRequest",
    "SubprocessLaunchBackend",
]
