"""Backend interface for starting agents."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class LaunchRequest:
    """Inputs required to start one agent."""

    agent_id: str
    role: str
    workspace_path: Path
    reference_doc: str
    communication_root: Path


@dataclass(slots=True)
class LaunchHandle:
    """What the backend knows about a started agent."""

    agent_id: str
    pid: int | None = None


class LaunchBackend(Protocol):
    """Protocol implemented by launch backends."""

    def launch(self, request: LaunchRequest) -> LaunchHandle:
        """Start the agent and return without waiting for it."""


class ExternallyManagedBackend:
    """Agents already run as separately supervised containers."""

    def launch(self, request: LaunchRequest) -> LaunchHandle:
        return LaunchHandle(agent_id=request.agent_id)
