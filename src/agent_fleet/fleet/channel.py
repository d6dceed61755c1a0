"""Shared-filesystem communication channel between orchestrator and agents."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from agent_fleet.fleet.contracts import load_json, parse_agent_status
from agent_fleet.fleet.models import AgentDescriptor, AgentStatus

logger = logging.getLogger(__name__)

PER_AGENT_DIRS = ("progress", "handoffs", "blockers")
SHARED_DIRS = ("prompts", "tasks", "snapshots")


class ChannelInitError(RuntimeError):
    """Communication directories could not be created."""


class CommunicationChannel:
    """Deterministic directory layout under one communication root."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def prompts_dir(self) -> Path:
        return self.root / "prompts"

    @property
    def tasks_dir(self) -> Path:
        return self.root / "tasks"

    @property
    def snapshots_dir(self) -> Path:
        return self.root / "snapshots"

    @property
    def recovery_log_path(self) -> Path:
        return self.root / "recovery" / "recovery-operations.log"

    def progress_dir(self, agent_id: str) -> Path:
        return self.root / "progress" / agent_id

    def handoffs_dir(self, agent_id: str) -> Path:
        return self.root / "handoffs" / agent_id

    def blockers_dir(self, agent_id: str) -> Path:
        return self.root / "blockers" / agent_id

    def metrics_path(self, agent_id: str) -> Path:
        return self.progress_dir(agent_id) / "metrics.json"

    def progress_log_path(self, agent_id: str) -> Path:
        return self.root / "progress" / f"{agent_id}.md"

    def prompt_path(self, agent_id: str) -> Path:
        return self.prompts_dir / f"{agent_id}.md"

    def task_path(self, agent: AgentDescriptor) -> Path:
        return self.tasks_dir / agent.task_file

    def audit_path(self, label: str) -> Path:
        return self.root / f"{label}-audit.txt"

    def integration_script_path(self, run_name: str) -> Path:
        return self.root / f"merge-{run_name}.sh"

    def ensure_channels(self, agents: Iterable[AgentDescriptor]) -> list[Path]:
        """Create every channel directory if absent; safe to repeat."""

        directories = [self.root / name for name in SHARED_DIRS]
        for agent in agents:
            directories.extend(self.root / name / agent.agent_id for name in PER_AGENT_DIRS)
        try:
            for directory in directories:
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise ChannelInitError(
                f"Cannot create communication channel under {self.root}: {error}",
            ) from error
        return directories

    def read_status(self, agent_id: str) -> AgentStatus:
        """Read an agent's status; anything unreadable counts as waiting."""

        path = self.metrics_path(agent_id)
        try:
            raw = load_json(path)
        except FileNotFoundError:
            return AgentStatus(agent_id=agent_id)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, TypeError) as error:
            logger.debug("Status unavailable for %s this tick: %s", agent_id, error)
            return AgentStatus(agent_id=agent_id)
        try:
            return parse_agent_status(agent_id, raw)
        except (TypeError, ValueError) as error:
            logger.debug("Ignoring malformed status for %s: %s", agent_id, error)
            return AgentStatus(agent_id=agent_id)

    def tail_progress_log(self, agent_id: str, lines: int) -> list[str] | None:
        """Return the last lines of the progress log, or None when absent."""

        path = self.progress_log_path(agent_id)
        if not path.is_file():
            return None
        content = path.read_text("utf-8", errors="replace").splitlines()
        return content[-lines:]
