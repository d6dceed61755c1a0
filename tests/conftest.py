"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from agent_fleet.fleet.models import AgentDescriptor, AgentRole
from agent_fleet.fleet.runtime import ContainerCommandError


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch) -> None:
    """Keep the developer's AGENT_FLEET_* variables out of tests."""

    for name in list(os.environ):
        if name.startswith("AGENT_FLEET_") or name == "DOCKER_ENV":
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def two_agents(tmp_path: Path) -> list[AgentDescriptor]:
    agents = [
        AgentDescriptor(
            agent_id="agent-a",
            role=AgentRole.SERVICE,
            workspace_path=tmp_path / "workspaces" / "agent-a",
            task_file="agent-a.json",
        ),
        AgentDescriptor(
            agent_id="agent-b",
            role=AgentRole.HOOK,
            workspace_path=tmp_path / "workspaces" / "agent-b",
            task_file="agent-b.json",
        ),
    ]
    for agent in agents:
        agent.workspace_path.mkdir(parents=True)
        (agent.workspace_path / "README.md").write_text(f"{agent.agent_id}\n", "utf-8")
    return agents


@pytest.fixture()
def roster_file(tmp_path: Path, two_agents: list[AgentDescriptor]) -> Path:
    path = tmp_path / "roster.json"
    path.write_text(
        json.dumps(
            {
                "agents": [
                    {
                        "id": agent.agent_id,
                        "role": agent.role.value,
                        "workspace": str(agent.workspace_path),
                        "task_file": agent.task_file,
                        "priority": agent.priority.value,
                    }
                    for agent in two_agents
                ],
            },
        ),
        "utf-8",
    )
    return path


def write_fake_command(path: Path, body: str) -> Path:
    """Write an executable Python script usable as an external command."""

    implementation = path.parent / f"{path.name}_impl.py"
    implementation.write_text(body.strip() + "\n", "utf-8")
    path.write_text(
        f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
        "utf-8",
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


class RecordingRuntime:
    """Container runtime double that records calls and runs per-call checks."""

    def __init__(self, status_text: str = "agent-a   running") -> None:
        self.calls: list[tuple[str, str]] = []
        self.status_text = status_text
        self.checks: dict[str, Callable[[str], None]] = {}
        self.fail_on: str | None = None

    def _record(self, operation: str, service: str) -> None:
        self.calls.append((operation, service))
        check = self.checks.get(operation)
        if check is not None:
            check(service)
        if self.fail_on == operation:
            raise ContainerCommandError(["compose", operation, service], 1, "boom")

    def restart(self, service: str) -> None:
        self._record("restart", service)

    def stop(self, service: str) -> None:
        self._record("stop", service)

    def start(self, service: str) -> None:
        self._record("start", service)

    def remove(self, service: str) -> None:
        self._record("remove", service)

    def build(self, service: str) -> None:
        self._record("build", service)

    def up(self, service: str) -> None:
        self._record("up", service)

    def status(self, service: str) -> str:
        return self.status_text

    @property
    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]


@pytest.fixture()
def runtime() -> RecordingRuntime:
    return RecordingRuntime()


@pytest.fixture()
def fake_command() -> Callable[[Path, str], Path]:
    return write_fake_command
