from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_fleet.fleet.backend import demo_agent
from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.models import AgentState

pytestmark = [
    allure.epic("Fleet Run"),
    allure.feature("Demo Agent"),
]


def test_demo_agent_walks_status_to_complete(tmp_path: Path, monkeypatch) -> None:
    channel = CommunicationChannel(tmp_path)
    seen: list[tuple[AgentState, float]] = []

    def _sleep(_: float) -> None:
        status = channel.read_status("demo")
        seen.append((status.state, status.completion))

    monkeypatch.setattr(demo_agent.time, "sleep", _sleep)

    exit_code = demo_agent.main(
        ["--agent-id", "demo", "--communication-root", str(tmp_path), "--steps", "4"],
    )

    assert exit_code == 0
    assert seen == [
        (AgentState.RUNNING, 25.0),
        (AgentState.RUNNING, 50.0),
        (AgentState.RUNNING, 75.0),
    ]
    final = channel.read_status("demo")
    assert (final.state, final.completion) == (AgentState.COMPLETE, 100.0)
    assert not list(channel.progress_dir("demo").glob("*.tmp"))


def test_demo_agent_reads_identity_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("AGENT_ID", "env-agent")
    monkeypatch.setenv("AGENT_FLEET_COMMUNICATION_ROOT", str(tmp_path))

    assert demo_agent.main(["--steps", "1", "--step-seconds", "0"]) == 0
    assert CommunicationChannel(tmp_path).read_status("env-agent").is_complete


def test_demo_agent_requires_an_id(monkeypatch) -> None:
    monkeypatch.delenv("AGENT_ID", raising=False)

    with pytest.raises(SystemExit):
        demo_agent.main([])
