from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from agent_fleet.config import LaunchSettings, MonitorSettings, Settings, VerificationSettings
from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.contracts import write_agent_status, write_task_spec
from agent_fleet.fleet.models import (
    AgentState,
    AgentStatus,
    FleetRunResult,
    Measurement,
    MonitorReport,
    TaskSpec,
)
from agent_fleet.fleet.orchestrator import FleetOrchestrator, FleetRunError, render_final_report
from agent_fleet.fleet.registry import AgentRegistry
from agent_fleet.fleet.verification import CommandResult, Verifier

pytestmark = [
    allure.epic("Fleet Run"),
    allure.feature("Orchestrator"),
]

_NOW = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)


def _settings() -> Settings:
    return Settings(
        launch=LaunchSettings(externally_managed=True),
        monitor=MonitorSettings(tick_interval_seconds=0, max_ticks=3, report_every_ticks=1),
        verification=VerificationSettings(audit_command="audit", test_command="tests"),
    )


def _scripted_runner(audits: list[str]):
    def _run(command: str, timeout_seconds: int) -> CommandResult:
        if command == "audit":
            return CommandResult(args=(command,), returncode=0, stdout=audits.pop(0), stderr="")
        return CommandResult(args=(command,), returncode=0, stdout="Tests: 3 passed\n", stderr="")

    return _run


def _orchestrator(tmp_path: Path, two_agents, lines: list[str]) -> FleetOrchestrator:
    channel = CommunicationChannel(tmp_path / "comm")
    return FleetOrchestrator(
        settings=_settings(),
        registry=AgentRegistry(two_agents),
        channel=channel,
        verifier=Verifier(
            channel=channel,
            audit_command="audit",
            test_command="tests",
            runner=_scripted_runner(["OVERALL: 40%\n", "OVERALL: 100%\n"]),
        ),
        now=lambda: _NOW,
        on_progress=lines.append,
    )


def test_run_executes_every_phase(tmp_path: Path, two_agents) -> None:
    lines: list[str] = []
    orchestrator = _orchestrator(tmp_path, two_agents, lines)
    channel = orchestrator.channel
    write_task_spec(channel.task_path(two_agents[0]), TaskSpec(reference="ref.md"))
    for agent in two_agents:
        write_agent_status(
            channel.metrics_path(agent.agent_id),
            AgentStatus(agent_id=agent.agent_id, state=AgentState.COMPLETE, completion=100),
        )

    result = orchestrator.run()

    assert result.baseline is not None
    assert result.baseline.metric == 40
    assert result.final is not None
    assert result.final.metric == 100
    assert result.metric_delta == 60
    assert list(result.prompts.written) == ["agent-a"]
    assert list(result.prompts.skipped) == ["agent-b"]
    assert [launch.ok for launch in result.launches] == [True, True]
    assert result.monitor.ticks == 1
    assert result.fleet_complete is True
    assert result.tests.summary_lines == ["Tests: 3 passed"]
    assert result.integration_script == channel.root / "merge-phase2.sh"
    assert (channel.root / "baseline-audit.txt").exists()
    assert (channel.root / "final-audit.txt").exists()
    assert "  Fleet completion: 100% (2/2 agents complete)" in lines
    assert "  Audit delta: +60%" in lines
    assert "  Audit target 100%: reached (100%)" in lines


def test_timeout_still_runs_verification(tmp_path: Path, two_agents) -> None:
    lines: list[str] = []
    orchestrator = _orchestrator(tmp_path, two_agents, lines)
    write_agent_status(
        orchestrator.channel.metrics_path("agent-a"),
        AgentStatus(agent_id="agent-a", state=AgentState.RUNNING, completion=50),
    )

    result = orchestrator.run()

    assert result.monitor.timed_out is True
    assert result.monitor.ticks == 3
    assert result.final is not None
    assert result.integration_script is not None
    assert "Timeout reached, some agents may still be running." in lines
    assert "  Fleet completion: not reached (0/2 agents complete, gap 75.0%)" in lines


def test_channel_failure_aborts_the_run(tmp_path: Path, two_agents) -> None:
    lines: list[str] = []
    orchestrator = _orchestrator(tmp_path, two_agents, lines)
    (tmp_path / "comm").write_text("not a directory", "utf-8")

    with pytest.raises(FleetRunError, match="Communication channel setup failed"):
        orchestrator.run()

    assert not any(line.startswith("Running baseline") for line in lines)


def test_final_report_marks_unavailable_delta_and_target_gap() -> None:
    result = FleetRunResult(
        started_at=_NOW,
        baseline=None,
        final=Measurement(label="final", output="", metric=85),
        monitor=MonitorReport(
            ticks=3,
            all_complete=True,
            timed_out=False,
            statuses=[AgentStatus(agent_id="a", state=AgentState.COMPLETE, completion=100)],
        ),
    )

    lines = render_final_report(result, target_metric=100)

    assert "  Audit delta: unavailable" in lines
    assert "  Audit target 100%: gap 15% (at 85%)" in lines


def test_output_write_failures_do_not_abort_the_run(tmp_path: Path, two_agents) -> None:
    lines: list[str] = []
    orchestrator = _orchestrator(tmp_path, two_agents, lines)
    channel = orchestrator.channel
    write_task_spec(channel.task_path(two_agents[0]), TaskSpec(reference="ref.md"))
    # directories where files are expected make every write fail
    channel.audit_path("baseline").mkdir(parents=True)
    channel.prompt_path("agent-a").mkdir(parents=True)
    channel.integration_script_path("phase2").mkdir(parents=True)

    result = orchestrator.run()

    assert result.baseline is not None
    assert result.baseline.metric == 40
    assert result.baseline.output_path is None
    assert result.prompts.written == {}
    assert result.prompts.skipped["agent-a"].startswith("cannot write prompt:")
    assert result.integration_script is None
    assert any(line.startswith("Integration script could not be written:") for line in lines)
    assert "  Audit delta: +60%" in lines
