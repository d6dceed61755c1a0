"""Before/after measurement, test summary and integration script output."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.models import AgentDescriptor, Measurement, SuiteRunSummary

logger = logging.getLogger(__name__)

_TEST_SUMMARY_PATTERN = re.compile(r"^\s*(Tests|Test Suites|Suites):")
_SUMMARY_LINE_LIMIT = 2


class CommandFailedError(RuntimeError):
    """External verification command could not produce a result."""


@dataclass(slots=True)
class CommandResult:
    """Captured output of one external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[[str, int], CommandResult]


def run_command(command: str, timeout_seconds: int) -> CommandResult:
    """Run a configured command line and capture its output."""

    argv = shlex.split(command)
    if not argv:
        raise CommandFailedError("Configured command is empty.")
    try:
        completed = subprocess.run(  # noqa: S603
            argv,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired as error:
        message = f"Command timed out after {timeout_seconds}s: {command}"
        raise CommandFailedError(message) from error
    except OSError as error:
        raise CommandFailedError(f"Command failed to start: {error}") from error
    return CommandResult(
        args=tuple(argv),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


class Verifier:
    """Runs the audit and test commands; failures are reported, never raised."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        channel: CommunicationChannel,
        audit_command: str,
        test_command: str,
        metric_pattern: str = r"OVERALL.*?(\d+)%",
        timeout_seconds: int = 1_800,
        runner: CommandRunner = run_command,
    ) -> None:
        self.channel = channel
        self.audit_command = audit_command
        self.test_command = test_command
        self.metric_pattern = re.compile(metric_pattern)
        self.timeout_seconds = timeout_seconds
        self._runner = runner

    def measure(self, label: str) -> Measurement | None:
        """Run the audit command once and save its raw output as <label>-audit.txt."""

        try:
            result = self._runner(self.audit_command, self.timeout_seconds)
        except CommandFailedError as error:
            logger.warning("%s audit failed, continuing anyway: %s", label, error)
            return None
        if not result.ok:
            logger.warning(
                "%s audit exited with code %d, continuing anyway",
                label,
                result.returncode,
            )
            return None

        output_path: Path | None = self.channel.audit_path(label)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(result.stdout, "utf-8")
        except OSError as error:
            logger.warning("Cannot save %s audit output to %s: %s", label, output_path, error)
            output_path = None
        metric = parse_metric(result.stdout, self.metric_pattern)
        if metric is None:
            logger.warning("%s audit output has no headline metric", label)
        return Measurement(
            label=label,
            output=result.stdout,
            metric=metric,
            output_path=output_path,
        )

    def run_tests(self) -> SuiteRunSummary:
        try:
            result = self._runner(self.test_command, self.timeout_seconds)
        except CommandFailedError as error:
            logger.warning("Test suite could not run: %s", error)
            return SuiteRunSummary(exit_code=None, summary_lines=[], error=str(error))

        summary_lines = extract_test_summary(f"{result.stdout}\n{result.stderr}")
        if not result.ok:
            logger.warning("Test suite exited with code %d", result.returncode)
        return SuiteRunSummary(exit_code=result.returncode, summary_lines=summary_lines)


def parse_metric(output: str, pattern: re.Pattern[str]) -> int | None:
    match = pattern.search(output)
    if match is None:
        return None
    try:
        return int(match.group(1))
    except (IndexError, ValueError):
        return None


def compute_delta(before: Measurement | None, after: Measurement | None) -> int | None:
    """Metric change across the run, or None when either side is unknown."""

    if before is None or after is None or before.metric is None or after.metric is None:
        return None
    return after.metric - before.metric


def extract_test_summary(output: str) -> list[str]:
    lines = [line.strip() for line in output.splitlines() if _TEST_SUMMARY_PATTERN.match(line)]
    return lines[-_SUMMARY_LINE_LIMIT:]


def render_integration_script(
    *,
    agents: Sequence[AgentDescriptor],
    run_name: str,
    test_command: str,
    generated_at: datetime,
) -> str:
    """Shell script that commits every agent workspace and merges its branch."""

    blocks: list[str] = []
    for agent in agents:
        branch = shlex.quote(agent.agent_id)
        blocks.append(
            f'echo "Merging {agent.agent_id}..."\n'
            f"cd {shlex.quote(str(agent.workspace_path))}\n"
            f"git add -A\n"
            f"git commit -m {shlex.quote(f'{run_name}: fleet changes for {agent.agent_id}')}\n"
            f"cd -\n"
            f"git merge {branch} --no-ff -m "
            f"{shlex.quote(f'Integrate {agent.agent_id} changes')}\n",
        )
    return (
        "#!/bin/bash\n"
        f"# {run_name} integration script\n"
        f"# Generated: {generated_at.isoformat()}\n"
        "\n"
        f'echo "Merging {run_name} changes..."\n'
        "\n"
        + "\n".join(blocks)
        + "\n"
        'echo "All agents merged."\n'
        'echo "Running final tests..."\n'
        f"{test_command}\n"
    )


def write_integration_script(  # noqa: PLR0913
    *,
    channel: CommunicationChannel,
    agents: Sequence[AgentDescriptor],
    run_name: str,
    test_command: str,
    generated_at: datetime | None = None,
) -> Path:
    path = channel.integration_script_path(run_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        render_integration_script(
            agents=agents,
            run_name=run_name,
            test_command=test_command,
            generated_at=generated_at or datetime.now(tz=UTC),
        ),
        "utf-8",
    )
    path.chmod(0o755)
    return path
