"""Run coordinator: one fleet run from channel setup to the final report."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from agent_fleet.config import Settings
from agent_fleet.fleet.channel import ChannelInitError, CommunicationChannel
from agent_fleet.fleet.launcher import ParallelLauncher
from agent_fleet.fleet.models import FleetRunResult, Measurement
from agent_fleet.fleet.monitor import ProgressMonitor
from agent_fleet.fleet.prompts import PromptGenerator
from agent_fleet.fleet.registry import AgentRegistry
from agent_fleet.fleet.verification import Verifier, compute_delta, write_integration_script

logger = logging.getLogger(__name__)


class FleetRunError(RuntimeError):
    """Fatal run failure; nothing after the failing phase was attempted."""


class FleetOrchestrator:
    """Executes the run phases in order and streams progress lines.

    Only channel initialization is fatal.  Measurement, launch and test
    failures are reported and the run carries on with partial results.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        settings: Settings,
        registry: AgentRegistry,
        channel: CommunicationChannel | None = None,
        launcher: ParallelLauncher | None = None,
        monitor: ProgressMonitor | None = None,
        verifier: Verifier | None = None,
        now: Callable[[], datetime] | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.channel = channel or CommunicationChannel(settings.channel.root)
        self._now = now or (lambda: datetime.now(tz=UTC))
        self._emit = on_progress or (lambda _: None)
        self.launcher = launcher or ParallelLauncher.for_mode(
            externally_managed=settings.launch.externally_managed,
            agent_command=settings.launch.agent_command,
            channel=self.channel,
            reference_doc_template=settings.launch.reference_doc_template,
        )
        self.monitor = monitor or ProgressMonitor(
            channel=self.channel,
            agents=registry.agents,
            tick_interval_seconds=settings.monitor.tick_interval_seconds,
            max_ticks=settings.monitor.max_ticks,
            report_every_ticks=settings.monitor.report_every_ticks,
            on_progress=self._emit,
        )
        self.verifier = verifier or Verifier(
            channel=self.channel,
            audit_command=settings.verification.audit_command,
            test_command=settings.verification.test_command,
            metric_pattern=settings.verification.metric_pattern,
            timeout_seconds=settings.verification.command_timeout_seconds,
        )

    def run(self) -> FleetRunResult:
        agents = self.registry.agents
        result = FleetRunResult(started_at=self._now())
        mode = "externally managed" if self.settings.launch.externally_managed else "local"
        run_name = self.settings.verification.run_name
        self._emit(f"Starting {run_name} fleet: {len(agents)} agents ({mode})")

        try:
            self.channel.ensure_channels(agents)
        except ChannelInitError as error:
            raise FleetRunError(f"Communication channel setup failed: {error}") from error
        self._emit(f"Communication channels ready under {self.channel.root}")

        self._emit("Running baseline measurement...")
        result.baseline = self.verifier.measure("baseline")
        self._emit(_describe_measurement("Baseline", result.baseline))

        self._emit("Generating agent prompts...")
        result.prompts = PromptGenerator(self.channel).generate_all(agents)
        self._emit(f"Prompts written: {len(result.prompts.written)}/{len(agents)}")
        for agent_id, reason in result.prompts.skipped.items():
            self._emit(f"  skipped {agent_id}: {reason}")

        self._emit("Launching agents...")
        result.launches = self.launcher.launch_all_sync(agents)
        for launch in result.launches:
            if launch.ok:
                self._emit(f"  launched {launch.agent_id}")
            else:
                self._emit(f"  failed {launch.agent_id}: {launch.error}")

        self._emit("Monitoring progress...")
        result.monitor = self.monitor.run()

        self._emit("Running final measurement...")
        result.final = self.verifier.measure("final")
        self._emit(_describe_measurement("Final", result.final))
        result.metric_delta = compute_delta(result.baseline, result.final)

        self._emit("Running test suite...")
        result.tests = self.verifier.run_tests()
        if result.tests.exit_code is None:
            self._emit(f"Test suite could not run: {result.tests.error}")
        else:
            self._emit(f"Test suite exit code: {result.tests.exit_code}")
            for line in result.tests.summary_lines:
                self._emit(f"  {line}")

        try:
            result.integration_script = write_integration_script(
                channel=self.channel,
                agents=agents,
                run_name=run_name,
                test_command=self.settings.verification.test_command,
                generated_at=self._now(),
            )
        except OSError as error:
            logger.warning("Cannot write integration script: %s", error)
            self._emit(f"Integration script could not be written: {error}")
        else:
            self._emit(f"Integration script written: {result.integration_script}")

        target_metric = self.settings.verification.target_metric
        for line in render_final_report(result, target_metric=target_metric):
            self._emit(line)
        logger.info(
            "Fleet run finished: complete=%s delta=%s",
            result.fleet_complete,
            result.metric_delta,
        )
        return result


def render_final_report(result: FleetRunResult, *, target_metric: int = 100) -> list[str]:
    """Completion verdict, fleet gap and audit gap for one run."""

    lines = ["", "Final report:"]
    statuses = result.monitor.statuses if result.monitor is not None else []
    completed = sum(1 for status in statuses if status.is_complete)
    if result.fleet_complete:
        lines.append(f"  Fleet completion: 100% ({completed}/{len(statuses)} agents complete)")
    else:
        average = sum(status.completion for status in statuses) / len(statuses) if statuses else 0.0
        lines.append(
            f"  Fleet completion: not reached ({completed}/{len(statuses)} agents complete, "
            f"gap {100 - average:.1f}%)",
        )
        lines.extend(
            f"    {status.agent_id}: {status.state.value} {status.completion:g}%"
            for status in statuses
            if not status.is_complete
        )

    if result.metric_delta is None:
        lines.append("  Audit delta: unavailable")
    else:
        lines.append(f"  Audit delta: {result.metric_delta:+d}%")

    final_metric = result.final.metric if result.final is not None else None
    if final_metric is None:
        lines.append(f"  Audit target {target_metric}%: unknown")
    elif final_metric >= target_metric:
        lines.append(f"  Audit target {target_metric}%: reached ({final_metric}%)")
    else:
        lines.append(
            f"  Audit target {target_metric}%: gap {target_metric - final_metric}% "
            f"(at {final_metric}%)",
        )
    return lines


def _describe_measurement(label: str, measurement: Measurement | None) -> str:
    if measurement is None:
        return f"{label} measurement unavailable"
    if measurement.metric is None:
        return f"{label} measurement has no headline metric"
    return f"{label}: {measurement.metric}%"
