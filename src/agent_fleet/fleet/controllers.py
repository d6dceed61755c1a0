"""CLI controller for fleet runs, status, snapshots and recovery."""

from __future__ import annotations

import json
import logging
import queue
import threading
from collections.abc import Iterator
from dataclasses import dataclass, replace
from pathlib import Path

from agent_fleet.config import Settings
from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.contracts import write_task_spec
from agent_fleet.fleet.models import RecoveryKind, TaskSpec
from agent_fleet.fleet.monitor import ProgressMonitor, render_status_lines
from agent_fleet.fleet.orchestrator import FleetOrchestrator, FleetRunError
from agent_fleet.fleet.prompts import PromptGenerator
from agent_fleet.fleet.recovery import RecoveryService
from agent_fleet.fleet.registry import AgentRegistry, load_registry
from agent_fleet.fleet.runtime import (
    ComposeRuntime,
    ContainerCommandError,
    detect_compose_command,
)
from agent_fleet.fleet.snapshots import SnapshotError, SnapshotStore

logger = logging.getLogger(__name__)

_SENTINEL = object()


@dataclass(slots=True)
class FleetInitCommand:
    """Input for fleet init CLI command."""

    communication_root: Path | None = None
    task_templates: bool = False


@dataclass(slots=True)
class FleetPromptsCommand:
    """Input for fleet prompts CLI command."""

    communication_root: Path | None = None


@dataclass(slots=True)
class FleetRunCommand:
    """Input for fleet run CLI command."""

    communication_root: Path | None = None
    max_ticks: int | None = None
    tick_interval_seconds: float | None = None
    externally_managed: bool | None = None


@dataclass(slots=True)
class FleetStatusCommand:
    """Input for fleet status CLI command."""

    communication_root: Path | None = None
    as_json: bool = False


@dataclass(slots=True)
class SnapshotCommand:
    """Input for snapshot CLI command."""

    agent_id: str
    label: str | None = None
    communication_root: Path | None = None


@dataclass(slots=True)
class SnapshotListCommand:
    """Input for snapshots CLI command."""

    agent_id: str | None = None
    communication_root: Path | None = None


@dataclass(slots=True)
class RecoverCommand:
    """Input for recover CLI command."""

    agent_id: str
    kind: RecoveryKind
    communication_root: Path | None = None


@dataclass(slots=True)
class RecoverResult:
    """Recovery report to render in CLI."""

    lines: list[str]
    success: bool


class FleetCliController:
    """Coordinates fleet run, inspection and recovery CLI operations."""

    def init(self, command: FleetInitCommand) -> list[str]:
        settings, registry = _load(command.communication_root)
        channel = CommunicationChannel(settings.channel.root)
        directories = channel.ensure_channels(registry.agents)
        lines = [f"Communication channel ready: {channel.root} ({len(directories)} directories)"]

        for agent in registry:
            task_path = channel.task_path(agent)
            if task_path.is_file():
                lines.append(f"  {agent.agent_id}: task file {task_path}")
            elif command.task_templates:
                reference = settings.launch.reference_doc_template.format(
                    role=agent.role.value,
                    agent_id=agent.agent_id,
                )
                write_task_spec(task_path, TaskSpec(reference=reference))
                lines.append(f"  {agent.agent_id}: task template written to {task_path}")
            else:
                lines.append(f"  {agent.agent_id}: task file missing ({task_path})")
        return lines

    def prompts(self, command: FleetPromptsCommand) -> list[str]:
        settings, registry = _load(command.communication_root)
        channel = CommunicationChannel(settings.channel.root)
        channel.ensure_channels(registry.agents)
        result = PromptGenerator(channel).generate_all(registry.agents)

        lines = [f"Prompts written: {len(result.written)}/{len(registry)}"]
        lines.extend(f"  {agent_id}: {path}" for agent_id, path in result.written.items())
        lines.extend(
            f"  skipped {agent_id}: {reason}" for agent_id, reason in result.skipped.items()
        )
        return lines

    def run_fleet(self, command: FleetRunCommand) -> Iterator[str]:
        """Execute one fleet run, yielding real-time progress lines.

        The failure banner is yielded before the error propagates so the
        CLI prints it ahead of its own error message.
        """

        settings, registry = _load(command.communication_root)
        if command.max_ticks is not None:
            settings.monitor = replace(settings.monitor, max_ticks=command.max_ticks)
        if command.tick_interval_seconds is not None:
            settings.monitor = replace(
                settings.monitor,
                tick_interval_seconds=command.tick_interval_seconds,
            )
        if command.externally_managed is not None:
            settings.launch = replace(
                settings.launch,
                externally_managed=command.externally_managed,
            )
        settings.validate()

        progress_q: queue.Queue[str | object] = queue.Queue()
        error_holder: list[Exception] = []

        def _run() -> None:
            try:
                orchestrator = FleetOrchestrator(
                    settings=settings,
                    registry=registry,
                    on_progress=progress_q.put,
                )
                orchestrator.run()
            except Exception as exc:  # noqa: BLE001
                error_holder.append(exc)
            finally:
                progress_q.put(_SENTINEL)

        worker_thread = threading.Thread(target=_run, daemon=True)
        worker_thread.start()

        while True:
            item = progress_q.get()
            if item is _SENTINEL:
                break
            yield str(item)

        worker_thread.join(timeout=10)

        if error_holder:
            error = error_holder[0]
            yield f"Fleet run failed: {error}"
            if isinstance(error, FleetRunError):
                raise error
            raise FleetRunError(str(error)) from error

    def status(self, command: FleetStatusCommand) -> list[str]:
        settings, registry = _load(command.communication_root)
        channel = CommunicationChannel(settings.channel.root)
        poll = ProgressMonitor(channel=channel, agents=registry.agents).poll_once()

        if command.as_json:
            payload = {
                "all_complete": poll.all_complete,
                "completed": poll.completed_count,
                "total": len(poll.statuses),
                "agents": [
                    {
                        "agent_id": status.agent_id,
                        "status": status.state.value,
                        "completion": status.completion,
                    }
                    for status in poll.statuses
                ],
            }
            return [json.dumps(payload, indent=2)]

        lines = render_status_lines(poll)
        lines.append(
            f"Complete: {poll.completed_count}/{len(poll.statuses)} "
            f"(average {poll.average_completion:.1f}%)",
        )
        return lines

    def snapshot(self, command: SnapshotCommand) -> list[str]:
        settings, registry = _load(command.communication_root)
        channel = CommunicationChannel(settings.channel.root)
        target = _recovery_service(settings, registry, channel).resolve(command.agent_id)
        info = SnapshotStore(channel.snapshots_dir).create(
            agent_id=command.agent_id,
            workspace=target.workspace,
            progress_log=target.progress_log,
            suffix=command.label,
        )
        lines = [f"Snapshot created: {info.name}", f"Path: {info.path}"]
        if not info.workspace_path.is_dir():
            lines.append(f"Warning: workspace {target.workspace} not found; nothing copied")
        return lines

    def list_snapshots(self, command: SnapshotListCommand) -> list[str]:
        settings = Settings.from_env(communication_root=command.communication_root)
        channel = CommunicationChannel(settings.channel.root)
        snapshots = SnapshotStore(channel.snapshots_dir).list_snapshots(command.agent_id)
        if not snapshots:
            return ["No snapshots found."]

        lines = [f"Snapshots: {len(snapshots)}"]
        for info in snapshots:
            restorable = "workspace" if info.workspace_path.is_dir() else "no workspace"
            lines.append(
                f"  {info.name} agent={info.agent_id} "
                f"created={info.created_at.isoformat()} ({restorable})",
            )
        return lines

    def recover(self, command: RecoverCommand) -> RecoverResult:
        settings, registry = _load(command.communication_root)
        channel = CommunicationChannel(settings.channel.root)
        service = _recovery_service(settings, registry, channel)
        try:
            report = service.recover(command.agent_id, command.kind)
        except (ContainerCommandError, SnapshotError) as error:
            logger.error(
                "Recovery %s for %s failed: %s",
                command.kind.value,
                command.agent_id,
                error,
            )
            return RecoverResult(
                lines=[
                    f"Recovery failed for {command.agent_id} ({command.kind.value}):",
                    str(error),
                ],
                success=False,
            )
        return RecoverResult(lines=report.lines, success=True)


def _load(communication_root: Path | None) -> tuple[Settings, AgentRegistry]:
    settings = Settings.from_env(communication_root=communication_root)
    settings.validate()
    return settings, load_registry(settings.channel.roster_path)


def _recovery_service(
    settings: Settings,
    registry: AgentRegistry,
    channel: CommunicationChannel,
) -> RecoveryService:
    runtime = ComposeRuntime(
        compose_command=detect_compose_command(settings.recovery.compose_command),
        compose_file=settings.recovery.compose_file,
    )
    return RecoveryService(
        channel=channel,
        runtime=runtime,
        registry=registry,
        workspaces_root=settings.recovery.workspaces_root,
        service_template=settings.recovery.service_template,
        tail_lines=settings.recovery.tail_lines,
    )
