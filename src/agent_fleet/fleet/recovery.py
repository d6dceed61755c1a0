"""Single-agent recovery: restart, restore from snapshot, or rebuild.

Each operation runs synchronously and stops at the first failing container
command.  Nothing is rolled back; whatever completed before the failure stays
done.  Callers must not run recovery while the agent itself, or another
recovery for the same agent, is touching the workspace.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.models import RecoveryKind, RecoveryReport, SnapshotInfo
from agent_fleet.fleet.registry import AgentRegistry
from agent_fleet.fleet.runtime import ContainerRuntime
from agent_fleet.fleet.snapshots import SnapshotError, SnapshotStore

logger = logging.getLogger(__name__)

REBUILD_BACKUP_SUFFIX = "pre-rebuild"


@dataclass(slots=True)
class RecoveryTarget:
    """Resolved locations for one agent's recovery."""

    agent_id: str
    service: str
    workspace: Path
    progress_log: Path


class RecoveryService:
    """Dispatches the three recovery operations for one agent."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        channel: CommunicationChannel,
        runtime: ContainerRuntime,
        registry: AgentRegistry,
        workspaces_root: Path,
        service_template: str = "{agent_id}",
        tail_lines: int = 10,
        snapshots: SnapshotStore | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.channel = channel
        self.runtime = runtime
        self.registry = registry
        self.workspaces_root = workspaces_root
        self.service_template = service_template
        self.tail_lines = tail_lines
        self._now = now or (lambda: datetime.now(tz=UTC))
        self.snapshots = snapshots or SnapshotStore(channel.snapshots_dir, now=self._now)

    def resolve(self, agent_id: str) -> RecoveryTarget:
        """Registered agents use their roster workspace; others the workspaces root."""

        agent = self.registry.find(agent_id)
        workspace = agent.workspace_path if agent is not None else self.workspaces_root / agent_id
        return RecoveryTarget(
            agent_id=agent_id,
            service=self.service_template.format(agent_id=agent_id),
            workspace=workspace,
            progress_log=self.channel.progress_log_path(agent_id),
        )

    def recover(self, agent_id: str, kind: RecoveryKind) -> RecoveryReport:
        target = self.resolve(agent_id)
        if kind == RecoveryKind.RESTART:
            report = self.restart(target)
        elif kind == RecoveryKind.RESTORE:
            report = self.restore(target)
        elif kind == RecoveryKind.REBUILD:
            report = self.rebuild(target)
        else:  # pragma: no cover
            raise AssertionError(f"Unhandled recovery kind: {kind}")
        self._record_operation(report)
        return report

    def restart(self, target: RecoveryTarget) -> RecoveryReport:
        lines = [f"Restarting {target.agent_id} (service {target.service})..."]
        self.runtime.restart(target.service)
        self._append_progress(target, "Agent restarted by recovery")
        lines.append(f"Restarted {target.agent_id}.")
        lines.extend(self._status_report(target))
        return RecoveryReport(agent_id=target.agent_id, kind=RecoveryKind.RESTART, lines=lines)

    def restore(self, target: RecoveryTarget) -> RecoveryReport:
        lines = [f"Restoring {target.agent_id} from the latest snapshot..."]
        created: SnapshotInfo | None = None
        snapshot = self.snapshots.latest(target.agent_id)
        if snapshot is None:
            logger.warning("No snapshot for %s; creating one from current state", target.agent_id)
            created = self.snapshots.create(
                agent_id=target.agent_id,
                workspace=target.workspace,
                progress_log=target.progress_log,
            )
            snapshot = created
            lines.append(f"No snapshot found; created {created.name} from current state.")
        if not snapshot.workspace_path.is_dir():
            raise SnapshotError(f"Snapshot {snapshot.name} has no workspace copy to restore")
        lines.append(f"Using snapshot {snapshot.name}.")

        self.runtime.stop(target.service)
        self.snapshots.remove_workspace(target.workspace)
        self.snapshots.copy_workspace_back(snapshot, target.workspace)
        if self.snapshots.copy_progress_back(snapshot, target.progress_log):
            lines.append("Progress log restored.")
        self.runtime.start(target.service)

        self._append_progress(target, f"Agent restored from snapshot {snapshot.name}")
        lines.append(f"Restored {target.agent_id} from {snapshot.name}.")
        lines.extend(self._status_report(target))
        return RecoveryReport(
            agent_id=target.agent_id,
            kind=RecoveryKind.RESTORE,
            lines=lines,
            snapshot_used=snapshot,
            snapshot_created=created,
        )

    def rebuild(self, target: RecoveryTarget) -> RecoveryReport:
        lines = [f"Rebuilding {target.agent_id} (service {target.service})..."]
        backup = self.snapshots.create(
            agent_id=target.agent_id,
            workspace=target.workspace,
            progress_log=target.progress_log,
            suffix=REBUILD_BACKUP_SUFFIX,
        )
        lines.append(f"Backup snapshot created: {backup.name}.")

        self.runtime.stop(target.service)
        self.runtime.remove(target.service)
        self.runtime.build(target.service)
        self.runtime.up(target.service)

        self._append_progress(target, f"Agent rebuilt; backup {backup.name}")
        lines.append(f"Rebuilt {target.agent_id}.")
        lines.extend(self._status_report(target))
        return RecoveryReport(
            agent_id=target.agent_id,
            kind=RecoveryKind.REBUILD,
            lines=lines,
            snapshot_created=backup,
        )

    def _status_report(self, target: RecoveryTarget) -> list[str]:
        lines = ["", "Container status:"]
        status = self.runtime.status(target.service).strip()
        lines.extend(f"  {line}" for line in (status.splitlines() or ["(no output)"]))
        tail = self.channel.tail_progress_log(target.agent_id, self.tail_lines)
        if tail is None:
            lines.append(f"No progress file found for {target.agent_id}")
            return lines
        lines.append(f"Last {len(tail)} progress lines:")
        lines.extend(f"  {line}" for line in tail)
        return lines

    def _append_progress(self, target: RecoveryTarget, message: str) -> None:
        """Append to the agent-owned progress log; never create it."""

        if not target.progress_log.is_file():
            logger.info("No progress log for %s; nothing appended", target.agent_id)
            return
        with target.progress_log.open("a", encoding="utf-8") as handle:
            handle.write(f"[{self._now().isoformat(timespec='seconds')}] {message}\n")

    def _record_operation(self, report: RecoveryReport) -> None:
        log_path = self.channel.recovery_log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        used = report.snapshot_used.name if report.snapshot_used else "-"
        created = report.snapshot_created.name if report.snapshot_created else "-"
        with log_path.open("a", encoding="utf-8") as handle:
            handle.write(
                f"[{self._now().isoformat(timespec='seconds')}] {report.kind.value.upper()} "
                f"agent={report.agent_id} snapshot_used={used} snapshot_created={created} "
                "status=SUCCESS\n",
            )
