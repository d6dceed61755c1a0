"""Timestamped, immutable copies of agent workspaces used as recovery points."""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from agent_fleet.fleet.models import SnapshotInfo

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
_SNAPSHOT_NAME = re.compile(
    r"^(?P<agent>.+?)-(?P<stamp>\d{8}-\d{6})(?:-(?P<suffix>[A-Za-z0-9][A-Za-z0-9_.-]*))?$",
)
_SUFFIX_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")
_COUNTER_SUFFIX = re.compile(r"^(?:(?P<label>.*)-)?(?P<counter>\d+)$")


class SnapshotError(RuntimeError):
    """Snapshot cannot be created or used."""


def parse_snapshot_name(name: str, path: Path) -> SnapshotInfo | None:
    """Split `<agent>-<YYYYMMDD-HHMMSS>[-suffix]`; None when it does not match."""

    match = _SNAPSHOT_NAME.match(name)
    if match is None:
        return None
    try:
        created_at = datetime.strptime(match.group("stamp"), TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        return None
    return SnapshotInfo(
        name=name,
        agent_id=match.group("agent"),
        created_at=created_at,
        suffix=match.group("suffix"),
        path=path,
    )


class SnapshotStore:
    """Creates, lists and restores snapshot directories under one root."""

    def __init__(self, root: Path, *, now: Callable[[], datetime] | None = None) -> None:
        self.root = root
        self._now = now or (lambda: datetime.now(tz=UTC))

    def list_snapshots(self, agent_id: str | None = None) -> list[SnapshotInfo]:
        """Snapshots ordered oldest first by parsed timestamp, then by collision counter."""

        if not self.root.is_dir():
            return []
        snapshots: list[SnapshotInfo] = []
        for entry in self.root.iterdir():
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            info = parse_snapshot_name(entry.name, entry)
            if info is None:
                continue
            if agent_id is not None and info.agent_id != agent_id:
                continue
            snapshots.append(info)
        snapshots.sort(key=_order_key)
        return snapshots

    def latest(self, agent_id: str) -> SnapshotInfo | None:
        snapshots = self.list_snapshots(agent_id)
        return snapshots[-1] if snapshots else None

    def create(
        self,
        *,
        agent_id: str,
        workspace: Path,
        progress_log: Path | None,
        suffix: str | None = None,
    ) -> SnapshotInfo:
        """Copy workspace and progress log into a new snapshot (best effort).

        A missing workspace or progress log is skipped with a warning; the
        snapshot directory itself is always created. Copies land in a hidden
        staging directory that is renamed into place only once they all succeed.
        """

        path = self._allocate_path(agent_id, suffix)
        staging = self.root / f".{path.name}.partial"
        # leftover from an interrupted create
        shutil.rmtree(staging, ignore_errors=True)
        try:
            staging.mkdir(parents=True)
        except OSError as error:
            raise SnapshotError(f"Cannot create snapshot {path}: {error}") from error

        try:
            if workspace.is_dir():
                shutil.copytree(workspace, staging / "workspace", symlinks=True)
            else:
                logger.warning(
                    "Workspace %s not found; snapshot %s has no workspace",
                    workspace,
                    path.name,
                )
            if progress_log is not None and progress_log.is_file():
                shutil.copy2(progress_log, staging / "progress.md")
            else:
                logger.info("No progress log to snapshot for %s", agent_id)
            staging.rename(path)
        except (OSError, shutil.Error) as error:
            shutil.rmtree(staging, ignore_errors=True)
            raise SnapshotError(f"Cannot create snapshot {path.name}: {error}") from error

        info = parse_snapshot_name(path.name, path)
        if info is None:
            raise SnapshotError(f"Snapshot name does not parse back: {path.name}")
        logger.info("Snapshot created: %s", path)
        return info

    def remove_workspace(self, workspace: Path) -> None:
        if workspace.is_dir() and not workspace.is_symlink():
            shutil.rmtree(workspace)
        elif workspace.exists() or workspace.is_symlink():
            workspace.unlink()

    def copy_workspace_back(self, snapshot: SnapshotInfo, workspace: Path) -> None:
        try:
            workspace.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(snapshot.workspace_path, workspace, symlinks=True)
        except OSError as error:
            raise SnapshotError(
                f"Cannot restore {snapshot.name} to {workspace}: {error}",
            ) from error

    def copy_progress_back(self, snapshot: SnapshotInfo, progress_log: Path) -> bool:
        if not snapshot.progress_log_path.is_file():
            return False
        progress_log.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(snapshot.progress_log_path, progress_log)
        return True

    def _allocate_path(self, agent_id: str, suffix: str | None) -> Path:
        stamp = self._now().strftime(TIMESTAMP_FORMAT)
        base = f"{agent_id}-{stamp}"
        clean_suffix = _SUFFIX_UNSAFE.sub("-", suffix).strip("-._") if suffix else ""
        if clean_suffix:
            base = f"{base}-{clean_suffix}"
        candidate = self.root / base
        counter = 1
        while candidate.exists():
            candidate = self.root / f"{base}-{counter}"
            counter += 1
        return candidate


def _order_key(info: SnapshotInfo) -> tuple[datetime, str, str, int, str]:
    label, counter = info.suffix or "", 0
    match = _COUNTER_SUFFIX.match(label)
    if match is not None:
        label, counter = match.group("label") or "", int(match.group("counter"))
    return (info.created_at, info.agent_id, label, counter, info.name)
