"""Domain models for fleet runs and recovery."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class AgentRole(str, Enum):
    """Closed set of agent categories; selects prompt instruction blocks."""

    SERVICE = "service"
    HOOK = "hook"
    SCHEMA = "schema"
    MIXED = "mixed"


class AgentPriority(str, Enum):
    """Informational priority shown in prompts and listings."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AgentState(str, Enum):
    """Agent-reported lifecycle states, ordered by progress."""

    WAITING = "waiting"
    RUNNING = "running"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {
    AgentState.WAITING: 0,
    AgentState.RUNNING: 1,
    AgentState.COMPLETE: 2,
}


class LaunchOutcome(str, Enum):
    """Result tag of one launch attempt."""

    LAUNCHED = "launched"
    FAILED = "failed"


class RecoveryKind(str, Enum):
    """Recovery operations supported for a single agent."""

    RESTART = "restart"
    RESTORE = "restore"
    REBUILD = "rebuild"

    @classmethod
    def parse(cls, value: str) -> RecoveryKind:
        """Map CLI input to a recovery kind, rejecting anything unknown."""

        normalized = value.strip().lower()
        for kind in cls:
            if kind.value == normalized:
                return kind
        raise UnknownRecoveryTypeError(value)


class UnknownRecoveryTypeError(ValueError):
    """Raised for recovery types outside restart/restore/rebuild."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Unknown recovery type: {value}")
        self.value = value


@dataclass(frozen=True, slots=True)
class AgentDescriptor:
    """Static description of one registered agent."""

    agent_id: str
    role: AgentRole
    workspace_path: Path
    task_file: str
    priority: AgentPriority = AgentPriority.MEDIUM


@dataclass(slots=True)
class AgentStatus:
    """Status observed from an agent's metrics file."""

    agent_id: str
    state: AgentState = AgentState.WAITING
    completion: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.state == AgentState.COMPLETE

    def progress_key(self) -> tuple[int, float]:
        return self.state.rank, self.completion


@dataclass(slots=True)
class TaskSpec:
    """Per-agent task input rendered into the agent prompt."""

    reference: str
    files_to_fix: list[str] = field(default_factory=list)
    patterns_to_apply: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LaunchResult:
    """Outcome of one launch attempt."""

    agent_id: str
    outcome: LaunchOutcome
    pid: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == LaunchOutcome.LAUNCHED


@dataclass(slots=True)
class FleetPoll:
    """Statuses of every agent observed in one tick."""

    statuses: list[AgentStatus]

    @property
    def all_complete(self) -> bool:
        return all(status.is_complete for status in self.statuses)

    @property
    def completed_count(self) -> int:
        return sum(1 for status in self.statuses if status.is_complete)

    @property
    def average_completion(self) -> float:
        if not self.statuses:
            return 100.0
        return sum(status.completion for status in self.statuses) / len(self.statuses)


@dataclass(slots=True)
class MonitorReport:
    """How the monitor loop ended."""

    ticks: int
    all_complete: bool
    timed_out: bool
    statuses: list[AgentStatus]


@dataclass(slots=True)
class Measurement:
    """Raw measurement command output plus its parsed headline metric."""

    label: str
    output: str
    metric: int | None
    output_path: Path | None = None


@dataclass(slots=True)
class SuiteRunSummary:
    """Summary of one test-suite invocation."""

    exit_code: int | None
    summary_lines: list[str]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(slots=True)
class PromptGenerationResult:
    """Prompts written and agents skipped by the prompt generator."""

    written: dict[str, Path] = field(default_factory=dict)
    skipped: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class FleetRunResult:
    """Aggregate result of one orchestration run."""

    started_at: datetime
    baseline: Measurement | None = None
    final: Measurement | None = None
    metric_delta: int | None = None
    prompts: PromptGenerationResult | None = None
    launches: list[LaunchResult] = field(default_factory=list)
    monitor: MonitorReport | None = None
    tests: SuiteRunSummary | None = None
    integration_script: Path | None = None

    @property
    def fleet_complete(self) -> bool:
        return self.monitor is not None and self.monitor.all_complete


@dataclass(slots=True)
class SnapshotInfo:
    """Parsed snapshot directory."""

    name: str
    agent_id: str
    created_at: datetime
    suffix: str | None
    path: Path

    @property
    def workspace_path(self) -> Path:
        return self.path / "workspace"

    @property
    def progress_log_path(self) -> Path:
        return self.path / "progress.md"


@dataclass(slots=True)
class RecoveryReport:
    """Result of one recovery operation."""

    agent_id: str
    kind: RecoveryKind
    lines: list[str]
    snapshot_used: SnapshotInfo | None = None
    snapshot_created: SnapshotInfo | None = None
