"""Runtime configuration for fleet runs and recovery."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

DEFAULT_AGENT_COMMAND = f"{sys.executable} -m agent_fleet.fleet.backend.demo_agent"


@dataclass(slots=True)
class ChannelSettings:
    """Shared communication directory settings."""

    root: Path = Path("communication")
    roster_path: Path | None = None


@dataclass(slots=True)
class LaunchSettings:
    """How agents are started."""

    externally_managed: bool = False
    agent_command: str = DEFAULT_AGENT_COMMAND
    reference_doc_template: str = "src/test/{role}-test-pattern (REFERENCE).md"


@dataclass(slots=True)
class MonitorSettings:
    """Progress polling cadence."""

    tick_interval_seconds: float = 5.0
    max_ticks: int = 360
    report_every_ticks: int = 12


@dataclass(slots=True)
class VerificationSettings:
    """Before/after measurement and integration settings."""

    audit_command: str = "./phase2-infrastructure-audit.sh"
    metric_pattern: str = r"OVERALL.*?(\d+)%"
    target_metric: int = 100
    test_command: str = "npm test"
    command_timeout_seconds: int = 1_800
    run_name: str = "phase2"


@dataclass(slots=True)
class RecoverySettings:
    """Container runtime and snapshot settings."""

    compose_command: str | None = None
    compose_file: Path | None = None
    service_template: str = "{agent_id}"
    workspaces_root: Path = Path("volumes")
    tail_lines: int = 10


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    channel: ChannelSettings = field(default_factory=ChannelSettings)
    launch: LaunchSettings = field(default_factory=LaunchSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    verification: VerificationSettings = field(default_factory=VerificationSettings)
    recovery: RecoverySettings = field(default_factory=RecoverySettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, communication_root: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local runs."""

        roster_raw = os.getenv("AGENT_FLEET_ROSTER_PATH", "").strip()
        compose_file_raw = os.getenv("AGENT_FLEET_COMPOSE_FILE", "").strip()
        return cls(
            channel=ChannelSettings(
                root=communication_root
                or Path(os.getenv("AGENT_FLEET_COMMUNICATION_ROOT", "communication")),
                roster_path=Path(roster_raw) if roster_raw else None,
            ),
            launch=LaunchSettings(
                externally_managed=_env_bool(
                    "AGENT_FLEET_DOCKER_ENV",
                    default=_env_bool("DOCKER_ENV", default=False),
                ),
                agent_command=os.getenv("AGENT_FLEET_AGENT_COMMAND", DEFAULT_AGENT_COMMAND),
                reference_doc_template=os.getenv(
                    "AGENT_FLEET_REFERENCE_DOC_TEMPLATE",
                    "src/test/{role}-test-pattern (REFERENCE).md",
                ),
            ),
            monitor=MonitorSettings(
                tick_interval_seconds=float(os.getenv("AGENT_FLEET_TICK_INTERVAL_SECONDS", "5")),
                max_ticks=int(os.getenv("AGENT_FLEET_MAX_TICKS", "360")),
                report_every_ticks=int(os.getenv("AGENT_FLEET_REPORT_EVERY_TICKS", "12")),
            ),
            verification=VerificationSettings(
                audit_command=os.getenv(
                    "AGENT_FLEET_AUDIT_COMMAND",
                    "./phase2-infrastructure-audit.sh",
                ),
                metric_pattern=os.getenv("AGENT_FLEET_METRIC_PATTERN", r"OVERALL.*?(\d+)%"),
                target_metric=int(os.getenv("AGENT_FLEET_TARGET_METRIC", "100")),
                test_command=os.getenv("AGENT_FLEET_TEST_COMMAND", "npm test"),
                command_timeout_seconds=int(
                    os.getenv("AGENT_FLEET_COMMAND_TIMEOUT_SECONDS", "1800"),
                ),
                run_name=os.getenv("AGENT_FLEET_RUN_NAME", "phase2"),
            ),
            recovery=RecoverySettings(
                compose_command=os.getenv("AGENT_FLEET_COMPOSE_COMMAND") or None,
                compose_file=Path(compose_file_raw) if compose_file_raw else None,
                service_template=os.getenv("AGENT_FLEET_SERVICE_TEMPLATE", "{agent_id}"),
                workspaces_root=Path(os.getenv("AGENT_FLEET_WORKSPACES_ROOT", "volumes")),
                tail_lines=int(os.getenv("AGENT_FLEET_TAIL_LINES", "10")),
            ),
            log_level=os.getenv("AGENT_FLEET_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error on values the run loop cannot work with."""

        if self.monitor.tick_interval_seconds < 0:
            raise ValueError("AGENT_FLEET_TICK_INTERVAL_SECONDS must be >= 0.")
        if self.monitor.max_ticks <= 0:
            raise ValueError("AGENT_FLEET_MAX_TICKS must be > 0.")
        if self.monitor.report_every_ticks <= 0:
            raise ValueError("AGENT_FLEET_REPORT_EVERY_TICKS must be > 0.")
        if self.verification.command_timeout_seconds <= 0:
            raise ValueError("AGENT_FLEET_COMMAND_TIMEOUT_SECONDS must be > 0.")
        if not self.verification.run_name.strip():
            raise ValueError("AGENT_FLEET_RUN_NAME must be a non-empty string.")
        if self.recovery.tail_lines <= 0:
            raise ValueError("AGENT_FLEET_TAIL_LINES must be > 0.")
        if "{agent_id}" not in self.recovery.service_template:
            raise ValueError("AGENT_FLEET_SERVICE_TEMPLATE must include {agent_id}.")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"AGENT_FLEET_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}: "
                f"{self.log_level!r}",
            )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off", ""}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
