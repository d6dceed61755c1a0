"""CLI entrypoint for agent-fleet."""

import logging
import os
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from agent_fleet import __version__
from agent_fleet.config import LOG_LEVELS
from agent_fleet.fleet.channel import ChannelInitError
from agent_fleet.fleet.controllers import (
    FleetCliController,
    FleetInitCommand,
    FleetPromptsCommand,
    FleetRunCommand,
    FleetStatusCommand,
    RecoverCommand,
    SnapshotCommand,
    SnapshotListCommand,
)
from agent_fleet.fleet.models import RecoveryKind, UnknownRecoveryTypeError
from agent_fleet.fleet.orchestrator import FleetRunError

click.rich_click.USE_MARKDOWN = True
FLEET_CONTROLLER = FleetCliController()

_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"
_RECOVERY_TYPES = ", ".join(kind.value for kind in RecoveryKind)

CommandT = TypeVar("CommandT")
ResultT = TypeVar("ResultT")


def configure_logging(level: str | None = None) -> None:
    resolved = (level or os.getenv("AGENT_FLEET_LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=_LOG_FORMAT)


communication_root_option = click.option(
    "--communication-root",
    type=click.Path(path_type=Path),
    default=None,
    help="Shared communication directory (default: AGENT_FLEET_COMMUNICATION_ROOT).",
)


@click.group()
@click.version_option(version=__version__, prog_name="agent-fleet")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level (default: AGENT_FLEET_LOG_LEVEL or INFO).",
)
def agent_fleet(log_level: str | None) -> None:
    """Agent fleet orchestrator with snapshot-based recovery."""

    configure_logging(log_level)


@agent_fleet.command("init")
@communication_root_option
@click.option(
    "--task-templates/--no-task-templates",
    default=False,
    show_default=True,
    help="Write empty task files for agents that have none.",
)
def fleet_init(communication_root: Path | None, task_templates: bool) -> None:
    """Create the communication channel directories for every agent."""

    _emit_lines(
        _call(
            FLEET_CONTROLLER.init,
            FleetInitCommand(communication_root=communication_root, task_templates=task_templates),
        ),
    )


@agent_fleet.command("prompts")
@communication_root_option
def fleet_prompts(communication_root: Path | None) -> None:
    """Render `prompts/<agent>.md` from each agent's task file."""

    _emit_lines(
        _call(FLEET_CONTROLLER.prompts, FleetPromptsCommand(communication_root=communication_root)),
    )


@agent_fleet.command("run")
@communication_root_option
@click.option(
    "--max-ticks",
    type=click.IntRange(min=1),
    default=None,
    help="Monitor tick cap (default: AGENT_FLEET_MAX_TICKS or 360).",
)
@click.option(
    "--tick-interval",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds between monitor ticks (default: AGENT_FLEET_TICK_INTERVAL_SECONDS or 5).",
)
@click.option(
    "--docker/--local",
    "externally_managed",
    default=None,
    help="Treat agents as externally managed containers, or spawn local processes.",
)
def fleet_run(
    communication_root: Path | None,
    max_ticks: int | None,
    tick_interval: float | None,
    externally_managed: bool | None,
) -> None:
    """Run the full fleet: measure, prompt, launch, monitor, verify.

    Progress lines stream as the run advances.  Only a communication
    channel failure aborts the run.
    """

    lines = FLEET_CONTROLLER.run_fleet(
        FleetRunCommand(
            communication_root=communication_root,
            max_ticks=max_ticks,
            tick_interval_seconds=tick_interval,
            externally_managed=externally_managed,
        ),
    )
    try:
        _emit_lines(lines)
    except FleetRunError as error:
        raise click.ClickException("Fleet run failed.") from error
    except ValueError as error:
        raise click.UsageError(str(error)) from error


@agent_fleet.command("status")
@communication_root_option
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
def fleet_status(communication_root: Path | None, as_json: bool) -> None:
    """Read every agent status file once."""

    _emit_lines(
        _call(
            FLEET_CONTROLLER.status,
            FleetStatusCommand(communication_root=communication_root, as_json=as_json),
        ),
    )


@agent_fleet.command("snapshot")
@communication_root_option
@click.argument("agent_id")
@click.option("--label", default=None, help="Suffix appended to the snapshot name.")
def fleet_snapshot(communication_root: Path | None, agent_id: str, label: str | None) -> None:
    """Copy an agent's workspace and progress log into a new snapshot."""

    _emit_lines(
        _call(
            FLEET_CONTROLLER.snapshot,
            SnapshotCommand(
                agent_id=agent_id,
                label=label,
                communication_root=communication_root,
            ),
        ),
    )


@agent_fleet.command("snapshots")
@communication_root_option
@click.option("--agent", "agent_id", default=None, help="Only list snapshots of this agent.")
def fleet_snapshots(communication_root: Path | None, agent_id: str | None) -> None:
    """List snapshots, oldest first."""

    _emit_lines(
        _call(
            FLEET_CONTROLLER.list_snapshots,
            SnapshotListCommand(agent_id=agent_id, communication_root=communication_root),
        ),
    )


@click.command("recover")
@communication_root_option
@click.argument("agent_id", required=False)
@click.argument("mode", required=False, default="restart")
@click.pass_context
def recover(
    ctx: click.Context,
    communication_root: Path | None,
    agent_id: str | None,
    mode: str,
) -> None:
    """Recover one agent.

    MODE is `restart` (default), `restore` from the latest snapshot, or `rebuild`.
    """

    if not agent_id:
        click.echo(ctx.get_usage())
        click.echo(f"Recovery types: {_RECOVERY_TYPES}")
        ctx.exit(1)
    try:
        kind = RecoveryKind.parse(mode)
    except UnknownRecoveryTypeError as error:
        click.echo(str(error))
        click.echo(f"Recovery types: {_RECOVERY_TYPES}")
        ctx.exit(1)

    if ctx.parent is None:
        configure_logging()
    result = _call(
        FLEET_CONTROLLER.recover,
        RecoverCommand(agent_id=agent_id, kind=kind, communication_root=communication_root),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(f"Recovery {kind.value} failed for {agent_id}.")


agent_fleet.add_command(recover)


def _call(handler: Callable[[CommandT], ResultT], command: CommandT) -> ResultT:
    try:
        return handler(command)
    except ValueError as error:
        raise click.UsageError(str(error)) from error
    except ChannelInitError as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: Iterable[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_fleet()
