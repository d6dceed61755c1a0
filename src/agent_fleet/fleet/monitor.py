"""Tick-based progress polling over the communication channel."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime

from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.models import (
    AgentDescriptor,
    AgentState,
    AgentStatus,
    FleetPoll,
    MonitorReport,
)

logger = logging.getLogger(__name__)

STATE_INDICATORS = {
    AgentState.COMPLETE: "[done]",
    AgentState.RUNNING: "[run] ",
    AgentState.WAITING: "[wait]",
}


class ProgressMonitor:
    """Polls every agent's status file until all complete or the tick cap hits.

    Observed state never regresses: a tick that reads less progress than an
    earlier tick (torn write, deleted file) keeps the earlier observation.
    Timing out stops observing only; agents keep running.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        channel: CommunicationChannel,
        agents: Sequence[AgentDescriptor],
        tick_interval_seconds: float = 5.0,
        max_ticks: int = 360,
        report_every_ticks: int = 12,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = datetime.now,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        if max_ticks <= 0:
            raise ValueError("max_ticks must be > 0")
        if report_every_ticks <= 0:
            raise ValueError("report_every_ticks must be > 0")
        self.channel = channel
        self.agents = tuple(agents)
        self.tick_interval_seconds = tick_interval_seconds
        self.max_ticks = max_ticks
        self.report_every_ticks = report_every_ticks
        self._sleep = sleep
        self._now = now
        self._emit = on_progress or (lambda _: None)
        self._observed: dict[str, AgentStatus] = {}

    def poll_once(self) -> FleetPoll:
        """Read every status file once and merge with earlier observations."""

        statuses: list[AgentStatus] = []
        for agent in self.agents:
            current = self.channel.read_status(agent.agent_id)
            previous = self._observed.get(agent.agent_id)
            if previous is not None and previous.progress_key() > current.progress_key():
                current = previous
            self._observed[agent.agent_id] = current
            statuses.append(current)
        return FleetPoll(statuses=statuses)

    def run(self) -> MonitorReport:
        poll = FleetPoll(statuses=[AgentStatus(agent_id=agent.agent_id) for agent in self.agents])
        ticks = 0
        while ticks < self.max_ticks:
            self._sleep(self.tick_interval_seconds)
            poll = self.poll_once()
            if ticks % self.report_every_ticks == 0:
                for line in render_status_lines(poll, at=self._now()):
                    self._emit(line)
            ticks += 1
            if poll.all_complete:
                break

        if poll.all_complete:
            logger.info("All %d agents completed after %d ticks", len(self.agents), ticks)
            self._emit("All agents completed.")
        else:
            logger.warning(
                "Monitor timed out after %d ticks; %d/%d agents complete",
                ticks,
                poll.completed_count,
                len(self.agents),
            )
            self._emit("Timeout reached, some agents may still be running.")
        return MonitorReport(
            ticks=ticks,
            all_complete=poll.all_complete,
            timed_out=not poll.all_complete,
            statuses=poll.statuses,
        )


def render_status_lines(poll: FleetPoll, *, at: datetime | None = None) -> list[str]:
    """Human-readable status block for one poll."""

    lines = [f"Progress at {at:%H:%M:%S}:"] if at is not None else []
    for status in poll.statuses:
        indicator = STATE_INDICATORS[status.state]
        lines.append(f"  {indicator} {status.agent_id}: {_format_percent(status.completion)}%")
    return lines


def _format_percent(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"
