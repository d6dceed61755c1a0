"""Local demo agent that reports simulated progress through the channel."""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path

from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.contracts import write_agent_status
from agent_fleet.fleet.models import AgentState, AgentStatus


def main(argv: list[str] | None = None) -> int:
    """Walk the metrics file from running to complete."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--agent-id", default=os.getenv("AGENT_ID"))
    parser.add_argument(
        "--communication-root",
        default=os.getenv("AGENT_FLEET_COMMUNICATION_ROOT", "communication"),
    )
    parser.add_argument("--steps", type=int, default=4)
    parser.add_argument("--step-seconds", type=float, default=1.0)
    args = parser.parse_args(argv)
    if not args.agent_id:
        parser.error("--agent-id or AGENT_ID is required")

    channel = CommunicationChannel(Path(args.communication_root))
    metrics_path = channel.metrics_path(args.agent_id)
    steps = max(1, args.steps)
    for step in range(1, steps):
        write_agent_status(
            metrics_path,
            AgentStatus(
                agent_id=args.agent_id,
                state=AgentState.RUNNING,
                completion=round(100 * step / steps, 1),
            ),
        )
        time.sleep(max(0.0, args.step_seconds))
    write_agent_status(
        metrics_path,
        AgentStatus(agent_id=args.agent_id, state=AgentState.COMPLETE, completion=100),
    )
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
