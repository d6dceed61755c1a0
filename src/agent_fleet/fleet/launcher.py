"""Concurrent fire-and-forget launch of every agent in the fleet."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from agent_fleet.fleet.backend import (
    ExternallyManagedBackend,
    LaunchBackend,
    LaunchRequest,
    SubprocessLaunchBackend,
)
from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.models import AgentDescriptor, LaunchOutcome, LaunchResult

logger = logging.getLogger(__name__)


class ParallelLauncher:
    """Start all agents at once and collect one result per agent.

    A successful result only means the start command was accepted.  Failures
    are captured per agent and never cancel the other attempts.
    """

    def __init__(
        self,
        *,
        backend: LaunchBackend,
        channel: CommunicationChannel,
        reference_doc_template: str = "src/test/{role}-test-pattern (REFERENCE).md",
    ) -> None:
        self.backend = backend
        self.channel = channel
        self.reference_doc_template = reference_doc_template

    @classmethod
    def for_mode(
        cls,
        *,
        externally_managed: bool,
        agent_command: str,
        channel: CommunicationChannel,
        reference_doc_template: str,
    ) -> ParallelLauncher:
        backend: LaunchBackend
        if externally_managed:
            backend = ExternallyManagedBackend()
        else:
            backend = SubprocessLaunchBackend(agent_command)
        return cls(
            backend=backend,
            channel=channel,
            reference_doc_template=reference_doc_template,
        )

    async def launch_all(self, agents: Sequence[AgentDescriptor]) -> list[LaunchResult]:
        attempts = [asyncio.to_thread(self._launch_one, agent) for agent in agents]
        settled = await asyncio.gather(*attempts, return_exceptions=True)

        results: list[LaunchResult] = []
        for agent, outcome in zip(agents, settled, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning("Agent %s failed to launch: %s", agent.agent_id, outcome)
                results.append(
                    LaunchResult(
                        agent_id=agent.agent_id,
                        outcome=LaunchOutcome.FAILED,
                        error=str(outcome) or type(outcome).__name__,
                    ),
                )
                continue
            results.append(outcome)
        return results

    def launch_all_sync(self, agents: Sequence[AgentDescriptor]) -> list[LaunchResult]:
        return asyncio.run(self.launch_all(agents))

    def _launch_one(self, agent: AgentDescriptor) -> LaunchResult:
        handle = self.backend.launch(
            LaunchRequest(
                agent_id=agent.agent_id,
                role=agent.role.value,
                workspace_path=agent.workspace_path,
                reference_doc=self.reference_doc_template.format(
                    role=agent.role.value,
                    agent_id=agent.agent_id,
                ),
                communication_root=self.channel.root,
            ),
        )
        logger.info("Agent %s launched (pid=%s)", agent.agent_id, handle.pid)
        return LaunchResult(
            agent_id=agent.agent_id,
            outcome=LaunchOutcome.LAUNCHED,
            pid=handle.pid,
        )
