"""Static agent roster for one orchestration run."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

from agent_fleet.fleet.contracts import read_roster
from agent_fleet.fleet.models import AgentDescriptor, AgentPriority, AgentRole

DEFAULT_ROSTER: tuple[AgentDescriptor, ...] = (
    AgentDescriptor(
        agent_id="phase2-core-services",
        role=AgentRole.SERVICE,
        workspace_path=Path("../phase2-core-services"),
        task_file="phase2-core-services.json",
        priority=AgentPriority.CRITICAL,
    ),
    AgentDescriptor(
        agent_id="phase2-extension-services",
        role=AgentRole.SERVICE,
        workspace_path=Path("../phase2-extension-services"),
        task_file="phase2-extension-services.json",
        priority=AgentPriority.HIGH,
    ),
    AgentDescriptor(
        agent_id="phase2-core-hooks",
        role=AgentRole.HOOK,
        workspace_path=Path("../phase2-core-hooks"),
        task_file="phase2-core-hooks.json",
        priority=AgentPriority.HIGH,
    ),
    AgentDescriptor(
        agent_id="phase2-extension-hooks",
        role=AgentRole.HOOK,
        workspace_path=Path("../phase2-extension-hooks"),
        task_file="phase2-extension-hooks.json",
        priority=AgentPriority.CRITICAL,
    ),
    AgentDescriptor(
        agent_id="phase2-schema-other",
        role=AgentRole.MIXED,
        workspace_path=Path("../phase2-schema-other"),
        task_file="phase2-schema-other.json",
        priority=AgentPriority.MEDIUM,
    ),
)


class AgentRegistry:
    """Ordered, immutable set of agents keyed by id.

    Registry order is the order agents are launched, reported and merged in;
    priority never reorders it.
    """

    def __init__(self, agents: Iterable[AgentDescriptor]) -> None:
        ordered = tuple(agents)
        seen: set[str] = set()
        for agent in ordered:
            if agent.agent_id in seen:
                raise ValueError(f"Duplicate agent id in roster: {agent.agent_id!r}")
            seen.add(agent.agent_id)
        self._agents = ordered
        self._by_id = {agent.agent_id: agent for agent in ordered}

    def __iter__(self) -> Iterator[AgentDescriptor]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    @property
    def agents(self) -> tuple[AgentDescriptor, ...]:
        return self._agents

    @property
    def agent_ids(self) -> list[str]:
        return [agent.agent_id for agent in self._agents]

    def find(self, agent_id: str) -> AgentDescriptor | None:
        return self._by_id.get(agent_id)

    def get(self, agent_id: str) -> AgentDescriptor:
        agent = self._by_id.get(agent_id)
        if agent is None:
            raise KeyError(f"Unknown agent: {agent_id}")
        return agent


def default_registry() -> AgentRegistry:
    """Return the built-in roster."""

    return AgentRegistry(DEFAULT_ROSTER)


def load_registry(roster_path: Path | None = None) -> AgentRegistry:
    """Load the roster file when configured, otherwise the built-in roster."""

    if roster_path is None:
        return default_registry()
    agents = read_roster(roster_path)
    if not agents:
        raise ValueError(f"Roster file has no agents: {roster_path}")
    return AgentRegistry(agents)
