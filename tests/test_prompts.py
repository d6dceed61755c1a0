from __future__ import annotations

from pathlib import Path

import allure

from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.contracts import write_task_spec
from agent_fleet.fleet.models import AgentDescriptor, AgentPriority, AgentRole, TaskSpec
from agent_fleet.fleet.prompts import (
    HOOK_INSTRUCTIONS,
    SCHEMA_INSTRUCTIONS,
    SERVICE_INSTRUCTIONS,
    PromptGenerator,
    render_prompt,
)

pytestmark = [
    allure.epic("Fleet Run"),
    allure.feature("Prompt Generator"),
]


def _agent(role: AgentRole) -> AgentDescriptor:
    return AgentDescriptor(
        agent_id=f"{role.value}-agent",
        role=role,
        workspace_path=Path("ws"),
        task_file=f"{role.value}-agent.json",
        priority=AgentPriority.HIGH,
    )


def test_render_prompt_contains_task_content_in_order() -> None:
    spec = TaskSpec(
        reference="docs/service-pattern.md",
        files_to_fix=["src/a.test.ts", "src/b.test.ts"],
        patterns_to_apply=["factory reset"],
    )

    prompt = render_prompt(_agent(AgentRole.SERVICE), spec)

    headings = [
        "# Agent: service-agent",
        "## Mission",
        "## Priority: HIGH",
        "## Reference Document",
        "## Files to Fix (2 files)",
        "## Patterns to Apply",
        "## Specific Instructions",
    ]
    positions = [prompt.index(heading) for heading in headings]
    assert positions == sorted(positions)
    assert "docs/service-pattern.md" in prompt
    assert "- src/a.test.ts\n- src/b.test.ts" in prompt
    assert "- factory reset" in prompt
    assert SERVICE_INSTRUCTIONS in prompt
    assert HOOK_INSTRUCTIONS not in prompt


def test_render_prompt_is_deterministic() -> None:
    spec = TaskSpec(reference="ref.md", files_to_fix=["a"], patterns_to_apply=[])
    agent = _agent(AgentRole.HOOK)

    assert render_prompt(agent, spec) == render_prompt(agent, spec)


def test_mixed_role_gets_every_instruction_block() -> None:
    prompt = render_prompt(_agent(AgentRole.MIXED), TaskSpec(reference="ref.md"))

    assert SERVICE_INSTRUCTIONS in prompt
    assert HOOK_INSTRUCTIONS in prompt
    assert SCHEMA_INSTRUCTIONS in prompt
    assert "## Files to Fix (0 files)\n- (none listed)" in prompt


def test_generate_all_skips_missing_and_invalid_task_files(tmp_path: Path) -> None:
    channel = CommunicationChannel(tmp_path)
    ready = _agent(AgentRole.SERVICE)
    missing = _agent(AgentRole.HOOK)
    broken = _agent(AgentRole.SCHEMA)
    write_task_spec(channel.task_path(ready), TaskSpec(reference="ref.md", files_to_fix=["a"]))
    channel.task_path(broken).write_text('{"reference": 5}', "utf-8")

    result = PromptGenerator(channel).generate_all([ready, missing, broken])

    assert list(result.written) == [ready.agent_id]
    assert channel.prompt_path(ready.agent_id).read_text("utf-8").startswith(
        "# Agent: service-agent",
    )
    assert result.skipped[missing.agent_id].startswith("task file not found")
    assert result.skipped[broken.agent_id].startswith("invalid task file")
    assert not channel.prompt_path(missing.agent_id).exists()
