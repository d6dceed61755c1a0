"""Per-agent instruction documents rendered from task specifications."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from agent_fleet.fleet.channel import CommunicationChannel
from agent_fleet.fleet.contracts import read_task_spec
from agent_fleet.fleet.models import (
    AgentDescriptor,
    AgentRole,
    PromptGenerationResult,
    TaskSpec,
)

logger = logging.getLogger(__name__)

SERVICE_INSTRUCTIONS = """\
### For Service Tests
1. Import and use the shared simplified database mock
2. Apply the factory/reset pattern and reset all factories between tests
3. Declare mocks before the imports they replace
4. Mock every service dependency
"""

HOOK_INSTRUCTIONS = """\
### For Hook Tests
1. Put defensive imports at the top of the file
2. Mock the query client before any other mock
3. Mock the query key factory with all of its methods
4. Mock the broadcast factory where it is used
5. Mock the current-user hook where authentication is used
"""

SCHEMA_INSTRUCTIONS = """\
### For Schema Tests
1. Validate transforms, not only raw shapes
2. Handle null for every field
3. Validate against the database shape first
"""

ROLE_INSTRUCTIONS: dict[AgentRole, tuple[str, ...]] = {
    AgentRole.SERVICE: (SERVICE_INSTRUCTIONS,),
    AgentRole.HOOK: (HOOK_INSTRUCTIONS,),
    AgentRole.SCHEMA: (SCHEMA_INSTRUCTIONS,),
    AgentRole.MIXED: (SERVICE_INSTRUCTIONS, HOOK_INSTRUCTIONS, SCHEMA_INSTRUCTIONS),
}

_SUCCESS_CRITERIA = """\
## Success Criteria
- Every assigned file compiles
- No mock-related runtime errors
- Tests run (pass or fail) without infrastructure errors
- Full compliance with the reference patterns
"""

_PROCESS = """\
## Process
1. Read each file
2. Identify the missing patterns
3. Apply every required pattern
4. Check that the file runs without mock errors
5. Move on to the next file
6. Report completion in your metrics file when every file is done

Fix test infrastructure only. Do not change implementation logic.
"""


def render_prompt(agent: AgentDescriptor, spec: TaskSpec) -> str:
    """Assemble the instruction document for one agent."""

    files = "\n".join(f"- {path}" for path in spec.files_to_fix) or "- (none listed)"
    patterns = "\n".join(f"- {pattern}" for pattern in spec.patterns_to_apply) or "- (none listed)"
    role_blocks = "\n".join(ROLE_INSTRUCTIONS[agent.role])
    return (
        f"# Agent: {agent.agent_id}\n"
        f"\n"
        f"## Mission\n"
        f"Reach 100% infrastructure pattern compliance for every assigned file.\n"
        f"\n"
        f"## Priority: {agent.priority.value}\n"
        f"\n"
        f"## Reference Document\n"
        f"{spec.reference}\n"
        f"\n"
        f"## Files to Fix ({len(spec.files_to_fix)} files)\n"
        f"{files}\n"
        f"\n"
        f"## Patterns to Apply\n"
        f"{patterns}\n"
        f"\n"
        f"## Specific Instructions\n"
        f"\n"
        f"{role_blocks}\n"
        f"{_SUCCESS_CRITERIA}\n"
        f"{_PROCESS}"
    )


class PromptGenerator:
    """Writes prompts/<agent>.md for every agent with a readable task file."""

    def __init__(self, channel: CommunicationChannel) -> None:
        self.channel = channel

    def generate_all(self, agents: Iterable[AgentDescriptor]) -> PromptGenerationResult:
        result = PromptGenerationResult()
        for agent in agents:
            task_path = self.channel.task_path(agent)
            if not task_path.is_file():
                logger.warning(
                    "No task file for %s at %s; skipping prompt",
                    agent.agent_id,
                    task_path,
                )
                result.skipped[agent.agent_id] = f"task file not found: {task_path}"
                continue
            try:
                spec = read_task_spec(task_path)
            except (OSError, json.JSONDecodeError, TypeError, ValueError) as error:
                logger.warning("Invalid task file for %s: %s", agent.agent_id, error)
                result.skipped[agent.agent_id] = f"invalid task file: {error}"
                continue

            prompt_path = self.channel.prompt_path(agent.agent_id)
            try:
                prompt_path.parent.mkdir(parents=True, exist_ok=True)
                prompt_path.write_text(render_prompt(agent, spec), "utf-8")
            except OSError as error:
                logger.warning("Cannot write prompt for %s: %s", agent.agent_id, error)
                result.skipped[agent.agent_id] = f"cannot write prompt: {error}"
                continue
            result.written[agent.agent_id] = prompt_path
            logger.info(
                "Prompt written for %s (%d files)",
                agent.agent_id,
                len(spec.files_to_fix),
            )
        return result
