"""File-based contracts shared between the orchestrator and agents."""

from __future__ import annotations

import json
import math
import os
from pathlib import Path
from typing import Any

from agent_fleet.fleet.models import (
    AgentDescriptor,
    AgentPriority,
    AgentRole,
    AgentState,
    AgentStatus,
    TaskSpec,
)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Write JSON through a temp file so readers never see a partial document."""

    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    temp_path.write_text(json.dumps(payload, ensure_ascii=False, sort_keys=True), "utf-8")
    os.replace(temp_path, path)


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def read_task_spec(path: Path) -> TaskSpec:
    """Deserialize and validate a task specification."""

    raw = load_json(path)
    reference = raw.get("reference")
    files_to_fix = raw.get("files_to_fix", [])
    patterns_to_apply = raw.get("patterns_to_apply", [])
    if not isinstance(reference, str) or not reference.strip():
        raise ValueError("task.reference must be a non-empty string")
    if not _is_string_list(files_to_fix):
        raise TypeError("task.files_to_fix must be an array of strings")
    if not _is_string_list(patterns_to_apply):
        raise TypeError("task.patterns_to_apply must be an array of strings")
    return TaskSpec(
        reference=reference,
        files_to_fix=list(files_to_fix),
        patterns_to_apply=list(patterns_to_apply),
    )


def write_task_spec(path: Path, spec: TaskSpec) -> None:
    """Serialize a task specification."""

    write_json(
        path,
        {
            "reference": spec.reference,
            "files_to_fix": spec.files_to_fix,
            "patterns_to_apply": spec.patterns_to_apply,
        },
    )


def parse_agent_status(agent_id: str, raw: dict[str, Any]) -> AgentStatus:
    """Validate a metrics payload written by an agent."""

    completion = raw.get("completion", 0)
    status = raw.get("status")
    if isinstance(completion, bool) or not isinstance(completion, int | float):
        raise TypeError("metrics.completion must be a number")
    if not math.isfinite(completion):
        raise ValueError("metrics.completion must be finite")
    if not isinstance(status, str):
        raise TypeError("metrics.status must be a string")
    try:
        state = AgentState(status.strip().lower())
    except ValueError as error:
        raise ValueError(f"Unknown agent status: {status!r}") from error
    return AgentStatus(
        agent_id=agent_id,
        state=state,
        completion=min(100.0, max(0.0, float(completion))),
    )


def write_agent_status(path: Path, status: AgentStatus) -> None:
    """Write an agent metrics file the way agents are expected to."""

    write_json_atomic(
        path,
        {"completion": status.completion, "status": status.state.value},
    )


def read_roster(path: Path) -> list[AgentDescriptor]:
    """Deserialize a roster file into agent descriptors."""

    raw = load_json(path)
    raw_agents = raw.get("agents")
    if not isinstance(raw_agents, list):
        raise TypeError("roster.agents must be an array")

    agents: list[AgentDescriptor] = []
    for index, item in enumerate(raw_agents):
        if not isinstance(item, dict):
            raise TypeError(f"roster.agents[{index}] must be an object")
        agent_id = item.get("id")
        workspace = item.get("workspace")
        task_file = item.get("task_file")
        if not isinstance(agent_id, str) or not agent_id.strip():
            raise ValueError(f"roster.agents[{index}].id must be a non-empty string")
        if not isinstance(workspace, str) or not workspace.strip():
            raise ValueError(f"roster.agents[{index}].workspace must be a non-empty string")
        if not isinstance(task_file, str) or not task_file.strip():
            raise ValueError(f"roster.agents[{index}].task_file must be a non-empty string")
        try:
            role = AgentRole(str(item.get("role", "")).strip().lower())
        except ValueError as error:
            raise ValueError(
                f"roster.agents[{index}].role is not a known role: {item.get('role')!r}",
            ) from error
        try:
            priority = AgentPriority(str(item.get("priority", "MEDIUM")).strip().upper())
        except ValueError as error:
            raise ValueError(
                f"roster.agents[{index}].priority is not a known priority: "
                f"{item.get('priority')!r}",
            ) from error
        agents.append(
            AgentDescriptor(
                agent_id=agent_id.strip(),
                role=role,
                workspace_path=Path(workspace),
                task_file=task_file.strip(),
                priority=priority,
            ),
        )
    return agents


def _is_string_list(value: object) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)
