"""Detached-subprocess backend for locally simulated agents."""

from __future__ import annotations

import os
import shlex
import subprocess

from agent_fleet.fleet.backend.base import LaunchHandle, LaunchRequest


class LaunchError(RuntimeError):
    """Agent process could not be started."""

    def __init__(self, message: str, *, agent_id: str) -> None:
        super().__init__(message)
        self.agent_id = agent_id


class SubprocessLaunchBackend:
    """Spawn one detached process per agent from a command template.

    The process gets its own session and no inherited stdio, so it outlives
    the orchestrator and nothing here waits on it.
    """

    def __init__(self, command_template: str) -> None:
        self.command_template = command_template

    def launch(self, request: LaunchRequest) -> LaunchHandle:
        argv = _build_run_args(command_template=self.command_template, request=request)

        env = os.environ.copy()
        env["AGENT_ID"] = request.agent_id
        env["REFERENCE_DOC"] = request.reference_doc
        env["AGENT_FLEET_COMMUNICATION_ROOT"] = str(request.communication_root.resolve())

        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=request.workspace_path,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as error:
            raise LaunchError(
                f"Agent command or workspace not found: {error}",
                agent_id=request.agent_id,
            ) from error
        except OSError as error:
            raise LaunchError(
                f"Agent process failed to start: {error}",
                agent_id=request.agent_id,
            ) from error
        return LaunchHandle(agent_id=request.agent_id, pid=process.pid)


def _build_run_args(*, command_template: str, request: LaunchRequest) -> list[str]:
    stripped = command_template.strip()
    if not stripped:
        raise LaunchError("Agent command template is empty.", agent_id=request.agent_id)
    try:
        rendered = stripped.format(
            agent_id=shlex.quote(request.agent_id),
            role=shlex.quote(request.role),
            reference_doc=shlex.quote(request.reference_doc),
            workspace=shlex.quote(str(request.workspace_path)),
        )
    except (KeyError, IndexError) as error:
        raise LaunchError(
            f"Unsupported command template placeholder: {error}",
            agent_id=request.agent_id,
        ) from error

    argv = shlex.split(rendered)
    if not argv:
        raise LaunchError(
            "Agent command template rendered empty command.",
            agent_id=request.agent_id,
        )
    return argv
