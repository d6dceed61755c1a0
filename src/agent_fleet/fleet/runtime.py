"""Container runtime adapter driving docker compose services."""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_STATUS_TIMEOUT_SECONDS = 30


class ContainerCommandError(RuntimeError):
    """A container runtime command failed; the recovery operation stops here."""

    def __init__(self, command: list[str], returncode: int | None, stderr: str) -> None:
        detail = stderr.strip() or "no error output"
        code = "not started" if returncode is None else f"exit code {returncode}"
        super().__init__(f"Container command failed ({code}): {shlex.join(command)}: {detail}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ContainerRuntime(Protocol):
    """Operations recovery needs from a container runtime."""

    def restart(self, service: str) -> None: ...

    def stop(self, service: str) -> None: ...

    def start(self, service: str) -> None: ...

    def remove(self, service: str) -> None: ...

    def build(self, service: str) -> None: ...

    def up(self, service: str) -> None: ...

    def status(self, service: str) -> str: ...


def detect_compose_command(configured: str | None = None) -> list[str]:
    """Prefer an explicit command, then `docker compose`, then a lone docker-compose v1."""

    if configured and configured.strip():
        return shlex.split(configured)
    if shutil.which("docker") is None and shutil.which("docker-compose") is not None:
        return ["docker-compose"]
    return ["docker", "compose"]


class ComposeRuntime:
    """Runs compose subcommands against one service at a time."""

    def __init__(
        self,
        *,
        compose_command: list[str],
        compose_file: Path | None = None,
        timeout_seconds: int = 600,
    ) -> None:
        self.base_command = list(compose_command)
        if compose_file is not None:
            self.base_command.extend(["-f", str(compose_file)])
        self.timeout_seconds = timeout_seconds

    def restart(self, service: str) -> None:
        self._run("restart", service)

    def stop(self, service: str) -> None:
        self._run("stop", service)

    def start(self, service: str) -> None:
        self._run("start", service)

    def remove(self, service: str) -> None:
        self._run("rm", "-f", service)

    def build(self, service: str) -> None:
        self._run("build", service)

    def up(self, service: str) -> None:
        self._run("up", "-d", service)

    def status(self, service: str) -> str:
        """Service status text for reports; failures are described, not raised."""

        command = [*self.base_command, "ps", service]
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=_STATUS_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            return f"Container status unavailable: {error}"
        if completed.returncode != 0:
            return f"Container status unavailable (exit code {completed.returncode})"
        return completed.stdout.rstrip()

    def _run(self, *args: str) -> None:
        command = [*self.base_command, *args]
        logger.info("Running %s", shlex.join(command))
        try:
            completed = subprocess.run(  # noqa: S603
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as error:
            raise ContainerCommandError(command, None, f"timed out: {error}") from error
        except OSError as error:
            raise ContainerCommandError(command, None, str(error)) from error
        if completed.returncode != 0:
            raise ContainerCommandError(command, completed.returncode, completed.stderr)
