"""Structured remote command descriptors and their results."""

from __future__ import annotations

import shlex
from enum import Enum

from deployer.domain.models.base import ValueObject


class RemoteCommand(ValueObject):
    """An argument vector to execute on a target host.

    ``best_effort`` marks commands whose non-zero exit is expected on a
    first deploy (stopping a process or container that may not exist).
    """

    argv: tuple[str, ...]
    best_effort: bool = False
    background: bool = False
    workdir: str = ""
    stdout_path: str = ""

    def render(self) -> str:
        """Quote every argument for the remote login shell."""
        line = " ".join(shlex.quote(arg) for arg in self.argv)
        if self.stdout_path:
            line = f"{line} > {shlex.quote(self.stdout_path)} 2>&1"
        if self.background:
            line = f"nohup {line} &"
        if self.workdir:
            line = f"cd {shlex.quote(self.workdir)} && {line}"
        return line

    def __str__(self) -> str:
        return " ".join(self.argv)


class CommandResult(ValueObject):
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class StopOutcome(str, Enum):
    """Result of an idempotent stop of a process or container."""

    WAS_RUNNING = "was_running"
    WAS_NOT_RUNNING = "was_not_running"
    FAILED = "failed"
