"""Subprocess execution shared by the ssh channel and local commands."""

from __future__ import annotations

import asyncio

import structlog

from deployer.domain.models.remote import CommandResult
from deployer.domain.ports.services import LocalCommandRunner


logger = structlog.get_logger(__name__)


async def run_process(argv: list[str]) -> CommandResult:
    """Run ``argv`` without a shell and capture its output.

    The child gets no stdin, so ssh or scp can neither prompt nor consume
    the caller's input. It is killed if the awaiting task is cancelled, so
    a run-wide timeout never leaves ssh or docker processes behind. Spawn
    failures propagate as OSError.
    """
    logger.debug("process_spawn", argv=argv)
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    return CommandResult(
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


class SubprocessCommandRunner(LocalCommandRunner):
    """Runs commands on the orchestrating host."""

    async def run(self, argv: list[str]) -> CommandResult:
        try:
            result = await run_process(argv)
        except OSError as exc:
            logger.error("local_command_spawn_failed", argv=argv, error=str(exc))
            return CommandResult(exit_code=127, stderr=str(exc))
        if not result.ok:
            logger.warning(
                "local_command_failed",
                command=argv[0],
                exit_code=result.exit_code,
                stderr=result.stderr.strip()[:500],
            )
        return result
