"""Async subprocess runner used for git and helper commands."""

from __future__ import annotations

import asyncio
import logging as py_logging
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from treehouse.constants import GIT_COMMAND_TIMEOUT_SECONDS
from treehouse.security import command_for_log, truncate_log

logger = py_logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    async def __call__(self, args: list[str], *, cwd: Path | None = None) -> CommandResult: ...


async def run_command(
    args: list[str],
    *,
    cwd: Path | None = None,
    timeout: float = GIT_COMMAND_TIMEOUT_SECONDS,
) -> CommandResult:
    logger.debug("Running command=%s cwd=%s", command_for_log(args), cwd)
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.error("Command could not start command=%s error=%s", command_for_log(args), exc)
        return CommandResult(returncode=127, stderr=str(exc))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        logger.error("Command timed out command=%s timeout=%ss", command_for_log(args), timeout)
        return CommandResult(returncode=124, stderr="Command timed out.")

    result = CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    if not result.success:
        logger.debug(
            "Command failed command=%s code=%s stderr=%s",
            command_for_log(args),
            result.returncode,
            truncate_log(result.stderr),
        )
    return result
