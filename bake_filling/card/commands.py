"""Runner for the external utilities that do the actual card work.

This module handles:
- Executing commands with subprocess, optionally feeding stdin
- Logging every command line and its output
- Mapping non-zero exits and launch failures to CommandError
"""

import logging
import os
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from bake_filling.config import DEFAULT_TOOL_PATH
from bake_filling.errors import BakeFillingError

logger = logging.getLogger(__name__)


class CommandError(BakeFillingError):
    """External command exited with a non-zero status."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int,
        stderr: str = "",
    ) -> None:
        command = shlex.join(argv)
        message = f"Command failed ({returncode}): {command}"
        if stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        super().__init__(message, error_code="COMMAND_FAILED")
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class CommandNotFoundError(BakeFillingError):
    """External command could not be started."""

    def __init__(self, argv: Sequence[str], reason: str) -> None:
        super().__init__(
            f"Failed to execute {argv[0]}: {reason}",
            error_code="COMMAND_NOT_STARTED",
        )
        self.argv = list(argv)


@dataclass
class CommandResult:
    """Result of an external command.

    Attributes:
        argv: The executed command.
        returncode: Process exit code.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def run_command(
    argv: Sequence[str],
    *,
    input_text: str | None = None,
    check: bool = True,
    tool_path: str = DEFAULT_TOOL_PATH,
) -> CommandResult:
    """Run an external command and wait for it.

    Args:
        argv: Command and arguments.
        input_text: Text fed to the command's stdin.
        check: Raise CommandError on a non-zero exit code.
        tool_path: PATH for the child process.

    Returns:
        CommandResult with captured output.

    Raises:
        CommandError: Command exited non-zero and check is True.
        CommandNotFoundError: Command could not be started.
    """
    argv_list = [str(a) for a in argv]
    logger.info("Executing: %s", shlex.join(argv_list))

    env = dict(os.environ)
    env["PATH"] = tool_path

    try:
        proc = subprocess.run(
            argv_list,
            input=input_text,
            stdin=None if input_text is not None else subprocess.DEVNULL,
            capture_output=True,
            text=True,
            env=env,
            check=False,
        )
    except OSError as e:
        logger.error("Failed to execute %s: %s", argv_list[0], e)
        raise CommandNotFoundError(argv_list, str(e)) from e

    if proc.stdout:
        logger.debug("stdout: %s", proc.stdout.strip())
    if proc.stderr:
        logger.debug("stderr: %s", proc.stderr.strip())

    if check and proc.returncode != 0:
        logger.error(
            "Command exited with %d: %s", proc.returncode, shlex.join(argv_list)
        )
        raise CommandError(argv_list, proc.returncode, proc.stderr or "")

    return CommandResult(
        argv=argv_list,
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )


def sync() -> None:
    """Flush filesystem buffers to the card."""
    logger.debug("sync")
    os.sync()


__all__ = [
    "CommandError",
    "CommandNotFoundError",
    "CommandResult",
    "run_command",
    "sync",
]
