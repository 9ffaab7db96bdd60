"""Runs an external command as a remote call.

Used by the ``run`` CLI command: stdout is the payload, a non-zero exit
status or a timeout is a failed attempt the invoker may retry.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from callwarden.domain.exceptions import CallwardenError

logger = logging.getLogger(__name__)


class CommandFailed(CallwardenError):
    """Raised when the command exits non-zero or times out."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int], stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        reason = "timed out" if returncode is None else f"exited with status {returncode}"
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"Command '{' '.join(self.argv)}' {reason}{detail}")


async def run_command(argv: Sequence[str], timeout: Optional[float] = None) -> str:
    """Executes ``argv`` and returns its decoded stdout.

    Raises:
        CommandFailed: On non-zero exit status or timeout.
        OSError: If the executable cannot be started.
    """
    logger.debug(f"Running command: {argv}")
    process = await asyncio.create_subprocess_exec(
        *argv, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandFailed(argv, None)
    if process.returncode != 0:
        raise CommandFailed(argv, process.returncode, stderr.decode(errors="replace"))
    return stdout.decode(errors="replace")


def command_call(argv: Sequence[str], timeout: Optional[float] = None) -> Callable[[], Awaitable[str]]:
    """Binds ``argv`` into a zero-argument call for the invoker."""
    return lambda: run_command(argv, timeout=timeout)
