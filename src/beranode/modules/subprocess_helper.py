"""Subprocess execution for external collaborators.

Philosophy:
- Single responsibility: run a command, capture its output
- Never raise for a failed command; callers inspect the result
- No shell=True

Public API:
    SubprocessResult: Result dataclass
    safe_run: Run a command to completion
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127


@dataclass
class SubprocessResult:
    """Result of subprocess execution."""

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def lines(self) -> list[str]:
        return self.stdout.splitlines()


def safe_run(
    cmd: list[str],
    cwd: Path | None = None,
    timeout: int | None = 60,
    env: dict | None = None,
) -> SubprocessResult:
    """
    Run a command to completion and capture its output.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        timeout: Timeout in seconds (None = no timeout)
        env: Environment variables

    Returns:
        SubprocessResult with output and exit code. A missing executable
        yields returncode 127.

    Example:
        >>> result = safe_run(["echo", "hello"])
        >>> assert result.ok
    """
    logger.debug(f"Running: {' '.join(str(c) for c in cmd)}")
    try:
        completed = subprocess.run(
            [str(c) for c in cmd],
            capture_output=True,
            text=True,
            errors="replace",
            cwd=cwd,
            env=env,
            timeout=timeout,
        )
    except FileNotFoundError:
        return SubprocessResult(
            returncode=COMMAND_NOT_FOUND,
            stdout="",
            stderr=f"Command not found: {cmd[0] if cmd else 'unknown'}",
        )
    except subprocess.TimeoutExpired as e:
        stdout = e.stdout.decode("utf-8", errors="replace") if isinstance(e.stdout, bytes) else (e.stdout or "")
        return SubprocessResult(returncode=-1, stdout=stdout, stderr=f"Timed out after {timeout}s", timed_out=True)
    except OSError as e:
        return SubprocessResult(returncode=1, stdout="", stderr=f"Error executing command: {e!s}")

    if completed.returncode != 0:
        logger.debug(f"Command exited {completed.returncode}: {completed.stderr.strip()}")
    return SubprocessResult(
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )
