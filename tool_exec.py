# tool_exec.py
from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)


class ToolErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NON_ZERO_EXIT = "non_zero_exit"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ToolError:
    kind: ToolErrorKind
    code: Optional[int] = None
    stderr: str = ""

    def describe(self, command: str) -> str:
        if self.kind is ToolErrorKind.NOT_FOUND:
            return f"{command} is not available in PATH"
        if self.kind is ToolErrorKind.TIMED_OUT:
            return f"{command} timed out"
        msg = self.stderr.strip()
        return f"{command} failed (exit {self.code}): {msg}" if msg else f"{command} failed (exit {self.code})"


@dataclass(frozen=True)
class ToolResult:
    command: str
    stdout: str = ""
    error: Optional[ToolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ToolFailure(Exception):
    def __init__(self, result: ToolResult) -> None:
        if result.error is None:
            raise ValueError(f"{result.command} did not fail")
        super().__init__(result.error.describe(result.command))
        self.result = result
        self.error: ToolError = result.error


ToolRunner = Callable[[str, Sequence[str], float], ToolResult]


def run(command: str, args: Sequence[str], timeout: float) -> ToolResult:
    """
    Run one short-lived external process and report how it went.

    Never raises for a missing binary, a non-zero exit or a timeout; those come
    back as a ToolResult carrying a ToolError.
    """
    exe = shutil.which(command)
    if not exe:
        return ToolResult(command, error=ToolError(ToolErrorKind.NOT_FOUND))

    argv = [exe, *args]
    logger.debug("exec %s", " ".join(argv))
    try:
        p = subprocess.run(argv, capture_output=True, text=True, timeout=timeout, check=False)
    except subprocess.TimeoutExpired:
        logger.warning("%s %s timed out after %.2fs", command, " ".join(args), timeout)
        return ToolResult(command, error=ToolError(ToolErrorKind.TIMED_OUT))
    except (FileNotFoundError, PermissionError) as e:
        # Binary vanished or lost its exec bit between which() and spawn.
        logger.warning("cannot execute %s: %s", exe, e)
        return ToolResult(command, error=ToolError(ToolErrorKind.NOT_FOUND, stderr=str(e)))
    except OSError as e:
        logger.warning("spawning %s failed: %s", exe, e)
        return ToolResult(command, error=ToolError(ToolErrorKind.NON_ZERO_EXIT, stderr=str(e)))

    if p.returncode != 0:
        return ToolResult(
            command,
            stdout=p.stdout or "",
            error=ToolError(ToolErrorKind.NON_ZERO_EXIT, code=p.returncode, stderr=(p.stderr or p.stdout or "")),
        )
    return ToolResult(command, stdout=p.stdout or "")


def expect_ok(result: ToolResult) -> str:
    if result.error is not None:
        raise ToolFailure(result)
    return result.stdout
