"""
Control-Plane Executor

Runs external commands synchronously and reports exit status and captured
output. Callers impose timeouts; nothing here retries.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one control-plane invocation."""
    exit_ok: bool
    returncode: Optional[int]
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()


class CommandExecutor:
    """
    Synchronous command runner.

    Missing binaries and subprocess timeouts come back as failed
    CommandResult values instead of exceptions.
    """

    def execute(
        self,
        command: str,
        args: Sequence[str],
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv = [command, *args]
        logger.debug(f"exec: {' '.join(argv)}")

        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.debug(f"{command} timed out after {timeout}s")
            return CommandResult(
                exit_ok=False,
                returncode=None,
                stdout=e.stdout or b"",
                stderr=e.stderr or f"timed out after {timeout}s".encode(),
                timed_out=True,
            )
        except OSError as e:
            logger.warning(f"Cannot run {command}: {e}")
            return CommandResult(
                exit_ok=False,
                returncode=None,
                stderr=str(e).encode(),
            )

        return CommandResult(
            exit_ok=proc.returncode == 0,
            returncode=proc.returncode,
            stdout=proc.stdout or b"",
            stderr=proc.stderr or b"",
        )


class VirshExecutor:
    """
    Runs virsh sub-commands against one libvirt URI.

    Args:
        uri: libvirt connection URI passed with ``-c``
        binary: virsh executable name or path
        executor: underlying command runner
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        binary: str = "virsh",
        executor: Optional[CommandExecutor] = None,
    ):
        self.uri = uri
        self.binary = binary
        self._executor = executor or CommandExecutor()

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> CommandResult:
        argv = list(args)
        if self.uri:
            argv = ["-c", self.uri, *argv]
        return self._executor.execute(self.binary, argv, timeout=timeout)
