from __future__ import annotations

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Sequence, Union

from hostscope.logging_utils import TRACE_LEVEL

Command = Union[str, Sequence[str]]


class CommandExecutor:
    """Runs native diagnostic commands and hands back their output lines.

    Failures never raise: a missing binary, a timeout or a non-zero exit with
    nothing on stdout all come back as an empty result.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    def run_native(self, command: Command) -> list[str]:
        output = self._run_command(command)
        if not output:
            return []
        return output.splitlines()

    def first_answer(self, command: Command) -> str:
        lines = self.run_native(command)
        return lines[0] if lines else ""

    def _run_command(self, command: Command) -> str | None:
        argv = shlex.split(command) if isinstance(command, str) else list(command)
        if not argv:
            return None
        try:
            result = subprocess.run(
                argv,
                check=False,
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            self.logger.debug("Command not found: %s", argv[0])
            return None
        except PermissionError:
            self.logger.debug("Permission denied running: %s", argv[0])
            return None
        except subprocess.TimeoutExpired:
            self.logger.debug(
                "Command timed out after %ss: %s", self.timeout, " ".join(argv)
            )
            return None
        if result.returncode != 0:
            self.logger.debug(
                "Command failed (%s): %s", result.returncode, " ".join(argv)
            )
            if result.stderr:
                self.logger.log(TRACE_LEVEL, "stderr: %s", result.stderr.strip())
            if not result.stdout:
                return None
        if result.stdout:
            self.logger.log(TRACE_LEVEL, "stdout: %s", result.stdout.strip())
        return result.stdout


def read_file(path: str | Path) -> str | None:
    """Read a file and return its contents, or None if it can't be read."""
    try:
        return Path(path).read_text()
    except (FileNotFoundError, PermissionError, OSError):
        return None


def read_bytes(path: str | Path, size: int) -> bytes | None:
    try:
        with open(path, "rb") as handle:
            return handle.read(size)
    except OSError:
        return None


def list_directory(path: str | Path) -> list[str] | None:
    """Names of the entries in ``path``, or None when it is not a readable directory."""
    try:
        return sorted(os.listdir(path))
    except OSError:
        return None
