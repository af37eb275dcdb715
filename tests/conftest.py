"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from typing import Callable
from unittest.mock import Mock

import pytest

from hostscope.executor import CommandExecutor
from hostscope.sysctl import SysctlReader


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "linux: mark test as Linux-specific"
    )
    config.addinivalue_line(
        "markers", "macos: mark test as macOS-specific"
    )
    config.addinivalue_line(
        "markers", "windows: mark test as Windows-specific"
    )
    config.addinivalue_line(
        "markers", "freebsd: mark test as FreeBSD-specific"
    )
    config.addinivalue_line(
        "markers", "solaris: mark test as Solaris-specific"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


@pytest.fixture
def make_executor() -> Callable[[dict], Mock]:
    """Build a mock executor answering commands from a table.

    Keys are command tuples, values are the output lines. Unknown commands
    produce no output, the same as a missing binary.
    """

    def factory(outputs: dict[tuple[str, ...], list[str]]) -> Mock:
        executor = Mock(spec=CommandExecutor)

        def run_native(command):
            return list(outputs.get(tuple(command), []))

        def first_answer(command):
            lines = run_native(command)
            return lines[0] if lines else ""

        executor.run_native.side_effect = run_native
        executor.first_answer.side_effect = first_answer
        return executor

    return factory


@pytest.fixture
def reader() -> Mock:
    """A sysctl reader whose structured boot time read fails."""
    reader = Mock(spec=SysctlReader)
    reader.boot_time.return_value = None
    reader.string.side_effect = lambda name, default: default
    return reader
