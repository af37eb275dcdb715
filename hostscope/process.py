from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
import logging
import time
from typing import Iterable

from hostscope.executor import CommandExecutor
from hostscope.models import ProcessSort, ProcessState
from hostscope.parsing import parse_int_or_default


@dataclass(frozen=True)
class ProcessAttributes:
    """One complete reading of a process, swapped into an OSProcess as a unit."""

    name: str = ""
    path: str = ""
    command_line: str = ""
    user: str = ""
    user_id: str = ""
    group: str = ""
    group_id: str = ""
    state: ProcessState = ProcessState.INVALID
    parent_process_id: int = 0
    thread_count: int = 0
    priority: int = 0
    virtual_size: int = 0
    resident_set_size: int = 0
    kernel_time: int = 0
    user_time: int = 0
    start_time: int = 0
    up_time: int = 0
    bytes_read: int = 0
    bytes_written: int = 0


def current_millis() -> int:
    return int(time.time() * 1000)


def up_time_from_elapsed(elapsed_ms: int) -> int:
    # Processes younger than a millisecond still need a usable denominator.
    return elapsed_ms if elapsed_ms >= 1 else 1


def state_from_code(code: str, table: dict[str, ProcessState]) -> ProcessState:
    if not code:
        return ProcessState.OTHER
    return table.get(code[0], ProcessState.OTHER)


class OSProcess(ABC):
    """Point-in-time snapshot of a process that can be refreshed in place.

    Subclasses know how to re-query their own OS for one pid and how to run
    the expensive bitness and affinity queries.
    """

    def __init__(
        self,
        pid: int,
        attributes: ProcessAttributes,
        executor: CommandExecutor,
    ) -> None:
        self._pid = pid
        self._attributes = attributes
        self._executor = executor
        self._bitness: int | None = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(pid={self._pid}, name={self.name!r}, "
            f"state={self.state.name})"
        )

    @property
    def process_id(self) -> int:
        return self._pid

    @property
    def attributes(self) -> ProcessAttributes:
        return self._attributes

    @property
    def name(self) -> str:
        return self._attributes.name

    @property
    def path(self) -> str:
        return self._attributes.path

    @property
    def command_line(self) -> str:
        return self._attributes.command_line

    @property
    def user(self) -> str:
        return self._attributes.user

    @property
    def user_id(self) -> str:
        return self._attributes.user_id

    @property
    def group(self) -> str:
        return self._attributes.group

    @property
    def group_id(self) -> str:
        return self._attributes.group_id

    @property
    def state(self) -> ProcessState:
        return self._attributes.state

    @property
    def parent_process_id(self) -> int:
        return self._attributes.parent_process_id

    @property
    def thread_count(self) -> int:
        return self._attributes.thread_count

    @property
    def priority(self) -> int:
        return self._attributes.priority

    @property
    def virtual_size(self) -> int:
        return self._attributes.virtual_size

    @property
    def resident_set_size(self) -> int:
        return self._attributes.resident_set_size

    @property
    def kernel_time(self) -> int:
        return self._attributes.kernel_time

    @property
    def user_time(self) -> int:
        return self._attributes.user_time

    @property
    def start_time(self) -> int:
        return self._attributes.start_time

    @property
    def up_time(self) -> int:
        return self._attributes.up_time

    @property
    def bytes_read(self) -> int:
        return self._attributes.bytes_read

    @property
    def bytes_written(self) -> int:
        return self._attributes.bytes_written

    @property
    def bitness(self) -> int:
        """32, 64, or 0 when unknown. Queried once per snapshot."""
        if self._bitness is None:
            self._bitness = self._query_bitness()
        return self._bitness

    @property
    def affinity_mask(self) -> int:
        """CPUs this process may run on, as a bit mask. Queried on every access."""
        return self._query_affinity_mask()

    @property
    def current_working_directory(self) -> str:
        """Empty when the OS does not expose it or access is denied."""
        return self._query_current_working_directory()

    @property
    def open_files(self) -> int:
        """Open file descriptor count, or -1 when unknown."""
        return self._query_open_files()

    def processor_cpu_load_cumulative(self) -> float:
        up_time = self.up_time if self.up_time > 0 else 1
        return (self.kernel_time + self.user_time) / up_time

    def update_attributes(self) -> bool:
        """Re-query this pid. Returns False and marks the snapshot INVALID if it is gone."""
        attributes = self._query_attributes()
        if attributes is None:
            self.logger.debug("Process %s no longer available.", self._pid)
            self._attributes = replace(self._attributes, state=ProcessState.INVALID)
            return False
        self._attributes = attributes
        return True

    def to_dict(self) -> dict[str, object]:
        attrs = self._attributes
        return {
            "pid": self._pid,
            "name": attrs.name,
            "path": attrs.path,
            "command_line": attrs.command_line,
            "user": attrs.user,
            "user_id": attrs.user_id,
            "group": attrs.group,
            "group_id": attrs.group_id,
            "state": attrs.state.value,
            "parent_pid": attrs.parent_process_id,
            "threads": attrs.thread_count,
            "priority": attrs.priority,
            "virtual_size": attrs.virtual_size,
            "resident_set_size": attrs.resident_set_size,
            "kernel_time_ms": attrs.kernel_time,
            "user_time_ms": attrs.user_time,
            "start_time_ms": attrs.start_time,
            "up_time_ms": attrs.up_time,
            "bytes_read": attrs.bytes_read,
            "bytes_written": attrs.bytes_written,
        }

    @abstractmethod
    def _query_attributes(self) -> ProcessAttributes | None:
        """Fresh attributes for this pid, or None if it no longer exists."""

    @abstractmethod
    def _query_bitness(self) -> int:
        ...

    @abstractmethod
    def _query_affinity_mask(self) -> int:
        ...

    def _query_current_working_directory(self) -> str:
        return ""

    def _query_open_files(self) -> int:
        return -1


_SORT_KEYS = {
    ProcessSort.CPU: (lambda p: p.processor_cpu_load_cumulative(), True),
    ProcessSort.MEMORY: (lambda p: p.resident_set_size, True),
    ProcessSort.OLDEST: (lambda p: p.start_time, False),
    ProcessSort.NEWEST: (lambda p: p.start_time, True),
    ProcessSort.PID: (lambda p: p.process_id, False),
    ProcessSort.PARENTPID: (lambda p: p.parent_process_id, False),
    ProcessSort.NAME: (lambda p: p.name.lower(), False),
}


def sort_processes(
    processes: Iterable[OSProcess], limit: int = 0, sort: ProcessSort | None = None
) -> list[OSProcess]:
    """Order ``processes`` by ``sort`` and keep at most ``limit`` (0 keeps all)."""
    result = list(processes)
    if sort is not None:
        key, reverse = _SORT_KEYS[sort]
        result.sort(key=key, reverse=reverse)
    if limit > 0:
        result = result[:limit]
    return result


def all_cpus_mask(executor: CommandExecutor, command: list[str]) -> int:
    """Mask with one bit per CPU, from a command printing the CPU count."""
    count = parse_int_or_default(executor.first_answer(command), 0)
    return (1 << count) - 1 if count > 0 else 0
