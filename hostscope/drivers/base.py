from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import os
import platform
import sys
import threading
import time
from typing import ClassVar, Sequence

from hostscope.executor import CommandExecutor, list_directory
from hostscope.models import (
    OSService,
    OSVersionInfo,
    Platform,
    ProcessSort,
    ServiceState,
    TcpStats,
)
from hostscope.parsing import parse_first_digits_or_default, parse_int_or_default, split_fields
from hostscope.power import PowerSource
from hostscope.process import OSProcess, ProcessAttributes, current_millis, sort_processes
from hostscope.sysctl import SysctlReader


class PsOSProcess(OSProcess):
    """A process read from one row of a column-formatted ``ps`` listing."""

    FIELD_COUNT: ClassVar[int]

    @classmethod
    @abstractmethod
    def ps_command(cls, pid: int = -1) -> list[str]:
        """The ``ps`` invocation listing every process, or only ``pid`` when >= 0."""

    @classmethod
    @abstractmethod
    def parse_fields(cls, pid: int, fields: Sequence[str], now: int) -> ProcessAttributes:
        """Map one row, already split into FIELD_COUNT fields, onto attributes."""

    @classmethod
    def parse_listing(
        cls, lines: Sequence[str], executor: CommandExecutor, pid: int = -1
    ) -> list[OSProcess]:
        processes: list[OSProcess] = []
        if len(lines) < 2:
            return processes
        now = current_millis()
        # First line is the column header.
        for line in lines[1:]:
            fields = split_fields(line, cls.FIELD_COUNT)
            if len(fields) != cls.FIELD_COUNT:
                continue
            proc_pid = pid if pid >= 0 else parse_int_or_default(fields[1], 0)
            processes.append(cls(proc_pid, cls.parse_fields(proc_pid, fields, now), executor))
        return processes

    def _query_attributes(self) -> ProcessAttributes | None:
        lines = self._executor.run_native(self.ps_command(self.process_id))
        if len(lines) > 1:
            fields = split_fields(lines[1], self.FIELD_COUNT)
            if len(fields) == self.FIELD_COUNT:
                return self.parse_fields(self.process_id, fields, current_millis())
        return None


class OperatingSystemDriver(ABC):
    """Queries one OS family and turns its native output into snapshots."""

    os_family: ClassVar[Platform]
    service_directories: ClassVar[tuple[str, ...]] = ()
    manufacturer: ClassVar[str] = ""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        reader: SysctlReader | None = None,
    ) -> None:
        self.executor = executor or CommandExecutor()
        self.reader = reader or SysctlReader()
        self.logger = logging.getLogger(self.__class__.__name__)
        self._boot_time: int | None = None
        self._boot_time_lock = threading.Lock()
        self._bitness: int | None = None

    # Processes

    @abstractmethod
    def _query_processes(self, pid: int = -1) -> list[OSProcess]:
        """All processes, or just ``pid`` when it is >= 0."""

    def get_processes(
        self, limit: int = 0, sort: ProcessSort | None = None
    ) -> list[OSProcess]:
        return sort_processes(self._query_processes(), limit, sort)

    def get_process(self, pid: int) -> OSProcess | None:
        processes = self._query_processes(pid)
        return processes[0] if processes else None

    def get_child_processes(
        self, parent_pid: int, limit: int = 0, sort: ProcessSort | None = None
    ) -> list[OSProcess]:
        children = [
            p for p in self._query_processes() if p.parent_process_id == parent_pid
        ]
        return sort_processes(children, limit, sort)

    def get_process_count(self) -> int:
        return len(self._query_processes())

    def get_thread_count(self) -> int:
        return sum(p.thread_count for p in self._query_processes())

    # Power, network, services

    @abstractmethod
    def get_power_sources(self) -> list[PowerSource]:
        ...

    @abstractmethod
    def get_tcp_stats(self) -> TcpStats:
        ...

    def get_services(self) -> list[OSService]:
        services: list[OSService] = []
        running: set[str] = set()
        for process in self.get_child_processes(1, sort=ProcessSort.PID):
            services.append(OSService(process.name, process.process_id, ServiceState.RUNNING))
            running.add(process.name)
        for name in self._list_service_definitions():
            if name not in running:
                services.append(OSService(name, 0, ServiceState.STOPPED))
                # Two definition files may share a name.
                running.add(name)
        return services

    def _list_service_definitions(self) -> list[str]:
        names: list[str] = []
        for directory in self.service_directories:
            entries = list_directory(directory)
            if entries is None:
                self.logger.error("Service directory %s does not exist.", directory)
                continue
            names.extend(self._service_name(entry) for entry in entries)
        return names

    @staticmethod
    def _service_name(entry: str) -> str:
        return entry

    # System

    def get_system_boot_time(self) -> int:
        """Boot time in epoch seconds, resolved once per driver."""
        if self._boot_time is None:
            with self._boot_time_lock:
                if self._boot_time is None:
                    self._boot_time = self._query_boot_time()
        return self._boot_time

    def get_system_uptime(self) -> int:
        return int(time.time()) - self.get_system_boot_time()

    def _query_boot_time(self) -> int:
        boot_time = self.reader.boot_time()
        if boot_time:
            return boot_time
        # Usually the structured read works. Otherwise the boot time is the
        # first run of digits in the textual fallback.
        self.logger.debug("Falling back to textual boot time query.")
        return parse_first_digits_or_default(
            self._query_boot_time_text(), current_millis() // 1000
        )

    @abstractmethod
    def _query_boot_time_text(self) -> str:
        """Native text whose first digit run is the boot time in epoch seconds."""

    def get_version_info(self) -> OSVersionInfo:
        uname = platform.uname()
        return OSVersionInfo(uname.system, uname.release, uname.version)


    # Host

    def get_manufacturer(self) -> str:
        return self.manufacturer

    def get_process_id(self) -> int:
        return os.getpid()

    def get_bitness(self) -> int:
        """Operating system bitness, resolved once per driver."""
        if self._bitness is None:
            self._bitness = self._query_bitness()
        return self._bitness

    def _query_bitness(self) -> int:
        bitness = 64 if sys.maxsize > 2**32 else 32
        # A 32-bit interpreter may still be running on a 64-bit kernel.
        if bitness < 64 and "64" in self.executor.first_answer(["uname", "-m"]):
            return 64
        return bitness

    def is_elevated(self) -> bool:
        return os.environ.get("SUDO_COMMAND") is not None
