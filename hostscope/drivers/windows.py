from __future__ import annotations

import json
from typing import Any

from hostscope.drivers.base import OperatingSystemDriver
from hostscope.executor import CommandExecutor, read_bytes
from hostscope.models import (
    CapacityUnits,
    OSService,
    Platform,
    ProcessState,
    ServiceState,
    TcpStats,
)
from hostscope.netstat import count_established
from hostscope.parsing import parse_int_or_default
from hostscope.power import (
    CHARGING_SENTINEL,
    UNKNOWN_SENTINEL,
    PowerSource,
    PowerSourceAttributes,
)
from hostscope.process import (
    OSProcess,
    ProcessAttributes,
    all_cpus_mask,
    current_millis,
    up_time_from_elapsed,
)

PROCESS_FIELDS = (
    "ProcessId,ParentProcessId,Name,ExecutablePath,CommandLine,ThreadCount,Priority,"
    "VirtualSize,WorkingSetSize,KernelModeTime,UserModeTime,ReadTransferCount,"
    "WriteTransferCount,"
    "@{N='CreationMs';E={[long](($_.CreationDate.ToUniversalTime() - "
    "[datetime]'1970-01-01').TotalMilliseconds)}}"
)

# Win32_Battery.EstimatedRunTime while on AC power.
RUN_TIME_ON_AC = 71582788

BATTERY_DISCHARGING = {1, 4, 5}
BATTERY_CHARGING = {6, 7, 8, 9}
BATTERY_ON_LINE = {2, 3, 6, 7, 8, 9, 11}

BATTERY_CHEMISTRY = {
    1: "Other",
    2: "Unknown",
    3: "Lead Acid",
    4: "Nickel Cadmium",
    5: "Nickel Metal Hydride",
    6: "Lithium-ion",
    7: "Zinc air",
    8: "Lithium Polymer",
}

PE_MACHINE_BITNESS = {
    0x014C: 32,  # i386
    0x01C4: 32,  # ARMv7
    0x8664: 64,  # x64
    0xAA64: 64,  # ARM64
}

# CIM times are in 100ns units.
TICKS_PER_MS = 10_000

IS_64_BIT_OS = "[Environment]::Is64BitOperatingSystem"
IS_ADMINISTRATOR = (
    "([Security.Principal.WindowsPrincipal][Security.Principal.WindowsIdentity]::GetCurrent())"
    ".IsInRole([Security.Principal.WindowsBuiltInRole]::Administrator)"
)


def _powershell(script: str) -> list[str]:
    return ["powershell", "-NoProfile", "-Command", script]


def _load_json_records(lines: list[str]) -> list[dict[str, Any]]:
    if not lines:
        return []
    try:
        data = json.loads("\n".join(lines))
    except json.JSONDecodeError:
        return []
    if isinstance(data, dict):
        data = [data]
    return [record for record in data if isinstance(record, dict)]


def _int(record: dict[str, Any], key: str) -> int:
    value = record.get(key)
    if isinstance(value, (int, float)):
        return int(value)
    return parse_int_or_default(value if isinstance(value, str) else None, 0)


def process_command(pid: int = -1) -> list[str]:
    query = "Get-CimInstance Win32_Process"
    if pid >= 0:
        query += f' -Filter "ProcessId={pid}"'
    return _powershell(f"{query} | Select-Object {PROCESS_FIELDS} | ConvertTo-Json -Compress")


class WindowsOSProcess(OSProcess):
    @staticmethod
    def parse_record(record: dict[str, Any], now: int) -> ProcessAttributes:
        created = record.get("CreationMs")
        if isinstance(created, (int, float)) and created > 0:
            up_time = up_time_from_elapsed(now - int(created))
        else:
            up_time = 1
        path = record.get("ExecutablePath") or ""
        return ProcessAttributes(
            name=record.get("Name") or "",
            path=path,
            command_line=record.get("CommandLine") or "",
            state=ProcessState.RUNNING,
            parent_process_id=_int(record, "ParentProcessId"),
            thread_count=_int(record, "ThreadCount"),
            priority=_int(record, "Priority"),
            virtual_size=_int(record, "VirtualSize"),
            resident_set_size=_int(record, "WorkingSetSize"),
            kernel_time=_int(record, "KernelModeTime") // TICKS_PER_MS,
            user_time=_int(record, "UserModeTime") // TICKS_PER_MS,
            start_time=now - up_time,
            up_time=up_time,
            bytes_read=_int(record, "ReadTransferCount"),
            bytes_written=_int(record, "WriteTransferCount"),
        )

    @classmethod
    def parse_listing(
        cls, lines: list[str], executor: CommandExecutor
    ) -> list[OSProcess]:
        now = current_millis()
        processes: list[OSProcess] = []
        for record in _load_json_records(lines):
            pid = record.get("ProcessId")
            if not isinstance(pid, int):
                continue
            processes.append(cls(pid, cls.parse_record(record, now), executor))
        return processes

    def _query_attributes(self) -> ProcessAttributes | None:
        records = _load_json_records(self._executor.run_native(process_command(self.process_id)))
        if not records:
            return None
        return self.parse_record(records[0], current_millis())

    def _query_bitness(self) -> int:
        # Machine field of the PE header pointed to by e_lfanew at 0x3C.
        header = read_bytes(self.path, 4096) if self.path else None
        if not header or len(header) < 0x40 or header[:2] != b"MZ":
            return 0
        offset = int.from_bytes(header[0x3C:0x40], "little")
        if offset + 6 > len(header) or header[offset:offset + 4] != b"PE\0\0":
            return 0
        machine = int.from_bytes(header[offset + 4:offset + 6], "little")
        return PE_MACHINE_BITNESS.get(machine, 0)

    def _query_affinity_mask(self) -> int:
        answer = self._executor.first_answer(
            _powershell(f"(Get-Process -Id {self.process_id}).ProcessorAffinity")
        )
        mask = parse_int_or_default(answer, 0)
        if mask:
            return mask
        return all_cpus_mask(self._executor, _powershell("[Environment]::ProcessorCount"))


class WindowsDriver(OperatingSystemDriver):
    os_family = Platform.WINDOWS
    manufacturer = "Microsoft"

    def _query_processes(self, pid: int = -1) -> list[OSProcess]:
        lines = self.executor.run_native(process_command(pid))
        return WindowsOSProcess.parse_listing(lines, self.executor)

    def _query_boot_time_text(self) -> str:
        return self.executor.first_answer(
            _powershell(
                "[long]((Get-CimInstance Win32_OperatingSystem).LastBootUpTime"
                ".ToUniversalTime() - [datetime]'1970-01-01').TotalSeconds"
            )
        )

    def _query_bitness(self) -> int:
        answer = self.executor.first_answer(_powershell(IS_64_BIT_OS))
        if answer:
            return 64 if answer.lower() == "true" else 32
        return super()._query_bitness()

    def is_elevated(self) -> bool:
        answer = self.executor.first_answer(_powershell(IS_ADMINISTRATOR))
        return answer.lower() == "true"

    def get_services(self) -> list[OSService]:
        lines = self.executor.run_native(
            _powershell(
                "Get-CimInstance Win32_Service | Select-Object Name, ProcessId, State "
                "| ConvertTo-Json -Compress"
            )
        )
        services: list[OSService] = []
        for record in _load_json_records(lines):
            name = record.get("Name")
            if not name:
                continue
            if record.get("State") == "Running":
                services.append(OSService(name, _int(record, "ProcessId"), ServiceState.RUNNING))
            else:
                services.append(OSService(name, 0, ServiceState.STOPPED))
        return services

    def get_tcp_stats(self) -> TcpStats:
        return TcpStats(
            ipv4_established=count_established(
                self.executor.run_native(["netstat", "-n", "-p", "TCP"])
            ),
            ipv6_established=count_established(
                self.executor.run_native(["netstat", "-n", "-p", "TCPv6"])
            ),
        )

    def get_power_sources(self) -> list[PowerSource]:
        lines = self.executor.run_native(
            _powershell(
                "Get-CimInstance Win32_Battery | Select-Object Name, DeviceID, "
                "EstimatedChargeRemaining, EstimatedRunTime, BatteryStatus, "
                "DesignVoltage, Chemistry | ConvertTo-Json -Compress"
            )
        )
        return [
            PowerSource(parse_battery_record(record), self.get_power_sources)
            for record in _load_json_records(lines)
        ]


def parse_battery_record(record: dict[str, Any]) -> PowerSourceAttributes:
    status = _int(record, "BatteryStatus")
    discharging = status in BATTERY_DISCHARGING
    charging = status in BATTERY_CHARGING
    percent = _int(record, "EstimatedChargeRemaining") if "EstimatedChargeRemaining" in record else 100
    run_time = _int(record, "EstimatedRunTime")
    if charging:
        time_remaining = CHARGING_SENTINEL
    elif discharging and 0 < run_time < RUN_TIME_ON_AC:
        time_remaining = float(run_time * 60)
    else:
        time_remaining = UNKNOWN_SENTINEL
    voltage_mv = _int(record, "DesignVoltage")
    return PowerSourceAttributes(
        name=record.get("Name") or "Battery",
        device_name=record.get("DeviceID") or "unknown",
        remaining_capacity_percent=percent / 100,
        time_remaining_estimated=time_remaining,
        time_remaining_instant=time_remaining,
        voltage=voltage_mv / 1000 if voltage_mv > 0 else -1.0,
        power_on_line=status in BATTERY_ON_LINE,
        charging=charging,
        discharging=discharging,
        capacity_units=CapacityUnits.RELATIVE,
        current_capacity=percent,
        max_capacity=100,
        design_capacity=100,
        chemistry=BATTERY_CHEMISTRY.get(_int(record, "Chemistry"), "unknown"),
    )
