from __future__ import annotations

from datetime import date
import os
from typing import Sequence

from hostscope.drivers.base import OperatingSystemDriver, PsOSProcess
from hostscope.models import CapacityUnits, OSVersionInfo, Platform, ProcessState, TcpStats
from hostscope.netstat import query_tcp_netstat
from hostscope.parsing import (
    parse_dhms_or_default,
    parse_float_or_default,
    parse_int_or_default,
    parse_key_value_lines,
)
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
    state_from_code,
    up_time_from_elapsed,
)

MACOS_STATES = {
    "R": ProcessState.RUNNING,
    "S": ProcessState.SLEEPING,
    "I": ProcessState.SLEEPING,
    "U": ProcessState.WAITING,
    "Z": ProcessState.ZOMBIE,
    "T": ProcessState.STOPPED,
}

LAUNCHD_DIRECTORIES = (
    "/System/Library/LaunchDaemons",
    "/System/Library/LaunchAgents",
    "/Library/LaunchAgents",
    "/Library/LaunchDaemons",
)

# IOKit reports "no estimate" as 0xFFFF minutes.
IOREG_NO_ESTIMATE = 65535


class MacOSProcess(PsOSProcess):
    """macOS ``ps`` has no thread-count column, so ``thread_count`` stays 0."""

    FIELD_COUNT = 14

    @classmethod
    def ps_command(cls, pid: int = -1) -> list[str]:
        command = [
            "ps",
            "-awwxo",
            "state,pid,ppid,user,uid,group,gid,pri,vsz,rss,etime,time,comm,args",
        ]
        if pid >= 0:
            command.extend(["-p", str(pid)])
        return command

    @classmethod
    def parse_fields(cls, pid: int, fields: Sequence[str], now: int) -> ProcessAttributes:
        up_time = up_time_from_elapsed(parse_dhms_or_default(fields[10], 0))
        path = fields[12]
        return ProcessAttributes(
            name=os.path.basename(path),
            path=path,
            command_line=fields[13],
            user=fields[3],
            user_id=fields[4],
            group=fields[5],
            group_id=fields[6],
            state=state_from_code(fields[0], MACOS_STATES),
            parent_process_id=parse_int_or_default(fields[2], 0),
            priority=parse_int_or_default(fields[7], 0),
            virtual_size=parse_int_or_default(fields[8], 0) * 1024,
            resident_set_size=parse_int_or_default(fields[9], 0) * 1024,
            kernel_time=0,
            user_time=parse_dhms_or_default(fields[11], 0),
            start_time=now - up_time,
            up_time=up_time,
        )

    def _query_bitness(self) -> int:
        if not self.path:
            return 0
        description = self._executor.first_answer(["file", "-b", self.path])
        if "64-bit" in description:
            return 64
        if "32-bit" in description or "i386" in description:
            return 32
        return 0

    def _query_affinity_mask(self) -> int:
        # No affinity API; every process may run anywhere.
        return all_cpus_mask(self._executor, ["sysctl", "-n", "hw.logicalcpu"])


class MacDriver(OperatingSystemDriver):
    os_family = Platform.MACOS
    manufacturer = "Apple"
    service_directories = LAUNCHD_DIRECTORIES

    def _query_processes(self, pid: int = -1) -> list[OSProcess]:
        lines = self.executor.run_native(MacOSProcess.ps_command(pid))
        return MacOSProcess.parse_listing(lines, self.executor, pid)

    def _query_boot_time_text(self) -> str:
        return self.executor.first_answer(["sysctl", "-n", "kern.boottime"]).split(",")[0]

    @staticmethod
    def _service_name(entry: str) -> str:
        # com.openssh.sshd.plist -> sshd
        name = entry.removesuffix(".plist")
        index = name.rfind(".")
        if index < 0 or index > len(name) - 2:
            return name
        return name[index + 1:]

    def get_version_info(self) -> OSVersionInfo:
        version = self.executor.first_answer(["sw_vers", "-productVersion"]).strip()
        build = self.executor.first_answer(["sw_vers", "-buildVersion"]).strip()
        if not version:
            return super().get_version_info()
        return OSVersionInfo("macOS", version, build)

    def get_tcp_stats(self) -> TcpStats:
        return query_tcp_netstat(self.executor)

    def get_power_sources(self) -> list[PowerSource]:
        batt = self.executor.run_native(["pmset", "-g", "batt"])
        ioreg = self.executor.run_native(["ioreg", "-rn", "AppleSmartBattery"])
        return [
            PowerSource(attributes, self.get_power_sources)
            for attributes in parse_pmset(batt, ioreg)
        ]


def _ioreg_int(values: dict[str, str], key: str, default: int) -> int:
    value = parse_int_or_default(values.get(key), default)
    # ioreg prints signed quantities as unsigned 64-bit.
    if value >= 1 << 63:
        value -= 1 << 64
    return value


def _manufacture_date(packed: int) -> date | None:
    # Smart Battery Data packing: ((year - 1980) << 9) | (month << 5) | day
    if packed <= 0:
        return None
    try:
        return date(1980 + (packed >> 9), (packed >> 5) & 0xF, packed & 0x1F)
    except ValueError:
        return None


def parse_pmset(
    batt: Sequence[str], ioreg: Sequence[str]
) -> list[PowerSourceAttributes]:
    """Merge ``pmset -g batt`` rows with ``ioreg -rn AppleSmartBattery`` details.

    A battery row looks like
    `` -InternalBattery-0 (id=4653155)	85%; discharging; 3:45 remaining present: true``.
    """
    if not batt:
        return []
    ac_power = "AC Power" in batt[0]
    details = parse_key_value_lines(ioreg, "=")
    sources: list[PowerSourceAttributes] = []
    for line in batt[1:]:
        line = line.strip()
        if not line.startswith("-") or "\t" not in line:
            continue
        head, status = line.split("\t", 1)
        name = head[1:].split(" (id=")[0].strip()
        parts = [part.strip() for part in status.split(";")]
        percent = parse_float_or_default(parts[0].rstrip("%"), 100.0) / 100
        state = parts[1].lower() if len(parts) > 1 else ""
        remaining = parts[2].split()[0] if len(parts) > 2 and parts[2] else ""
        charging = state in ("charging", "finishing charge")
        discharging = state == "discharging"

        if charging:
            estimated = CHARGING_SENTINEL
        elif discharging and ":" in remaining:
            estimated = float(parse_dhms_or_default(remaining + ":00", -1000) // 1000)
        else:
            estimated = UNKNOWN_SENTINEL

        instant_minutes = _ioreg_int(details, "InstantTimeToEmpty", IOREG_NO_ESTIMATE)
        if charging:
            instant = CHARGING_SENTINEL
        elif discharging and 0 <= instant_minutes < IOREG_NO_ESTIMATE:
            instant = float(instant_minutes * 60)
        else:
            instant = UNKNOWN_SENTINEL

        voltage_mv = _ioreg_int(details, "Voltage", -1)
        voltage = voltage_mv / 1000 if voltage_mv > 0 else -1.0
        amperage = float(_ioreg_int(details, "Amperage", 0))
        max_capacity = _ioreg_int(
            details, "AppleRawMaxCapacity", _ioreg_int(details, "MaxCapacity", 1)
        )
        current_capacity = _ioreg_int(
            details,
            "AppleRawCurrentCapacity",
            _ioreg_int(details, "CurrentCapacity", round(percent * max_capacity)),
        )
        temperature = parse_float_or_default(details.get("Temperature"), 0.0) / 100
        sources.append(
            PowerSourceAttributes(
                name=name,
                device_name=details.get("DeviceName", "unknown"),
                remaining_capacity_percent=percent,
                time_remaining_estimated=estimated,
                time_remaining_instant=instant,
                power_usage_rate=amperage * voltage if voltage > 0 else 0.0,
                voltage=voltage,
                amperage=amperage,
                power_on_line=ac_power,
                charging=charging,
                discharging=discharging,
                capacity_units=CapacityUnits.MAH,
                current_capacity=current_capacity,
                max_capacity=max_capacity,
                design_capacity=_ioreg_int(details, "DesignCapacity", 1),
                cycle_count=_ioreg_int(details, "CycleCount", -1),
                chemistry=details.get("BatteryType", "LIon"),
                manufacture_date=_manufacture_date(_ioreg_int(details, "ManufactureDate", 0)),
                manufacturer=details.get("Manufacturer", "unknown"),
                serial_number=details.get("BatterySerialNumber", details.get("Serial", "unknown")),
                temperature=temperature,
            )
        )
    return sources
