from __future__ import annotations

import os
from typing import Sequence

from hostscope.drivers.base import OperatingSystemDriver, PsOSProcess
from hostscope.models import CapacityUnits, OSVersionInfo, Platform, ProcessState, TcpStats
from hostscope.netstat import query_tcp_netstat
from hostscope.parsing import (
    parse_bit_mask,
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

FREEBSD_STATES = {
    "R": ProcessState.RUNNING,
    "I": ProcessState.SLEEPING,
    "S": ProcessState.SLEEPING,
    "D": ProcessState.WAITING,
    "L": ProcessState.WAITING,
    "U": ProcessState.WAITING,
    "Z": ProcessState.ZOMBIE,
    "T": ProcessState.STOPPED,
}


class FreeBsdOSProcess(PsOSProcess):
    FIELD_COUNT = 16

    @classmethod
    def ps_command(cls, pid: int = -1) -> list[str]:
        command = [
            "ps",
            "-awwxo",
            "state,pid,ppid,user,uid,group,gid,nlwp,pri,vsz,rss,etimes,systime,time,comm,args",
        ]
        if pid >= 0:
            command.extend(["-p", str(pid)])
        return command

    @classmethod
    def parse_fields(cls, pid: int, fields: Sequence[str], now: int) -> ProcessAttributes:
        up_time = up_time_from_elapsed(parse_dhms_or_default(fields[11], 0))
        kernel_time = parse_dhms_or_default(fields[12], 0)
        # "time" is system plus user time.
        user_time = parse_dhms_or_default(fields[13], 0) - kernel_time
        path = fields[14]
        return ProcessAttributes(
            name=os.path.basename(path),
            path=path,
            command_line=fields[15],
            user=fields[3],
            user_id=fields[4],
            group=fields[5],
            group_id=fields[6],
            state=state_from_code(fields[0], FREEBSD_STATES),
            parent_process_id=parse_int_or_default(fields[2], 0),
            thread_count=parse_int_or_default(fields[7], 0),
            priority=parse_int_or_default(fields[8], 0),
            virtual_size=parse_int_or_default(fields[9], 0) * 1024,
            resident_set_size=parse_int_or_default(fields[10], 0) * 1024,
            kernel_time=kernel_time,
            user_time=user_time,
            start_time=now - up_time,
            up_time=up_time,
        )

    def _query_bitness(self) -> int:
        # The ABI name reads like "FreeBSD ELF64".
        abi = self._executor.first_answer(["ps", "-o", "emul=", "-p", str(self.process_id)])
        if "ELF32" in abi:
            return 32
        if "ELF64" in abi:
            return 64
        return 0

    def _query_affinity_mask(self) -> int:
        # pid 1234 mask: 0, 1, 2, 3
        for line in self._executor.run_native(["cpuset", "-gp", str(self.process_id)]):
            if "mask:" in line and "domain" not in line:
                return parse_bit_mask(line.split("mask:", 1)[1].split(","))
        return all_cpus_mask(self._executor, ["sysctl", "-n", "hw.ncpu"])


class FreeBsdDriver(OperatingSystemDriver):
    os_family = Platform.FREEBSD
    manufacturer = "Unix/BSD"
    service_directories = ("/etc/rc.d",)

    def _query_processes(self, pid: int = -1) -> list[OSProcess]:
        lines = self.executor.run_native(FreeBsdOSProcess.ps_command(pid))
        return FreeBsdOSProcess.parse_listing(lines, self.executor, pid)

    def get_process_count(self) -> int:
        lines = self.executor.run_native(["ps", "-axo", "pid"])
        # Minus the header.
        return len(lines) - 1 if lines else 0

    def get_thread_count(self) -> int:
        return sum(
            parse_int_or_default(line, 0)
            for line in self.executor.run_native(["ps", "-axo", "nlwp"])
        )

    def _query_boot_time_text(self) -> str:
        # { sec = 1620000000, usec = 0 } Thu May  3 00:00:00 2021
        return self.executor.first_answer(["sysctl", "-n", "kern.boottime"]).split(",")[0]

    def get_version_info(self) -> OSVersionInfo:
        family = self.reader.string("kern.ostype", "FreeBSD")
        version = self.reader.string("kern.osrelease", "")
        version_info = self.reader.string("kern.version", "")
        build_number = (
            version_info.split(":")[0].replace(family, "").replace(version, "").strip()
        )
        return OSVersionInfo(family, version, build_number)

    def get_tcp_stats(self) -> TcpStats:
        return query_tcp_netstat(self.executor)

    def get_power_sources(self) -> list[PowerSource]:
        units = parse_int_or_default(
            self.executor.first_answer(["sysctl", "-n", "hw.acpi.battery.units"]), 0
        )
        ac_line = self.executor.first_answer(["sysctl", "-n", "hw.acpi.acline"]).strip() == "1"
        sources: list[PowerSource] = []
        for index in range(units):
            lines = self.executor.run_native(["acpiconf", "-i", str(index)])
            attributes = parse_acpiconf(f"BAT{index}", lines, ac_line)
            if attributes is not None:
                sources.append(PowerSource(attributes, self.get_power_sources))
        return sources


def _capacity(value: str) -> tuple[int, CapacityUnits | None]:
    parts = value.split()
    amount = parse_int_or_default(parts[0], 0) if parts else 0
    unit = parts[1] if len(parts) > 1 else ""
    if unit == "mWh":
        return amount, CapacityUnits.MWH
    if unit == "mAh":
        return amount, CapacityUnits.MAH
    return amount, None


def parse_acpiconf(
    name: str, lines: Sequence[str], ac_line: bool
) -> PowerSourceAttributes | None:
    """Build battery attributes from ``acpiconf -i N`` output."""
    info = parse_key_value_lines(lines, ":")
    if not info:
        return None
    state = info.get("State", "").lower()
    discharging = "discharging" in state
    charging = "charging" in state and not discharging
    percent = parse_float_or_default(info.get("Remaining capacity", "").rstrip("%"), 100.0)
    design_capacity, units = _capacity(info.get("Design capacity", ""))
    max_capacity, max_units = _capacity(info.get("Last full capacity", ""))
    units = units or max_units or CapacityUnits.RELATIVE
    if max_capacity <= 0:
        max_capacity = design_capacity
    current_capacity = round(max_capacity * percent / 100)
    rate = parse_float_or_default(info.get("Present rate", "").split(" ")[0], 0.0)
    voltage = parse_float_or_default(info.get("Present voltage", "").split(" ")[0], -1.0)
    if voltage > 0:
        voltage /= 1000
    amperage = rate / voltage if voltage > 0 else 0.0
    if discharging:
        rate = -rate
        amperage = -amperage

    if charging:
        estimated = CHARGING_SENTINEL
    else:
        # Remaining time is "h:mm" or "unknown".
        remaining = info.get("Remaining time", "")
        if ":" in remaining:
            estimated = float(parse_dhms_or_default(remaining + ":00", -1000) // 1000)
        else:
            estimated = UNKNOWN_SENTINEL
    instant = UNKNOWN_SENTINEL
    if charging:
        instant = CHARGING_SENTINEL
    elif discharging and rate < 0:
        drain = -rate if units == CapacityUnits.MWH else -amperage
        if drain > 0:
            instant = current_capacity * 3600 / drain

    return PowerSourceAttributes(
        name=name,
        device_name=info.get("Model number", "unknown") or "unknown",
        remaining_capacity_percent=percent / 100,
        time_remaining_estimated=estimated,
        time_remaining_instant=instant,
        power_usage_rate=rate,
        voltage=voltage,
        amperage=amperage,
        power_on_line=ac_line,
        charging=charging,
        discharging=discharging,
        capacity_units=units,
        current_capacity=current_capacity,
        max_capacity=max_capacity,
        design_capacity=design_capacity,
        cycle_count=parse_int_or_default(info.get("Cycle Count"), -1),
        chemistry=info.get("Type", "unknown") or "unknown",
        manufacturer=info.get("OEM info", "unknown") or "unknown",
        serial_number=info.get("Serial number", "unknown") or "unknown",
    )
