from __future__ import annotations

from collections import defaultdict
import re
from typing import Sequence

from hostscope.drivers.base import OperatingSystemDriver, PsOSProcess
from hostscope.models import CapacityUnits, Platform, ProcessState, TcpStats
from hostscope.netstat import count_established
from hostscope.parsing import (
    parse_bit_mask,
    parse_dhms_or_default,
    parse_int_or_default,
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
    state_from_code,
    up_time_from_elapsed,
)

SOLARIS_STATES = {
    "O": ProcessState.RUNNING,
    "S": ProcessState.SLEEPING,
    "R": ProcessState.WAITING,
    "W": ProcessState.WAITING,
    "Z": ProcessState.ZOMBIE,
    "T": ProcessState.STOPPED,
}

PS_COLUMNS = "s,pid,ppid,user,uid,group,gid,nlwp,pri,vsz,rss,etime,time,comm,args"

# Descriptor lines in pfiles output are indented, e.g. "   3: S_IFREG mode:0644".
PFILES_DESCRIPTOR = re.compile(r"^\s+\d+: ")


class SolarisOSProcess(PsOSProcess):
    FIELD_COUNT = 15

    @classmethod
    def ps_command(cls, pid: int = -1) -> list[str]:
        if pid >= 0:
            return ["ps", "-o", PS_COLUMNS, "-p", str(pid)]
        return ["ps", "-eo", PS_COLUMNS]

    @classmethod
    def parse_fields(cls, pid: int, fields: Sequence[str], now: int) -> ProcessAttributes:
        up_time = up_time_from_elapsed(parse_dhms_or_default(fields[11], 0))
        path = fields[13]
        return ProcessAttributes(
            name=path[path.rfind("/") + 1:],
            path=path,
            command_line=fields[14],
            user=fields[3],
            user_id=fields[4],
            group=fields[5],
            group_id=fields[6],
            state=state_from_code(fields[0], SOLARIS_STATES),
            parent_process_id=parse_int_or_default(fields[2], 0),
            thread_count=parse_int_or_default(fields[7], 0),
            priority=parse_int_or_default(fields[8], 0),
            # vsz and rss are reported in KB.
            virtual_size=parse_int_or_default(fields[9], 0) * 1024,
            resident_set_size=parse_int_or_default(fields[10], 0) * 1024,
            kernel_time=0,
            user_time=parse_dhms_or_default(fields[12], 0),
            start_time=now - up_time,
            up_time=up_time,
        )

    def _query_bitness(self) -> int:
        for line in self._executor.run_native(["pflags", str(self.process_id)]):
            if "data model" in line:
                if "LP32" in line:
                    return 32
                if "LP64" in line:
                    return 64
        return 0

    def _query_current_working_directory(self) -> str:
        # 812:    /export/home/alice
        answer = self._executor.first_answer(["pwdx", str(self.process_id)])
        if ":" not in answer:
            return ""
        return answer.split(":", 1)[1].strip()

    def _query_open_files(self) -> int:
        lines = self._executor.run_native(["pfiles", str(self.process_id)])
        if not lines:
            return -1
        return sum(1 for line in lines if PFILES_DESCRIPTOR.match(line))

    def _query_affinity_mask(self) -> int:
        # Empty when unbound, otherwise:
        # pid 101048 strongly bound to processor(s) 0 1 2 3.
        cpuset = self._executor.first_answer(["pbind", "-q", str(self.process_id)])
        if not cpuset:
            mask = 0
            for line in self._executor.run_native(["psrinfo"]):
                fields = line.split()
                if fields:
                    mask |= parse_bit_mask(fields[:1])
            return mask
        if cpuset.endswith(".") and "strongly bound to processor(s)" in cpuset:
            processors = cpuset[:-1].split("processor(s)", 1)[1]
            return parse_bit_mask(processors.split())
        return 0


class SolarisDriver(OperatingSystemDriver):
    os_family = Platform.SOLARIS
    manufacturer = "Oracle"
    service_directories = ("/etc/init.d",)

    def _query_processes(self, pid: int = -1) -> list[OSProcess]:
        lines = self.executor.run_native(SolarisOSProcess.ps_command(pid))
        return SolarisOSProcess.parse_listing(lines, self.executor, pid)

    def _query_boot_time_text(self) -> str:
        # unix:0:system_misc:boot_time	1620000000
        fields = self.executor.first_answer(
            ["kstat", "-p", "unix:0:system_misc:boot_time"]
        ).split()
        return fields[-1] if fields else ""

    def get_tcp_stats(self) -> TcpStats:
        return TcpStats(
            ipv4_established=count_established(
                self.executor.run_native(["netstat", "-n", "-f", "inet", "-P", "tcp"])
            ),
            ipv6_established=count_established(
                self.executor.run_native(["netstat", "-n", "-f", "inet6", "-P", "tcp"])
            ),
        )

    def get_power_sources(self) -> list[PowerSource]:
        lines = self.executor.run_native(["kstat", "-p", "-m", "acpi_drv"])
        return [
            PowerSource(attributes, self.get_power_sources)
            for attributes in parse_acpi_kstat(lines)
        ]


def parse_acpi_kstat(lines: Sequence[str]) -> list[PowerSourceAttributes]:
    """Read battery BIF/BST statistics from ``kstat -p -m acpi_drv``.

    Lines look like ``acpi_drv:0:battery BIF0:bif_design_cap<TAB>5000``.
    """
    stats: dict[str, dict[str, str]] = defaultdict(dict)
    for line in lines:
        if "\t" not in line:
            continue
        key, value = line.split("\t", 1)
        parts = key.split(":")
        if len(parts) != 4 or not parts[2].startswith("battery"):
            continue
        stats[parts[1]][parts[3]] = value.strip()

    sources: list[PowerSourceAttributes] = []
    for instance in sorted(stats):
        values = stats[instance]
        if "bif_design_cap" not in values and "bst_rem_cap" not in values:
            continue
        units = (
            CapacityUnits.MAH if values.get("bif_unit") == "1" else CapacityUnits.MWH
        )
        design = parse_int_or_default(values.get("bif_design_cap"), 0)
        last_full = parse_int_or_default(values.get("bif_last_cap"), 0) or design
        remaining = parse_int_or_default(values.get("bst_rem_cap"), 0)
        state = parse_int_or_default(values.get("bst_state"), 0)
        discharging = bool(state & 0x1)
        charging = bool(state & 0x2)
        rate = parse_int_or_default(values.get("bst_rate"), 0)
        voltage_mv = parse_int_or_default(
            values.get("bst_voltage"), parse_int_or_default(values.get("bif_voltage"), 0)
        )
        voltage = voltage_mv / 1000 if voltage_mv > 0 else -1.0
        if units == CapacityUnits.MWH:
            power_rate = float(rate)
            amperage = rate / voltage if voltage > 0 else 0.0
        else:
            amperage = float(rate)
            power_rate = rate * voltage if voltage > 0 else 0.0
        if discharging:
            power_rate = -power_rate
            amperage = -amperage

        if charging:
            time_remaining = CHARGING_SENTINEL
        elif discharging and rate > 0:
            time_remaining = remaining * 3600 / rate
        else:
            time_remaining = UNKNOWN_SENTINEL
        sources.append(
            PowerSourceAttributes(
                name=f"BAT{instance}",
                device_name=values.get("bif_model") or "unknown",
                remaining_capacity_percent=remaining / last_full if last_full > 0 else 1.0,
                time_remaining_estimated=time_remaining,
                time_remaining_instant=time_remaining,
                power_usage_rate=power_rate,
                voltage=voltage,
                amperage=amperage,
                power_on_line=not discharging,
                charging=charging,
                discharging=discharging,
                capacity_units=units,
                current_capacity=remaining,
                max_capacity=last_full,
                design_capacity=design,
                chemistry=values.get("bif_type") or "unknown",
                manufacturer=values.get("bif_oem_info") or "unknown",
                serial_number=values.get("bif_serial") or "unknown",
            )
        )
    return sources
