from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Sequence

from hostscope.drivers.base import OperatingSystemDriver, PsOSProcess
from hostscope.executor import list_directory, read_bytes, read_file
from hostscope.models import CapacityUnits, OSVersionInfo, Platform, ProcessState, TcpStats
from hostscope.parsing import (
    parse_dhms_or_default,
    parse_float_or_default,
    parse_hex_or_default,
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

LINUX_STATES = {
    "R": ProcessState.RUNNING,
    "S": ProcessState.SLEEPING,
    "I": ProcessState.SLEEPING,
    "D": ProcessState.WAITING,
    "Z": ProcessState.ZOMBIE,
    "T": ProcessState.STOPPED,
    "t": ProcessState.STOPPED,
}

# comm is read from /proc since it may contain spaces.
PS_COLUMNS = "state,pid,ppid,user,uid,group,gid,nlwp,pri,vsz,rss,etimes,time,args"
PROC_PATH = Path("/proc")
POWER_SUPPLY_PATH = Path("/sys/class/power_supply")
INIT_SCRIPT_PATH = "/etc/init.d"
TCP_ESTABLISHED = "01"


def _read_io_counters(pid: int) -> tuple[int, int]:
    content = read_file(PROC_PATH / str(pid) / "io")
    if not content:
        return 0, 0
    io = parse_key_value_lines(content.splitlines(), ":")
    return (
        parse_int_or_default(io.get("read_bytes"), 0),
        parse_int_or_default(io.get("write_bytes"), 0),
    )


def _read_link(pid: int, name: str) -> str:
    try:
        return os.readlink(PROC_PATH / str(pid) / name)
    except OSError:
        return ""


def _read_name(pid: int, path: str, command_line: str) -> str:
    comm = read_file(PROC_PATH / str(pid) / "comm")
    if comm and comm.strip():
        return comm.strip()
    if path:
        return os.path.basename(path)
    return os.path.basename(command_line.split(" ", 1)[0])


class LinuxOSProcess(PsOSProcess):
    FIELD_COUNT = 14

    @classmethod
    def ps_command(cls, pid: int = -1) -> list[str]:
        if pid >= 0:
            return ["ps", "-ww", "-o", PS_COLUMNS, "-p", str(pid)]
        return ["ps", "-eww", "-o", PS_COLUMNS]

    @classmethod
    def parse_fields(cls, pid: int, fields: Sequence[str], now: int) -> ProcessAttributes:
        up_time = up_time_from_elapsed(parse_dhms_or_default(fields[11], 0))
        bytes_read, bytes_written = _read_io_counters(pid)
        path = _read_link(pid, "exe")
        return ProcessAttributes(
            name=_read_name(pid, path, fields[13]),
            path=path,
            command_line=fields[13],
            user=fields[3],
            user_id=fields[4],
            group=fields[5],
            group_id=fields[6],
            state=state_from_code(fields[0], LINUX_STATES),
            parent_process_id=parse_int_or_default(fields[2], 0),
            thread_count=parse_int_or_default(fields[7], 0),
            priority=parse_int_or_default(fields[8], 0),
            virtual_size=parse_int_or_default(fields[9], 0) * 1024,
            resident_set_size=parse_int_or_default(fields[10], 0) * 1024,
            kernel_time=0,
            user_time=parse_dhms_or_default(fields[12], 0),
            start_time=now - up_time,
            up_time=up_time,
            bytes_read=bytes_read,
            bytes_written=bytes_written,
        )

    def _query_bitness(self) -> int:
        # EI_CLASS, the fifth byte of the ELF header: 1 is 32-bit, 2 is 64-bit.
        header = read_bytes(PROC_PATH / str(self.process_id) / "exe", 5)
        if header is None or len(header) < 5 or header[:4] != b"\x7fELF":
            return 0
        return {1: 32, 2: 64}.get(header[4], 0)

    def _query_current_working_directory(self) -> str:
        return _read_link(self.process_id, "cwd")

    def _query_open_files(self) -> int:
        descriptors = list_directory(PROC_PATH / str(self.process_id) / "fd")
        return len(descriptors) if descriptors is not None else -1

    def _query_affinity_mask(self) -> int:
        # pid 1234's current affinity mask: ff
        answer = self._executor.first_answer(["taskset", "-p", str(self.process_id)])
        if ":" in answer:
            mask = parse_hex_or_default(answer.rsplit(":", 1)[1], 0)
            if mask:
                return mask
        return all_cpus_mask(self._executor, ["nproc", "--all"])


class LinuxDriver(OperatingSystemDriver):
    os_family = Platform.LINUX
    manufacturer = "GNU/Linux"
    service_directories = (INIT_SCRIPT_PATH,)

    def _query_processes(self, pid: int = -1) -> list[OSProcess]:
        lines = self.executor.run_native(LinuxOSProcess.ps_command(pid))
        return LinuxOSProcess.parse_listing(lines, self.executor, pid)

    def _query_boot_time_text(self) -> str:
        for line in (read_file(PROC_PATH / "stat") or "").splitlines():
            if line.startswith("btime"):
                return line
        return ""

    def get_version_info(self) -> OSVersionInfo:
        content = read_file("/etc/os-release") or ""
        release = parse_key_value_lines(content.splitlines(), "=")
        uname = platform.uname()
        return OSVersionInfo(
            release.get("NAME", uname.system),
            release.get("VERSION_ID", uname.release),
            uname.release,
        )

    def _list_service_definitions(self) -> list[str]:
        # sshd.service  enabled  enabled
        units = self.executor.run_native(
            ["systemctl", "list-unit-files", "--type=service", "--no-legend", "--no-pager"]
        )
        names = [
            line.split()[0].removesuffix(".service")
            for line in units
            if line.strip() and ".service" in line.split()[0]
        ]
        if names:
            return names
        return super()._list_service_definitions()

    def get_tcp_stats(self) -> TcpStats:
        return TcpStats(
            ipv4_established=_count_proc_net_established(PROC_PATH / "net" / "tcp"),
            ipv6_established=_count_proc_net_established(PROC_PATH / "net" / "tcp6"),
        )

    def get_power_sources(self) -> list[PowerSource]:
        entries = list_directory(POWER_SUPPLY_PATH)
        if entries is None:
            self.logger.debug("No power supply class at %s.", POWER_SUPPLY_PATH)
            return []
        supplies: dict[str, dict[str, str]] = {}
        for entry in entries:
            content = read_file(POWER_SUPPLY_PATH / entry / "uevent")
            if content:
                supplies[entry] = parse_key_value_lines(content.splitlines(), "=")
        ac_online = any(
            values.get("POWER_SUPPLY_TYPE") == "Mains"
            and values.get("POWER_SUPPLY_ONLINE") == "1"
            for values in supplies.values()
        )
        sources: list[PowerSource] = []
        for name, values in supplies.items():
            if values.get("POWER_SUPPLY_TYPE") != "Battery":
                continue
            if values.get("POWER_SUPPLY_PRESENT", "1") != "1":
                continue
            sources.append(
                PowerSource(parse_uevent(name, values, ac_online), self.get_power_sources)
            )
        return sources


def _count_proc_net_established(path: Path) -> int:
    content = read_file(path)
    if not content:
        return 0
    count = 0
    # sl local_address rem_address st ...
    for line in content.splitlines()[1:]:
        fields = line.split()
        if len(fields) > 3 and fields[3] == TCP_ESTABLISHED:
            count += 1
    return count


def _micro(values: dict[str, str], key: str) -> int:
    """Sysfs reports µWh, µAh, µW, µA and µV; scale to milli units."""
    return parse_int_or_default(values.get(key), -1000) // 1000


def parse_uevent(
    name: str, values: dict[str, str], ac_online: bool
) -> PowerSourceAttributes:
    """Build battery attributes from a ``POWER_SUPPLY_*`` uevent record."""
    status = values.get("POWER_SUPPLY_STATUS", "Unknown")
    charging = status == "Charging"
    discharging = status == "Discharging"
    if "POWER_SUPPLY_ENERGY_NOW" in values:
        units = CapacityUnits.MWH
        current = _micro(values, "POWER_SUPPLY_ENERGY_NOW")
        maximum = _micro(values, "POWER_SUPPLY_ENERGY_FULL")
        design = _micro(values, "POWER_SUPPLY_ENERGY_FULL_DESIGN")
    elif "POWER_SUPPLY_CHARGE_NOW" in values:
        units = CapacityUnits.MAH
        current = _micro(values, "POWER_SUPPLY_CHARGE_NOW")
        maximum = _micro(values, "POWER_SUPPLY_CHARGE_FULL")
        design = _micro(values, "POWER_SUPPLY_CHARGE_FULL_DESIGN")
    else:
        units = CapacityUnits.RELATIVE
        current = parse_int_or_default(values.get("POWER_SUPPLY_CAPACITY"), 100)
        maximum = 100
        design = 100

    if "POWER_SUPPLY_CAPACITY" in values:
        percent = parse_float_or_default(values["POWER_SUPPLY_CAPACITY"], 100.0) / 100
    elif maximum > 0:
        percent = current / maximum
    else:
        percent = 1.0

    voltage_mv = _micro(values, "POWER_SUPPLY_VOLTAGE_NOW")
    voltage = voltage_mv / 1000 if voltage_mv > 0 else -1.0
    amperage = float(max(_micro(values, "POWER_SUPPLY_CURRENT_NOW"), 0))
    power = float(max(_micro(values, "POWER_SUPPLY_POWER_NOW"), 0))
    if power == 0 and amperage > 0 and voltage > 0:
        power = amperage * voltage
    if amperage == 0 and power > 0 and voltage > 0:
        amperage = power / voltage
    if discharging:
        power = -power
        amperage = -amperage

    if charging:
        time_remaining = CHARGING_SENTINEL
    elif discharging and units != CapacityUnits.RELATIVE:
        drain = -power if units == CapacityUnits.MWH else -amperage
        time_remaining = current * 3600 / drain if drain > 0 and current > 0 else UNKNOWN_SENTINEL
    else:
        time_remaining = UNKNOWN_SENTINEL

    temperature = parse_float_or_default(values.get("POWER_SUPPLY_TEMP"), 0.0) / 10
    return PowerSourceAttributes(
        name=values.get("POWER_SUPPLY_NAME", name),
        device_name=values.get("POWER_SUPPLY_MODEL_NAME", "unknown"),
        remaining_capacity_percent=min(percent, 1.0),
        time_remaining_estimated=time_remaining,
        time_remaining_instant=time_remaining,
        power_usage_rate=power,
        voltage=voltage,
        amperage=amperage,
        power_on_line=ac_online,
        charging=charging,
        discharging=discharging,
        capacity_units=units,
        current_capacity=max(current, 0),
        max_capacity=max(maximum, 1),
        design_capacity=max(design, 1),
        cycle_count=parse_int_or_default(values.get("POWER_SUPPLY_CYCLE_COUNT"), -1),
        chemistry=values.get("POWER_SUPPLY_TECHNOLOGY", "unknown"),
        manufacturer=values.get("POWER_SUPPLY_MANUFACTURER", "unknown"),
        serial_number=values.get("POWER_SUPPLY_SERIAL_NUMBER", "unknown").strip() or "unknown",
        temperature=temperature,
    )
