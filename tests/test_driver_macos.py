"""Tests for the macOS driver."""
from __future__ import annotations

from datetime import date
from unittest.mock import patch

import pytest

from hostscope.drivers.macos import MacDriver, MacOSProcess, parse_pmset
from hostscope.models import CapacityUnits, ProcessState, ServiceState

HEADER = "STAT   PID  PPID USER  UID GROUP GID PRI    VSZ   RSS     ELAPSED     TIME COMM ARGS"
LAUNCHD = "Ss       1     0 root    0 wheel   0  37 409000 12000 10-01:00:00  1:02.50 /sbin/launchd /sbin/launchd"
SSHD = "S      350     1 root    0 wheel   0  31 408000  5000       01:00  0:00.10 /usr/sbin/sshd /usr/sbin/sshd -i"

PMSET = [
    "Now drawing from 'Battery Power'",
    " -InternalBattery-0 (id=4653155)\t85%; discharging; 3:45 remaining present: true",
]

IOREG = [
    "+-o AppleSmartBattery  <class AppleSmartBattery>",
    '    "Voltage" = 12500',
    '    "Amperage" = 18446744073709550616',
    '    "InstantTimeToEmpty" = 200',
    '    "AppleRawMaxCapacity" = 5000',
    '    "AppleRawCurrentCapacity" = 4250',
    '    "DesignCapacity" = 5500',
    '    "CycleCount" = 300',
    '    "Temperature" = 3050',
    '    "ManufactureDate" = 21060',
    '    "DeviceName" = "bq20z451"',
    '    "Manufacturer" = "SMP"',
    '    "BatterySerialNumber" = "D86"',
]

SERVICE_DIRECTORIES = {
    "/System/Library/LaunchDaemons": ["com.apple.cron.plist", "com.openssh.sshd.plist"],
}


@pytest.fixture
def driver(make_executor, reader):
    executor = make_executor(
        {
            tuple(MacOSProcess.ps_command()): [HEADER, LAUNCHD, SSHD],
            tuple(MacOSProcess.ps_command(350)): [HEADER, SSHD],
            ("sysctl", "-n", "kern.boottime"): [
                "{ sec = 1620000000, usec = 123456 } Mon May  3 00:00:00 2021"
            ],
            ("sysctl", "-n", "hw.logicalcpu"): ["8"],
            ("file", "-b", "/usr/sbin/sshd"): [
                "Mach-O universal binary with 2 architectures: [x86_64:Mach-O 64-bit executable x86_64]"
            ],
            ("sw_vers", "-productVersion"): ["14.2.1"],
            ("sw_vers", "-buildVersion"): ["23C71"],
            ("netstat", "-n", "-p", "tcp"): [
                "tcp4       0      0  192.168.1.5.50000      17.57.146.20.5223      ESTABLISHED",
                "tcp6       0      0  fe80::1.50001          fe80::2.443            ESTABLISHED",
                "tcp4       0      0  *.22                   *.*                    LISTEN",
            ],
            ("pmset", "-g", "batt"): PMSET,
            ("ioreg", "-rn", "AppleSmartBattery"): IOREG,
        }
    )
    return MacDriver(executor=executor, reader=reader)


@pytest.mark.macos
class TestMacProcesses:
    @patch("time.time", return_value=1_700_000_000.0)
    def test_parses_rows(self, mock_time, driver):
        processes = {p.process_id: p for p in driver.get_processes()}
        assert sorted(processes) == [1, 350]

        sshd = processes[350]
        assert sshd.name == "sshd"
        assert sshd.path == "/usr/sbin/sshd"
        assert sshd.command_line == "/usr/sbin/sshd -i"
        assert sshd.state == ProcessState.SLEEPING
        assert sshd.priority == 31
        assert sshd.resident_set_size == 5000 * 1024
        assert sshd.user_time == 100
        assert sshd.up_time == 60_000
        # ps on macOS has no thread column.
        assert sshd.thread_count == 0

        launchd = processes[1]
        assert launchd.up_time == 10 * 86_400_000 + 3_600_000

    def test_bitness_and_affinity(self, driver):
        sshd = driver.get_process(350)
        assert sshd.bitness == 64
        assert sshd.affinity_mask == 0xFF


@pytest.mark.macos
class TestMacSystem:
    def test_boot_time(self, driver):
        assert driver.get_system_boot_time() == 1620000000

    def test_version_info(self, driver):
        info = driver.get_version_info()
        assert info.family == "macOS"
        assert info.version == "14.2.1"
        assert info.build_number == "23C71"

    @pytest.mark.parametrize(
        ("entry", "expected"),
        [
            ("com.openssh.sshd.plist", "sshd"),
            ("bootps.plist", "bootps"),
            ("noextension", "noextension"),
            ("trailing.", "trailing."),
        ],
    )
    def test_service_name(self, entry, expected):
        assert MacDriver._service_name(entry) == expected

    @patch("hostscope.drivers.base.list_directory")
    def test_services(self, mock_list, driver):
        mock_list.side_effect = lambda directory: SERVICE_DIRECTORIES.get(directory, [])
        services = driver.get_services()
        assert [(s.name, s.state) for s in services] == [
            ("sshd", ServiceState.RUNNING),
            ("cron", ServiceState.STOPPED),
        ]
        assert mock_list.call_count == 4

    def test_tcp_stats(self, driver):
        stats = driver.get_tcp_stats()
        assert stats.ipv4_established == 1
        assert stats.ipv6_established == 1


@pytest.mark.macos
class TestMacPower:
    def test_parse_pmset(self):
        sources = parse_pmset(PMSET, IOREG)
        assert len(sources) == 1
        attrs = sources[0]
        assert attrs.name == "InternalBattery-0"
        assert attrs.remaining_capacity_percent == pytest.approx(0.85)
        assert attrs.discharging is True
        assert attrs.power_on_line is False
        assert attrs.time_remaining_estimated == 13500.0
        assert attrs.time_remaining_instant == 12000.0
        assert attrs.voltage == pytest.approx(12.5)
        assert attrs.amperage == -1000.0
        assert attrs.power_usage_rate == pytest.approx(-12500.0)
        assert attrs.capacity_units == CapacityUnits.MAH
        assert attrs.current_capacity == 4250
        assert attrs.max_capacity == 5000
        assert attrs.design_capacity == 5500
        assert attrs.cycle_count == 300
        assert attrs.temperature == pytest.approx(30.5)
        assert attrs.manufacture_date == date(2021, 2, 4)
        assert attrs.device_name == "bq20z451"
        assert attrs.serial_number == "D86"

    def test_parse_pmset_charging_on_ac(self):
        batt = [
            "Now drawing from 'AC Power'",
            " -InternalBattery-0 (id=4653155)\t92%; charging; 0:25 remaining present: true",
        ]
        attrs = parse_pmset(batt, [])[0]
        assert attrs.power_on_line is True
        assert attrs.charging is True
        assert attrs.time_remaining_estimated == -2.0
        assert attrs.time_remaining_instant == -2.0

    def test_no_battery(self):
        assert parse_pmset(["Now drawing from 'AC Power'"], []) == []
        assert parse_pmset([], []) == []

    def test_driver_power_sources(self, driver):
        sources = driver.get_power_sources()
        assert [s.name for s in sources] == ["InternalBattery-0"]
        assert sources[0].to_dict()["time_remaining"] == "3:45:00"
