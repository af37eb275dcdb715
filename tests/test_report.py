"""Tests for report assembly and schema validation."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import patch

import pytest

from hostscope.config import default_probe_config
from hostscope.drivers.freebsd import FreeBsdDriver, FreeBsdOSProcess
from hostscope.models import ProcessSort
from hostscope.report import SCHEMA_NAME, build_report
from hostscope.schema import load_schema, validate_report

HEADER = "STAT PID PPID USER UID GROUP GID NLWP PRI VSZ RSS ELAPSED SYSTIME TIME COMMAND ARGS"
ROWS = [
    "Ss 1 0 root 0 wheel 0 1 20 11824 1044 864000 0:00.10 0:00.30 /sbin/init /sbin/init --",
    "Ss 300 1 root 0 wheel 0 1 20 13056 2356 3600 0:01.50 0:03.00 /usr/sbin/cron /usr/sbin/cron -s",
    "R 812 300 www 80 www 80 4 20 90000 40000 60 0:10.00 0:50.00 /usr/local/sbin/nginx nginx: worker",
]


@pytest.fixture
def driver(make_executor, reader):
    executor = make_executor(
        {
            tuple(FreeBsdOSProcess.ps_command()): [HEADER, *ROWS],
            ("ps", "-axo", "pid"): ["PID", "1", "300", "812"],
            ("ps", "-axo", "nlwp"): ["NLWP", "1", "1", "4"],
            ("sysctl", "-n", "kern.boottime"): ["{ sec = 1620000000, usec = 0 }"],
            ("netstat", "-n", "-p", "tcp"): [
                "tcp4 0 0 10.0.0.2.22 10.0.0.9.50112 ESTABLISHED",
            ],
            ("sysctl", "-n", "hw.acpi.battery.units"): ["1"],
            ("sysctl", "-n", "hw.acpi.acline"): ["1"],
            ("acpiconf", "-i", "0"): [
                "Design capacity:\t5000 mWh",
                "Last full capacity:\t4000 mWh",
                "State:\thigh",
                "Remaining capacity:\t100%",
                "Remaining time:\tunknown",
            ],
        }
    )
    return FreeBsdDriver(executor=executor, reader=reader)


@patch("hostscope.drivers.base.list_directory", return_value=["cron", "sshd"])
def test_full_report_is_valid(mock_list, driver):
    report = build_report(driver, default_probe_config())

    assert report["schema"]["name"] == SCHEMA_NAME
    assert report["host"]["system"] == "freebsd"
    assert report["host"]["process_count"] == 3
    assert report["host"]["thread_count"] == 6
    assert report["host"]["manufacturer"] == "Unix/BSD"
    assert report["host"]["bitness"] in (32, 64)
    assert report["host"]["boot_time"].startswith("2021-05-03")
    # Highest cumulative CPU load first.
    assert [p["pid"] for p in report["processes"]] == [812, 300, 1]
    assert report["tcp"] == {"ipv4_established": 1, "ipv6_established": 0}
    assert report["power_sources"][0]["name"] == "BAT0"
    assert report["power_sources"][0]["time_remaining"] == "Unknown"
    assert {s["name"]: s["state"] for s in report["services"]} == {
        "cron": "running",
        "sshd": "stopped",
    }
    assert validate_report(report) == []


def test_sections_can_be_disabled(driver):
    probe = replace(
        default_probe_config(),
        include_power=False,
        include_tcp=False,
        include_services=False,
        process_limit=1,
        process_sort=ProcessSort.PID,
    )
    report = build_report(driver, probe)
    assert set(report) == {"schema", "ts", "host", "processes"}
    assert [p["pid"] for p in report["processes"]] == [1]
    assert validate_report(report) == []


def test_empty_power_section_is_omitted(driver):
    driver.executor.run_native.side_effect = lambda command: []
    driver.executor.first_answer.side_effect = lambda command: ""
    probe = replace(
        default_probe_config(), include_processes=False, include_services=False
    )
    report = build_report(driver, probe)
    assert "power_sources" not in report
    assert validate_report(report) == []


def test_schema_rejects_unknown_sections():
    errors = validate_report(
        {
            "schema": {"name": SCHEMA_NAME, "version": 1},
            "ts": "2024-01-01T00:00:00+00:00",
            "host": {
                "system": "linux",
                "family": "Linux",
                "version": "6.1",
                "boot_time": "2024-01-01T00:00:00+00:00",
                "uptime_s": 10,
            },
            "gpu": {},
        }
    )
    assert len(errors) == 1


def test_schema_loads():
    assert load_schema()["title"] == "hostscope report"
