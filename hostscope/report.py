from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from hostscope.config import ProbeConfig
from hostscope.drivers.base import OperatingSystemDriver

SCHEMA_NAME = "hostscope-report"
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


def _collect_host(driver: OperatingSystemDriver) -> dict[str, Any]:
    version = driver.get_version_info()
    boot_time = driver.get_system_boot_time()
    return {
        "system": driver.os_family.value,
        "manufacturer": driver.get_manufacturer(),
        "family": version.family,
        "version": version.version,
        "build": version.build_number,
        "boot_time": datetime.fromtimestamp(boot_time, tz=timezone.utc).isoformat(),
        "uptime_s": driver.get_system_uptime(),
        "process_count": driver.get_process_count(),
        "thread_count": driver.get_thread_count(),
        "bitness": driver.get_bitness(),
        "elevated": driver.is_elevated(),
    }


def build_report(driver: OperatingSystemDriver, probe: ProbeConfig) -> dict[str, Any]:
    """Run one round of queries against ``driver`` and shape it as a report."""
    logger.debug("Collecting host report.")
    report: dict[str, Any] = {
        "schema": {"name": SCHEMA_NAME, "version": SCHEMA_VERSION},
        "ts": datetime.now(timezone.utc).isoformat(),
        "host": _collect_host(driver),
    }

    if probe.include_processes:
        processes = driver.get_processes(
            limit=probe.process_limit, sort=probe.process_sort
        )
        report["processes"] = [process.to_dict() for process in processes]

    if probe.include_power:
        if sources := driver.get_power_sources():
            report["power_sources"] = [source.to_dict() for source in sources]

    if probe.include_tcp:
        tcp = driver.get_tcp_stats()
        report["tcp"] = {
            "ipv4_established": tcp.ipv4_established,
            "ipv6_established": tcp.ipv6_established,
        }

    if probe.include_services:
        report["services"] = [
            {"name": s.name, "pid": s.process_id, "state": s.state.value}
            for s in driver.get_services()
        ]

    logger.debug("Completed host report collection.")
    return report
