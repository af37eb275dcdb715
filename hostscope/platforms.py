"""Resolve the running OS once and route queries to its driver."""
from __future__ import annotations

from functools import lru_cache
import logging
import platform

from hostscope.drivers import (
    FreeBsdDriver,
    LinuxDriver,
    MacDriver,
    OperatingSystemDriver,
    SolarisDriver,
    WindowsDriver,
)
from hostscope.executor import CommandExecutor
from hostscope.models import (
    OSService,
    Platform,
    ProcessSort,
    TcpStats,
    UnsupportedPlatformError,
)
from hostscope.power import PowerSource
from hostscope.process import OSProcess
from hostscope.sysctl import SysctlReader

logger = logging.getLogger(__name__)

SYSTEM_NAMES = {
    "linux": Platform.LINUX,
    "darwin": Platform.MACOS,
    "windows": Platform.WINDOWS,
    "sunos": Platform.SOLARIS,
    "freebsd": Platform.FREEBSD,
}

DRIVERS: dict[Platform, type[OperatingSystemDriver]] = {
    Platform.LINUX: LinuxDriver,
    Platform.MACOS: MacDriver,
    Platform.WINDOWS: WindowsDriver,
    Platform.SOLARIS: SolarisDriver,
    Platform.FREEBSD: FreeBsdDriver,
}


def detect_platform(system: str) -> Platform:
    try:
        return SYSTEM_NAMES[system.lower()]
    except KeyError:
        raise UnsupportedPlatformError(f"Operating system not supported: {system!r}") from None


@lru_cache(maxsize=None)
def current_platform() -> Platform:
    detected = detect_platform(platform.system())
    logger.debug("Detected platform %s.", detected.value)
    return detected


def create_driver(
    os_family: Platform,
    executor: CommandExecutor | None = None,
    reader: SysctlReader | None = None,
) -> OperatingSystemDriver:
    return DRIVERS[os_family](executor=executor, reader=reader)


@lru_cache(maxsize=None)
def resolve_driver() -> OperatingSystemDriver:
    """The driver for the running OS, built on first use and shared afterwards."""
    return create_driver(current_platform())


def list_processes(
    pid: int = -1, sort: ProcessSort | None = None, limit: int = 0
) -> list[OSProcess]:
    """Every process (``pid`` < 0) or just ``pid``, ordered by ``sort``."""
    driver = resolve_driver()
    if pid >= 0:
        process = driver.get_process(pid)
        return [process] if process is not None else []
    return driver.get_processes(limit=limit, sort=sort)


def list_power_sources() -> list[PowerSource]:
    return resolve_driver().get_power_sources()


def get_tcp_stats() -> TcpStats:
    return resolve_driver().get_tcp_stats()


def get_services() -> list[OSService]:
    return resolve_driver().get_services()
