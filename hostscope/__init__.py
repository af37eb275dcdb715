"""Hostscope cross-platform OS introspection."""

from hostscope.config import AppConfig, load_config
from hostscope.models import (
    HostscopeError,
    OSService,
    Platform,
    ProcessSort,
    ProcessState,
    TcpStats,
    UnsupportedPlatformError,
)
from hostscope.platforms import (
    create_driver,
    current_platform,
    get_services,
    get_tcp_stats,
    list_power_sources,
    list_processes,
)
from hostscope.power import PowerSource, format_time_remaining
from hostscope.process import OSProcess
from hostscope.report import build_report
from hostscope.schema import validate_report

__all__ = [
    "AppConfig",
    "HostscopeError",
    "OSProcess",
    "OSService",
    "Platform",
    "PowerSource",
    "ProcessSort",
    "ProcessState",
    "TcpStats",
    "UnsupportedPlatformError",
    "build_report",
    "create_driver",
    "current_platform",
    "format_time_remaining",
    "get_services",
    "get_tcp_stats",
    "list_power_sources",
    "list_processes",
    "load_config",
    "validate_report",
]
