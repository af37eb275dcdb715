"""Per-OS query drivers."""

from hostscope.drivers.base import OperatingSystemDriver, PsOSProcess
from hostscope.drivers.freebsd import FreeBsdDriver, FreeBsdOSProcess
from hostscope.drivers.linux import LinuxDriver, LinuxOSProcess
from hostscope.drivers.macos import MacDriver, MacOSProcess
from hostscope.drivers.solaris import SolarisDriver, SolarisOSProcess
from hostscope.drivers.windows import WindowsDriver, WindowsOSProcess

__all__ = [
    "FreeBsdDriver",
    "FreeBsdOSProcess",
    "LinuxDriver",
    "LinuxOSProcess",
    "MacDriver",
    "MacOSProcess",
    "OperatingSystemDriver",
    "PsOSProcess",
    "SolarisDriver",
    "SolarisOSProcess",
    "WindowsDriver",
    "WindowsOSProcess",
]
