from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class HostscopeError(RuntimeError):
    """Base class for hostscope errors."""


class UnsupportedPlatformError(HostscopeError):
    """Raised when the running OS matches none of the supported families."""


class Platform(Enum):
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"
    SOLARIS = "solaris"
    FREEBSD = "freebsd"


class ProcessState(Enum):
    RUNNING = "running"
    SLEEPING = "sleeping"
    WAITING = "waiting"
    ZOMBIE = "zombie"
    STOPPED = "stopped"
    OTHER = "other"
    INVALID = "invalid"


class ProcessSort(Enum):
    CPU = "cpu"
    MEMORY = "memory"
    OLDEST = "oldest"
    NEWEST = "newest"
    PID = "pid"
    PARENTPID = "parentpid"
    NAME = "name"


class ServiceState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class CapacityUnits(Enum):
    MWH = "mWh"
    MAH = "mAh"
    RELATIVE = "relative"


@dataclass(frozen=True)
class TcpStats:
    ipv4_established: int
    ipv6_established: int


@dataclass(frozen=True)
class OSService:
    name: str
    process_id: int
    state: ServiceState


@dataclass(frozen=True)
class OSVersionInfo:
    family: str
    version: str
    build_number: str
