from __future__ import annotations

import logging
import platform

import psutil


class SysctlReader:
    """Structured reads of kernel parameters.

    ``kern.boottime`` comes from psutil, which decodes the kernel's timeval
    (or the platform equivalent). The identity strings come from ``uname``,
    which the kernel fills from ``kern.ostype``/``kern.osrelease``/``kern.version``.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def boot_time(self) -> int | None:
        try:
            return int(psutil.boot_time())
        except (OSError, RuntimeError, psutil.Error) as exc:
            self.logger.debug("Structured boot time read failed: %s", exc)
            return None

    def string(self, name: str, default: str) -> str:
        uname = platform.uname()
        value = {
            "kern.ostype": uname.system,
            "kern.osrelease": uname.release,
            "kern.version": uname.version,
            "kern.hostname": uname.node,
            "hw.machine": uname.machine,
        }.get(name)
        return value if value else default
