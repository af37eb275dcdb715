from __future__ import annotations

from hostscope.executor import CommandExecutor
from hostscope.models import TcpStats


def query_tcp_netstat(executor: CommandExecutor) -> TcpStats:
    """Count established TCP connections from BSD-style ``netstat -n -p tcp``.

    Rows look like ``tcp4  0  0  10.0.0.2.22  10.0.0.9.50112  ESTABLISHED``.
    Classification is by prefix only, so dual-stack ``tcp46`` rows count as IPv4.
    """
    tcp4 = 0
    tcp6 = 0
    for line in executor.run_native(["netstat", "-n", "-p", "tcp"]):
        line = line.strip()
        if not line.endswith("ESTABLISHED"):
            continue
        if line.startswith("tcp4"):
            tcp4 += 1
        elif line.startswith("tcp6"):
            tcp6 += 1
    return TcpStats(ipv4_established=tcp4, ipv6_established=tcp6)


def count_established(lines: list[str]) -> int:
    return sum(1 for line in lines if line.strip().endswith("ESTABLISHED"))
