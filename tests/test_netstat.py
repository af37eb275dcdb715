"""Tests for the BSD-style netstat counter."""
from __future__ import annotations

from hostscope.netstat import count_established, query_tcp_netstat

NETSTAT = [
    "Active Internet connections",
    "Proto Recv-Q Send-Q Local Address   Foreign Address   (state)",
    "tcp4       0      0 10.0.0.2.22     10.0.0.9.50112    ESTABLISHED",
    "tcp46      0      0 10.0.0.2.80     10.0.0.9.50200    ESTABLISHED",
    "tcp6       0      0 fe80::1.22      fe80::2.50200     ESTABLISHED",
    "tcp4       0      0 *.22            *.*               LISTEN",
    "udp4       0      0 *.53            *.*               ESTABLISHED",
]


def test_dual_stack_rows_count_as_ipv4(make_executor):
    executor = make_executor({("netstat", "-n", "-p", "tcp"): NETSTAT})
    stats = query_tcp_netstat(executor)
    assert stats.ipv4_established == 2
    assert stats.ipv6_established == 1


def test_no_output(make_executor):
    stats = query_tcp_netstat(make_executor({}))
    assert stats.ipv4_established == 0
    assert stats.ipv6_established == 0


def test_count_established():
    assert count_established(NETSTAT) == 4
