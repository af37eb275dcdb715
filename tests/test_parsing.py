"""Tests for native output parsing helpers."""
from __future__ import annotations

import pytest

from hostscope.parsing import (
    parse_bit_mask,
    parse_dhms_or_default,
    parse_first_digits_or_default,
    parse_float_or_default,
    parse_hex_or_default,
    parse_int_or_default,
    parse_key_value_lines,
    split_fields,
)


class TestSplitFields:
    def test_last_field_keeps_embedded_spaces(self):
        fields = split_fields("  S  42  1  /usr/sbin/sshd -D -f /etc/ssh/sshd_config\n", 4)
        assert fields == ["S", "42", "1", "/usr/sbin/sshd -D -f /etc/ssh/sshd_config"]

    def test_short_line_yields_fewer_fields(self):
        assert split_fields("S 42", 4) == ["S", "42"]

    def test_unlimited(self):
        assert split_fields("a  b   c", 0) == ["a", "b", "c"]


class TestNumberParsing:
    def test_int(self):
        assert parse_int_or_default(" 12 ", 0) == 12
        assert parse_int_or_default("twelve", -1) == -1
        assert parse_int_or_default(None, 7) == 7

    def test_float(self):
        assert parse_float_or_default("3.5", 0.0) == 3.5
        assert parse_float_or_default("", 1.0) == 1.0

    def test_hex(self):
        assert parse_hex_or_default(" ff", 0) == 255
        assert parse_hex_or_default("zz", 3) == 3

    def test_first_digits(self):
        assert parse_first_digits_or_default("{ sec = 1620000000, usec = 0 }", 0) == 1620000000
        assert parse_first_digits_or_default("btime 1700000000", 0) == 1700000000
        assert parse_first_digits_or_default("no digits", 99) == 99
        assert parse_first_digits_or_default("", 5) == 5


class TestDhms:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("3600", 3_600_000),
            ("05:30", 330_000),
            ("01:02:03", 3_723_000),
            ("2-01:00:00", 2 * 86_400_000 + 3_600_000),
            ("0:01.50", 1_500),
            ("0", 0),
        ],
    )
    def test_parses_to_millis(self, value, expected):
        assert parse_dhms_or_default(value, -1) == expected

    def test_malformed_returns_default(self):
        assert parse_dhms_or_default("1:xx", -1) == -1
        assert parse_dhms_or_default(None, -1) == -1


def test_parse_bit_mask_skips_noise():
    assert parse_bit_mask(["0,", "2", "3.", "x"]) == 0b1101


def test_parse_key_value_lines_strips_quotes():
    values = parse_key_value_lines(
        ['NAME="Ubuntu"', "VERSION_ID=22.04", "garbage", '  "Voltage" = 12000'], "="
    )
    assert values == {"NAME": "Ubuntu", "VERSION_ID": "22.04", "Voltage": "12000"}
