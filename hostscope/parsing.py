"""Helpers for turning native command output into typed values.

Every parser here is total: malformed input yields the caller's default
instead of an exception, because native output is best effort.
"""
from __future__ import annotations

import re
from typing import Iterable

DHMS_PATTERN = re.compile(
    r"^(?:(\d+)-)?(?:(\d+):)??(?:(\d+):)?(\d+)(?:\.(\d+))?$"
)
DIGITS_PATTERN = re.compile(r"\d+")


def split_fields(line: str, max_fields: int) -> list[str]:
    """Split ``line`` on whitespace runs into at most ``max_fields`` pieces.

    The final piece keeps any embedded whitespace, so a trailing command line
    with arguments stays intact.
    """
    if max_fields <= 0:
        return line.split()
    return line.strip().split(None, max_fields - 1)


def parse_int_or_default(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def parse_float_or_default(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def parse_hex_or_default(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip(), 16)
    except ValueError:
        return default


def parse_dhms_or_default(value: str | None, default: int) -> int:
    """Parse ``[[dd-]hh:]mm:ss[.ff]`` (or bare seconds) into milliseconds."""
    if value is None:
        return default
    match = DHMS_PATTERN.match(value.strip())
    if match is None:
        return default
    days, hours, minutes, seconds, fraction = match.groups()
    millis = int(seconds) * 1000
    if minutes:
        millis += int(minutes) * 60_000
    if hours:
        millis += int(hours) * 3_600_000
    if days:
        millis += int(days) * 86_400_000
    if fraction:
        millis += round(float("0." + fraction) * 1000)
    return millis


def parse_first_digits_or_default(value: str | None, default: int) -> int:
    """Return the first maximal run of digits in ``value`` as an int."""
    if not value:
        return default
    match = DIGITS_PATTERN.search(value)
    if match is None:
        return default
    return int(match.group())


def parse_bit_mask(indices: Iterable[str]) -> int:
    """Build a CPU bit mask from index tokens, skipping non-numeric tokens."""
    mask = 0
    for token in indices:
        index = parse_int_or_default(token.strip(" ,."), -1)
        if index >= 0:
            mask |= 1 << index
    return mask


def parse_key_value_lines(lines: Iterable[str], separator: str) -> dict[str, str]:
    """Collect ``key<sep>value`` lines into a dict, stripping both sides."""
    values: dict[str, str] = {}
    for line in lines:
        if separator not in line:
            continue
        key, value = line.split(separator, 1)
        key = key.strip().strip('"')
        if key:
            values[key] = value.strip().strip('"')
    return values
