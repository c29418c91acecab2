"""Duration parsing and formatting in the `1h30m` style, and flag helpers."""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import ROUND_DOWN, Decimal

from khelper.errors import ExitCode, ExitError
from khelper.models import NAMESPACE_ALL

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)([^\d.]*)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "-1.5h" or "2h45m"."""
    original = text
    sign = 1
    if text[:1] in ("+", "-"):
        if text[0] == "-":
            sign = -1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f'time: invalid duration "{original}"')

    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        if match is None:
            raise ValueError(f'time: invalid duration "{original}"')
        number, unit = match.groups()
        if not unit:
            raise ValueError(f'time: missing unit in duration "{original}"')
        if unit not in _UNIT_NANOS:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{original}"')
        total += Decimal(number) * _UNIT_NANOS[unit]
        pos = match.end()

    micros = int((total / 1000).to_integral_value(rounding=ROUND_DOWN))
    return timedelta(microseconds=sign * micros)


def _trimmed(whole: int, fraction: int, width: int) -> str:
    digits = f"{fraction:0{width}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(value: timedelta) -> str:
    """Format a duration the way "1h0m0s" or "1.5ms" are written."""
    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        whole, fraction = divmod(micros, 1_000)
        return f"{sign}{_trimmed(whole, fraction, 3)}ms"

    hours, rest = divmod(micros, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    whole, fraction = divmod(rest, 1_000_000)
    seconds = _trimmed(whole, fraction, 6)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def parse_non_negative_duration(flag_name: str, raw: str, default: timedelta) -> timedelta:
    """Parse a duration flag value; blank gives the default, negatives are rejected."""
    raw = raw.strip()
    if not raw:
        return default
    try:
        parsed = parse_duration(raw)
    except ValueError as exc:
        raise ExitError(ExitCode.USAGE, f'invalid --{flag_name} value "{raw}": {exc}', cause=exc) from exc
    if parsed < timedelta(0):
        raise ExitError(ExitCode.USAGE, f"--{flag_name} must be a non-negative duration")
    return parsed


def resolve_namespace_scope(namespace: str, all_namespaces: bool) -> str:
    """The namespace to search: the all-namespaces marker or the given one."""
    return NAMESPACE_ALL if all_namespaces else namespace