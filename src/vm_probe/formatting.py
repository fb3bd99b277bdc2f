"""
Human-readable rendering of VM metrics.

Pure functions: memory arrives in KiB, CPU time in nanoseconds.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional

UNKNOWN = "(unknown)"

MEMORY_UNITS = ["B", "KiB", "MiB", "GiB", "TiB"]

NS_PER_MS = 1_000_000
NS_PER_SEC = 1_000_000_000


def format_memory_kib(kib: Optional[float]) -> str:
    """
    Format a KiB amount with binary units.

    Examples:
        >>> format_memory_kib(2048)
        '2.0 MiB'
        >>> format_memory_kib(0)
        '0 B'
    """
    if kib is None:
        return UNKNOWN

    value = float(kib) * 1024
    unit = 0
    while value >= 1024 and unit < len(MEMORY_UNITS) - 1:
        value /= 1024
        unit += 1

    if unit == 0:
        return f"{value:.0f} B"
    return f"{value:.1f} {MEMORY_UNITS[unit]}"


def format_memory_pair(used_kib: Optional[float], max_kib: Optional[float]) -> str:
    """``used / max``, or whichever side is known."""
    if used_kib is not None and max_kib is not None:
        return f"{format_memory_kib(used_kib)} / {format_memory_kib(max_kib)}"
    if used_kib is not None:
        return format_memory_kib(used_kib)
    if max_kib is not None:
        return format_memory_kib(max_kib)
    return UNKNOWN


def format_cpu_time_ns(ns: Optional[int]) -> str:
    """
    Format CPU time.

    Below a millisecond the value stays in ns, below a second it is whole
    ms, otherwise ``Hh MMm SSs`` with leading zero components dropped.

    Examples:
        >>> format_cpu_time_ns(500_000_000)
        '500 ms'
        >>> format_cpu_time_ns(3_725_000_000_000)
        '1h 02m 05s'
    """
    if ns is None:
        return UNKNOWN

    ns = int(ns)
    if ns < NS_PER_MS:
        return f"{ns} ns"

    ms = ns // NS_PER_MS
    if ms < 1000:
        return f"{ms} ms"

    total_seconds = ns // NS_PER_SEC
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)

    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def parse_cpu_time_to_ns(text: Optional[str]) -> Optional[int]:
    """
    Parse ``virsh dominfo`` CPU time (``"123.4s"``) into nanoseconds.

    Returns None for missing or unparsable values.
    """
    if not text:
        return None

    value = text.strip()
    if value.endswith("s"):
        value = value[:-1].strip()

    try:
        seconds = Decimal(value)
    except InvalidOperation:
        return None
    if not seconds.is_finite() or seconds < 0:
        return None
    return int(seconds * NS_PER_SEC)
