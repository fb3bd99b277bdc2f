"""
Tests for metrics formatting.
"""

import pytest

from vm_probe.formatting import (
    UNKNOWN, format_cpu_time_ns, format_memory_kib, format_memory_pair, parse_cpu_time_to_ns,
)


class TestFormatMemory:

    @pytest.mark.parametrize("kib, expected", [
        (0, "0 B"),
        (1, "1.0 KiB"),
        (512, "512.0 KiB"),
        (2048, "2.0 MiB"),
        (1536, "1.5 MiB"),
        (4194304, "4.0 GiB"),
        (1024 ** 3, "1.0 TiB"),
        (1024 ** 4, "1024.0 TiB"),
    ])
    def test_units(self, kib, expected):
        assert format_memory_kib(kib) == expected

    def test_unknown(self):
        assert format_memory_kib(None) == UNKNOWN

    def test_pair(self):
        assert format_memory_pair(2097152, 4194304) == "2.0 GiB / 4.0 GiB"
        assert format_memory_pair(None, 4194304) == "4.0 GiB"
        assert format_memory_pair(2048, None) == "2.0 MiB"
        assert format_memory_pair(None, None) == UNKNOWN


class TestFormatCPUTime:

    @pytest.mark.parametrize("ns, expected", [
        (0, "0 ns"),
        (900, "900 ns"),
        (999_999, "999999 ns"),
        (1_000_000, "1 ms"),
        (500_000_000, "500 ms"),
        (999_999_999, "999 ms"),
        (1_000_000_000, "1s"),
        (5_000_000_000, "5s"),
        (65_000_000_000, "1m 05s"),
        (3_600_000_000_000, "1h 00m 00s"),
        (3_725_000_000_000, "1h 02m 05s"),
        (90_061_000_000_000, "25h 01m 01s"),
    ])
    def test_ranges(self, ns, expected):
        assert format_cpu_time_ns(ns) == expected

    def test_unknown(self):
        assert format_cpu_time_ns(None) == UNKNOWN


class TestParseCPUTime:

    @pytest.mark.parametrize("text, expected", [
        ("123.4s", 123_400_000_000),
        ("0.0s", 0),
        ("5s", 5_000_000_000),
        (" 3725.0s ", 3_725_000_000_000),
        ("12", 12_000_000_000),
    ])
    def test_valid(self, text, expected):
        assert parse_cpu_time_to_ns(text) == expected

    @pytest.mark.parametrize("text", [None, "", "n/a", "-1s", "nans"])
    def test_invalid(self, text):
        assert parse_cpu_time_to_ns(text) is None
