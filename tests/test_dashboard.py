"""
Tests for the status dashboard.
"""

import pytest

from fakes import DOMINFO_TEXT, fail, ok_text

from vm_probe.dashboard import COLUMNS, DashboardRow, build_row, collect_rows, render_table
from vm_probe.formatting import UNKNOWN


def dominfo_for(*names):
    def handler(args):
        if args[0] == "dominfo" and args[1] in names:
            return ok_text(DOMINFO_TEXT)
        return fail(f"error: failed to get domain '{args[1]}'")
    return handler


class TestBuildRow:

    def test_full_row(self, virsh, manager):
        virsh.on("guest-get-osinfo", {"return": {"pretty-name": "Ubuntu 22.04"}})
        virsh.host_handler = dominfo_for("web01")

        row = build_row(manager, "web01")

        assert row == DashboardRow(
            name="web01",
            os="Ubuntu 22.04",
            memory="2.0 GiB / 4.0 GiB",
            cpu_time="1h 02m 05s",
        )

    def test_metrics_failure_keeps_os(self, virsh, manager):
        virsh.on("guest-get-osinfo", {"return": {"pretty-name": "Ubuntu 22.04"}})
        virsh.host_handler = dominfo_for()

        row = build_row(manager, "web01")

        assert row.os == "Ubuntu 22.04"
        assert row.memory == UNKNOWN
        assert row.cpu_time == UNKNOWN

    def test_unknown_os_keeps_metrics(self, virsh, manager):
        virsh.host_handler = dominfo_for("stopped")

        row = build_row(manager, "stopped")

        assert row.os == UNKNOWN
        assert row.memory == "2.0 GiB / 4.0 GiB"


class TestCollectRows:

    def test_order_and_isolation(self, virsh, manager):
        virsh.on("guest-get-osinfo", lambda args: {"return": {"pretty-name": "Debian 12"}})
        virsh.host_handler = dominfo_for("a", "c")

        rows = collect_rows(manager, iter(["a", "b", "c"]), workers=3)

        assert [r.name for r in rows] == ["a", "b", "c"]
        assert rows[1].memory == UNKNOWN
        assert rows[0].memory != UNKNOWN
        assert all(r.os == "Debian 12" for r in rows)

    def test_empty(self, manager):
        assert collect_rows(manager, []) == []

    def test_crashing_probe_becomes_unknown_row(self, manager, monkeypatch, caplog):
        def explode(vm_name):
            raise ValueError("boom")

        monkeypatch.setattr(manager, "get_os", explode)

        rows = collect_rows(manager, ["web01"], workers=1)

        assert rows == [DashboardRow(name="web01")]
        assert "probe crashed" in caplog.text


class TestRenderTable:

    def test_header_and_alignment(self):
        rows = [
            DashboardRow("web01", "Ubuntu 22.04", "2.0 GiB / 4.0 GiB", "1h 02m 05s"),
            DashboardRow("db01"),
        ]

        lines = render_table(rows).splitlines()

        assert lines[0].startswith("VM")
        assert "Memory (used/max)" in lines[0]
        assert len(lines) == 3
        os_column = lines[0].index("OS")
        assert lines[1][os_column:].startswith("Ubuntu 22.04")
        assert lines[2][os_column:].startswith(UNKNOWN)

    def test_long_names_widen_columns(self):
        name = "a-very-long-virtual-machine-name"
        lines = render_table([DashboardRow(name)]).splitlines()

        assert lines[0].index("OS") > len(name)

    @pytest.mark.parametrize("index", range(len(COLUMNS)))
    def test_every_column_titled(self, index):
        assert COLUMNS[index][0] in render_table([])
