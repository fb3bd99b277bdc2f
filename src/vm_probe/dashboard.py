"""
Status dashboard: one row per VM with OS, memory and CPU time.

VMs are probed in parallel; a failure on one VM only blanks that VM's
fields.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional

from common.decorators import handle_errors
from common.exceptions import ProbeError, VMProbeError

from .core.host import DomInfo
from .core.probe_manager import ProbeManager
from .formatting import UNKNOWN, format_cpu_time_ns, format_memory_pair

logger = logging.getLogger(__name__)

COLUMNS = [("VM", 20), ("OS", 40), ("Memory (used/max)", 24), ("CPU time", 0)]


@dataclass
class DashboardRow:
    """Rendered values for one VM."""
    name: str
    os: str = UNKNOWN
    memory: str = UNKNOWN
    cpu_time: str = UNKNOWN

    def cells(self) -> List[str]:
        return [self.name, self.os, self.memory, self.cpu_time]


@handle_errors(ProbeError, default=None, log_level=logging.DEBUG, message="metrics unavailable")
def _read_metrics(manager: ProbeManager, vm_name: str) -> Optional[DomInfo]:
    return manager.get_metrics(vm_name)


def build_row(manager: ProbeManager, vm_name: str) -> DashboardRow:
    """Probe one VM; unresolved fields stay ``(unknown)``."""
    row = DashboardRow(name=vm_name)

    try:
        os_name = manager.get_os(vm_name)
    except VMProbeError as e:
        logger.warning(f"{vm_name}: OS probe failed: {e}")
        os_name = None
    if os_name:
        row.os = os_name

    info = _read_metrics(manager, vm_name)
    if info is not None:
        row.memory = format_memory_pair(info.used_memory_kib, info.max_memory_kib)
        row.cpu_time = format_cpu_time_ns(info.cpu_time_ns)

    return row


def collect_rows(
    manager: ProbeManager,
    vm_names: Iterable[str],
    workers: int = 4,
) -> List[DashboardRow]:
    """Probe every VM, in parallel, keeping the enumeration order."""
    names = list(vm_names)
    if not names:
        return []

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(names))),
                            thread_name_prefix="probe") as pool:
        futures = [pool.submit(build_row, manager, name) for name in names]

    rows = []
    for name, future in zip(names, futures):
        try:
            rows.append(future.result())
        except Exception:
            # keep listing the remaining VMs
            logger.exception(f"{name}: probe crashed")
            rows.append(DashboardRow(name=name))
    return rows


def render_table(rows: List[DashboardRow]) -> str:
    """Format rows as an aligned text table."""
    widths = []
    for index, (title, minimum) in enumerate(COLUMNS):
        longest = max([len(title)] + [len(row.cells()[index]) for row in rows])
        widths.append(max(minimum, longest))

    def line(cells: List[str]) -> str:
        padded = [cell.ljust(width) for cell, width in zip(cells[:-1], widths[:-1])]
        return " ".join(padded + [cells[-1]]).rstrip()

    lines = [line([title for title, _ in COLUMNS])]
    lines.extend(line(row.cells()) for row in rows)
    return "\n".join(lines)
