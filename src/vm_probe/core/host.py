"""
Host inventory over virsh.

VM enumeration, ``dominfo`` snapshots, block device listing and CD-ROM
media changes. Each operation is a single virsh call with no retries.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from common.exceptions import CDROMNotFoundError, HostCommandError, MetricsUnavailableError

from ..formatting import parse_cpu_time_to_ns
from .executor import VirshExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomInfo:
    """Point-in-time resource snapshot of one VM. Never cached."""
    name: str
    state: Optional[str] = None
    vcpus: Optional[int] = None
    max_memory_kib: Optional[int] = None
    used_memory_kib: Optional[int] = None
    cpu_time_ns: Optional[int] = None


@dataclass(frozen=True)
class BlockDevice:
    """One row of ``virsh domblklist --details``."""
    type: str
    device: str
    target: str
    source: Optional[str]

    @property
    def is_cdrom(self) -> bool:
        return self.device == "cdrom"


def _parse_kib(value: Optional[str]) -> Optional[int]:
    """``"4194304 KiB"`` -> 4194304."""
    if not value:
        return None
    token = value.split()[0]
    try:
        return int(token)
    except ValueError:
        return None


def parse_dominfo_fields(raw: str) -> Dict[str, str]:
    """Split ``virsh dominfo`` output into a key/value mapping."""
    fields: Dict[str, str] = {}
    for line in raw.splitlines():
        if ":" not in line:
            continue
        key, _, value = line.partition(":")
        fields[key.strip()] = value.strip()
    return fields


def parse_dominfo(name: str, raw: str) -> DomInfo:
    """Build a DomInfo from ``virsh dominfo`` output."""
    fields = parse_dominfo_fields(raw)

    vcpus: Optional[int] = None
    if fields.get("CPU(s)", "").isdigit():
        vcpus = int(fields["CPU(s)"])

    return DomInfo(
        name=fields.get("Name") or name,
        state=fields.get("State"),
        vcpus=vcpus,
        max_memory_kib=_parse_kib(fields.get("Max memory")),
        used_memory_kib=_parse_kib(fields.get("Used memory")),
        cpu_time_ns=parse_cpu_time_to_ns(fields.get("CPU time")),
    )


def parse_blklist(raw: str) -> List[BlockDevice]:
    """Parse ``virsh domblklist --details`` output."""
    devices = []
    for line in raw.splitlines():
        parts = line.split(None, 3)
        if len(parts) < 3 or parts[0] == "Type" or set(line.strip()) == {"-"}:
            continue
        source = parts[3].strip() if len(parts) > 3 else None
        devices.append(BlockDevice(
            type=parts[0],
            device=parts[1],
            target=parts[2],
            source=None if source in (None, "-") else source,
        ))
    return devices


class HostBackend(ABC):
    """Enumeration and metrics source used by the probe manager."""

    @abstractmethod
    def iter_vm_batches(self) -> Iterator[List[str]]:
        """Yield VM names in batches, fetching each batch on demand."""

    @abstractmethod
    def dominfo(self, name: str) -> DomInfo:
        """Fresh resource snapshot. Raises MetricsUnavailableError."""

    def iter_vms(self) -> Iterator[str]:
        """Lazily yield every VM name, running ones first."""
        seen = set()
        for batch in self.iter_vm_batches():
            for name in batch:
                if name not in seen:
                    seen.add(name)
                    yield name

    def list_vms(self) -> List[str]:
        return list(self.iter_vms())


class VirshHost(HostBackend):
    """Host inventory through the virsh command line."""

    def __init__(self, virsh: VirshExecutor, timeout: Optional[float] = None):
        self.virsh = virsh
        self.timeout = timeout

    def _run(self, args: List[str]) -> str:
        result = self.virsh.run(args, timeout=self.timeout)
        if not result.exit_ok:
            raise HostCommandError(
                " ".join(args[:2]),
                result.stderr_text or f"exit status {result.returncode}",
            )
        return result.stdout_text

    def _names(self, args: List[str]) -> List[str]:
        return [line.strip() for line in self._run(args).splitlines() if line.strip()]

    def iter_vm_batches(self) -> Iterator[List[str]]:
        yield self._names(["list", "--name"])
        yield self._names(["list", "--inactive", "--name"])

    def dominfo_raw(self, name: str) -> str:
        return self._run(["dominfo", name])

    def dominfo(self, name: str) -> DomInfo:
        try:
            raw = self.dominfo_raw(name)
        except HostCommandError as e:
            raise MetricsUnavailableError(name, e.details.get("reason", str(e)), cause=e) from e
        return parse_dominfo(name, raw)

    def block_devices(self, name: str) -> List[BlockDevice]:
        return parse_blklist(self._run(["domblklist", name, "--details"]))

    def find_cdrom(self, name: str, target: Optional[str] = None) -> BlockDevice:
        """Return the requested (or first) CD-ROM device of a VM."""
        for device in self.block_devices(name):
            if device.is_cdrom and (target is None or device.target == target):
                return device
        raise CDROMNotFoundError(name)

    def attach_iso(self, name: str, iso_path: str, target: Optional[str] = None) -> BlockDevice:
        """Insert (or replace) the media in the VM's CD-ROM drive."""
        device = self.find_cdrom(name, target)
        self._run(["change-media", name, device.target, iso_path, "--update"])
        logger.info(f"Attached {iso_path} to {name}:{device.target}")
        return device

    def eject_iso(self, name: str, target: Optional[str] = None) -> BlockDevice:
        """Eject whatever media is in the VM's CD-ROM drive."""
        device = self.find_cdrom(name, target)
        self._run(["change-media", name, device.target, "--eject"])
        logger.info(f"Ejected media from {name}:{device.target}")
        return device
