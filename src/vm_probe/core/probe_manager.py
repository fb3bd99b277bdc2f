"""
Probe Manager - per-VM façade used by the CLI and dashboard.

OS probing is expensive (several guest agent round trips), so results are
kept in a TTL cache, failures included. Metrics are a single cheap call
and are always read live.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from common.locks import ReadWriteLock

from ..config import ProbeConfig
from .agent_client import GuestAgentRPC
from .exec_poller import GuestExecPoller
from .executor import CommandExecutor, VirshExecutor
from .host import DomInfo, HostBackend, VirshHost
from .os_discovery import OSDiscovery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Cached outcome of one OS probe."""
    os: Optional[str]
    fetched_at: float


class ProbeCache:
    """
    VM name -> ProbeResult with a single time-to-live.

    Expired entries are ignored on read rather than evicted. Entries are
    replaced whole, never updated in place.

    Args:
        ttl: Seconds an entry stays valid
        clock: Time source, monotonic by default
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, ProbeResult] = {}
        self._lock = ReadWriteLock()

    def get(self, vm_name: str) -> Optional[ProbeResult]:
        """Return the entry if it is still valid."""
        with self._lock.read():
            entry = self._entries.get(vm_name)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at < self.ttl:
            return entry
        return None

    def put(self, vm_name: str, os_name: Optional[str]) -> ProbeResult:
        result = ProbeResult(os=os_name, fetched_at=self._clock())
        with self._lock.write():
            self._entries[vm_name] = result
        return result

    def invalidate(self, vm_name: str) -> None:
        with self._lock.write():
            self._entries.pop(vm_name, None)

    def clear(self) -> None:
        with self._lock.write():
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)


class ProbeManager:
    """
    Cached OS discovery plus live metrics for every VM on a host.

    Thread-safe: the dashboard calls it from several worker threads. Two
    threads missing on the same VM may both probe; the later write wins.
    """

    def __init__(
        self,
        discovery: OSDiscovery,
        host: HostBackend,
        cache: ProbeCache,
    ):
        self.discovery = discovery
        self.host = host
        self.cache = cache

    @classmethod
    def from_config(
        cls,
        config: ProbeConfig,
        executor: Optional[CommandExecutor] = None,
        host: Optional[HostBackend] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ProbeManager":
        """Wire up the full probing stack from configuration."""
        virsh = VirshExecutor(uri=config.uri, binary=config.virsh_binary, executor=executor)
        rpc = GuestAgentRPC(virsh, default_timeout=config.rpc_timeout)
        poller = GuestExecPoller(
            rpc,
            poll_interval=config.poll_interval,
            deadline=config.exec_deadline,
            rpc_timeout=config.rpc_timeout,
            clock=clock,
            sleep=sleep,
        )
        discovery = OSDiscovery(rpc, poller, rpc_timeout=config.rpc_timeout)

        if host is None:
            if config.backend == "libvirt":
                from .libvirt_host import LibvirtHost
                host = LibvirtHost(config.uri)
            else:
                host = VirshHost(virsh, timeout=config.rpc_timeout)

        return cls(discovery, host, ProbeCache(config.cache_ttl, clock=clock))

    def get_os(self, vm_name: str) -> Optional[str]:
        """
        Guest OS name, probing only when the cache has no valid entry.

        A None result is cached too, so an unreachable agent is not
        hammered on every refresh.
        """
        cached = self.cache.get(vm_name)
        if cached is not None:
            logger.debug(f"{vm_name}: OS cache hit")
            return cached.os

        # No lock is held while probing
        os_name = self.discovery.discover_os(vm_name)
        self.cache.put(vm_name, os_name)
        return os_name

    def cached_os(self, vm_name: str) -> Optional[ProbeResult]:
        """Peek at the cache without probing."""
        return self.cache.get(vm_name)

    def get_metrics(self, vm_name: str) -> DomInfo:
        """
        Live resource snapshot. Deliberately never cached.

        Raises:
            MetricsUnavailableError: the control plane could not be queried
        """
        return self.host.dominfo(vm_name)

    def invalidate(self, vm_name: str) -> None:
        self.cache.invalidate(vm_name)

    def clear_cache(self) -> None:
        self.cache.clear()
