"""
Guest OS discovery.

Strategies are tried from cheapest and most structured to most expensive:
the ``guest-get-osinfo`` RPC, the legacy ``guest-get-os`` RPC, and finally
reading release files inside the guest through ``guest-exec``. The first
strategy that produces a name wins; every failure is logged and skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from common.decorators import timed
from common.exceptions import RpcError

from .agent_client import GuestAgentRPC
from .exec_poller import GuestExecPoller

logger = logging.getLogger(__name__)

OSINFO_METHOD = "guest-get-osinfo"
LEGACY_OS_METHOD = "guest-get-os"

# Discovery slower than this is logged at INFO
SLOW_DISCOVERY = 10.0

# (path, args) tried in order inside the guest
RELEASE_COMMANDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("/bin/cat", ("/etc/os-release",)),
    ("/bin/cat", ("/usr/lib/os-release",)),
    ("/usr/bin/lsb_release", ("-ds",)),
    ("/bin/cat", ("/etc/lsb-release",)),
    ("/bin/cat", ("/etc/redhat-release",)),
    ("/bin/sh", ("-c", "cat /etc/*-release 2>/dev/null")),
]

QUOTES = ("'", '"')


def _unquote(text: str) -> str:
    """Strip one surrounding pair of matching quotes."""
    if len(text) >= 2 and text[0] == text[-1] and text[0] in QUOTES:
        return text[1:-1]
    return text


def extract_os_name(info: Any) -> Optional[str]:
    """
    Pick a display name out of an OS info object.

    Order: ``pretty-name``, ``pretty``, ``name`` + ``version``, then the whole
    object as JSON. Empty objects yield None.
    """
    if info is None or info == {} or info == "":
        return None
    if not isinstance(info, dict):
        text = str(info).strip()
        return text or None

    for key in ("pretty-name", "pretty"):
        value = info.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    name = info.get("name")
    if isinstance(name, str) and name.strip():
        version = info.get("version")
        if isinstance(version, str) and version.strip():
            return f"{name.strip()} {version.strip()}"
        return name.strip()

    return json.dumps(info, sort_keys=True)


def parse_key_values(text: str) -> Dict[str, str]:
    """Parse ``KEY=VALUE`` lines as found in os-release files."""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = _unquote(value.strip())
    return values


def _first_line(text: str) -> Optional[str]:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return None


def parse_release_text(text: str) -> Optional[str]:
    """
    Turn raw release-file output into an OS name.

    os-release style content prefers ``PRETTY_NAME``, then ``NAME`` with
    ``VERSION``. Anything else falls back to the first non-blank line.
    """
    text = _unquote(text.strip())
    if not text:
        return None

    if "PRETTY_NAME=" in text or "NAME=" in text:
        values = parse_key_values(text)
        if values.get("PRETTY_NAME"):
            return values["PRETTY_NAME"]
        if values.get("NAME"):
            if values.get("VERSION"):
                return f"{values['NAME']} {values['VERSION']}"
            return values["NAME"]

    return _first_line(text)


@dataclass(frozen=True)
class DiscoveryResult:
    """OS name plus the strategy that produced it."""
    os: Optional[str]
    strategy: Optional[str] = None


class OSDiscovery:
    """
    Ordered OS probing strategies for one host.

    Args:
        rpc: Guest agent client
        poller: Exec poller used by the release-file strategy
        rpc_timeout: Timeout for the structured RPC strategies
        release_commands: Override the in-guest command list
    """

    def __init__(
        self,
        rpc: GuestAgentRPC,
        poller: GuestExecPoller,
        rpc_timeout: Optional[float] = None,
        release_commands: Optional[Sequence[Tuple[str, Sequence[str]]]] = None,
    ):
        self.rpc = rpc
        self.poller = poller
        self.rpc_timeout = rpc_timeout
        self.release_commands = list(release_commands or RELEASE_COMMANDS)

    @property
    def strategies(self) -> List[Tuple[str, Callable[[str], Optional[str]]]]:
        return [
            (OSINFO_METHOD, self._from_osinfo),
            (LEGACY_OS_METHOD, self._from_legacy),
            ("release-files", self._from_release_files),
        ]

    @timed(slow_after=SLOW_DISCOVERY)
    def discover(self, vm_name: str) -> DiscoveryResult:
        """Walk the strategy chain and report which strategy answered."""
        for name, strategy in self.strategies:
            os_name = strategy(vm_name)
            if os_name:
                logger.debug(f"{vm_name}: OS '{os_name}' via {name}")
                return DiscoveryResult(os=os_name, strategy=name)
            logger.debug(f"{vm_name}: strategy {name} gave no answer")

        logger.info(f"{vm_name}: guest OS could not be determined")
        return DiscoveryResult(os=None)

    def discover_os(self, vm_name: str) -> Optional[str]:
        """Return the guest OS name, or None when every strategy failed."""
        return self.discover(vm_name).os

    def _structured(self, vm_name: str, method: str) -> Optional[str]:
        try:
            info = self.rpc.call(vm_name, method, timeout=self.rpc_timeout)
        except RpcError as e:
            logger.debug(f"{vm_name}: {method} failed: {e}")
            return None
        return extract_os_name(info)

    def _from_osinfo(self, vm_name: str) -> Optional[str]:
        return self._structured(vm_name, OSINFO_METHOD)

    def _from_legacy(self, vm_name: str) -> Optional[str]:
        return self._structured(vm_name, LEGACY_OS_METHOD)

    def _from_release_files(self, vm_name: str) -> Optional[str]:
        for path, args in self.release_commands:
            output = self.poller.run_and_capture(vm_name, path, list(args))
            if not output or not output.strip():
                continue
            os_name = parse_release_text(output)
            if os_name:
                return os_name
        return None
