"""
Probe core - control plane, guest agent protocol, OS discovery and caching.
"""

from .executor import CommandExecutor, CommandResult, VirshExecutor
from .agent_client import GuestAgentRPC
from .exec_poller import GuestExecPoller, ExecToken, TokenKind
from .os_discovery import OSDiscovery, DiscoveryResult
from .host import DomInfo, BlockDevice, HostBackend, VirshHost
from .probe_manager import ProbeManager, ProbeCache, ProbeResult

__all__ = [
    "CommandExecutor", "CommandResult", "VirshExecutor",
    "GuestAgentRPC",
    "GuestExecPoller", "ExecToken", "TokenKind",
    "OSDiscovery", "DiscoveryResult",
    "DomInfo", "BlockDevice", "HostBackend", "VirshHost",
    "ProbeManager", "ProbeCache", "ProbeResult",
]
