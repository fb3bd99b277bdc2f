"""
vmprobe

Guest OS discovery and live resource metrics for libvirt virtual machines.
"""

from .config import ProbeConfig, load_config
from .core.probe_manager import ProbeManager, ProbeCache, ProbeResult
from .core.host import DomInfo

__all__ = [
    "ProbeConfig",
    "load_config",
    "ProbeManager",
    "ProbeCache",
    "ProbeResult",
    "DomInfo",
]

__version__ = "0.1.0"
