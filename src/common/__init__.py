"""
vmprobe Common Utilities

Shared exceptions, logging setup, decorators and locks.
"""

from .exceptions import (
    VMProbeError, RpcError, ExecutionFailed, MalformedResponse,
    AgentCommandError, GuestExecTimeout, OSNotFoundError, ProbeError,
    MetricsUnavailableError, HostCommandError, CDROMNotFoundError,
    LibvirtConnectionError, ConfigError, InvalidConfigError,
)
from .decorators import handle_errors, timed
from .logging_config import setup_logging, LogContext
from .locks import ReadWriteLock

__all__ = [
    # Exceptions
    "VMProbeError", "RpcError", "ExecutionFailed", "MalformedResponse",
    "AgentCommandError", "GuestExecTimeout", "OSNotFoundError", "ProbeError",
    "MetricsUnavailableError", "HostCommandError", "CDROMNotFoundError",
    "LibvirtConnectionError", "ConfigError", "InvalidConfigError",
    # Decorators
    "handle_errors", "timed",
    # Logging
    "setup_logging", "LogContext",
    # Locks
    "ReadWriteLock",
]
