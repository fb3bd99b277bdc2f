"""
vmprobe Exception Hierarchy

Structured errors carrying a machine-readable code, context details and
the underlying cause, so the CLI can print them and tests can assert on them.
"""

from typing import Optional, Dict, Any


class VMProbeError(Exception):
    """
    Base exception for all vmprobe errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the caller can reasonably carry on
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Guest agent RPC errors
# =============================================================================

class RpcError(VMProbeError):
    """Base for guest agent RPC failures."""

    def __init__(self, message: str, vm_name: str, method: str, **kwargs):
        details = kwargs.pop("details", None) or {}
        details.update({"vm_name": vm_name, "method": method})
        super().__init__(message, details=details, **kwargs)
        self.vm_name = vm_name
        self.method = method


class ExecutionFailed(RpcError):
    """The control plane could not deliver the command to the agent."""
    def __init__(self, vm_name: str, method: str, reason: str):
        super().__init__(
            f"Guest agent command '{method}' failed for VM '{vm_name}': {reason}",
            vm_name,
            method,
            code="AGENT_EXECUTION_FAILED",
            details={"reason": reason},
        )
        self.reason = reason


class MalformedResponse(RpcError):
    """The agent reply was not the JSON shape we expect."""
    def __init__(self, vm_name: str, method: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Malformed response to '{method}' from VM '{vm_name}': {reason}",
            vm_name,
            method,
            code="AGENT_MALFORMED_RESPONSE",
            details={"reason": reason},
            cause=cause,
        )
        self.reason = reason


class AgentCommandError(RpcError):
    """The agent understood the request and answered with an error object."""
    def __init__(self, vm_name: str, method: str, error_class: str, description: str):
        super().__init__(
            f"Guest agent rejected '{method}' on VM '{vm_name}': {error_class}: {description}",
            vm_name,
            method,
            code="AGENT_COMMAND_ERROR",
            details={"class": error_class, "desc": description},
        )
        self.error_class = error_class
        self.description = description


class GuestExecTimeout(VMProbeError):
    """A guest process did not report exit before the poll deadline."""
    def __init__(self, vm_name: str, path: str, timeout: float):
        super().__init__(
            f"'{path}' in VM '{vm_name}' did not finish within {timeout:g}s",
            code="GUEST_EXEC_TIMEOUT",
            details={"vm_name": vm_name, "path": path, "timeout": timeout},
        )


class OSNotFoundError(VMProbeError):
    """No probing strategy could identify the guest OS."""
    def __init__(self, vm_name: str):
        super().__init__(
            f"Could not determine the guest OS of VM '{vm_name}'",
            code="OS_NOT_FOUND",
            details={"vm_name": vm_name},
        )


# =============================================================================
# Probe / host errors
# =============================================================================

class ProbeError(VMProbeError):
    """Base for probe failures that reach the caller."""
    pass


class MetricsUnavailableError(ProbeError):
    """Live metrics could not be read for a VM."""
    def __init__(self, vm_name: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Cannot read metrics for VM '{vm_name}': {reason}",
            code="METRICS_UNAVAILABLE",
            details={"vm_name": vm_name, "reason": reason},
            cause=cause,
        )


class HostCommandError(VMProbeError):
    """A host-level control plane command failed."""
    def __init__(self, command: str, reason: str):
        super().__init__(
            f"Host command '{command}' failed: {reason}",
            code="HOST_COMMAND_FAILED",
            details={"command": command, "reason": reason},
        )


class CDROMNotFoundError(VMProbeError):
    """VM has no CD-ROM device to attach media to."""
    def __init__(self, vm_name: str):
        super().__init__(
            f"VM '{vm_name}' has no CD-ROM device",
            code="CDROM_NOT_FOUND",
            details={"vm_name": vm_name},
            recoverable=False,
        )


class LibvirtConnectionError(VMProbeError):
    """Failed to connect to libvirt."""
    def __init__(self, uri: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Cannot connect to libvirt at {uri}",
            code="LIBVIRT_CONNECTION_FAILED",
            details={"uri": uri},
            cause=cause,
        )


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(VMProbeError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )
