"""
QEMU Guest Agent RPC Client.

Sends guest agent commands through ``virsh qemu-agent-command`` and returns
the decoded ``return`` payload. Interpreting that payload is up to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from common.exceptions import AgentCommandError, ExecutionFailed, MalformedResponse

from .executor import VirshExecutor

logger = logging.getLogger(__name__)

# Seconds added to the subprocess bound so virsh reports its own timeout first
TIMEOUT_GRACE = 2.0


def build_payload(method: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Serialize a guest agent request."""
    message: Dict[str, Any] = {"execute": method}
    if params is not None:
        message["arguments"] = params
    return json.dumps(message)


class GuestAgentRPC:
    """
    Stateless guest agent client.

    Safe to share between threads; every call is one virsh invocation.
    """

    def __init__(self, virsh: VirshExecutor, default_timeout: float = 5.0):
        self.virsh = virsh
        self.default_timeout = default_timeout

    def call(
        self,
        vm_name: str,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        limit: Optional[float] = None,
    ) -> Any:
        """
        Execute a guest agent command.

        Args:
            vm_name: Domain name
            method: Agent method, e.g. ``guest-get-osinfo``
            params: Optional ``arguments`` object
            timeout: Seconds for both virsh's ``--timeout`` and the subprocess
            limit: Hard cap on the subprocess bound, grace included

        Returns:
            The ``return`` field of the reply, verbatim

        Raises:
            ExecutionFailed: virsh exited non-zero or could not run
            MalformedResponse: reply was not a JSON object with ``return``
            AgentCommandError: the agent replied with an ``error`` object
        """
        if timeout is None:
            timeout = self.default_timeout
        agent_timeout = max(1, int(round(timeout)))

        bound = agent_timeout + TIMEOUT_GRACE
        if limit is not None:
            bound = min(bound, limit)

        payload = build_payload(method, params)
        result = self.virsh.run(
            ["qemu-agent-command", "--timeout", str(agent_timeout), vm_name, payload],
            timeout=bound,
        )

        if not result.exit_ok:
            reason = result.stderr_text or f"exit status {result.returncode}"
            if result.timed_out:
                reason = f"timed out after {bound:g}s"
            raise ExecutionFailed(vm_name, method, reason)

        try:
            reply = json.loads(result.stdout_text)
        except json.JSONDecodeError as e:
            raise MalformedResponse(vm_name, method, "reply is not JSON", cause=e) from e

        if not isinstance(reply, dict):
            raise MalformedResponse(vm_name, method, f"expected object, got {type(reply).__name__}")

        if "error" in reply:
            error = reply.get("error") or {}
            if not isinstance(error, dict):
                error = {"desc": str(error)}
            raise AgentCommandError(
                vm_name,
                method,
                str(error.get("class", "GenericError")),
                str(error.get("desc", "")),
            )

        if "return" not in reply:
            raise MalformedResponse(vm_name, method, "missing 'return' field")

        return reply["return"]
