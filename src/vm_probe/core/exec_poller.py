"""
Guest Exec Poller

The guest agent runs processes asynchronously: ``guest-exec`` hands back a
pid and ``guest-exec-status`` has to be polled until the process exits.
This module implements that loop with a fixed interval and an overall
deadline.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from common.exceptions import GuestExecTimeout, MalformedResponse, RpcError

from .agent_client import GuestAgentRPC

logger = logging.getLogger(__name__)

EXEC_METHOD = "guest-exec"
STATUS_METHOD = "guest-exec-status"

DEFAULT_POLL_INTERVAL = 0.3
DEFAULT_DEADLINE = 12.0


class TokenKind(Enum):
    """How the agent encoded the process id."""
    NUMERIC = "numeric"
    STRING = "string"

    @property
    def alternate(self) -> "TokenKind":
        return TokenKind.STRING if self is TokenKind.NUMERIC else TokenKind.NUMERIC


@dataclass(frozen=True)
class ExecToken:
    """Process handle returned by ``guest-exec``."""
    value: str
    kind: TokenKind

    @classmethod
    def from_reply(cls, reply: Any) -> Optional["ExecToken"]:
        """Extract the pid from a ``guest-exec`` reply, or None."""
        if not isinstance(reply, dict):
            return None
        pid = reply.get("pid")
        # bool is an int subclass
        if isinstance(pid, bool):
            return None
        if isinstance(pid, int):
            return cls(str(pid), TokenKind.NUMERIC)
        if isinstance(pid, str) and pid.strip().isdigit():
            return cls(pid.strip(), TokenKind.STRING)
        return None

    def encode(self, kind: Optional[TokenKind] = None):
        kind = kind or self.kind
        if kind is TokenKind.NUMERIC:
            return int(self.value)
        return self.value


@dataclass
class ExecHandle:
    """A guest process being waited on."""
    token: ExecToken
    deadline: float
    path: str = ""
    timeout: float = DEFAULT_DEADLINE


def decode_output(vm_name: str, out_data: Optional[str]) -> str:
    """Decode base64 ``out-data``; a missing field means no output."""
    if not out_data:
        return ""
    try:
        raw = base64.b64decode(out_data)
    except (binascii.Error, ValueError) as e:
        raise MalformedResponse(vm_name, STATUS_METHOD, "out-data is not base64", cause=e) from e
    return raw.decode("utf-8", errors="replace")


class GuestExecPoller:
    """
    Runs a command in the guest and waits for its output.

    Args:
        rpc: Guest agent client
        poll_interval: Seconds between status queries
        deadline: Default overall timeout for one command
        rpc_timeout: Timeout for each individual RPC (defaults to the client's)
        clock: Monotonic time source
        sleep: Sleep function
    """

    def __init__(
        self,
        rpc: GuestAgentRPC,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        deadline: float = DEFAULT_DEADLINE,
        rpc_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.rpc = rpc
        self.poll_interval = poll_interval
        self.deadline = deadline
        self.rpc_timeout = rpc_timeout
        self._clock = clock
        self._sleep = sleep

    def start(self, vm_name: str, path: str, args: Sequence[str]) -> Optional[ExecToken]:
        """Submit ``path args`` for execution. Returns the token or None."""
        params = {"path": path, "arg": list(args), "capture-output": True}
        try:
            reply = self.rpc.call(vm_name, EXEC_METHOD, params, timeout=self.rpc_timeout)
        except RpcError as e:
            logger.debug(f"{vm_name}: submit {path} failed: {e}")
            return None

        token = ExecToken.from_reply(reply)
        if token is None:
            logger.debug(f"{vm_name}: no usable pid in guest-exec reply: {reply!r}")
        return token

    def wait(self, vm_name: str, handle: ExecHandle) -> str:
        """
        Poll until the process exits.

        Returns:
            Decoded stdout of the guest process ("" if none was captured)

        Raises:
            GuestExecTimeout: deadline passed before the process exited
            RpcError: status queries were rejected in both token encodings
        """
        kinds = [handle.token.kind, handle.token.kind.alternate]

        while True:
            status = self._query_status(vm_name, handle, kinds)
            if status.get("exited"):
                logger.debug(
                    f"{vm_name}: {handle.path or 'process'} pid={handle.token.value} "
                    f"exited with {status.get('exitcode')}"
                )
                return decode_output(vm_name, status.get("out-data"))

            remaining = handle.deadline - self._clock()
            if remaining <= 0:
                raise GuestExecTimeout(vm_name, handle.path, handle.timeout)
            self._sleep(min(self.poll_interval, remaining))

    def _query_status(
        self,
        vm_name: str,
        handle: ExecHandle,
        kinds: List[TokenKind],
    ) -> Dict[str, Any]:
        """
        Query ``guest-exec-status``, trying both pid encodings.

        ``kinds`` is reordered in place so the encoding that was accepted is
        tried first on the next poll. Each query is cut off at one poll
        interval past the deadline.

        Raises:
            GuestExecTimeout: no time was left for another query
        """
        last_error: Optional[RpcError] = None
        rpc_timeout = self.rpc_timeout or self.rpc.default_timeout

        for kind in list(kinds):
            budget = handle.deadline + self.poll_interval - self._clock()
            if budget <= 0:
                raise GuestExecTimeout(vm_name, handle.path, handle.timeout)
            try:
                status = self.rpc.call(
                    vm_name,
                    STATUS_METHOD,
                    {"pid": handle.token.encode(kind)},
                    timeout=min(rpc_timeout, budget),
                    limit=budget,
                )
            except RpcError as e:
                logger.debug(f"{vm_name}: status query with {kind.value} pid rejected: {e}")
                last_error = e
                continue

            if not isinstance(status, dict):
                raise MalformedResponse(vm_name, STATUS_METHOD, f"unexpected status {status!r}")
            if kinds[0] is not kind:
                kinds.reverse()
            return status

        raise last_error

    def run_and_capture(
        self,
        vm_name: str,
        path: str,
        args: Sequence[str] = (),
        overall_timeout: Optional[float] = None,
    ) -> Optional[str]:
        """
        Run a command in the guest and return its stdout.

        Returns None when the command could not be started, the status could
        not be read, or it did not finish in time. The guest process is not
        killed on timeout.
        """
        token = self.start(vm_name, path, args)
        if token is None:
            return None

        timeout = self.deadline if overall_timeout is None else overall_timeout
        handle = ExecHandle(
            token=token,
            deadline=self._clock() + timeout,
            path=path,
            timeout=timeout,
        )

        try:
            return self.wait(vm_name, handle)
        except GuestExecTimeout as e:
            logger.debug(str(e))
            return None
        except RpcError as e:
            logger.debug(f"{vm_name}: polling {path} failed: {e}")
            return None
