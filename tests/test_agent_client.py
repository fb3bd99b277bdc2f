"""
Tests for the guest agent RPC client.
"""

import json
import pytest

from fakes import FakeVirsh, fail, ok, ok_text

from common.exceptions import AgentCommandError, ExecutionFailed, MalformedResponse
from vm_probe.core.agent_client import GuestAgentRPC, build_payload, TIMEOUT_GRACE
from vm_probe.core.executor import CommandResult, VirshExecutor


def make_client(fake: FakeVirsh, uri=None, timeout=5.0) -> GuestAgentRPC:
    return GuestAgentRPC(VirshExecutor(uri=uri, executor=fake), default_timeout=timeout)


class TestPayload:
    """Wire format of agent requests."""

    def test_payload_without_arguments(self):
        assert json.loads(build_payload("guest-ping")) == {"execute": "guest-ping"}

    def test_payload_with_arguments(self):
        payload = json.loads(build_payload("guest-exec-status", {"pid": 12}))
        assert payload == {"execute": "guest-exec-status", "arguments": {"pid": 12}}

    def test_empty_arguments_are_kept(self):
        payload = json.loads(build_payload("guest-info", {}))
        assert payload["arguments"] == {}


class TestGuestAgentRPC:
    """Tests for GuestAgentRPC.call."""

    def test_returns_return_field_verbatim(self, virsh):
        virsh.on("guest-get-osinfo", {"return": {"pretty-name": "Ubuntu 22.04", "id": "ubuntu"}})
        client = make_client(virsh)

        result = client.call("web01", "guest-get-osinfo")

        assert result == {"pretty-name": "Ubuntu 22.04", "id": "ubuntu"}

    def test_command_line_shape(self, virsh):
        virsh.on("guest-ping", {"return": {}})
        client = make_client(virsh, uri="qemu+ssh://host/system")

        client.call("web01", "guest-ping", timeout=7)

        command, args, timeout = virsh.commands[0]
        assert command == "virsh"
        assert args[:2] == ["-c", "qemu+ssh://host/system"]
        assert args[2:6] == ["qemu-agent-command", "--timeout", "7", "web01"]
        assert json.loads(args[6]) == {"execute": "guest-ping"}
        # subprocess bound follows the virsh timeout
        assert timeout == 7 + TIMEOUT_GRACE

    def test_default_timeout_used(self, virsh):
        virsh.on("guest-ping", {"return": {}})
        client = make_client(virsh, timeout=3.0)

        client.call("web01", "guest-ping")

        _, args, timeout = virsh.commands[0]
        assert args[args.index("--timeout") + 1] == "3"
        assert timeout == 3 + TIMEOUT_GRACE

    def test_nonzero_exit_raises_execution_failed(self, virsh):
        virsh.on("guest-get-osinfo", fail("error: Guest agent is not responding"))
        client = make_client(virsh)

        with pytest.raises(ExecutionFailed) as exc_info:
            client.call("web01", "guest-get-osinfo")

        assert "not responding" in exc_info.value.reason
        assert exc_info.value.vm_name == "web01"
        assert exc_info.value.method == "guest-get-osinfo"

    def test_subprocess_timeout_raises_execution_failed(self, virsh):
        virsh.on("guest-get-osinfo", CommandResult(exit_ok=False, returncode=None, timed_out=True))
        client = make_client(virsh)

        with pytest.raises(ExecutionFailed) as exc_info:
            client.call("web01", "guest-get-osinfo")

        assert "timed out" in exc_info.value.reason

    def test_non_json_raises_malformed(self, virsh):
        virsh.on("guest-get-osinfo", ok_text("this is not json"))
        client = make_client(virsh)

        with pytest.raises(MalformedResponse):
            client.call("web01", "guest-get-osinfo")

    def test_non_object_raises_malformed(self, virsh):
        virsh.on("guest-get-osinfo", ok([1, 2, 3]))
        client = make_client(virsh)

        with pytest.raises(MalformedResponse):
            client.call("web01", "guest-get-osinfo")

    def test_missing_return_raises_malformed(self, virsh):
        virsh.on("guest-get-osinfo", {"id": 1})
        client = make_client(virsh)

        with pytest.raises(MalformedResponse):
            client.call("web01", "guest-get-osinfo")

    def test_error_reply_raises_agent_command_error(self, virsh):
        virsh.on("guest-get-os", {"error": {"class": "CommandNotFound", "desc": "no such command"}})
        client = make_client(virsh)

        with pytest.raises(AgentCommandError) as exc_info:
            client.call("web01", "guest-get-os")

        assert exc_info.value.error_class == "CommandNotFound"
        assert exc_info.value.details["desc"] == "no such command"

    def test_error_classes_share_base(self):
        from common.exceptions import RpcError

        assert issubclass(ExecutionFailed, RpcError)
        assert issubclass(MalformedResponse, RpcError)
        assert issubclass(AgentCommandError, RpcError)
