"""
Pytest configuration and shared fixtures for vmprobe tests.

Nothing here talks to a real hypervisor: virsh is replaced by FakeVirsh and
libvirt by mocks.
"""

import os
import pytest
from unittest.mock import MagicMock
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fakes import FakeClock, FakeLibvirtError, FakeVirsh  # noqa: E402


# ============ Environment Fixtures ============

@pytest.fixture
def clean_env(monkeypatch):
    """Remove vmprobe-related environment variables."""
    for var in ("LIBVIRT_URI", "VMPROBE_BACKEND", "VMPROBE_CACHE_TTL", "VMPROBE_RPC_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)


# ============ Control Plane Fixtures ============

@pytest.fixture
def virsh() -> FakeVirsh:
    """Scripted virsh with no guest agent methods registered."""
    return FakeVirsh()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def probe_config():
    """Config with timings that keep tests fast."""
    from vm_probe.config import ProbeConfig

    return ProbeConfig(
        uri="qemu:///system",
        rpc_timeout=5.0,
        cache_ttl=60.0,
        poll_interval=0.3,
        exec_deadline=12.0,
        workers=4,
    )


@pytest.fixture
def manager(probe_config, virsh, clock):
    """ProbeManager wired to the fake virsh and fake clock."""
    from vm_probe.core.probe_manager import ProbeManager

    return ProbeManager.from_config(
        probe_config,
        executor=virsh,
        clock=clock,
        sleep=clock.sleep,
    )


# ============ Libvirt Fixtures ============

@pytest.fixture
def mock_libvirt(monkeypatch):
    """Replace the libvirt module used by the libvirt backend."""
    from vm_probe.core import libvirt_host

    module = MagicMock()
    module.libvirtError = FakeLibvirtError

    conn = MagicMock()
    conn.isAlive.return_value = True
    conn.listDomainsID.return_value = []
    conn.listDefinedDomains.return_value = []
    module.open.return_value = conn

    monkeypatch.setattr(libvirt_host, "libvirt", module)
    monkeypatch.setattr(libvirt_host, "LIBVIRT_AVAILABLE", True)
    yield module


@pytest.fixture
def mock_domain():
    """Mock libvirt domain."""
    domain = MagicMock()
    domain.name.return_value = "test-vm"
    domain.state.return_value = (1, 0)  # Running
    # state, maxMem KiB, memory KiB, vcpus, cpuTime ns
    domain.info.return_value = [1, 4194304, 2097152, 4, 65_000_000_000]
    return domain


# ============ Marker Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "requires_libvirt: marks tests that need libvirt running"
    )
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "integration: integration tests that may need VMs"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests based on environment."""
    skip_libvirt = pytest.mark.skip(reason="Requires libvirt daemon")

    for item in items:
        if "requires_libvirt" in item.keywords:
            try:
                import libvirt
                conn = libvirt.open(os.environ.get("LIBVIRT_URI", "qemu:///system"))
                if conn:
                    conn.close()
            except Exception:
                item.add_marker(skip_libvirt)
