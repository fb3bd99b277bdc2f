"""
Tests for probe configuration loading.
"""

import json

import pytest

from common.exceptions import InvalidConfigError
from vm_probe.config import ProbeConfig, check, load_config


@pytest.fixture
def config_file(tmp_path):
    def write(data):
        path = tmp_path / "config.json"
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        return path
    return write


class TestProbeConfig:

    def test_defaults(self):
        config = ProbeConfig()

        assert config.uri == "qemu:///system"
        assert config.backend == "virsh"
        assert config.rpc_timeout == 5.0
        assert config.cache_ttl == 60.0
        assert config.poll_interval == 0.3
        assert config.exec_deadline == 12.0
        assert config.validate() == []

    def test_round_trip(self):
        config = ProbeConfig(uri="qemu+ssh://host/system", workers=8)
        assert ProbeConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_ignored(self, caplog):
        config = ProbeConfig.from_dict({"cache_ttl": 5, "colour": "blue"})

        assert config.cache_ttl == 5
        assert "colour" in caplog.text

    @pytest.mark.parametrize("changes, problem", [
        ({"uri": ""}, "uri"),
        ({"backend": "xen"}, "backend"),
        ({"rpc_timeout": 0}, "rpc_timeout"),
        ({"cache_ttl": -1}, "cache_ttl"),
        ({"poll_interval": 0}, "poll_interval"),
        ({"exec_deadline": 0.1}, "exec_deadline"),
        ({"workers": 0}, "workers"),
    ])
    def test_validation(self, changes, problem):
        errors = ProbeConfig(**changes).validate()
        assert any(problem in e for e in errors)

    def test_check_raises(self):
        with pytest.raises(InvalidConfigError):
            check(ProbeConfig(workers=0))


class TestLoadConfig:

    def test_missing_file_gives_defaults(self, tmp_path, clean_env):
        assert load_config(tmp_path / "absent.json") == ProbeConfig()

    def test_file_values(self, config_file, clean_env):
        path = config_file({"uri": "qemu:///session", "cache_ttl": 30})

        config = load_config(path)

        assert config.uri == "qemu:///session"
        assert config.cache_ttl == 30

    def test_environment_beats_file(self, config_file, clean_env, monkeypatch):
        path = config_file({"uri": "qemu:///session", "cache_ttl": 30})
        monkeypatch.setenv("LIBVIRT_URI", "qemu+ssh://box/system")
        monkeypatch.setenv("VMPROBE_CACHE_TTL", "0")
        monkeypatch.setenv("VMPROBE_RPC_TIMEOUT", "2.5")
        monkeypatch.setenv("VMPROBE_BACKEND", "libvirt")

        config = load_config(path)

        assert config.uri == "qemu+ssh://box/system"
        assert config.cache_ttl == 0
        assert config.rpc_timeout == 2.5
        assert config.backend == "libvirt"

    def test_empty_env_var_ignored(self, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv("LIBVIRT_URI", "")
        assert load_config(tmp_path / "absent.json").uri == "qemu:///system"

    def test_bad_env_number(self, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv("VMPROBE_CACHE_TTL", "soon")

        with pytest.raises(InvalidConfigError) as exc_info:
            load_config(tmp_path / "absent.json")

        assert exc_info.value.details["field"] == "cache_ttl"

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    def test_unreadable_file(self, config_file, clean_env, content):
        with pytest.raises(InvalidConfigError):
            load_config(config_file(content))

    def test_wrong_value_type(self, config_file, clean_env):
        with pytest.raises(InvalidConfigError):
            load_config(config_file({"cache_ttl": "sixty"}))

    def test_invalid_value(self, config_file, clean_env):
        with pytest.raises(InvalidConfigError):
            load_config(config_file({"backend": "hyperv"}))
