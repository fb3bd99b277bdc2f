"""
Probe configuration.

Defaults, then ``~/.config/vmprobe/config.json``, then environment
variables. Command-line flags are applied on top by the CLI.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import List, Optional

from common.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

DEFAULT_URI = "qemu:///system"
CONFIG_PATH = Path.home() / ".config" / "vmprobe" / "config.json"

BACKENDS = ("virsh", "libvirt")

# env var -> (field, converter)
ENV_OVERRIDES = {
    "LIBVIRT_URI": ("uri", str),
    "VMPROBE_BACKEND": ("backend", str),
    "VMPROBE_CACHE_TTL": ("cache_ttl", float),
    "VMPROBE_RPC_TIMEOUT": ("rpc_timeout", float),
}


@dataclass
class ProbeConfig:
    """Settings for the probing stack."""
    uri: str = DEFAULT_URI
    backend: str = "virsh"
    virsh_binary: str = "virsh"
    rpc_timeout: float = 5.0
    cache_ttl: float = 60.0
    poll_interval: float = 0.3
    exec_deadline: float = 12.0
    workers: int = 4

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the config is usable."""
        errors = []
        if not self.uri:
            errors.append("uri must not be empty")
        if self.backend not in BACKENDS:
            errors.append(f"backend must be one of {', '.join(BACKENDS)}")
        if self.rpc_timeout <= 0:
            errors.append("rpc_timeout must be positive")
        if self.cache_ttl < 0:
            errors.append("cache_ttl must not be negative")
        if self.poll_interval <= 0:
            errors.append("poll_interval must be positive")
        if self.exec_deadline < self.poll_interval:
            errors.append("exec_deadline must be at least poll_interval")
        if self.workers < 1:
            errors.append("workers must be at least 1")
        return errors

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "ProbeConfig":
        """Create a config from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(path: Optional[Path] = None) -> ProbeConfig:
    """
    Load configuration from file and environment.

    Raises:
        InvalidConfigError: the file is unreadable or a value is invalid
    """
    path = path or CONFIG_PATH
    data = {}

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfigError("config_file", path, str(e)) from e
        if not isinstance(data, dict):
            raise InvalidConfigError("config_file", path, "expected a JSON object")
        logger.debug(f"Loaded config from {path}")

    for var, (field_name, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            data[field_name] = convert(raw)
        except ValueError as e:
            raise InvalidConfigError(field_name, raw, f"bad value in ${var}") from e

    try:
        config = ProbeConfig.from_dict(data)
        check(config)
    except TypeError as e:
        # wrong value types in the file, e.g. "cache_ttl": "60"
        raise InvalidConfigError("config_file", path, str(e)) from e
    return config


def check(config: ProbeConfig) -> ProbeConfig:
    """Raise InvalidConfigError on the first validation problem."""
    errors = config.validate()
    if errors:
        raise InvalidConfigError("config", config.to_dict(), "; ".join(errors))
    return config
