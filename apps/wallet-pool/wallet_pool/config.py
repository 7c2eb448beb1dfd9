"""
Configuration
=============

JSON config file, default ~/.wallet-pool/config.json:

  {
    "api_url": "https://api.clore.ai",
    "token":   "<marketplace token>",
    "wallet":     {"addresses": ["nimble1...", "nimble1..."]},
    "classifier": {"master_url": "...", "sub_url": "..."},
    "reaper":     {"pending_timeout_minutes": 15, "active_timeout_minutes": 10,
                   "reset_on_cancel": false},
    "ssh":        {"user": "root", "identity_file": null, "timeout": 20,
                   "status_command": "cat /root/wallet_address"},
    "api":        {"enabled": true, "host": "0.0.0.0", "port": 8080}
  }

Precedence: defaults < file < environment < CLI flags (applied in pool.main).
The address list is re-read from the file on every cycle by AddressSource.
"""

from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .classifier import DEFAULT_MASTER_URL, DEFAULT_SUB_URL
from .errors import ConfigError
from .marketplace import DEFAULT_API_URL
from .remote_status import DEFAULT_STATUS_COMMAND

log = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".wallet-pool" / "config.json"


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return data


def _addresses(data: dict) -> list[str]:
    raw = (data.get("wallet") or {}).get("addresses") or []
    if not isinstance(raw, list):
        raise ConfigError("wallet.addresses must be a list of strings")
    return [str(a).strip() for a in raw if str(a).strip()]


@dataclass
class PoolConfig:
    api_url:         str = DEFAULT_API_URL
    token:           str = ""
    addresses:       list[str] = field(default_factory=list)
    cycle_interval:  float = 300
    reap_interval:   float = 60
    request_timeout: Optional[float] = 30

    master_url:      str = DEFAULT_MASTER_URL
    sub_url:         str = DEFAULT_SUB_URL

    pending_timeout_minutes: float = 15
    active_timeout_minutes:  float = 10
    reset_on_cancel:         bool = False

    ssh_user:           str = "root"
    ssh_identity_file:  Optional[str] = None
    ssh_timeout:        float = 20
    ssh_status_command: str = DEFAULT_STATUS_COMMAND

    api_enabled: bool = True
    api_host:    str = "0.0.0.0"
    api_port:    int = 8080

    @classmethod
    def from_dict(cls, data: dict) -> "PoolConfig":
        classifier = data.get("classifier") or {}
        reaper     = data.get("reaper") or {}
        ssh        = data.get("ssh") or {}
        api        = data.get("api") or {}
        defaults   = cls()
        try:
            return cls(
                api_url         = data.get("api_url", defaults.api_url),
                token           = data.get("token", defaults.token),
                addresses       = _addresses(data),
                cycle_interval  = float(data.get("cycle_interval", defaults.cycle_interval)),
                reap_interval   = float(data.get("reap_interval", defaults.reap_interval)),
                request_timeout = data.get("request_timeout", defaults.request_timeout),

                master_url      = classifier.get("master_url", defaults.master_url),
                sub_url         = classifier.get("sub_url", defaults.sub_url),

                pending_timeout_minutes = float(reaper.get("pending_timeout_minutes", defaults.pending_timeout_minutes)),
                active_timeout_minutes  = float(reaper.get("active_timeout_minutes", defaults.active_timeout_minutes)),
                reset_on_cancel         = bool(reaper.get("reset_on_cancel", defaults.reset_on_cancel)),

                ssh_user           = ssh.get("user", defaults.ssh_user),
                ssh_identity_file  = ssh.get("identity_file", defaults.ssh_identity_file),
                ssh_timeout        = float(ssh.get("timeout", defaults.ssh_timeout)),
                ssh_status_command = ssh.get("status_command", defaults.ssh_status_command),

                api_enabled = bool(api.get("enabled", defaults.api_enabled)),
                api_host    = api.get("host", defaults.api_host),
                api_port    = int(api.get("port", defaults.api_port)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config value: {e}") from e

    @classmethod
    def from_file(cls, path: Path) -> "PoolConfig":
        cfg = cls.from_dict(load_config(path))
        cfg.api_url = os.getenv("WALLET_POOL_API_URL", cfg.api_url)
        cfg.token   = os.getenv("WALLET_POOL_TOKEN", cfg.token)
        return cfg


class AddressSource:
    """Re-reads wallet.addresses from the config file each time it is called."""

    def __init__(self, path: Path, initial: Optional[list[str]] = None):
        self.path  = path
        self._last = list(initial or [])

    def __call__(self) -> list[str]:
        try:
            self._last = _addresses(load_config(self.path))
        except ConfigError as e:
            log.warning(f"[config] {e} — keeping {len(self._last)} address(es) from last read")
        return list(self._last)
