"""Device inventory management from YAML configuration."""
import logging
import os
from dataclasses import dataclass, field, fields as dc_fields
from pathlib import Path
from typing import Optional

import yaml

from ..errors import SpecLoadError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 3600


@dataclass
class DeviceProfile:
    """Per-device facts the translation engine and store transport need."""
    name: str
    mgmt_ip: str = ""
    ssh_port: int = 22
    username: str = "admin"
    password: Optional[str] = None
    password_env: Optional[str] = None
    timeout: int = 30
    underlay_asn: int = 0
    router_id: str = ""
    loopback_ip: str = ""
    vtep_source_ip: str = ""
    platform: str = ""
    lock_ttl: int = 0  # 0: SONIC_INTENT_LOCK_TTL or DEFAULT_LOCK_TTL
    bgp_neighbors: list[str] = field(default_factory=list)
    bgp_neighbor_asns: dict[str, int] = field(default_factory=dict)

    def get_password(self) -> str:
        """Return the password, from the environment if ``password_env`` is set."""
        if self.password_env:
            return os.environ.get(self.password_env, "")
        return self.password or ""

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "DeviceProfile":
        known = {f.name for f in dc_fields(cls)} - {"name"}
        unknown = set(data) - known
        if unknown:
            logger.debug(f"Device {name}: ignoring unknown keys {sorted(unknown)}")
        kwargs = {k: v for k, v in data.items() if k in known}
        for int_key in ("ssh_port", "timeout", "underlay_asn", "lock_ttl"):
            if int_key in kwargs:
                try:
                    kwargs[int_key] = int(kwargs[int_key])
                except (TypeError, ValueError):
                    raise SpecLoadError(f"Device {name}: {int_key} must be an integer")
        if "bgp_neighbor_asns" in kwargs:
            kwargs["bgp_neighbor_asns"] = {
                str(ip): int(asn) for ip, asn in (kwargs["bgp_neighbor_asns"] or {}).items()
            }
        if not kwargs.get("vtep_source_ip") and kwargs.get("loopback_ip"):
            kwargs["vtep_source_ip"] = kwargs["loopback_ip"]
        return cls(name=name, **kwargs)


class DeviceInventory:
    """Manages the device inventory loaded from YAML config.

    ```yaml
    defaults:
      username: admin
      password_env: SONIC_PASSWORD
    devices:
      leaf1:
        mgmt_ip: 192.0.2.11
        underlay_asn: 65011
        loopback_ip: 10.0.0.11
        platform: as7326
    groups:
      leaves: [leaf1, leaf2]
    ```
    """

    def __init__(self, config_path: Optional[str] = None, data: Optional[dict] = None):
        self._config: dict = {}
        self._profiles: dict[str, DeviceProfile] = {}
        if data is not None:
            self.config_path = "<memory>"
            self._config = data
        else:
            self.config_path = config_path or self._find_config()
            with open(self.config_path) as f:
                self._config = yaml.safe_load(f) or {}
        self._apply_defaults()
        self._validate_groups()

    def _find_config(self) -> str:
        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "sonic-intent" / "devices.yaml",
            Path("/etc/sonic-intent/devices.yaml"),
        ]
        for path in search_paths:
            if path.exists():
                return str(path)
        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml"
        )

    def _apply_defaults(self) -> None:
        defaults = self._config.get("defaults") or {}
        for device_config in (self._config.get("devices") or {}).values():
            for key, value in defaults.items():
                device_config.setdefault(key, value)

    def _validate_groups(self) -> None:
        devices = self._config.get("devices") or {}
        for group_name, members in (self._config.get("groups") or {}).items():
            if not isinstance(members, list):
                logger.warning(f"Group '{group_name}' should be a list of device names")
                continue
            for name in members:
                if name not in devices:
                    logger.warning(f"Group '{group_name}' references unknown device: {name}")

    def get_device_names(self) -> list[str]:
        return list((self._config.get("devices") or {}).keys())

    def get_device_config(self, name: str) -> dict:
        devices = self._config.get("devices") or {}
        if name not in devices:
            raise KeyError(f"Unknown device: {name}")
        return devices[name]

    def get_profile(self, name: str) -> DeviceProfile:
        if name not in self._profiles:
            self._profiles[name] = DeviceProfile.from_dict(name, self.get_device_config(name))
        return self._profiles[name]

    def get_groups(self) -> dict[str, list[str]]:
        return dict(self._config.get("groups") or {})

    def get_group_members(self, group_name: str) -> list[str]:
        groups = self._config.get("groups") or {}
        if group_name not in groups:
            raise KeyError(f"Unknown group: {group_name}")
        return list(groups[group_name])

    def resolve_targets(self, target: str) -> list[str]:
        """A target is a device name, a group name, or "all"."""
        if target == "all":
            return self.get_device_names()
        if target in (self._config.get("groups") or {}):
            return self.get_group_members(target)
        self.get_device_config(target)
        return [target]
