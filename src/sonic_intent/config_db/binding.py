"""Service binding records stored in SERVICE_BINDING."""
from dataclasses import dataclass, fields as dc_fields


@dataclass
class ServiceBinding:
    """What was applied to an interface, persisted so removal can be exact.

    Every field is a string as stored; empty means "not set".
    """
    service_name: str = ""
    service_type: str = ""
    vrf_type: str = ""
    ip_address: str = ""
    vrf_name: str = ""
    ipvpn: str = ""
    macvpn: str = ""
    ingress_acl: str = ""
    egress_acl: str = ""
    bgp_neighbor: str = ""
    qos_policy: str = ""
    vlan_id: str = ""
    redistribute_vrf: str = ""

    @classmethod
    def from_fields(cls, data: dict[str, str]) -> "ServiceBinding":
        known = {f.name for f in dc_fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_fields(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in dc_fields(self) if getattr(self, f.name)}

    @property
    def vlan(self) -> int:
        return int(self.vlan_id) if self.vlan_id.isdigit() else 0
