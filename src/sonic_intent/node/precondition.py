"""Fluent precondition checks run before an operation emits any entry.

Checks accumulate rather than short-circuit so an operator sees every
problem at once:

    node.precondition("apply-service", "Ethernet0") \\
        .require_interface_exists("Ethernet0") \\
        .require_no_existing_service("Ethernet0") \\
        .raise_if_failed()
"""
from typing import TYPE_CHECKING, Optional, Union

from ..errors import PreconditionError, SpecNotFoundError, ValidationError

if TYPE_CHECKING:
    from .node import Node


class PreconditionChecker:
    """Collects PreconditionErrors for one operation on one resource."""

    def __init__(self, node: "Node", operation: str, resource: str):
        self.node = node
        self.operation = operation
        self.resource = resource
        self._errors: list[PreconditionError] = []

    def _fail(self, precondition: str, details: str = "") -> None:
        self._errors.append(
            PreconditionError(self.operation, self.resource, precondition, details)
        )

    def check(self, condition: bool, precondition: str, details: str = "") -> "PreconditionChecker":
        """Record ``precondition`` as violated unless ``condition`` holds."""
        if not condition:
            self._fail(precondition, details)
        return self

    # --- Session ---

    def require_connected(self) -> "PreconditionChecker":
        return self.check(self.node.is_connected, "device must be connected")

    def require_locked(self) -> "PreconditionChecker":
        return self.check(self.node.is_locked, "device must be locked for changes", "use lock() first")

    # --- Interfaces ---

    def require_interface_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            self.node.interface_exists(name), "interface must exist", f"interface '{name}' not found"
        )

    def require_interface_not_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            not self.node.interface_exists(name),
            "interface must not exist", f"interface '{name}' already exists",
        )

    def require_interface_not_lag_member(self, name: str) -> "PreconditionChecker":
        lag = self.node.interface_lag(name)
        return self.check(
            not lag, "interface must not be a LAG member", f"interface '{name}' is member of {lag}"
        )

    def require_interface_is_lag_member(self, name: str, lag: str) -> "PreconditionChecker":
        actual = self.node.interface_lag(name)
        if actual == lag:
            return self
        if not actual:
            self._fail("interface must be a LAG member", f"interface '{name}' is not a member of {lag}")
        else:
            self._fail(
                "interface is member of wrong LAG",
                f"interface '{name}' is member of {actual}, not {lag}",
            )
        return self

    def require_interface_no_service(self, name: str) -> "PreconditionChecker":
        return self.check(
            not self.node.interface_has_service(name),
            "interface must have no service bound",
            f"interface '{name}' has a service bound - remove it first",
        )

    def require_no_existing_service(self, name: str) -> "PreconditionChecker":
        binding = self.node.interface_binding(name)
        if binding is not None:
            self._fail(
                "interface must not have existing service",
                f"interface '{name}' already bound to service '{binding.service_name}' - remove it first",
            )
        return self

    # --- Resources ---

    def require_vlan_exists(self, vlan_id: int) -> "PreconditionChecker":
        return self.check(
            self.node.vlan_exists(vlan_id), "VLAN must exist", f"VLAN {vlan_id} not found - create it first"
        )

    def require_vlan_not_exists(self, vlan_id: int) -> "PreconditionChecker":
        return self.check(
            not self.node.vlan_exists(vlan_id), "VLAN must not exist", f"VLAN {vlan_id} already exists"
        )

    def require_vrf_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            self.node.vrf_exists(name), "VRF must exist", f"VRF '{name}' not found - create it first"
        )

    def require_vrf_not_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            not self.node.vrf_exists(name), "VRF must not exist", f"VRF '{name}' already exists"
        )

    def require_portchannel_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            self.node.portchannel_exists(name),
            "PortChannel must exist", f"PortChannel '{name}' not found - create it first",
        )

    def require_portchannel_not_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            not self.node.portchannel_exists(name),
            "PortChannel must not exist", f"PortChannel '{name}' already exists",
        )

    def require_vtep_configured(self) -> "PreconditionChecker":
        return self.check(
            self.node.vtep_exists(), "VTEP must be configured", "EVPN requires VTEP - configure baseline first"
        )

    def require_bgp_configured(self) -> "PreconditionChecker":
        return self.check(
            self.node.bgp_configured(), "BGP must be configured", "EVPN requires BGP - configure baseline first"
        )

    def require_acl_table_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            self.node.acl_table_exists(name),
            "ACL table must exist", f"ACL table '{name}' not found - create it first",
        )

    def require_acl_table_not_exists(self, name: str) -> "PreconditionChecker":
        return self.check(
            not self.node.acl_table_exists(name),
            "ACL table must not exist", f"ACL table '{name}' already exists",
        )

    # --- Definitions ---

    def require_service_exists(self, name: str) -> "PreconditionChecker":
        try:
            self.node.resolver.get_service(name)
        except SpecNotFoundError:
            self._fail("service must exist", f"service '{name}' not found in network spec")
        return self

    def require_filter_exists(self, name: str) -> "PreconditionChecker":
        try:
            self.node.resolver.get_filter(name)
        except SpecNotFoundError:
            self._fail("filter spec must exist", f"filter spec '{name}' not found in network spec")
        return self

    def require_platform_feature(self, feature: str) -> "PreconditionChecker":
        platform = self.node.platform()
        return self.check(
            platform is None or platform.supports_feature(feature),
            "platform must support feature",
            f"platform '{self.node.profile.platform}' does not support {feature}",
        )

    # --- Results ---

    @property
    def errors(self) -> list[PreconditionError]:
        return list(self._errors)

    @property
    def has_errors(self) -> bool:
        return bool(self._errors)

    def result(self) -> Optional[Union[PreconditionError, ValidationError]]:
        """None if all checks passed, the single error, or one aggregate error."""
        if not self._errors:
            return None
        if len(self._errors) == 1:
            return self._errors[0]
        return ValidationError([str(e) for e in self._errors])

    def raise_if_failed(self) -> None:
        err = self.result()
        if err is not None:
            raise err
