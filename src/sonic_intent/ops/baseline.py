"""Baseline configlets: the device-level config a leaf needs before any service."""
import logging
from typing import TYPE_CHECKING, Optional

from ..config_db import tables
from ..config_db.changeset import ChangeSet
from .evpn import vtep_config

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)

CONFIGLETS = ("sonic-baseline", "sonic-evpn")


def baseline_variables(node: "Node", variables: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Caller variables over the defaults taken from the device profile."""
    merged = {"loopback_ip": node.profile.loopback_ip, "device_name": node.name}
    merged.update(variables or {})
    return merged


def apply_baseline(node: "Node", configlet: str, variables: Optional[dict[str, str]] = None) -> ChangeSet:
    """Apply a named baseline configlet.

    ``sonic-baseline`` sets the hostname and the Loopback0 address,
    ``sonic-evpn`` creates the VTEP sourced from the loopback.
    """
    pc = node.precondition("apply-baseline", configlet)
    pc.check(configlet in CONFIGLETS, "configlet must be known", f"unknown configlet: {configlet}")
    pc.raise_if_failed()

    params = baseline_variables(node, variables)
    loopback_ip = params.get("loopback_ip", "")
    cs = ChangeSet(node.name, "device.apply-baseline")

    if configlet == "sonic-baseline":
        cs.update(tables.DEVICE_METADATA, "localhost", {"hostname": params["device_name"]})
        if loopback_ip:
            # intfmgrd binds the address only once the base entry exists
            cs.update(tables.LOOPBACK_INTERFACE, "Loopback0", {})
            cs.add(tables.LOOPBACK_INTERFACE, f"Loopback0|{loopback_ip}/32")
    elif loopback_ip:
        cs.adds(vtep_config(loopback_ip))

    logger.info(f"{node.name}: applied baseline configlet {configlet} ({len(cs)} changes)")
    return node.track_offline(cs)
