"""QoS policies: device-wide maps and schedulers, per-interface queue binding.

A policy's queue index doubles as its traffic class, so TC_TO_QUEUE_MAP is
always the identity map and DSCP values map straight to queue indexes.
"""
import logging
from typing import TYPE_CHECKING

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..errors import SpecNotFoundError
from ..spec.schema import QoSPolicy, QoSProfile, ServiceSpec
from ..utils.naming import normalize_interface_name
from .base import entry, run_op

if TYPE_CHECKING:
    from ..node.node import Node
    from ..spec.resolver import SpecResolver

logger = logging.getLogger(__name__)

WRED_MIN_THRESHOLD = "1048576"
WRED_MAX_THRESHOLD = "2097152"
WRED_DROP_PROBABILITY = "5"

DSCP_VALUES = 64
DSCP_MAP_REF_PREFIX = f"[{tables.DSCP_TO_TC_MAP}{keys.SEPARATOR}"


def service_qos_policy(resolver: "SpecResolver", service: ServiceSpec):
    """``(name, policy)`` for the service's QoS policy, or ``("", None)``."""
    if service.qos_policy:
        try:
            return service.qos_policy, resolver.get_qos_policy(service.qos_policy)
        except SpecNotFoundError:
            pass
    return "", None


def parse_policy_name(ref: str) -> str:
    """``[DSCP_TO_TC_MAP|gold]`` -> ``gold``; "" for anything else."""
    if not (ref.startswith(DSCP_MAP_REF_PREFIX) and ref.endswith("]")):
        return ""
    return ref[len(DSCP_MAP_REF_PREFIX):-1]


# --- Entry generators ---

def qos_device_config(policy_name: str, policy: QoSPolicy) -> list[ConfigEntry]:
    dscp_fields = {str(i): "0" for i in range(DSCP_VALUES)}
    for idx, queue in enumerate(policy.queues):
        for dscp in queue.dscp:
            dscp_fields[str(dscp)] = str(idx)
    entries = [
        entry(tables.DSCP_TO_TC_MAP, policy_name, dscp_fields),
        entry(tables.TC_TO_QUEUE_MAP, policy_name, {str(i): str(i) for i in range(len(policy.queues))}),
    ]

    for idx, queue in enumerate(policy.queues):
        fields = {"type": queue.type.upper()}
        if queue.type == "dwrr" and queue.weight > 0:
            fields["weight"] = str(queue.weight)
        entries.append(entry(tables.SCHEDULER, keys.scheduler_key(policy_name, idx), fields))

    if policy.has_ecn:
        entries.append(entry(tables.WRED_PROFILE, keys.wred_key(policy_name), {
            "ecn": "ecn_all",
            "green_min_threshold": WRED_MIN_THRESHOLD,
            "green_max_threshold": WRED_MAX_THRESHOLD,
            "green_drop_probability": WRED_DROP_PROBABILITY,
        }))
    return entries


def bind_qos_config(interface: str, policy_name: str, policy: QoSPolicy) -> list[ConfigEntry]:
    entries = [entry(tables.PORT_QOS_MAP, interface, {
        "dscp_to_tc_map": keys.table_ref(tables.DSCP_TO_TC_MAP, policy_name),
        "tc_to_queue_map": keys.table_ref(tables.TC_TO_QUEUE_MAP, policy_name),
    })]
    for idx, queue in enumerate(policy.queues):
        fields = {"scheduler": keys.table_ref(tables.SCHEDULER, keys.scheduler_key(policy_name, idx))}
        if queue.ecn:
            fields["wred_profile"] = keys.table_ref(tables.WRED_PROFILE, keys.wred_key(policy_name))
        entries.append(entry(tables.QUEUE, keys.queue_key(interface, idx), fields))
    return entries


def bind_qos_profile_config(interface: str, profile: QoSProfile) -> list[ConfigEntry]:
    """Legacy profiles name existing maps directly rather than by reference."""
    fields = {}
    if profile.dscp_to_tc_map:
        fields["dscp_to_tc_map"] = profile.dscp_to_tc_map
    if profile.tc_to_queue_map:
        fields["tc_to_queue_map"] = profile.tc_to_queue_map
    if not fields:
        return []
    return [entry(tables.PORT_QOS_MAP, interface, fields)]


def delete_qos_device_config(node: "Node", policy_name: str) -> list[ConfigEntry]:
    snapshot = node.snapshot
    prefix = policy_name + "."
    entries = [entry(tables.DSCP_TO_TC_MAP, policy_name), entry(tables.TC_TO_QUEUE_MAP, policy_name)]
    entries += [entry(tables.SCHEDULER, k) for k in sorted(snapshot.keys_with_prefix(tables.SCHEDULER, prefix))]
    entries += [
        entry(tables.WRED_PROFILE, k) for k in sorted(snapshot.keys_with_prefix(tables.WRED_PROFILE, prefix))
    ]
    return entries


def unbind_qos_config(node: "Node", interface: str) -> list[ConfigEntry]:
    snapshot = node.snapshot
    entries = [
        entry(tables.QUEUE, k)
        for k in sorted(snapshot.keys_with_prefix(tables.QUEUE, interface + keys.SEPARATOR))
    ]
    if snapshot.has(tables.PORT_QOS_MAP, interface):
        entries.append(entry(tables.PORT_QOS_MAP, interface))
    return entries


# --- Operations ---

def apply_qos(node: "Node", interface: str, policy_name: str) -> ChangeSet:
    """Install a policy's device entries and bind it to one interface."""
    interface = normalize_interface_name(interface)
    policy = node.resolver.get_qos_policy(policy_name)
    cs = run_op(
        node, "apply-qos", interface, ChangeType.ADD,
        lambda pc: pc.require_interface_exists(interface),
        lambda: qos_device_config(policy_name, policy) + bind_qos_config(interface, policy_name, policy),
    )
    logger.info(f"{node.name}: applied QoS policy '{policy_name}' to interface {interface}")
    return cs


def remove_qos(node: "Node", interface: str) -> ChangeSet:
    """Unbind QoS from an interface; device-wide maps are left for other users."""
    interface = normalize_interface_name(interface)
    cs = run_op(
        node, "remove-qos", interface, ChangeType.DELETE,
        lambda pc: None,
        lambda: unbind_qos_config(node, interface),
    )
    logger.info(f"{node.name}: removed QoS from interface {interface}")
    return cs
