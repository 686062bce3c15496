"""BGP route policies generated for services.

Every ROUTE_MAP, PREFIX_SET and COMMUNITY_SET a service creates is named
``svc-{service}-...``, which is how removal finds them again.
"""
import logging
from typing import TYPE_CHECKING

from ..config_db import keys, tables
from ..config_db.entry import ConfigEntry
from ..config_db.snapshot import ConfigSnapshot
from ..errors import SpecNotFoundError
from ..spec.schema import RoutingSpec
from ..utils.naming import sanitize_route_map_name
from .base import entry

if TYPE_CHECKING:
    from ..spec.resolver import SpecResolver

logger = logging.getLogger(__name__)

EXTRA_COMMUNITY_SEQ = 9000
EXTRA_PREFIX_LIST_SEQ = 9100


def policy_prefix(service_name: str) -> str:
    return f"svc-{sanitize_route_map_name(service_name)}-"


def route_map_name(service_name: str, direction: str) -> str:
    """``svc-{service}-import`` or ``svc-{service}-export``."""
    return policy_prefix(service_name) + direction


# --- Entry generators ---

def community_set_config(name: str, community: str) -> list[ConfigEntry]:
    return [entry(tables.COMMUNITY_SET, name, {
        "set_type": "standard",
        "match_action": "any",
        "community_member": community,
    })]


def prefix_set_config(resolver: "SpecResolver", set_name: str, prefix_list: str) -> list[ConfigEntry]:
    """One permit row per prefix, sequenced 10, 20, ... A missing list yields nothing."""
    try:
        prefixes = resolver.get_prefix_list(prefix_list)
    except SpecNotFoundError:
        prefixes = []
    if not prefixes:
        logger.warning(f"Prefix list '{prefix_list}' not found or empty")
        return []
    return [
        entry(tables.PREFIX_SET, keys.prefix_set_key(set_name, (i + 1) * 10), {
            "ip_prefix": prefix,
            "action": "permit",
        })
        for i, prefix in enumerate(prefixes)
    ]


def route_policy_config(
    resolver: "SpecResolver",
    service_name: str,
    direction: str,
    policy_name: str,
    extra_community: str = "",
    extra_prefix_list: str = "",
) -> tuple[list[ConfigEntry], str]:
    """Translate a named route policy. Returns the entries and the route-map
    name; an unknown policy gives ``([], "")``."""
    try:
        policy = resolver.get_route_policy(policy_name)
    except SpecNotFoundError as e:
        logger.warning(f"Route policy '{policy_name}' not found: {e}")
        return [], ""

    rm_name = route_map_name(service_name, direction)
    entries = []
    for rule in policy.rules:
        fields = {"route_operation": rule.action}
        if rule.prefix_list:
            set_name = f"{rm_name}-pl-{rule.seq}"
            entries.extend(prefix_set_config(resolver, set_name, rule.prefix_list))
            fields["match_prefix_set"] = set_name
        if rule.community:
            cs_name = f"{rm_name}-cs-{rule.seq}"
            entries.extend(community_set_config(cs_name, rule.community))
            fields["match_community"] = cs_name
        if rule.set is not None:
            if rule.set.local_pref > 0:
                fields["set_local_pref"] = str(rule.set.local_pref)
            if rule.set.community:
                fields["set_community"] = rule.set.community
            if rule.set.med > 0:
                fields["set_med"] = str(rule.set.med)
        entries.append(entry(tables.ROUTE_MAP, keys.route_map_key(rm_name, rule.seq), fields))

    if extra_community:
        cs_name = f"{rm_name}-extra-cs"
        entries.extend(community_set_config(cs_name, extra_community))
        fields = {"route_operation": "permit", "match_community": cs_name}
        if direction == "export":
            fields["set_community"] = extra_community
        entries.append(entry(tables.ROUTE_MAP, keys.route_map_key(rm_name, EXTRA_COMMUNITY_SEQ), fields))

    if extra_prefix_list:
        pl_name = f"{rm_name}-extra-pl"
        entries.extend(prefix_set_config(resolver, pl_name, extra_prefix_list))
        entries.append(entry(tables.ROUTE_MAP, keys.route_map_key(rm_name, EXTRA_PREFIX_LIST_SEQ), {
            "route_operation": "permit",
            "match_prefix_set": pl_name,
        }))
    return entries, rm_name


def inline_route_policy_config(
    resolver: "SpecResolver", service_name: str, direction: str, community: str = "", prefix_list: str = ""
) -> tuple[list[ConfigEntry], str]:
    """Route-map built from a bare community and/or prefix list: community at 10, prefixes next."""
    rm_name = route_map_name(service_name, direction)
    entries = []
    seq = 10
    if community:
        cs_name = f"{rm_name}-cs"
        entries.extend(community_set_config(cs_name, community))
        fields = {"route_operation": "permit", "match_community": cs_name}
        if direction == "export":
            fields["set_community"] = community
        entries.append(entry(tables.ROUTE_MAP, keys.route_map_key(rm_name, seq), fields))
        seq += 10
    if prefix_list:
        pl_name = f"{rm_name}-pl"
        entries.extend(prefix_set_config(resolver, pl_name, prefix_list))
        entries.append(entry(tables.ROUTE_MAP, keys.route_map_key(rm_name, seq), {
            "route_operation": "permit",
            "match_prefix_set": pl_name,
        }))
    return entries, rm_name


def service_route_policies(
    resolver: "SpecResolver", service_name: str, routing: RoutingSpec
) -> tuple[list[ConfigEntry], dict[str, str]]:
    """Entries for both directions plus the neighbor AF fields that attach them."""
    entries = []
    af_fields = {}
    for direction, af_field, policy, community, prefix_list in (
        ("import", "route_map_in", routing.import_policy, routing.import_community, routing.import_prefix_list),
        ("export", "route_map_out", routing.export_policy, routing.export_community, routing.export_prefix_list),
    ):
        if policy:
            generated, rm_name = route_policy_config(
                resolver, service_name, direction, policy, community, prefix_list
            )
        elif community or prefix_list:
            generated, rm_name = inline_route_policy_config(
                resolver, service_name, direction, community, prefix_list
            )
        else:
            continue
        entries.extend(generated)
        if rm_name:
            af_fields[af_field] = rm_name
    return entries, af_fields


def delete_route_policies(snapshot: ConfigSnapshot, service_name: str) -> list[ConfigEntry]:
    """Every route-map, prefix-set and community-set row owned by the service."""
    prefix = policy_prefix(service_name)
    entries = []
    for table in (tables.ROUTE_MAP, tables.PREFIX_SET):
        entries.extend(
            entry(table, key) for key in sorted(snapshot.keys(table))
            if keys.split_key(key)[0].startswith(prefix)
        )
    entries.extend(
        entry(tables.COMMUNITY_SET, key) for key in sorted(snapshot.keys_with_prefix(tables.COMMUNITY_SET, prefix))
    )
    return entries
