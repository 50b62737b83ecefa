"""Field-format checks for a registry document.

Works on the raw JSON so it can report every problem at once, including
documents FleetSpec.from_dict would reject on the first error.

Public API:
    validate_registry: list of human-readable problems (empty when valid)
    is_valid_port, is_valid_address, is_valid_private_key, is_valid_jwt,
    is_valid_moniker: single-field checks
"""

import re
from typing import Any

from beranode.ports import PortKind
from beranode.settings import NETWORKS, DeploymentMode, Role

HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
HEX_32_BYTES_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
MONIKER_RE = re.compile(r"^[a-zA-Z0-9_-]{3,64}$")
COMET_ADDRESS_RE = re.compile(r"^[0-9A-F]{40}$")
BLS_PUBKEY_RE = re.compile(r"^0x[0-9a-fA-F]{96}$")
NODE_ID_RE = re.compile(r"^[0-9a-f]{40}$")


def is_valid_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 65535


def is_valid_address(value: Any) -> bool:
    return isinstance(value, str) and bool(HEX_ADDRESS_RE.match(value))


def is_valid_private_key(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("0x") and bool(HEX_32_BYTES_RE.match(value))


def is_valid_jwt(value: Any) -> bool:
    return isinstance(value, str) and bool(HEX_32_BYTES_RE.match(value))


def is_valid_moniker(value: Any) -> bool:
    return isinstance(value, str) and bool(MONIKER_RE.match(value))


def _validate_node(i: int, node: Any) -> list[str]:
    if not isinstance(node, dict):
        return [f"nodes[{i}]: not an object"]
    errors = []
    label = f"nodes[{i}]"
    if node.get("role") not in {r.value for r in Role}:
        errors.append(f"{label}: invalid role '{node.get('role')}'")
    if not is_valid_moniker(node.get("moniker")):
        errors.append(f"{label}: invalid moniker '{node.get('moniker')}'")
    if not is_valid_address(node.get("wallet_address")):
        errors.append(f"{label}: invalid wallet_address")
    for kind in PortKind:
        if not is_valid_port(node.get(kind.value)):
            errors.append(f"{label}: invalid {kind.value} '{node.get(kind.value)}'")

    beacond = node.get("beacond_config") or {}
    if beacond:
        if not is_valid_jwt(beacond.get("jwt")):
            errors.append(f"{label}: invalid jwt")
        if not NODE_ID_RE.match(str(beacond.get("node_id", ""))):
            errors.append(f"{label}: invalid node_id")
        if not COMET_ADDRESS_RE.match(str(beacond.get("comet_address", ""))):
            errors.append(f"{label}: invalid comet_address")
        if not BLS_PUBKEY_RE.match(str(beacond.get("eth_beacon_pubkey", ""))):
            errors.append(f"{label}: invalid eth_beacon_pubkey")
    else:
        errors.append(f"{label}: missing beacond_config")
    return errors


def _port_collisions(nodes: list[Any]) -> list[str]:
    owners: dict[int, str] = {}
    errors = []
    for i, node in enumerate(nodes):
        if not isinstance(node, dict):
            continue
        for kind in PortKind:
            port = node.get(kind.value)
            if not is_valid_port(port):
                continue
            owner = f"nodes[{i}].{kind.value}"
            if port in owners:
                errors.append(f"Port {port} used by both {owners[port]} and {owner}")
            else:
                owners[port] = owner
    return errors


def validate_registry(data: dict[str, Any]) -> list[str]:
    """Check the field formats of a registry document.

    Args:
        data: Parsed beranodes.config.json

    Returns:
        List of problems, empty if the document is valid
    """
    errors: list[str] = []
    if data.get("network") not in NETWORKS:
        errors.append(f"Unknown network '{data.get('network')}'")
    if not is_valid_moniker(data.get("moniker")):
        errors.append(f"Invalid moniker '{data.get('moniker')}' (3-64 of a-z, A-Z, 0-9, _ or -)")
    mode = data.get("deployment_mode")
    if mode not in {m.value for m in DeploymentMode}:
        errors.append(f"Invalid deployment_mode '{mode}'")
    if not is_valid_address(data.get("wallet_address")):
        errors.append("Invalid wallet_address (expected 0x followed by 40 hex characters)")
    if not is_valid_private_key(data.get("wallet_private_key")):
        errors.append("Invalid wallet_private_key (expected 0x followed by 64 hex characters)")

    counts = {}
    for key in ("validators", "full_nodes", "pruned_nodes", "total_nodes"):
        value = data.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            errors.append(f"Invalid {key} '{value}'")
        else:
            counts[key] = value
    if len(counts) == 4:
        if counts["validators"] < 1:
            errors.append("At least one validator is required")
        if counts["validators"] + counts["full_nodes"] + counts["pruned_nodes"] != counts["total_nodes"]:
            errors.append("validators + full_nodes + pruned_nodes does not equal total_nodes")

    nodes = data.get("nodes")
    if not isinstance(nodes, list):
        errors.append("nodes must be a list")
        return errors
    if "total_nodes" in counts and len(nodes) != counts["total_nodes"]:
        errors.append(f"nodes has {len(nodes)} entries, expected {counts['total_nodes']}")
    for i, node in enumerate(nodes):
        errors.extend(_validate_node(i, node))
    if mode == DeploymentMode.LOCAL.value:
        errors.extend(_port_collisions(nodes))
    return errors
