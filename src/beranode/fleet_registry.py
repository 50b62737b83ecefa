"""Fleet registry: the persisted record of a provisioned fleet.

The registry is a single JSON document, beranodes.config.json, in the fleet
root. It is written once at provisioning time and read by every later
command. It carries private keys, so it is written atomically with 0600
permissions.

Public API:
    NodeSpec, FleetSpec: the fleet model
    FleetRegistry: create / load / exists
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from beranode.identity import NodeIdentity
from beranode.ports import PortKind, PortSet
from beranode.settings import (
    AppSettings,
    ClientSettings,
    DeploymentMode,
    EngineSettings,
    GlobalSettings,
    Role,
    SettingsError,
)
from beranode.topology import LOCAL_HOST, PeerIdentity

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when the registry cannot be read, written, or is malformed."""

    pass


class RegistryExistsError(RegistryError):
    """Raised when creating a registry that already exists without overwrite."""

    pass


@dataclass
class NodeSpec:
    """One node of the fleet. Its index is its position in FleetSpec.nodes."""

    role: Role
    moniker: str
    wallet_address: str
    ports: PortSet
    identity: NodeIdentity = field(default_factory=NodeIdentity)
    local_index: int = 0

    @property
    def dir_name(self) -> str:
        return f"{self.role.value}-{self.local_index}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": self.role.value,
            "moniker": self.moniker,
            "wallet_address": self.wallet_address,
        }
        data.update(self.ports.to_dict())
        data.update(self.identity.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], local_index: int = 0) -> "NodeSpec":
        return cls(
            role=Role(data["role"]),
            moniker=data["moniker"],
            wallet_address=data.get("wallet_address", ""),
            ports=PortSet.from_dict(data),
            identity=NodeIdentity.from_dict(data),
            local_index=local_index,
        )


def node_moniker(fleet_moniker: str, role: Role, local_index: int) -> str:
    return f"{fleet_moniker}-{role.suffix}-{local_index}"


@dataclass
class FleetSpec:
    """A provisioned fleet."""

    network: str
    chain_id: int
    beacon_chain_id: str
    moniker: str
    validators: int
    full_nodes: int
    pruned_nodes: int
    deployment_mode: DeploymentMode
    wallet_address: str
    wallet_private_key: str
    wallet_balance: str
    settings: GlobalSettings = field(default_factory=GlobalSettings)
    nodes: list[NodeSpec] = field(default_factory=list)

    @property
    def total_nodes(self) -> int:
        return self.validators + self.full_nodes + self.pruned_nodes

    def validator_nodes(self) -> list[NodeSpec]:
        return [node for node in self.nodes if node.role is Role.VALIDATOR]

    def host_for(self, node: NodeSpec) -> str:
        """Address other nodes use to reach `node`."""
        if self.deployment_mode is DeploymentMode.DOCKER:
            return node.dir_name
        return LOCAL_HOST

    def peer_identities(self) -> list[PeerIdentity]:
        return [
            PeerIdentity(
                node_id=node.identity.node_id,
                host=self.host_for(node),
                p2p_port=node.ports[PortKind.CL_P2P],
                el_pubkey=node.identity.el_public_key,
                el_p2p_port=node.ports[PortKind.EL_P2P],
            )
            for node in self.nodes
        ]

    def check_invariants(self) -> None:
        """Raise RegistryError if the fleet is inconsistent."""
        if self.validators < 1:
            raise RegistryError("A fleet needs at least one validator")
        if min(self.full_nodes, self.pruned_nodes) < 0:
            raise RegistryError("Node counts must be non-negative")
        if len(self.nodes) != self.total_nodes:
            raise RegistryError(
                f"Registry lists {len(self.nodes)} nodes but counts add up to {self.total_nodes}"
            )
        for role, expected in (
            (Role.VALIDATOR, self.validators),
            (Role.RPC_FULL, self.full_nodes),
            (Role.RPC_PRUNED, self.pruned_nodes),
        ):
            actual = sum(1 for node in self.nodes if node.role is role)
            if actual != expected:
                raise RegistryError(f"Expected {expected} {role.value} nodes, found {actual}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network,
            "chain_id": self.chain_id,
            "beacon_chain_id": self.beacon_chain_id,
            "moniker": self.moniker,
            "validators": self.validators,
            "full_nodes": self.full_nodes,
            "pruned_nodes": self.pruned_nodes,
            "total_nodes": self.total_nodes,
            "deployment_mode": self.deployment_mode.value,
            "wallet_address": self.wallet_address,
            "wallet_private_key": self.wallet_private_key,
            "wallet_balance": self.wallet_balance,
            "client_settings": self.settings.client.to_dict(),
            "app_settings": self.settings.app.to_dict(),
            "engine_settings": self.settings.engine.to_dict(),
            "nodes": [node.to_dict() for node in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FleetSpec":
        """Parse and validate a registry document.

        Raises:
            RegistryError: On missing fields, bad values, or broken invariants
        """
        try:
            seen: dict[Role, int] = {}
            nodes = []
            for raw in data.get("nodes", []):
                role = Role(raw["role"])
                nodes.append(NodeSpec.from_dict(raw, local_index=seen.get(role, 0)))
                seen[role] = seen.get(role, 0) + 1

            spec = cls(
                network=data["network"],
                chain_id=int(data["chain_id"]),
                beacon_chain_id=data["beacon_chain_id"],
                moniker=data["moniker"],
                validators=int(data["validators"]),
                full_nodes=int(data["full_nodes"]),
                pruned_nodes=int(data["pruned_nodes"]),
                deployment_mode=DeploymentMode(data["deployment_mode"]),
                wallet_address=data["wallet_address"],
                wallet_private_key=data["wallet_private_key"],
                wallet_balance=str(data["wallet_balance"]),
                settings=GlobalSettings(
                    client=ClientSettings.from_dict(data.get("client_settings")),
                    app=AppSettings.from_dict(data.get("app_settings")),
                    engine=EngineSettings.from_dict(data.get("engine_settings")),
                ),
                nodes=nodes,
            )
            total = data.get("total_nodes")
            declared_total = None if total is None else int(total)
        except KeyError as e:
            raise RegistryError(f"Registry is missing field {e}") from e
        except (ValueError, TypeError, SettingsError) as e:
            raise RegistryError(f"Invalid registry value: {e}") from e

        if declared_total is not None and declared_total != spec.total_nodes:
            raise RegistryError(
                f"total_nodes is {total} but validators + full_nodes + pruned_nodes is {spec.total_nodes}"
            )
        spec.check_invariants()
        return spec


class FleetRegistry:
    """Read and write beranodes.config.json."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def create(self, spec: FleetSpec, overwrite: bool = False) -> Path:
        """Persist a fleet.

        Args:
            spec: Fleet to write
            overwrite: Replace an existing registry

        Raises:
            RegistryExistsError: If the registry exists and overwrite is False.
                The existing file is left untouched.
            RegistryError: If the fleet is inconsistent or the write fails
        """
        if self.exists() and not overwrite:
            raise RegistryExistsError(f"Registry already exists at {self.path}")
        spec.check_invariants()

        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(spec.to_dict(), f, indent=2)
                f.write("\n")
            os.chmod(temp_path, 0o600)
            temp_path.replace(self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise RegistryError(f"Failed to write registry: {e}") from e

        logger.debug(f"Registry written to {self.path}")
        return self.path

    def load_raw(self) -> dict[str, Any]:
        """Read the registry document without interpreting it."""
        if not self.exists():
            raise RegistryError(f"No registry found at {self.path}. Run 'beranode init' first.")
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryError(f"Failed to read registry {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise RegistryError(f"Registry {self.path} is not a JSON object")
        return data

    def load(self) -> FleetSpec:
        """Read and validate the registry.

        Raises:
            RegistryError: If the file is missing, unreadable, or malformed
        """
        return FleetSpec.from_dict(self.load_raw())
