"""Deterministic port allocation for fleet nodes.

Philosophy:
- Pure function of (index, mode), no I/O
- Every base port has a distinct residue mod 100, so two kinds can never land
  on the same value no matter the increment
- Role never changes the result

Public API:
    PortKind: the eleven port kinds of a node
    PortSet: mapping of PortKind to port number
    allocate: compute the PortSet for a node
    max_fleet_size: largest fleet whose ports stay in range
"""

from dataclasses import dataclass
from enum import Enum

from beranode.settings import DeploymentMode, Role

MAX_PORT = 65535
WIDE_STEP = 10000
NARROW_STEP = 100


class PortKind(str, Enum):
    """Named network endpoints of a node."""

    CL_RPC = "cl_rpc_port"
    CL_P2P = "cl_p2p_port"
    CL_PROXY = "cl_proxy_port"
    CL_METRICS = "cl_metrics_port"
    CL_API = "cl_api_port"
    CL_GRPC = "cl_grpc_port"
    CL_GRPC_PRIVILEGED = "cl_grpc_privileged_port"
    EL_RPC = "el_rpc_port"
    EL_AUTHRPC = "el_authrpc_port"
    EL_P2P = "el_p2p_port"
    EL_METRICS = "el_metrics_port"


# (base, increment). Host-facing kinds step by WIDE_STEP, internal ones by NARROW_STEP.
PORT_TABLE: dict[PortKind, tuple[int, int]] = {
    PortKind.CL_RPC: (26657, WIDE_STEP),
    PortKind.CL_P2P: (26656, WIDE_STEP),
    PortKind.CL_PROXY: (26658, NARROW_STEP),
    PortKind.CL_METRICS: (26660, WIDE_STEP),
    PortKind.CL_API: (3500, WIDE_STEP),
    PortKind.CL_GRPC: (9090, NARROW_STEP),
    PortKind.CL_GRPC_PRIVILEGED: (9092, NARROW_STEP),
    PortKind.EL_RPC: (8545, WIDE_STEP),
    PortKind.EL_AUTHRPC: (8551, NARROW_STEP),
    PortKind.EL_P2P: (30303, WIDE_STEP),
    PortKind.EL_METRICS: (9101, WIDE_STEP),
}


@dataclass(frozen=True)
class PortSet:
    """Ports assigned to one node, one per PortKind."""

    ports: tuple[tuple[PortKind, int], ...]

    def __getitem__(self, kind: PortKind | str) -> int:
        kind = PortKind(kind)
        for k, port in self.ports:
            if k is kind:
                return port
        raise KeyError(kind.value)

    def values(self) -> list[int]:
        return [port for _, port in self.ports]

    def to_dict(self) -> dict[str, int]:
        return {kind.value: port for kind, port in self.ports}

    @classmethod
    def from_dict(cls, data: dict[str, int]) -> "PortSet":
        """Build a PortSet from a mapping that carries every PortKind key.

        Raises:
            KeyError: If a port kind is missing
        """
        return cls(ports=tuple((kind, int(data[kind.value])) for kind in PortKind))


def allocate(index: int, role: Role | str | None = None, mode: DeploymentMode | str = DeploymentMode.LOCAL) -> PortSet:
    """Compute the ports for the node at fleet position `index`.

    Local mode offsets each kind by index times its increment. Docker mode gives
    every node the base ports since each runs in its own network namespace.
    The role is accepted for call-site symmetry and ignored.

    Args:
        index: Zero-based position of the node in the fleet
        role: Node role (unused)
        mode: Deployment mode

    Returns:
        PortSet for the node
    """
    del role
    offset = 0 if DeploymentMode(mode) is DeploymentMode.DOCKER else index
    return PortSet(
        ports=tuple((kind, base + offset * step) for kind, (base, step) in PORT_TABLE.items())
    )


def max_fleet_size(mode: DeploymentMode | str = DeploymentMode.LOCAL) -> int | None:
    """Largest fleet whose ports all stay <= 65535, or None if unbounded."""
    if DeploymentMode(mode) is DeploymentMode.DOCKER:
        return None
    return min((MAX_PORT - base) // step + 1 for base, step in PORT_TABLE.values())
