"""Peer topology for a fleet.

Every node peers with every other node (full mesh minus self). Entries point
at the referenced peer's own P2P port, so nodes with offset ports are
reachable on one host.

Public API:
    PeerIdentity: what the topology needs to know about one node
    PeerTopology: seeds and persistent peers for one node
    build_topology: consensus-layer peer lists
    build_execution_peers: execution-layer enode list
"""

from dataclasses import dataclass

LOCAL_HOST = "127.0.0.1"


class TopologyError(Exception):
    """Raised when a peer topology cannot be built."""

    pass


@dataclass(frozen=True)
class PeerIdentity:
    """Addressing facts of one node."""

    node_id: str
    host: str
    p2p_port: int
    el_pubkey: str = ""
    el_p2p_port: int = 0


@dataclass(frozen=True)
class PeerTopology:
    """Peer lists rendered for config.toml."""

    seeds: str
    persistent_peers: str

    @property
    def peer_count(self) -> int:
        return len(self.seeds.split(",")) if self.seeds else 0


def _check_index(identities: list[PeerIdentity], self_index: int) -> None:
    if not 0 <= self_index < len(identities):
        raise TopologyError(
            f"Node index {self_index} out of range for a fleet of {len(identities)}"
        )


def build_topology(identities: list[PeerIdentity], self_index: int) -> PeerTopology:
    """Build the consensus-layer peer lists for the node at `self_index`.

    Args:
        identities: One entry per fleet node, in fleet order
        self_index: Position of the node being configured

    Returns:
        PeerTopology whose seeds and persistent peers are identical
        comma-joined `node_id@host:port` lists

    Raises:
        TopologyError: If the index is out of range or a peer lacks a node id
    """
    _check_index(identities, self_index)
    entries = []
    for i, peer in enumerate(identities):
        if i == self_index:
            continue
        if not peer.node_id:
            raise TopologyError(f"Node {i} has no node id")
        entries.append(f"{peer.node_id}@{peer.host}:{peer.p2p_port}")
    joined = ",".join(entries)
    return PeerTopology(seeds=joined, persistent_peers=joined)


def build_execution_peers(identities: list[PeerIdentity], self_index: int) -> list[str]:
    """Build the execution-layer trusted peer enodes for the node at `self_index`.

    Peers without an execution-layer public key are skipped.
    """
    _check_index(identities, self_index)
    return [
        f"enode://{peer.el_pubkey.removeprefix('0x')}@{peer.host}:{peer.el_p2p_port}"
        for i, peer in enumerate(identities)
        if i != self_index and peer.el_pubkey
    ]
