"""
Shared test fixtures and configuration for beranode tests.

This module provides common fixtures used across all test types:
- Temporary fleet roots
- Sample node identities and fleets
- Minimal beacond config templates
"""

from pathlib import Path

import pytest

from beranode.fleet_registry import FleetSpec, NodeSpec, node_moniker
from beranode.identity import NodeIdentity
from beranode.layout import FleetLayout
from beranode.ports import allocate
from beranode.provisioner import plan_roles
from beranode.settings import NETWORKS, DeploymentMode, GlobalSettings, Role

WALLET_ADDRESS = "0x" + "ab" * 20
WALLET_PRIVATE_KEY = "0x" + "11" * 32

# ============================================================================
# CONFIG TEMPLATES (shape of `beacond init` output)
# ============================================================================

CLIENT_TEMPLATE = """\
# This is a TOML config file.
# For more information, see https://github.com/toml-lang/toml

chain-id = ""
keyring-backend = "os"
output = "text"
# <host>:<port> to CometBFT RPC interface for this chain
node = "tcp://localhost:26657"
broadcast-mode = "sync"
"""

APP_TEMPLATE = """\
pruning = "default"
pruning-keep-recent = "0"
pruning-interval = "0"

[telemetry]
service-name = ""
enabled = false
prometheus-retention-time = 0

[beacon-kit]
chain-spec = "devnet"
shutdown-timeout = "5m0s"

[beacon-kit.engine]
# HTTP url of the execution client JSON-RPC endpoint.
rpc-dial-url = "http://localhost:8551"
rpc-timeout = "900ms"
jwt-secret-path = "./jwt.hex"

[beacon-kit.logger]
log-level = "info"

[beacon-kit.kzg]
trusted-setup-path = "./testing/files/kzg-trusted-setup.json"

[beacon-kit.payload-builder]
suggested-fee-recipient = "0x0000000000000000000000000000000000000000"
payload-timeout = "850ms"

[beacon-kit.validator]
availability-window = 8192

[beacon-kit.node-api]
enabled = false
address = "127.0.0.1:3500"
logging = false
"""

CONFIG_TEMPLATE = """\
proxy_app = "tcp://127.0.0.1:26658"
moniker = "template"
log_level = "info"

[rpc]
# TCP or UNIX socket address for the RPC server to listen on
laddr = "tcp://127.0.0.1:26657"

[grpc]
laddr = ""

[grpc.privileged]
laddr = ""

[p2p]
laddr = "tcp://0.0.0.0:26656"
seeds = ""
persistent_peers = ""
addr_book_strict = true
max_num_inbound_peers = 40
max_num_outbound_peers = 10
allow_duplicate_ip = false

[mempool]
size = 5000
max_txs_bytes = 1073741824

[consensus]
timeout_propose = "3s"
timeout_commit = "1s"

[storage]
discard_abci_responses = false

[instrumentation]
prometheus = false
prometheus_listen_addr = ":26660"
namespace = "cometbft"
"""


def write_templates(layout: FleetLayout, node: NodeSpec) -> Path:
    """Write the three config templates for a node, as `beacond init` would."""
    config_dir = layout.beacond_home(node.dir_name) / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "client.toml").write_text(CLIENT_TEMPLATE)
    (config_dir / "app.toml").write_text(APP_TEMPLATE)
    (config_dir / "config.toml").write_text(CONFIG_TEMPLATE)
    return config_dir


# ============================================================================
# IDENTITY / FLEET BUILDERS
# ============================================================================


def make_identity(index: int, validator: bool = True) -> NodeIdentity:
    """Deterministic, well-formed key material for node `index`."""
    digit = f"{index % 16:x}"
    deposit = None
    if validator:
        deposit = {
            "pubkey": "0x" + digit * 96,
            "credentials": "0x01" + "00" * 11 + "ab" * 20,
            "amount": "0x773594000",
            "signature": "0x" + "cd" * 96,
            "index": index,
        }
    return NodeIdentity(
        beacond_config={
            "comet_address": (digit * 40).upper(),
            "comet_pubkey": "pubkey" + digit,
            "node_id": f"{index:02x}" + "e" * 38,
            "deposit_amount": "32000000000",
            "jwt": "0x" + digit * 64,
            "eth_beacon_pubkey": "0x" + digit * 96,
            "node_key": {"priv_key": {"type": "tendermint/PrivKeyEd25519", "value": f"nodekey{index}"}},
            "premined_deposit": deposit,
            "priv_validator_key": {"address": (digit * 40).upper(), "pub_key": {}, "priv_key": {}},
        },
        berareth_config={"private_key": digit * 64, "public_key": f"{index:02x}" + "f" * 126},
    )


def build_fleet(
    validators: int = 2,
    full_nodes: int = 1,
    pruned_nodes: int = 0,
    mode: DeploymentMode = DeploymentMode.LOCAL,
    moniker: str = "testnet",
) -> FleetSpec:
    network = NETWORKS["devnet"]
    nodes = []
    for index, (role, local_index) in enumerate(plan_roles(validators, full_nodes, pruned_nodes)):
        nodes.append(
            NodeSpec(
                role=role,
                moniker=node_moniker(moniker, role, local_index),
                wallet_address=WALLET_ADDRESS,
                ports=allocate(index, role, mode),
                identity=make_identity(index, validator=role is Role.VALIDATOR),
                local_index=local_index,
            )
        )
    return FleetSpec(
        network=network.name,
        chain_id=network.chain_id,
        beacon_chain_id=network.beacon_chain_id,
        moniker=moniker,
        validators=validators,
        full_nodes=full_nodes,
        pruned_nodes=pruned_nodes,
        deployment_mode=mode,
        wallet_address=WALLET_ADDRESS,
        wallet_private_key=WALLET_PRIVATE_KEY,
        wallet_balance="1000000000000000000",
        settings=GlobalSettings.for_network(network, WALLET_ADDRESS),
        nodes=nodes,
    )


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def protect_real_fleet(monkeypatch, tmp_path):
    """Keep tests away from a real fleet root.

    Unsets $BERANODES_DIR and runs each test from tmp_path, so a command
    invoked without --beranodes-dir resolves to a throwaway ./beranodes.
    """
    monkeypatch.delenv("BERANODES_DIR", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def layout(tmp_path):
    """Empty fleet root under tmp_path."""
    return FleetLayout(root=tmp_path / "beranodes")


@pytest.fixture
def sample_fleet():
    """Two validators and one full node, local mode."""
    return build_fleet()


@pytest.fixture
def fleet_factory():
    """Callable building a FleetSpec: fleet_factory(validators, full_nodes, pruned_nodes, mode)."""
    return build_fleet


@pytest.fixture
def identity_factory():
    """Callable building a NodeIdentity: identity_factory(index, validator=True)."""
    return make_identity


@pytest.fixture
def node_templates(layout):
    """Callable writing beacond config templates for a node; returns the config dir."""
    return lambda node: write_templates(layout, node)
