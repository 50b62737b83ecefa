"""Global settings records for a beranode fleet.

This module holds the immutable configuration records shared by every node of
a fleet, one per configuration layer:

- ClientSettings: client.toml (client-facing RPC config)
- AppSettings: app.toml (application/runtime config)
- EngineSettings: config.toml (peer-to-peer / consensus-engine config)

Records are built once at provisioning time from built-in defaults plus the
network's overrides, persisted in the fleet registry, and passed by value into
the config synthesizer. A field set to None is left at the template's value.

Public API:
    Role, DeploymentMode, Network: fleet enums and network table
    ClientSettings, AppSettings, EngineSettings: per-layer records
    GlobalSettings: the three records bundled together
    resolve_network: look up a network, defaulting unknown names to devnet
"""

import logging
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

BIN_BEACOND = "beacond"
BIN_BERA_RETH = "bera-reth"

DEFAULT_WALLET_BALANCE = "1000000000000000000000000000"
GENESIS_DEPOSIT_AMOUNT = "32000000000"
DEFAULT_MONIKER_PREFIX = "beranode"


class SettingsError(Exception):
    """Raised when a settings record cannot be built."""

    pass


class Role(str, Enum):
    """Role of a node within the fleet."""

    VALIDATOR = "validator"
    RPC_FULL = "rpc-full"
    RPC_PRUNED = "rpc-pruned"

    @property
    def suffix(self) -> str:
        """Moniker suffix for this role."""
        return "val" if self is Role.VALIDATOR else self.value


class DeploymentMode(str, Enum):
    """How node processes are isolated on the host."""

    LOCAL = "local"
    DOCKER = "docker"


@dataclass(frozen=True)
class Network:
    """A named chain the fleet can join."""

    name: str
    chain_id: int
    chain_spec: str

    @property
    def beacon_chain_id(self) -> str:
        return f"{self.name}-beacon-{self.chain_id}"


NETWORKS: dict[str, Network] = {
    "devnet": Network(name="devnet", chain_id=80087, chain_spec="devnet"),
    "bepolia": Network(name="bepolia", chain_id=80069, chain_spec="testnet"),
    "mainnet": Network(name="mainnet", chain_id=80094, chain_spec="mainnet"),
}
DEFAULT_NETWORK = "devnet"


def resolve_network(name: str | None) -> Network:
    """Look up a network by name.

    Unknown or missing names fall back to devnet with a warning.
    """
    if name and name in NETWORKS:
        return NETWORKS[name]
    logger.warning(f"Unknown network '{name}', defaulting to {DEFAULT_NETWORK}")
    return NETWORKS[DEFAULT_NETWORK]


class _Record:
    """Shared dict conversion for the frozen settings dataclasses."""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None):
        data = data or {}
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        unknown = set(data) - known
        if unknown:
            raise SettingsError(
                f"Unknown {cls.__name__} fields: {', '.join(sorted(unknown))}"
            )
        return cls(**data)

    def with_overrides(self, overrides: dict[str, Any] | None):
        if not overrides:
            return self
        known = {f.name for f in fields(self)}  # type: ignore[arg-type]
        for key in overrides:
            if key not in known:
                raise SettingsError(f"Unknown {type(self).__name__} field: {key}")
        return replace(self, **overrides)  # type: ignore[type-var]


@dataclass(frozen=True)
class ClientSettings(_Record):
    """client.toml policy."""

    keyring_backend: str = "test"
    output: str = "text"
    broadcast_mode: str = "sync"


@dataclass(frozen=True)
class AppSettings(_Record):
    """app.toml policy."""

    pruning: str = "default"
    pruning_keep_recent: str = "0"
    pruning_interval: str = "0"
    telemetry_enabled: bool = False
    telemetry_service_name: str = "beacond"
    prometheus_retention_time: int = 60
    shutdown_timeout: str = "5m0s"
    engine_rpc_timeout: str = "2s"
    log_level: str = "info"
    payload_timeout: str = "850ms"
    availability_window: int | None = None
    node_api_enabled: bool = True
    node_api_logging: bool = False
    suggested_fee_recipient: str | None = None


@dataclass(frozen=True)
class EngineSettings(_Record):
    """config.toml policy."""

    log_level: str = "info"
    allow_duplicate_ip: bool = True
    addr_book_strict: bool = False
    max_num_inbound_peers: int = 40
    max_num_outbound_peers: int = 10
    mempool_size: int | None = None
    mempool_max_txs_bytes: int | None = None
    timeout_propose: str = "3s"
    timeout_commit: str | None = None
    prometheus: bool = True
    namespace: str = "cometbft"
    discard_abci_responses: bool | None = None


# Per-network overrides, applied on top of the defaults above.
NETWORK_OVERRIDES: dict[str, dict[str, dict[str, Any]]] = {
    "devnet": {
        "engine": {"timeout_propose": "2s"},
    },
    "bepolia": {
        "app": {"telemetry_enabled": True},
    },
    "mainnet": {
        "app": {"telemetry_enabled": True},
        "engine": {"max_num_inbound_peers": 20},
    },
}


@dataclass(frozen=True)
class GlobalSettings:
    """The three per-layer records of a fleet."""

    client: ClientSettings = ClientSettings()
    app: AppSettings = AppSettings()
    engine: EngineSettings = EngineSettings()

    @classmethod
    def for_network(cls, network: Network, wallet_address: str | None = None) -> "GlobalSettings":
        """Build the defaults for a network, with its overrides merged in."""
        overrides = NETWORK_OVERRIDES.get(network.name, {})
        app = AppSettings().with_overrides(overrides.get("app"))
        if wallet_address and app.suggested_fee_recipient is None:
            app = replace(app, suggested_fee_recipient=wallet_address)
        return cls(
            client=ClientSettings().with_overrides(overrides.get("client")),
            app=app,
            engine=EngineSettings().with_overrides(overrides.get("engine")),
        )
