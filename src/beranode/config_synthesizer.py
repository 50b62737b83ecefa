"""Per-node configuration synthesis.

`beacond init` writes three TOML templates into <home>/config/:

- client.toml: client-facing RPC config
- app.toml: application/runtime config
- config.toml: peer-to-peer / consensus-engine config

The synthesizer builds one patch per template, a mapping of key path to value,
from three field families:

- network-derived: chain id, chain spec
- topology-derived: ports, listen addresses, peer lists, per-node file paths
- policy: the fleet's ClientSettings / AppSettings / EngineSettings

Templates are parsed with tomlkit and only the patched values change, so
comments and layout survive. Keys that repeat across tables (`laddr` lives in
[rpc], [p2p], [grpc]) are addressed by their full table path. A key the patch
expects but the template lacks raises TemplateKeyError.

Public API:
    KeyPath, Patch: patch types
    ConfigSynthesizer: build and apply the three patches for a node
    apply_patch / patch_document: apply a patch to a file / parsed document
"""

import logging
import os
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import ParseError
from tomlkit.items import Item

from beranode.fleet_registry import FleetSpec, NodeSpec
from beranode.layout import FleetLayout
from beranode.ports import PortKind
from beranode.settings import DeploymentMode, resolve_network
from beranode.topology import PeerTopology

logger = logging.getLogger(__name__)

KeyPath = tuple[str, ...]
Patch = dict[KeyPath, Any]

CLIENT_TOML = "client.toml"
APP_TOML = "app.toml"
CONFIG_TOML = "config.toml"


class ConfigSynthesisError(Exception):
    """Raised when a node's configuration cannot be synthesized."""

    pass


class TemplateKeyError(ConfigSynthesisError):
    """Raised when a template lacks a key the patch expects."""

    def __init__(self, source: str, key_path: KeyPath):
        self.source = source
        self.key_path = key_path
        super().__init__(f"{source}: expected key '{'.'.join(key_path)}' not found in template")


def _plain(value: Any) -> Any:
    return value.unwrap() if isinstance(value, Item) else value


def _coerce(current: Any, value: Any) -> Any:
    """Keep the template's scalar type where the two differ."""
    current = _plain(current)
    if isinstance(current, bool) or isinstance(value, bool):
        if isinstance(current, str) and isinstance(value, bool):
            return "true" if value else "false"
        return value
    if isinstance(current, str) and not isinstance(value, str):
        return str(value)
    if isinstance(current, int) and isinstance(value, str) and value.lstrip("-").isdigit():
        return int(value)
    return value


def patch_document(doc: Any, patch: Patch, source: str = "<document>") -> Any:
    """Set every key path of `patch` in a parsed tomlkit document.

    Raises:
        TemplateKeyError: If a key path is absent from the document
    """
    for key_path, value in patch.items():
        container = doc
        for part in key_path[:-1]:
            try:
                container = container[part]
            except (KeyError, TypeError) as e:
                raise TemplateKeyError(source, key_path) from e
        leaf = key_path[-1]
        try:
            current = container[leaf]
        except (KeyError, TypeError) as e:
            raise TemplateKeyError(source, key_path) from e
        container[leaf] = _coerce(current, value)
    return doc


def apply_patch(path: Path, patch: Patch) -> None:
    """Apply a patch to a TOML file in place.

    Raises:
        ConfigSynthesisError: If the file cannot be read, parsed or written
        TemplateKeyError: If a key path is absent from the file
    """
    try:
        with open(path) as f:
            doc = tomlkit.load(f)
    except FileNotFoundError as e:
        raise ConfigSynthesisError(f"Template not found: {path}") from e
    except (OSError, ParseError) as e:
        raise ConfigSynthesisError(f"Failed to parse {path}: {e}") from e

    patch_document(doc, patch, source=path.name)

    temp_path = path.with_suffix(".tmp")
    try:
        with open(temp_path, "w") as f:
            tomlkit.dump(doc, f)
        os.chmod(temp_path, 0o600)
        temp_path.replace(path)
    except OSError as e:
        raise ConfigSynthesisError(f"Failed to write {path}: {e}") from e


def _set_optional(patch: Patch, key_path: KeyPath, value: Any) -> None:
    if value is not None:
        patch[key_path] = value


class ConfigSynthesizer:
    """Build the client, app, and engine patches for the nodes of a fleet."""

    def __init__(self, fleet: FleetSpec, layout: FleetLayout):
        self.fleet = fleet
        self.layout = layout
        self.network = resolve_network(fleet.network)

    @property
    def _listen_host(self) -> str:
        if self.fleet.deployment_mode is DeploymentMode.DOCKER:
            return "0.0.0.0"
        return "127.0.0.1"

    def jwt_path(self, node: NodeSpec) -> Path:
        return self.layout.beacond_home(node.dir_name) / "config" / "jwt.hex"

    def client_patch(self, node: NodeSpec) -> Patch:
        client = self.fleet.settings.client
        return {
            ("chain-id",): self.fleet.beacon_chain_id,
            ("keyring-backend",): client.keyring_backend,
            ("output",): client.output,
            ("node",): f"tcp://{self._listen_host}:{node.ports[PortKind.CL_RPC]}",
            ("broadcast-mode",): client.broadcast_mode,
        }

    def app_patch(self, node: NodeSpec) -> Patch:
        app = self.fleet.settings.app
        patch: Patch = {
            ("pruning",): app.pruning,
            ("pruning-keep-recent",): app.pruning_keep_recent,
            ("pruning-interval",): app.pruning_interval,
            ("telemetry", "enabled"): app.telemetry_enabled,
            ("telemetry", "service-name"): app.telemetry_service_name,
            ("telemetry", "prometheus-retention-time"): app.prometheus_retention_time,
            ("beacon-kit", "chain-spec"): self.network.chain_spec,
            ("beacon-kit", "shutdown-timeout"): app.shutdown_timeout,
            ("beacon-kit", "engine", "rpc-dial-url"): f"http://localhost:{node.ports[PortKind.EL_AUTHRPC]}",
            ("beacon-kit", "engine", "rpc-timeout"): app.engine_rpc_timeout,
            ("beacon-kit", "engine", "jwt-secret-path"): str(self.jwt_path(node)),
            ("beacon-kit", "logger", "log-level"): app.log_level,
            ("beacon-kit", "kzg", "trusted-setup-path"): str(self.layout.trusted_setup_path),
            ("beacon-kit", "payload-builder", "payload-timeout"): app.payload_timeout,
            ("beacon-kit", "node-api", "enabled"): app.node_api_enabled,
            ("beacon-kit", "node-api", "address"): f"{self._listen_host}:{node.ports[PortKind.CL_API]}",
            ("beacon-kit", "node-api", "logging"): app.node_api_logging,
        }
        _set_optional(patch, ("beacon-kit", "payload-builder", "suggested-fee-recipient"), app.suggested_fee_recipient)
        _set_optional(patch, ("beacon-kit", "validator", "availability-window"), app.availability_window)
        return patch

    def engine_patch(self, node: NodeSpec, topology: PeerTopology) -> Patch:
        engine = self.fleet.settings.engine
        ports = node.ports
        patch: Patch = {
            ("moniker",): node.moniker,
            ("proxy_app",): f"tcp://127.0.0.1:{ports[PortKind.CL_PROXY]}",
            ("log_level",): engine.log_level,
            ("rpc", "laddr"): f"tcp://{self._listen_host}:{ports[PortKind.CL_RPC]}",
            ("p2p", "laddr"): f"tcp://0.0.0.0:{ports[PortKind.CL_P2P]}",
            ("p2p", "seeds"): topology.seeds,
            ("p2p", "persistent_peers"): topology.persistent_peers,
            ("p2p", "allow_duplicate_ip"): engine.allow_duplicate_ip,
            ("p2p", "addr_book_strict"): engine.addr_book_strict,
            ("p2p", "max_num_inbound_peers"): engine.max_num_inbound_peers,
            ("p2p", "max_num_outbound_peers"): engine.max_num_outbound_peers,
            ("grpc", "laddr"): f"tcp://127.0.0.1:{ports[PortKind.CL_GRPC]}",
            ("grpc", "privileged", "laddr"): f"tcp://127.0.0.1:{ports[PortKind.CL_GRPC_PRIVILEGED]}",
            ("consensus", "timeout_propose"): engine.timeout_propose,
            ("instrumentation", "prometheus"): engine.prometheus,
            ("instrumentation", "prometheus_listen_addr"): f":{ports[PortKind.CL_METRICS]}",
            ("instrumentation", "namespace"): engine.namespace,
        }
        _set_optional(patch, ("mempool", "size"), engine.mempool_size)
        _set_optional(patch, ("mempool", "max_txs_bytes"), engine.mempool_max_txs_bytes)
        _set_optional(patch, ("consensus", "timeout_commit"), engine.timeout_commit)
        _set_optional(patch, ("storage", "discard_abci_responses"), engine.discard_abci_responses)
        return patch

    def synthesize(self, node: NodeSpec, topology: PeerTopology) -> list[Path]:
        """Patch the three templates in the node's beacond config dir.

        Returns:
            Paths of the patched files

        Raises:
            TemplateKeyError: If a template lacks an expected key
            ConfigSynthesisError: If a template is missing or unparseable
        """
        config_dir = self.layout.beacond_home(node.dir_name) / "config"
        plan = [
            (config_dir / CLIENT_TOML, self.client_patch(node)),
            (config_dir / APP_TOML, self.app_patch(node)),
            (config_dir / CONFIG_TOML, self.engine_patch(node, topology)),
        ]
        for path, patch in plan:
            apply_patch(path, patch)
            logger.debug(f"Patched {len(patch)} keys in {path}")
        return [path for path, _ in plan]
