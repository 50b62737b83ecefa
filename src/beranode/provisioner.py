"""Fleet provisioning (the `init` command).

Steps, in order:
1. Reuse an existing registry unless overwrite was requested
2. Default and check node counts (at least one validator, fleet fits the port space)
3. Check the binaries the fleet needs
4. Generate the fleet wallet and one identity per node
5. Write the registry once
6. Fetch the KZG trusted setup and build the shared genesis files

A reused fleet skips steps 2-5. Step 6 still runs for it, producing only the
files an earlier, interrupted run left missing.

Interactive confirmation is not done here: callers pass `overwrite`.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from beranode import artifacts
from beranode.binaries import BIN_CAST, BinaryLocator
from beranode.fleet_registry import FleetRegistry, FleetSpec, NodeSpec, RegistryError, node_moniker
from beranode.genesis import GenesisBuilder, GenesisError, GenesisResult, to_hex_balance
from beranode.identity import IdentityError, IdentityGenerator
from beranode.layout import FleetLayout
from beranode.ports import allocate, max_fleet_size
from beranode.settings import (
    BIN_BEACOND,
    BIN_BERA_RETH,
    DEFAULT_MONIKER_PREFIX,
    DEFAULT_WALLET_BALANCE,
    DeploymentMode,
    GlobalSettings,
    Role,
    resolve_network,
)

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """Raised when a fleet cannot be provisioned."""

    pass


@dataclass
class ProvisionRequest:
    """Parameters of `beranode init`."""

    network: str = "devnet"
    validators: int = 1
    full_nodes: int = 0
    pruned_nodes: int = 0
    moniker: str = DEFAULT_MONIKER_PREFIX
    mode: DeploymentMode = DeploymentMode.LOCAL
    wallet_balance: str = DEFAULT_WALLET_BALANCE
    wallet_private_key: str | None = None


@dataclass
class ProvisionResult:
    fleet: FleetSpec
    registry_path: Path
    reused: bool = False
    genesis: GenesisResult | None = None


def normalize_counts(validators: int, full_nodes: int, pruned_nodes: int) -> tuple[int, int, int]:
    """Apply count defaults: at least one validator, no negative counts."""
    if validators <= 0:
        logger.warning(f"Validator count {validators} is not positive, using 1")
        validators = 1
    if full_nodes < 0:
        logger.warning(f"Full node count {full_nodes} is negative, using 0")
        full_nodes = 0
    if pruned_nodes < 0:
        logger.warning(f"Pruned node count {pruned_nodes} is negative, using 0")
        pruned_nodes = 0
    return validators, full_nodes, pruned_nodes


def plan_roles(validators: int, full_nodes: int, pruned_nodes: int) -> list[tuple[Role, int]]:
    """Fleet order: validators, then full nodes, then pruned nodes, with per-role indices."""
    return (
        [(Role.VALIDATOR, i) for i in range(validators)]
        + [(Role.RPC_FULL, i) for i in range(full_nodes)]
        + [(Role.RPC_PRUNED, i) for i in range(pruned_nodes)]
    )


class Provisioner:
    """Provision a fleet into a fleet root."""

    def __init__(
        self,
        layout: FleetLayout,
        locator: BinaryLocator | None = None,
        fetch_trusted_setup=artifacts.fetch_trusted_setup,
        fetch_eth_genesis_template=artifacts.fetch_eth_genesis_template,
    ):
        self.layout = layout
        self.registry = FleetRegistry(layout.registry_path)
        self.locator = locator or BinaryLocator(layout.bin_dir)
        self.fetch_trusted_setup = fetch_trusted_setup
        self.fetch_eth_genesis_template = fetch_eth_genesis_template

    def provision(self, request: ProvisionRequest, overwrite: bool = False) -> ProvisionResult:
        """Provision a fleet, or reuse the one already recorded.

        A reused registry is left untouched and its request is ignored, but
        shared files a previous run failed to produce are still built.

        Args:
            request: Fleet parameters
            overwrite: Replace an existing registry instead of reusing it

        Returns:
            ProvisionResult describing the fleet now on disk

        Raises:
            ProvisioningError: If the fleet is too large or a step fails
            BinaryNotFoundError: If required binaries are missing
        """
        if self.registry.exists() and not overwrite:
            logger.info(f"Reusing existing registry at {self.registry.path}")
            try:
                fleet = self.registry.load()
            except RegistryError as e:
                raise ProvisioningError(f"Existing registry is unusable: {e}") from e
            genesis = self._prepare_shared_files(fleet, rebuild_genesis=False)
            return ProvisionResult(fleet=fleet, registry_path=self.registry.path, reused=True, genesis=genesis)

        fleet, beacond = self._create_fleet(request, overwrite)
        genesis = self._prepare_shared_files(fleet, rebuild_genesis=True, beacond=beacond)
        return ProvisionResult(fleet=fleet, registry_path=self.registry.path, genesis=genesis)

    def _create_fleet(self, request: ProvisionRequest, overwrite: bool) -> tuple[FleetSpec, Path]:
        validators, full_nodes, pruned_nodes = normalize_counts(
            request.validators, request.full_nodes, request.pruned_nodes
        )
        total = validators + full_nodes + pruned_nodes
        limit = max_fleet_size(request.mode)
        if limit is not None and total > limit:
            raise ProvisioningError(
                f"A {request.mode.value} fleet can hold at most {limit} nodes before ports exceed 65535 "
                f"(requested {total})"
            )
        try:
            to_hex_balance(request.wallet_balance)
        except GenesisError as e:
            raise ProvisioningError(str(e)) from e

        self.layout.ensure()
        binaries = self.locator.require_all([BIN_BEACOND, BIN_BERA_RETH, BIN_CAST])
        beacond, cast = binaries[BIN_BEACOND], binaries[BIN_CAST]

        network = resolve_network(request.network)
        identities = IdentityGenerator(beacond, cast, self.layout.tmp_dir)

        try:
            if request.wallet_private_key:
                wallet_key = request.wallet_private_key
                wallet_address = identities.wallet_address(wallet_key)
            else:
                wallet = identities.generate_wallet()
                wallet_key, wallet_address = wallet.private_key, wallet.address

            nodes = []
            for index, (role, local_index) in enumerate(plan_roles(validators, full_nodes, pruned_nodes)):
                moniker = node_moniker(request.moniker, role, local_index)
                logger.info(f"Generating identity for {moniker}")
                nodes.append(
                    NodeSpec(
                        role=role,
                        moniker=moniker,
                        wallet_address=wallet_address,
                        ports=allocate(index, role, request.mode),
                        identity=identities.generate_node_identity(moniker, network, role, wallet_address),
                        local_index=local_index,
                    )
                )
        except IdentityError as e:
            raise ProvisioningError(str(e)) from e

        fleet = FleetSpec(
            network=network.name,
            chain_id=network.chain_id,
            beacon_chain_id=network.beacon_chain_id,
            moniker=request.moniker,
            validators=validators,
            full_nodes=full_nodes,
            pruned_nodes=pruned_nodes,
            deployment_mode=request.mode,
            wallet_address=wallet_address,
            wallet_private_key=wallet_key,
            wallet_balance=request.wallet_balance,
            settings=GlobalSettings.for_network(network, wallet_address),
            nodes=nodes,
        )
        try:
            self.registry.create(fleet, overwrite=overwrite)
        except RegistryError as e:
            raise ProvisioningError(str(e)) from e
        logger.info(f"Registry written to {self.registry.path}")
        return fleet, beacond

    def _prepare_shared_files(
        self, fleet: FleetSpec, rebuild_genesis: bool, beacond: Path | None = None
    ) -> GenesisResult | None:
        """Fetch the trusted setup and build the genesis files.

        Without `rebuild_genesis`, a genesis.json already on disk is kept and
        None is returned.
        """
        try:
            self.layout.ensure()
            self.fetch_trusted_setup(self.layout.trusted_setup_path)
            if not rebuild_genesis and self.layout.genesis_path.exists():
                logger.info(f"Genesis already present at {self.layout.genesis_path}")
                return None

            if beacond is None:
                beacond = self.locator.require(BIN_BEACOND)
            if not self.layout.eth_genesis_path.exists():
                self.fetch_eth_genesis_template(self.layout.eth_genesis_template_path)
            builder = GenesisBuilder(beacond, self.layout, resolve_network(fleet.network))
            builder.write_eth_genesis(fleet.wallet_address, fleet.wallet_balance)
            return builder.build(
                fleet.validator_nodes()[0].moniker,
                [node.identity.premined_deposit for node in fleet.validator_nodes()],
            )
        except (artifacts.ArtifactError, GenesisError, OSError) as e:
            raise ProvisioningError(str(e)) from e
