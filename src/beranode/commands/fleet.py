"""Fleet provisioning command for beranode CLI.

- init: Generate identities, write the registry, build shared genesis files
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from beranode.binaries import BinaryNotFoundError
from beranode.commands.cli_helpers import beranodes_dir_option, resolve_layout
from beranode.fleet_registry import FleetRegistry, FleetSpec
from beranode.modules.interaction_handler import CLIInteractionHandler, InteractionHandler
from beranode.ports import PortKind
from beranode.provisioner import ProvisionRequest, Provisioner, ProvisioningError
from beranode.settings import DEFAULT_MONIKER_PREFIX, DEFAULT_NETWORK, DEFAULT_WALLET_BALANCE, NETWORKS, DeploymentMode

logger = logging.getLogger(__name__)


def get_interaction_handler() -> InteractionHandler:
    return CLIInteractionHandler()


def build_fleet_table(fleet: FleetSpec, title: str = "Beranode Fleet") -> Table:
    """Rich table of a fleet's nodes and their main ports."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Moniker", style="cyan", no_wrap=True)
    table.add_column("Role")
    table.add_column("Dir", style="dim")
    table.add_column("CL P2P", justify="right")
    table.add_column("CL RPC", justify="right")
    table.add_column("EL RPC", justify="right")
    table.add_column("EL Auth", justify="right")
    table.add_column("Node ID", style="dim", no_wrap=True)
    for index, node in enumerate(fleet.nodes):
        table.add_row(
            str(index),
            node.moniker,
            node.role.value,
            node.dir_name,
            str(node.ports[PortKind.CL_P2P]),
            str(node.ports[PortKind.CL_RPC]),
            str(node.ports[PortKind.EL_RPC]),
            str(node.ports[PortKind.EL_AUTHRPC]),
            node.identity.node_id[:12],
        )
    return table


@click.command()
@beranodes_dir_option
@click.option(
    "--network",
    type=click.Choice(sorted(NETWORKS)),
    default=DEFAULT_NETWORK,
    show_default=True,
    help="Chain to provision for",
)
@click.option("--validators", type=int, default=1, show_default=True, help="Number of validator nodes")
@click.option("--full-nodes", type=int, default=0, show_default=True, help="Number of full RPC nodes")
@click.option("--pruned-nodes", type=int, default=0, show_default=True, help="Number of pruned RPC nodes")
@click.option("--moniker", default=DEFAULT_MONIKER_PREFIX, show_default=True, help="Fleet moniker prefix")
@click.option("--docker", is_flag=True, help="Provision for containerized deployment")
@click.option(
    "--wallet-balance",
    default=DEFAULT_WALLET_BALANCE,
    show_default=True,
    help="Genesis balance of the fleet wallet (wei, decimal or 0x hex)",
)
@click.option("--wallet-private-key", default=None, help="Fund this key instead of generating a wallet")
@click.option(
    "--overwrite/--reuse",
    default=None,
    help="Replace or reuse an existing registry (prompts when omitted)",
)
def init(
    beranodes_dir: Path | None,
    network: str,
    validators: int,
    full_nodes: int,
    pruned_nodes: int,
    moniker: str,
    docker: bool,
    wallet_balance: str,
    wallet_private_key: str | None,
    overwrite: bool | None,
):
    """Provision a new fleet of beacond / bera-reth nodes.

    \b
    Examples:
        beranode init
        beranode init --validators 2 --full-nodes 1
        beranode init --network bepolia --moniker mynet --overwrite
    """
    layout = resolve_layout(beranodes_dir)
    registry = FleetRegistry(layout.registry_path)

    if overwrite is None:
        overwrite = False
        if registry.exists():
            handler = get_interaction_handler()
            overwrite = handler.confirm(
                f"A fleet registry already exists at {registry.path}. Overwrite it?", default=False
            )
            if not overwrite:
                handler.show_info("Reusing the existing registry.")

    request = ProvisionRequest(
        network=network,
        validators=validators,
        full_nodes=full_nodes,
        pruned_nodes=pruned_nodes,
        moniker=moniker,
        mode=DeploymentMode.DOCKER if docker else DeploymentMode.LOCAL,
        wallet_balance=wallet_balance,
        wallet_private_key=wallet_private_key,
    )

    try:
        click.echo(f"Provisioning fleet in {layout.root}...")
        result = Provisioner(layout).provision(request, overwrite=overwrite)
    except (BinaryNotFoundError, ProvisioningError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    Console().print(build_fleet_table(result.fleet))
    if result.reused:
        click.echo(f"\nExisting registry kept: {result.registry_path}")
    else:
        click.echo(f"\nRegistry written: {result.registry_path}")
    if result.genesis is not None:
        click.echo(f"Genesis: {result.genesis.genesis_path} ({result.genesis.deposits} deposits)")
    click.echo("Start the fleet with: beranode start")
