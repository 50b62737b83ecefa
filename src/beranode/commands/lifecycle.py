"""Fleet lifecycle commands for beranode CLI.

- start: Synthesize node configs and launch every node
- stop: Terminate every process recorded in runs/
- status: Show recorded processes and whether they are alive
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from beranode.binaries import BinaryLocator, BinaryNotFoundError
from beranode.commands.cli_helpers import beranodes_dir_option, resolve_layout
from beranode.config_synthesizer import ConfigSynthesisError
from beranode.fleet_registry import FleetRegistry, RegistryError
from beranode.process_supervisor import ProcessSupervisor, SupervisorError
from beranode.settings import BIN_BEACOND, BIN_BERA_RETH
from beranode.topology import TopologyError

logger = logging.getLogger(__name__)


# ============================================================================
# START COMMAND
# ============================================================================


@click.command()
@beranodes_dir_option
def start(beranodes_dir: Path | None):
    """Start every node of the fleet.

    \b
    Examples:
        beranode start
        beranode start --beranodes-dir /custom/path
    """
    layout = resolve_layout(beranodes_dir)
    try:
        fleet = FleetRegistry(layout.registry_path).load()
        binaries = BinaryLocator(layout.bin_dir).require_all([BIN_BEACOND, BIN_BERA_RETH])
        supervisor = ProcessSupervisor(layout, beacond=binaries[BIN_BEACOND], bera_reth=binaries[BIN_BERA_RETH])
        click.echo(f"Starting {fleet.total_nodes} nodes from {layout.root}...")
        handles = supervisor.start(fleet)
    except (RegistryError, BinaryNotFoundError, SupervisorError, ConfigSynthesisError, TopologyError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    table = Table(title="Started Processes", show_header=True, header_style="bold")
    table.add_column("Node", style="cyan", no_wrap=True)
    table.add_column("Process")
    table.add_column("PID", justify="right")
    table.add_column("Log", style="dim")
    for handle in handles:
        table.add_row(fleet.nodes[handle.node_index].moniker, handle.process, str(handle.pid), str(handle.log_path))
    Console().print(table)
    click.echo(f"\nStarted {len(fleet.nodes)} nodes. Stop them with: beranode stop")


# ============================================================================
# STOP COMMAND
# ============================================================================


@click.command()
@beranodes_dir_option
def stop(beranodes_dir: Path | None):
    """Stop every running node of the fleet.

    \b
    Examples:
        beranode stop
        beranode stop --beranodes-dir /custom/path
    """
    layout = resolve_layout(beranodes_dir)
    supervisor = ProcessSupervisor(layout)
    if layout.runs_dir.is_dir() and not supervisor.status():
        click.echo(f"No PID files found in {layout.runs_dir}")
        return
    try:
        click.echo("Stopping nodes...")
        summary = supervisor.stop()
    except SupervisorError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Stopped {summary.pid_files} processes")


# ============================================================================
# STATUS COMMAND
# ============================================================================


@click.command()
@beranodes_dir_option
def status(beranodes_dir: Path | None):
    """Show fleet processes and whether they are running.

    \b
    Examples:
        beranode status
    """
    layout = resolve_layout(beranodes_dir)
    statuses = ProcessSupervisor(layout).status()
    if not statuses:
        click.echo("No fleet processes recorded.")
        return

    table = Table(title="Fleet Processes", show_header=True, header_style="bold")
    table.add_column("Process", style="cyan", no_wrap=True)
    table.add_column("PID", justify="right")
    table.add_column("State")
    for entry in statuses:
        state = "[green]running[/green]" if entry.alive else "[red]dead[/red]"
        table.add_row(entry.name, str(entry.pid) if entry.pid is not None else "-", state)
    Console().print(table)

    alive = sum(1 for s in statuses if s.alive)
    click.echo(f"\n{alive}/{len(statuses)} processes running")
